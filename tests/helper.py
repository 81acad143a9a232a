import requests
import socketserver

EMPTY_CONFIG_XML = '''<?xml version='1.0' encoding='UTF-8'?>
<project>
  <actions/>
  <description></description>
  <keepDependencies>false</keepDependencies>
  <properties/>
  <scm class="hudson.scm.NullSCM"/>
  <canRoam>true</canRoam>
  <disabled>false</disabled>
  <blockBuildWhenUpstreamBuilding>false</blockBuildWhenUpstreamBuilding>
  <triggers/>
  <concurrentBuild>false</concurrentBuild>
  <builders/>
  <publishers/>
  <buildWrappers/>
</project>'''

RECONFIG_XML = '''<?xml version='1.0' encoding='UTF-8'?>
<project>
  <actions/>
  <description>Runs the unit tests</description>
  <keepDependencies>false</keepDependencies>
  <properties/>
  <scm class="hudson.scm.NullSCM"/>
  <canRoam>true</canRoam>
  <disabled>false</disabled>
  <blockBuildWhenUpstreamBuilding>false</blockBuildWhenUpstreamBuilding>
  <triggers/>
  <concurrentBuild>false</concurrentBuild>
  <builders>
    <hudson.tasks.Shell>
      <command>export FOO=bar &amp;&amp; make check</command>
    </hudson.tasks.Shell>
  </builders>
  <publishers/>
  <buildWrappers/>
</project>'''


class NullServer(socketserver.TCPServer):

    request_queue_size = 1

    def __init__(self, server_address, *args, **kwargs):
        # simply init'ing is sufficient to open the port, which
        # with the server not started creates a black hole server
        socketserver.TCPServer.__init__(
            self, server_address, socketserver.BaseRequestHandler,
            *args, **kwargs)


def build_response_mock(status_code, body=None, headers=None, **kwargs):
    response = requests.Response()
    response.status_code = status_code
    response.encoding = 'utf-8'

    content = b''
    if body is not None:
        content = body.encode('utf-8') if isinstance(body, str) else body
        response.headers['content-length'] = str(len(content))
    response._content = content

    if headers is not None:
        for k, v in headers.items():
            response.headers[k] = v

    for k, v in kwargs.items():
        setattr(response, k, v)

    return response


def folder_xml(*jobs):
    '''Build an ``api/xml`` answer for a folder from (class, url) pairs.'''
    items = ''.join(
        '<job _class="%s"><name>%s</name><url>%s</url></job>'
        % (cls, url.rstrip('/').split('/')[-1], url)
        for cls, url in jobs)
    return ("<?xml version='1.0' encoding='UTF-8'?>"
            '<folder _class="com.cloudbees.hudson.plugins.folder.Folder">'
            '<displayName>folder</displayName>%s</folder>' % items)
