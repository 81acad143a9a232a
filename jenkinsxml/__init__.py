#!/usr/bin/env python
# Software License Agreement (BSD License)
#
# Copyright (c) 2010, Willow Garage, Inc.
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions
# are met:
#
#  * Redistributions of source code must retain the above copyright
#    notice, this list of conditions and the following disclaimer.
#  * Redistributions in binary form must reproduce the above
#    copyright notice, this list of conditions and the following
#    disclaimer in the documentation and/or other materials provided
#    with the distribution.
#  * Neither the name of Willow Garage, Inc. nor the names of its
#    contributors may be used to endorse or promote products derived
#    from this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# 'AS IS' AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE
# COPYRIGHT OWNER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING,
# BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES;
# LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT
# LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN
# ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.
#
# Authors:
# Ken Conley <kwc@willowgarage.com>
# James Page <james.page@canonical.com>
# Tully Foote <tfoote@willowgarage.com>
# Matthew Gertner <matthew.gertner@gmail.com>

'''
.. module:: jenkinsxml
    :platform: Unix, Windows
    :synopsis: Python client for the Jenkins XML API
    :noindex:

Jobs are read and written as :mod:`jenkinsxml.tree` documents::

    >>> server = jenkinsxml.Jenkins('http://localhost:8080', 'admin', 'token')
    >>> config = server.get_config(server.get_job_path('folder/job'))
    >>> tree.set_element_text(tree.find_one(config, '/project'),
    ...                       'disabled', 'true')
    >>> server.send_config(server.get_job_path('folder/job'), config)
'''

import logging
from logging import NullHandler
import os
import socket
from urllib.parse import quote
from xml.parsers.expat import ExpatError

import requests
import requests.exceptions as req_exc
from requests.packages.urllib3.exceptions import InsecureRequestWarning

from jenkinsxml import endpoints
from jenkinsxml import tree

# Set default logging handler to avoid "No handler found" warnings.
logging.getLogger(__name__).addHandler(NullHandler())

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {'Content-Type': 'application/xml; charset=utf-8'}
METHODS = ('GET', 'POST')


class JenkinsException(Exception):
    '''General exception type for jenkins-API-related failures.'''
    pass


class BadHTTPException(JenkinsException):
    '''A special exception to call out a response other than 200 OK.

    The message is the raw response body sent by Jenkins.
    '''

    def __init__(self, message, status_code=None):
        super(BadHTTPException, self).__init__(message)
        self.status_code = status_code


class NotFoundException(BadHTTPException):
    '''A special exception to call out the case of receiving a 404.'''
    pass


class TimeoutException(JenkinsException):
    '''A special exception to call out in the case of a socket timeout.'''


class ParseException(JenkinsException):
    '''A special exception to call out XML that cannot be read or written.'''


class WrappedSession(requests.Session):
    """A wrapper for requests.Session to override 'verify' property, ignoring REQUESTS_CA_BUNDLE environment variable.

    This is a workaround for https://github.com/kennethreitz/requests/issues/3829 (will be fixed in requests 3.0.0)
    """

    def merge_environment_settings(self, url, proxies, stream, verify, *args,
                                   **kwargs):
        if self.verify is False:
            verify = False

        return super(WrappedSession, self).merge_environment_settings(url,
                                                                      proxies,
                                                                      stream,
                                                                      verify,
                                                                      *args,
                                                                      **kwargs)


class Jenkins(object):

    def __init__(self, url, username=None, token=None,
                 timeout=socket._GLOBAL_DEFAULT_TIMEOUT):
        '''Create handle to Jenkins instance.

        All methods will raise :class:`JenkinsException` on failure.

        Basic authentication is only used when both ``username`` and
        ``token`` are given; it is then sent with every request.

        :param url: URL of Jenkins server, ``str``
        :param username: Server username, ``str``
        :param token: API token of the user, ``str``
        :param timeout: Server connection timeout in secs (default: not set), ``int``
        '''
        if url[-1] == '/':
            self.server = url
        else:
            self.server = url + '/'

        self.timeout = timeout
        self._session = WrappedSession()

        self.auth = None
        if username is not None and token is not None:
            self.auth = requests.auth.HTTPBasicAuth(
                username.encode('utf-8'), token.encode('utf-8'))
        self._session.auth = self.auth

        extra_headers = os.environ.get("JENKINS_API_EXTRA_HEADERS", "")
        if extra_headers:
            logger.warning("JENKINS_API_EXTRA_HEADERS adds these HTTP headers: %s", extra_headers.split("\n"))
        for line in extra_headers.split("\n"):
            if ":" in line:
                header, value = line.split(":", 1)
                self._session.headers[header] = value.strip()

        if os.getenv('PYTHONHTTPSVERIFY', '1') == '0':
            logger.debug('PYTHONHTTPSVERIFY=0 detected so we will '
                         'disable requests library SSL verification to keep '
                         'compatibility with older versions.')
            requests.packages.urllib3.disable_warnings(InsecureRequestWarning)
            self._session.verify = False

    def _build_url(self, path, suffix=''):
        # Support paths already including the server part.
        if not path.startswith(self.server.rstrip('/')):
            path = self.server + path.lstrip('/')

        if suffix:
            if not path.endswith('/'):
                path += '/'
            path += suffix

        return path

    def get_job_path(self, name):
        '''Return the server relative path of a job (see cloudbees plugin).

        Folders are separated by slashes in the job name (ex.: 'folder/job').

        :param name: Job name, ``str``
        :returns: Path usable with :meth:`get_config` and friends, ``str``
        '''
        return ''.join('job/%s/' % quote(part.encode('utf8'))
                       for part in name.split('/'))

    def _response_handler(self, response):
        '''Handle response objects'''

        # Anything but 200 is an error, Jenkins explains it in the body.
        if response.status_code != 200:
            logger.debug("%s answered [%d]", response.url,
                         response.status_code)
            if response.status_code == 404:
                raise NotFoundException(response.text, response.status_code)
            raise BadHTTPException(response.text, response.status_code)

        try:
            doc = tree.parse(response.content)
        except ExpatError as e:
            raise ParseException("Could not parse XML from [%s]: %s"
                                 % (response.url, e))

        return tree.remove_declaration(doc)

    def _request(self, req):

        r = self._session.prepare_request(req)
        # requests.Session.send() does not honor env settings by design
        # see https://github.com/requests/requests/issues/2807
        _settings = self._session.merge_environment_settings(
            r.url, {}, None, self._session.verify, None)
        _settings['timeout'] = self.timeout
        return self._session.send(r, **_settings)

    def jenkins_request(self, method, path, suffix='', data=None):
        '''Utility routine for opening an HTTP request to a Jenkins server.

        :param method: ``'GET'`` or ``'POST'``, ``str``
        :param path: Item path, relative to the server or absolute, ``str``
        :param suffix: Endpoint appended to the path, ``str``
        :param data: Request body, ``bytes``
        :returns: the parsed response, :class:`jenkinsxml.tree.Node`
        '''
        if method not in METHODS:
            raise JenkinsException('Invalid request method[%s]' % method)

        url = self._build_url(path, suffix)
        headers = {}
        # When posting new content, the header is required.
        if method == 'POST' and data is not None:
            headers = DEFAULT_HEADERS

        logger.debug("%s %s", method, url)
        try:
            response = self._request(requests.Request(
                method, url, data=data, headers=headers))
        except req_exc.Timeout as e:
            raise TimeoutException('Error in request: %s' % (e))
        except req_exc.ConnectionError as e:
            raise JenkinsException('Error in request: %s' % (e))
        except (req_exc.InvalidURL, req_exc.MissingSchema,
                req_exc.InvalidSchema) as e:
            raise JenkinsException('Invalid request[%s %s]: %s'
                                   % (method, url, e))

        return self._response_handler(response)

    def query_api(self, path):
        '''Make a regular api request.

        :param path: Item path, ``str``
        :returns: parsed ``api/xml`` document, :class:`jenkinsxml.tree.Node`
        '''
        return self.jenkins_request('GET', path, endpoints.API_XML)

    def get_config(self, path):
        '''Get configuration of existing Jenkins job.

        :param path: Job path, e.g. from :meth:`get_job_path`, ``str``
        :returns: ``config.xml`` document, :class:`jenkinsxml.tree.Node`
        '''
        return self.jenkins_request('GET', path, endpoints.CONFIG_XML)

    def send_config(self, path, config):
        '''Change configuration of existing Jenkins job.

        :param path: Job path, ``str``
        :param config: Document as returned by :meth:`get_config`,
            :class:`jenkinsxml.tree.Node`
        '''
        try:
            data = tree.serialize(config)
        except ValueError as e:
            raise ParseException('Could not serialize config for [%s]: %s'
                                 % (path, e))
        self.jenkins_request('POST', path, endpoints.CONFIG_XML, data)

    def get_projects(self, path=''):
        """Get urls of all freestyle projects below a folder, recursively.

        Projects of a folder come first in the order Jenkins lists them,
        followed by the projects of each sub folder in turn.

        :param path: Folder path, ``str``
        :returns: list of project urls, ``[str]``

        Example::

            >>> server.get_projects('job/team/')
            ['http://your_url.here/job/team/job/build/',
             'http://your_url.here/job/team/job/nightly/job/test/']
        """
        projects = []
        folders = [path]
        while folders:
            folder = folders.pop()
            logger.debug("Listing projects of folder[%s]", folder)
            doc = self.query_api(folder)

            projects.extend(tree.inner_text(url) for url in
                            tree.find(doc, endpoints.PROJECT_URLS))
            # last pushed is visited first
            folders.extend(reversed([tree.inner_text(url) for url in
                                     tree.find(doc, endpoints.FOLDER_URLS)]))

        return projects
