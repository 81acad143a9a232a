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

'''
.. module:: jenkinsxml.tree
    :platform: Unix, Windows
    :synopsis: Mutable XML node tree for Jenkins configuration documents

The tree keeps every node linked to its parent and siblings so that a
``config.xml`` fetched from Jenkins can be patched in place and written back
in the layout Jenkins itself produces::

    >>> doc = tree.parse(b"<project><disabled>false</disabled></project>")
    >>> project = tree.find_one(doc, '/project')
    >>> tree.set_element_text(project, 'disabled', 'true')
    >>> tree.serialize(doc)
    b"<?xml version='1.0' encoding='utf-8' ?>\\n<project>\\n  <disabled>true</disabled>\\n</project>"
'''

import collections
import io
import re
from xml.parsers import expat
from xml.sax.saxutils import escape

DOCUMENT_NODE = 'document'
DECLARATION_NODE = 'declaration'
ELEMENT_NODE = 'element'
TEXT_NODE = 'text'
COMMENT_NODE = 'comment'

# Jenkins writes its own prolog with single quotes
XML_HEADER = "<?xml version='1.0' encoding='utf-8' ?>"
INDENT = '  '

_TEXT_ENTITIES = {'\r': '&#13;'}
_ATTR_ENTITIES = {'"': '&quot;', '\n': '&#10;', '\r': '&#13;', '\t': '&#9;'}

# one child step of a path, e.g. ``job[@_class='hudson.model.FreeStyleProject']``
_PATH_STEP = re.compile(
    r'''(?P<name>\*|[^\s/\[\]@='"]+)'''
    r'''(?:\[@(?P<attr>[^\s/\[\]@='"]+)=(?P<quote>['"])(?P<value>.*?)(?P=quote)\])?'''
    r'''(?:/|$)''')

Name = collections.namedtuple('Name', ['space', 'local'])


class Attr(object):
    '''An attribute of an element or declaration.'''

    def __init__(self, name, value):
        self.name = name
        self.value = value

    def __eq__(self, other):
        if not isinstance(other, Attr):
            return NotImplemented
        return self.name == other.name and self.value == other.value

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __repr__(self):
        return 'Attr(%r, %r)' % (_qualified(self.name.space, self.name.local),
                                 self.value)


class Node(object):
    '''A single node of a parsed document.

    ``type`` is one of :data:`DOCUMENT_NODE`, :data:`DECLARATION_NODE`,
    :data:`ELEMENT_NODE`, :data:`TEXT_NODE` or :data:`COMMENT_NODE`. For
    elements ``data`` holds the local tag name and ``prefix`` its namespace
    prefix; text and comment nodes keep their content in ``data``.
    '''

    def __init__(self, type, data='', prefix='', attrs=None):
        self.type = type
        self.data = data
        self.prefix = prefix
        self.attrs = attrs if attrs is not None else []

        self.parent = None
        self.first_child = None
        self.last_child = None
        self.prev_sibling = None
        self.next_sibling = None

    @property
    def name(self):
        '''Tag name including the namespace prefix, if any.'''
        return _qualified(self.prefix, self.data)

    def __repr__(self):
        if self.type == ELEMENT_NODE:
            return '<Node element %s>' % self.name
        return '<Node %s %r>' % (self.type, self.data)


def _qualified(space, local):
    if space:
        return '%s:%s' % (space, local)
    return local


def _split_name(key):
    # a leading colon is part of the local name
    i = key.find(':')
    if i > 0:
        return Name(key[:i], key[i + 1:])
    return Name('', key)


def _append_child(parent, node):
    node.parent = parent
    if parent.first_child is None:
        parent.first_child = node
    else:
        parent.last_child.next_sibling = node
        node.prev_sibling = parent.last_child
    parent.last_child = node
    return node


def iter_children(node):
    '''Iterate over the direct children of ``node`` in document order.'''
    child = node.first_child
    while child is not None:
        yield child
        child = child.next_sibling


def set_attr(node, key, value):
    '''Set the value of an attribute.

    Attributes are unique by namespace and local name, an existing one is
    overwritten in place.

    :param node: Element to modify, :class:`Node`
    :param key: Attribute name, optionally prefixed (``xsi:type``), ``str``
    :param value: Attribute value, ``str``
    '''
    name = _split_name(key)
    for attr in node.attrs:
        if attr.name == name:
            attr.value = value
            return
    node.attrs.append(Attr(name, value))


def get_attr(node, key, default=None):
    '''Return the value of attribute ``key`` or ``default``.'''
    name = _split_name(key)
    for attr in node.attrs:
        if attr.name == name:
            return attr.value
    return default


def add_element(parent, name):
    '''Append a new empty element to the children of ``parent``.

    Existing elements of the same name are left alone, so repeated calls
    produce repeated siblings.

    :param parent: Parent node, :class:`Node`
    :param name: Tag name, optionally prefixed, ``str``
    :returns: the new element, :class:`Node`
    '''
    prefix, local = _split_name(name)
    return _append_child(parent, Node(ELEMENT_NODE, local, prefix=prefix))


def add_text(node, value):
    '''Append a text node holding ``value`` to ``node``.'''
    return _append_child(node, Node(TEXT_NODE, value))


def set_element_text(node, name, value):
    '''Set the text of the child element ``name``.

    The first matching child that is empty, or holds nothing but a single
    text node, receives ``value``. Matching children of any other shape are
    skipped and, if none qualifies, a new element is appended even though
    one of that name already exists.

    :param node: Parent element, :class:`Node`
    :param name: Tag name of the child, ``str``
    :param value: Text to set, ``str``
    '''
    for child in iter_children(node):
        if child.type != ELEMENT_NODE or child.name != name:
            continue
        if child.first_child is None:
            add_text(child, value)
            return
        if (child.first_child is child.last_child and
                child.first_child.type == TEXT_NODE):
            child.first_child.data = value
            return

    add_text(add_element(node, name), value)


def inner_text(node):
    '''Return the concatenated text of all text nodes below ``node``.'''
    if node.type == TEXT_NODE:
        return node.data
    return ''.join(inner_text(child) for child in iter_children(node)
                   if child.type in (TEXT_NODE, ELEMENT_NODE))


def find(node, path):
    '''Select elements below ``node``.

    ``path`` is a ``/`` separated list of child steps. Each step is a tag
    name or ``*`` and may carry one attribute test such as
    ``job[@_class='hudson.model.FreeStyleProject']``. A leading ``/`` starts
    from the document root instead of ``node``.

    :returns: matching elements in document order, ``[Node]``
    :throws: :class:`ValueError` for unsupported path syntax
    '''
    if path.startswith('/'):
        while node.parent is not None:
            node = node.parent
        rest = path[1:]
    else:
        rest = path

    steps = []
    pos = 0
    while pos < len(rest):
        match = _PATH_STEP.match(rest, pos)
        if match is None or match.end() == pos:
            raise ValueError('unsupported path[%s]' % path)
        steps.append(match)
        pos = match.end()

    contexts = [node]
    for step in steps:
        name, attr = step.group('name'), step.group('attr')
        selected = []
        for context in contexts:
            for child in iter_children(context):
                if child.type != ELEMENT_NODE:
                    continue
                if name != '*' and child.name != name:
                    continue
                if attr is not None and \
                        get_attr(child, attr) != step.group('value'):
                    continue
                selected.append(child)
        contexts = selected
    return contexts


def find_one(node, path):
    '''Return the first element matching ``path`` or ``None``.'''
    found = find(node, path)
    if found:
        return found[0]
    return None


def remove_declaration(doc):
    '''Unlink a leading ``<?xml ...?>`` declaration from ``doc``.

    Jenkins answers with a single quoted prolog; once removed the root
    element is the first child of the document.
    '''
    first = doc.first_child
    if first is None or first.type != DECLARATION_NODE:
        return doc
    doc.first_child = first.next_sibling
    if doc.first_child is not None:
        doc.first_child.prev_sibling = None
    else:
        doc.last_child = None
    first.parent = first.next_sibling = None
    return doc


class _TreeBuilder(object):

    def __init__(self):
        self.root = Node(DOCUMENT_NODE)
        self._stack = [self.root]

    def xml_decl(self, version, encoding, standalone):
        decl = Node(DECLARATION_NODE, 'xml')
        if version:
            set_attr(decl, 'version', version)
        if encoding:
            set_attr(decl, 'encoding', encoding)
        if standalone != -1:
            set_attr(decl, 'standalone', 'yes' if standalone else 'no')
        _append_child(self._stack[-1], decl)

    def start(self, tag, attrs):
        node = add_element(self._stack[-1], tag)
        # ordered_attributes gives a flat [name, value, name, value, ...]
        for key, value in zip(attrs[::2], attrs[1::2]):
            node.attrs.append(Attr(_split_name(key), value))
        self._stack.append(node)

    def end(self, tag):
        self._stack.pop()

    def data(self, text):
        parent = self._stack[-1]
        if parent is self.root:
            return
        last = parent.last_child
        if last is not None and last.type == TEXT_NODE:
            last.data += text
        else:
            add_text(parent, text)

    def comment(self, text):
        _append_child(self._stack[-1], Node(COMMENT_NODE, text))

    def close(self):
        return self.root


def parse(source):
    '''Parse an XML document into a tree of :class:`Node`.

    Namespace prefixes and ``xmlns`` attributes are kept verbatim.
    Whitespace between elements is kept as text nodes. An empty source gives
    an empty document.

    :param source: XML document, ``bytes`` or ``str``
    :returns: the document node, :class:`Node`
    :throws: :class:`xml.parsers.expat.ExpatError` on malformed input
    '''
    builder = _TreeBuilder()
    if not source.strip():
        return builder.close()

    parser = expat.ParserCreate()
    parser.ordered_attributes = True
    parser.buffer_text = True
    parser.XmlDeclHandler = builder.xml_decl
    parser.StartElementHandler = builder.start
    parser.EndElementHandler = builder.end
    parser.CharacterDataHandler = builder.data
    parser.CommentHandler = builder.comment
    parser.Parse(source, True)
    return builder.close()


def _write_attrs(buf, node):
    for attr in node.attrs:
        buf.write(' %s="%s"' % (_qualified(attr.name.space, attr.name.local),
                                escape(attr.value, _ATTR_ENTITIES)))


def _write_node(buf, node, level):
    if node.type == TEXT_NODE:
        buf.write(escape(node.data.strip(), _TEXT_ENTITIES))
        return
    if node.type == COMMENT_NODE:
        # written as a comment, never as text content of the parent
        buf.write('<!--%s-->' % node.data.strip())
        return
    if node.type == DECLARATION_NODE:
        buf.write('<?' + node.data)
        _write_attrs(buf, node)
        buf.write('?>')
        return
    if node.type != ELEMENT_NODE:
        raise ValueError('cannot serialize node of type %r' % (node.type,))

    indent = INDENT * level
    buf.write('\n%s<%s' % (indent, node.name))
    _write_attrs(buf, node)
    if node.first_child is None:
        buf.write('/>')
        return

    buf.write('>')
    for child in iter_children(node):
        _write_node(buf, child, level + 1)

    # keep the closing tag glued to lone text so no whitespace leaks into it
    if (node.first_child is node.last_child and
            node.first_child.type == TEXT_NODE):
        buf.write('</%s>' % node.name)
    else:
        buf.write('\n%s</%s>' % (indent, node.name))


def serialize(node):
    '''Serialize the children of ``node`` the way Jenkins expects them.

    :param node: Document (or any container) to write, :class:`Node`
    :returns: UTF-8 encoded document, ``bytes``
    :throws: :class:`ValueError` if the tree holds an unknown node type
    '''
    buf = io.StringIO()
    buf.write(XML_HEADER)
    for child in iter_children(node):
        _write_node(buf, child, 0)
    return buf.getvalue().encode('utf-8')
