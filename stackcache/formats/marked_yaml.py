"""
A PyYAML loader subclass that is fit for parsing declarations: it
annotates positions in the source so that errors can point at the
offending line.

The loader is based on `SafeConstructor`, i.e., the behaviour of
`yaml.safe_load`, but in addition every dict/list/str/int is replaced
with dict_node/list_node/str_node/int_node, which subclass the builtin
types to add the attributes `start_mark` and `end_mark`. (See the
yaml.error module for the `Mark` class.)

:class:`DeclarationLoader` additionally only parses values as strings
(booleans and null excepted), so that ``version: 1.10`` stays ``"1.10"``.
"""

from yaml.error import Mark
from yaml.reader import Reader
from yaml.scanner import Scanner
from yaml.parser import Parser
from yaml.composer import Composer
from yaml.resolver import Resolver
from yaml.constructor import SafeConstructor

import jsonschema


def _find_mark(doc):
    """Traverse a document to try to find a start_mark attribute"""
    if hasattr(doc, 'start_mark'):
        return doc.start_mark
    elif isinstance(doc, dict):
        for key, value in doc.items():
            mark = _find_mark(key) or _find_mark(value)
            if mark:
                return mark
    elif isinstance(doc, list):
        for item in doc:
            mark = _find_mark(item)
            if mark:
                return mark
    return None


class ValidationError(Exception):
    def __init__(self, mark, message=None, wrapped=None):
        if not isinstance(mark, Mark):
            mark = _find_mark(mark)
        Exception.__init__(self, message)
        self.mark = mark
        self.message = message
        self.wrapped = wrapped

    def __str__(self):
        loc = '<unknown location>' if self.mark is None else '%s, line %d' % (self.mark.name, self.mark.line + 1)
        return '%s: %s' % (loc, self.message)


class ExpectedKeyMissingError(KeyError, ValidationError):
    def __init__(self, mark, message, **kw):
        KeyError.__init__(self, message)
        ValidationError.__init__(self, mark, message, **kw)

    def __str__(self):
        return ValidationError.__str__(self)


def create_node_class(cls, name=None):
    class node_class(cls):
        def __init__(self, x, start_mark, end_mark):
            cls.__init__(self, x)
            self.start_mark = start_mark
            self.end_mark = end_mark

        def __new__(self, x, start_mark, end_mark):
            return cls.__new__(self, x)

    node_class.__name__ = name if name else '%s_node' % cls.__name__
    return node_class


class str_node(str):
    def __new__(cls, x, start_mark, end_mark):
        self = str.__new__(cls, x)
        self.start_mark = start_mark
        self.end_mark = end_mark
        return self


class int_node(int):
    def __new__(cls, x, start_mark, end_mark):
        self = int.__new__(cls, x)
        self.start_mark = start_mark
        self.end_mark = end_mark
        return self


list_node = create_node_class(list)


class dict_node(create_node_class(dict)):
    def __getitem__(self, key):
        try:
            return dict.__getitem__(self, key)
        except KeyError:
            raise ExpectedKeyMissingError(self, 'expected key "%s" not found' % key)


class NodeConstructor(SafeConstructor):
    # The SafeConstructor map/seq constructors are generators yielding
    # an empty object first; we exhaust them and wrap the result.
    def construct_yaml_map(self, node):
        obj, = SafeConstructor.construct_yaml_map(self, node)
        return dict_node(obj, node.start_mark, node.end_mark)

    def construct_yaml_seq(self, node):
        obj, = SafeConstructor.construct_yaml_seq(self, node)
        return list_node(obj, node.start_mark, node.end_mark)

    def construct_yaml_str(self, node):
        obj = SafeConstructor.construct_scalar(self, node)
        return str_node(obj, node.start_mark, node.end_mark)

    def construct_yaml_int(self, node):
        obj = SafeConstructor.construct_yaml_int(self, node)
        return int_node(obj, node.start_mark, node.end_mark)

NodeConstructor.add_constructor(
        'tag:yaml.org,2002:map',
        NodeConstructor.construct_yaml_map)

NodeConstructor.add_constructor(
        'tag:yaml.org,2002:seq',
        NodeConstructor.construct_yaml_seq)

NodeConstructor.add_constructor(
        'tag:yaml.org,2002:str',
        NodeConstructor.construct_yaml_str)

NodeConstructor.add_constructor(
        'tag:yaml.org,2002:int',
        NodeConstructor.construct_yaml_int)


class MarkedLoader(Reader, Scanner, Parser, Composer, NodeConstructor, Resolver):
    def __init__(self, stream, filecaption=None):
        Reader.__init__(self, stream)
        if filecaption is not None:
            self.name = filecaption
        Scanner.__init__(self)
        Parser.__init__(self)
        Composer.__init__(self)
        NodeConstructor.__init__(self)
        Resolver.__init__(self)


# implicit types kept by DeclarationLoader; any other plain scalar is a string
_KEPT_IMPLICIT_TAGS = ('tag:yaml.org,2002:bool', 'tag:yaml.org,2002:null')

class DeclarationLoader(MarkedLoader):
    """
    A :class:`MarkedLoader` for declarations, which only parses
    values as strings (apart from booleans and null)
    """
    yaml_implicit_resolvers = dict(
        (first, [(tag, regexp) for tag, regexp in resolvers if tag in _KEPT_IMPLICIT_TAGS])
        for first, resolvers in Resolver.yaml_implicit_resolvers.items())


def marked_yaml_load(stream, filecaption=None, loader_class=MarkedLoader):
    loader = loader_class(stream, filecaption)
    try:
        return loader.get_single_data()
    finally:
        loader.dispose()


def load_yaml_from_file(filename, filecaption=None, loader_class=MarkedLoader):
    with open(filename) as file_stream:
        return marked_yaml_load(file_stream, filecaption or filename, loader_class)


def validate_yaml(doc, schema):
    try:
        jsonschema.validate(doc, schema)
    except jsonschema.ValidationError as e:
        raise ValidationError(_find_mark(e.instance) or _find_mark(doc), e.message, e)


def raw_tree(doc):
    """
    Converts a document consisting of node subclasses to raw
    str/int/dict/list/etc.
    """
    if isinstance(doc, str):
        return str(doc)
    elif isinstance(doc, bool):
        return bool(doc)
    elif isinstance(doc, int):
        return int(doc)
    elif doc is None or isinstance(doc, float):
        return doc
    elif isinstance(doc, dict):
        return dict((raw_tree(key), raw_tree(value)) for key, value in doc.items())
    elif isinstance(doc, (list, tuple)):
        return [raw_tree(child) for child in doc]
    else:
        raise TypeError('document contains illegal type %r' % type(doc))
