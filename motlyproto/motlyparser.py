"""
Parser for the MOTLY tag language.

MOTLY documents are sequences of property statements:

    name = value            sets the value of a property
    name = value { ... }    sets the value and merges nested properties
    name: { ... }           replaces the nested properties
    name { ... }            merges nested properties
    name                    defines an empty property
    -name                   deletes a property

Names can be dotted paths (a.b.c) and back-quoted (`my-field`). Values are
quoted strings, bare words and arrays of values or property blocks. '#' starts
a comment that runs to the end of the line.

Leading lines that start with '#!' are directives; parse_directives() splits
them off and parses them on their own before the main document is parsed.
"""

import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Union

from lark import Lark, Token, Transformer
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

logger = logging.getLogger(__name__)

DIRECTIVE_MARKER = '#!'

BNF = r'''
start: statement*

?statement: path "=" value [block]  -> assign
          | path ":" block          -> replace
          | path block              -> merge
          | path                    -> define
          | "-" path                -> remove

block: "{" statement* "}"
path: name ( "." name )*
?name: IDENTIFIER | QUOTED_IDENTIFIER

?value: STRING | BARE | array
array: "[" [ element ( "," element )* [ "," ] ] "]"
element: value [block]
       | block

IDENTIFIER: /[A-Za-z0-9_]+/
QUOTED_IDENTIFIER: /`[^`\n]+`/
BARE: /-?[A-Za-z0-9_][A-Za-z0-9_.]*/
STRING: /"(?:[^"\\\n]|\\.)*"/ | /'(?:[^'\\\n]|\\.)*'/
COMMENT: /#[^\n]*/

%import common.WS
%ignore WS
%ignore COMMENT
'''

TagError = NamedTuple('TagError', [('message', str), ('line', int), ('column', int)])
Block = NamedTuple('Block', [('statements', List['Statement'])])
Statement = NamedTuple('Statement', [('op', str), ('path', List[str]), ('value', Any), ('block', Optional['Block'])])
TagParseResult = NamedTuple('TagParseResult', [('tag', 'Tag'), ('log', List['TagError'])])

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'b': '\b', 'f': '\f', '0': '\0'}


class MotlyParseError(ValueError):
    """ Raised when MOTLY text cannot be parsed; carries the parser log """

    def __init__(self, prefix: str, errors: List[TagError]) -> None:
        self.errors = errors
        super().__init__(f"{prefix}: {', '.join(error.message for error in errors)}")


class Tag:
    """ A node of a parsed MOTLY document: an optional value plus optional nested properties """

    def __init__(self) -> None:
        self.value: Union[str, List['Tag'], None] = None
        self.properties: Optional[Dict[str, 'Tag']] = None

    def walk(self, path: List[str], create: bool) -> Optional['Tag']:
        """Return the node at path, creating missing nodes on the way if create is set."""
        node = self
        for name in path:
            if node.properties is None:
                if not create:
                    return None
                node.properties = {}
            child = node.properties.get(name)
            if child is None:
                if not create:
                    return None
                child = Tag()
                node.properties[name] = child
            node = child
        return node

    def apply(self, statements: List[Statement]) -> None:
        """Apply parsed statements to this node, in order."""
        for statement in statements:
            if statement.op == 'remove':
                parent = self.walk(statement.path[:-1], create=False)
                if parent is not None and parent.properties is not None:
                    parent.properties.pop(statement.path[-1], None)
                continue
            node = self.walk(statement.path, create=True)
            if statement.op == 'assign':
                node.value = statement.value
                if statement.block is not None:
                    node.merge(statement.block)
            elif statement.op == 'replace':
                node.value = None
                node.properties = {}
                node.apply(statement.block.statements)
            elif statement.op == 'merge':
                node.merge(statement.block)

    def merge(self, block: Block) -> None:
        if self.properties is None:
            self.properties = {}
        self.apply(block.statements)

    def to_object(self) -> Any:
        """
        Convert the node into plain Python values.

        Nodes with properties become dicts in declaration order, array values
        become lists, scalar values become strings and empty nodes become True.
        """
        if self.properties is not None:
            return {name: child.to_object() for name, child in self.properties.items()}
        if isinstance(self.value, list):
            return [element.to_object() for element in self.value]
        if self.value is not None:
            return self.value
        return True


def unquote(literal: str) -> str:
    """Strip the quotes of a string literal and resolve its escapes."""
    body = literal[1:-1]

    def replace(match: 're.Match[str]') -> str:
        escape = match.group(1)
        if escape[0] == 'u':
            return chr(int(escape[1:], 16))
        return _ESCAPES.get(escape, escape)

    return re.sub(r'\\(u[0-9a-fA-F]{4}|.)', replace, body)


class MotlyTransformer(Transformer):
    '''Converts the syntax tree into Statement and Block namedtuples'''

    def IDENTIFIER(self, token: Token) -> str:
        return str(token)

    def QUOTED_IDENTIFIER(self, token: Token) -> str:
        return str(token)[1:-1]

    def BARE(self, token: Token) -> str:
        return str(token)

    def STRING(self, token: Token) -> str:
        return unquote(str(token))

    def start(self, items):
        return Block(list(items))

    def block(self, items):
        return Block(list(items))

    def path(self, items):
        return list(items)

    def assign(self, items):
        path, value, block = items
        return Statement('assign', path, value, block)

    def replace(self, items):
        path, block = items
        return Statement('replace', path, None, block)

    def merge(self, items):
        path, block = items
        return Statement('merge', path, None, block)

    def define(self, items):
        return Statement('define', items[0], None, None)

    def remove(self, items):
        return Statement('remove', items[0], None, None)

    def array(self, items):
        return [item for item in items if item is not None]

    def element(self, items):
        '''Returns a Tag for one array element'''
        tag = Tag()
        for item in items:
            if isinstance(item, Block):
                tag.merge(item)
            elif item is not None:
                tag.value = item
        return tag


@lru_cache(maxsize=None)
def _parser() -> Lark:
    return Lark(BNF, start='start', parser='lalr', maybe_placeholders=True)


def _describe(error: UnexpectedInput) -> str:
    if isinstance(error, UnexpectedEOF):
        return 'Unexpected end of input'
    if isinstance(error, UnexpectedToken):
        if error.token.type == '$END':
            return 'Unexpected end of input'
        return f"Unexpected '{error.token}' at line {error.line}, column {error.column}"
    if isinstance(error, UnexpectedCharacters):
        return f"Unexpected character '{error.char}' at line {error.line}, column {error.column}"
    return str(error)


def parse_tag(data: str) -> TagParseResult:
    """
    Parse MOTLY text into a Tag.

    Syntax errors are not raised; they are reported in the log of the result
    and the returned tag is empty.

    Args:
        data (str): The MOTLY text.

    Returns:
        TagParseResult: The parsed root tag and the list of errors.
    """
    tag = Tag()
    tag.properties = {}
    try:
        tree = _parser().parse(data)
    except UnexpectedInput as e:
        error = TagError(_describe(e), getattr(e, 'line', -1), getattr(e, 'column', -1))
        logger.debug("MOTLY parse error: %s", error.message)
        return TagParseResult(tag, [error])
    tag.apply(MotlyTransformer().transform(tree).statements)
    return TagParseResult(tag, [])


def parse_directives(content: str) -> Tuple[Dict[str, Any], str]:
    """
    Split the leading '#!' directive lines off a MOTLY document.

    Args:
        content (str): The full document text.

    Returns:
        Tuple[Dict[str, Any], str]: The parsed directives and the remaining text.

    Raises:
        MotlyParseError: If the directive lines do not parse.
    """
    lines = content.split('\n')
    directive_lines: List[str] = []
    i = 0
    while i < len(lines) and lines[i].startswith(DIRECTIVE_MARKER):
        directive_lines.append(lines[i][len(DIRECTIVE_MARKER):].strip())
        i += 1

    if not directive_lines:
        return {}, content

    result = parse_tag('\n'.join(directive_lines))
    if result.log:
        raise MotlyParseError('Directive parse errors', result.log)
    return result.tag.to_object(), '\n'.join(lines[i:])
