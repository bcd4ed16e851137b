from __future__ import annotations

import ast
import logging
import re
from collections.abc import Iterator
from collections.abc import Sequence
from dataclasses import dataclass
from typing import NamedTuple

from masterplate._naming import is_reserved_name
from masterplate.exceptions import ReservedTemplateName
from masterplate.exceptions import TemplateParseError
from masterplate.nodes import ActionNode
from masterplate.nodes import Command
from masterplate.nodes import DotRef
from masterplate.nodes import FieldRef
from masterplate.nodes import FunctionRef
from masterplate.nodes import IfNode
from masterplate.nodes import InvocationNode
from masterplate.nodes import Literal
from masterplate.nodes import Operand
from masterplate.nodes import Pipeline
from masterplate.nodes import RangeNode
from masterplate.nodes import TemplateForest
from masterplate.nodes import TemplateNode
from masterplate.nodes import TemplateTree
from masterplate.nodes import TextNode
from masterplate.nodes import VariableRef
from masterplate.nodes import WithNode

_DELIMITER_MATCHER = re.compile(
    r'\{\{(?P<ltrim>-\s)?'
    # Quoted and raw strings are skipped whole, so they can contain }}
    + r'(?:/\*(?P<comment>.*?)\*/'
    + r'|(?P<action>(?:"(?:[^"\\\n]|\\.)*"|`[^`]*`|[^"`])*?))'
    + r'(?P<rtrim>\s-)?\}\}',
    re.DOTALL)
_TOKEN_MATCHER = re.compile(
    r'''
    (?P<ws>\s+)
    |(?P<string>"(?:[^"\\\n]|\\.)*")
    |(?P<raw>`[^`]*`)
    |(?P<number>-?\d+(?:\.\d+)?)
    |(?P<field>\$?(?:\.[A-Za-z_][A-Za-z0-9_]*)+)
    |(?P<dot>\.)
    |(?P<variable>\$)
    |(?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<pipe>\|)
    |(?P<lparen>\()
    |(?P<rparen>\))
    ''',
    re.VERBOSE)
_LITERAL_IDENTS: dict[str, bool | None] = {
    'true': True,
    'false': False,
    'nil': None,}
_BLOCK_KEYWORDS = frozenset({'if', 'range', 'with'})
_INVOCATION_KEYWORDS = {
    'template': False,
    'optional_template': True,}
_RESERVED_KEYWORDS = frozenset({
    'define', 'end', 'else', *_BLOCK_KEYWORDS, *_INVOCATION_KEYWORDS})
logger = logging.getLogger(__name__)


class _Token(NamedTuple):
    kind: str
    text: str


@dataclass(frozen=True, slots=True)
class _ActionItem:
    tokens: tuple[_Token, ...]
    line: int

    @property
    def keyword(self) -> str | None:
        if self.tokens and self.tokens[0].kind == 'ident':
            return self.tokens[0].text

        return None


type _LexedItem = str | _ActionItem


def parse(source_name: str, source: str) -> TemplateForest:
    """Parses template source text into a forest of template trees.
    The forest always contains one tree named after the source unit
    itself (its top-level body, which may be empty), plus one tree per
    ``{{define}}`` block.

    Raises ``TemplateParseError`` for malformed source text, and
    ``ReservedTemplateName`` for any attempt to define or invoke an
    engine-reserved name.
    """
    items = _lex(source_name, source)
    return _ForestBuilder(source_name, items).build()


def _lex(source_name: str, source: str) -> list[_LexedItem]:
    """Splits the source into literal text and tokenized actions,
    applying any ``{{-`` / ``-}}`` whitespace trimming along the way.
    Comments are dropped entirely.
    """
    items: list[_LexedItem] = []
    position = 0
    trim_next_text = False
    for match in _DELIMITER_MATCHER.finditer(source):
        text = source[position:match.start()]
        if '{{' in text:
            # An opening delimiter the matcher skipped over, for example
            # because of an unterminated string.
            raise _unclosed_action_error(source_name, source, position)
        if trim_next_text:
            text = text.lstrip()
        if match.group('ltrim') is not None:
            text = text.rstrip()
        if text:
            items.append(text)

        trim_next_text = match.group('rtrim') is not None
        position = match.end()
        if match.group('comment') is not None:
            continue

        line = source.count('\n', 0, match.start()) + 1
        items.append(_ActionItem(
            tokens=tuple(_tokenize(source_name, match.group('action'), line)),
            line=line))

    trailing_text = source[position:]
    if trim_next_text:
        trailing_text = trailing_text.lstrip()
    if trailing_text:
        if '{{' in trailing_text:
            raise _unclosed_action_error(source_name, source, position)
        items.append(trailing_text)

    return items


def _unclosed_action_error(
        source_name: str,
        source: str,
        position: int
        ) -> TemplateParseError:
    line = source.count('\n', 0, source.index('{{', position)) + 1
    return _parse_error('Unclosed action', source_name, line=line)


def _tokenize(source_name: str, action: str, line: int) -> Iterator[_Token]:
    position = 0
    while position < len(action):
        match = _TOKEN_MATCHER.match(action, position)
        if match is None:
            raise _parse_error(
                'Unexpected character in action', source_name,
                action[position], line=line)

        kind = match.lastgroup
        # lastgroup is always set, since every alternative is a named group
        if kind is not None and kind != 'ws':
            yield _Token(kind, match.group())
        position = match.end()


class _ForestBuilder:
    """Recursive-descent builder over the lexed items of a single
    source unit.
    """
    source_name: str
    _items: Sequence[_LexedItem]
    _position: int
    _forest: TemplateForest
    _block_depth: int

    def __init__(self, source_name: str, items: Sequence[_LexedItem]):
        self.source_name = source_name
        self._items = items
        self._position = 0
        self._forest = {}
        self._block_depth = 0

    def build(self) -> TemplateForest:
        body, terminator = self._parse_list()
        if terminator is not None:
            raise _parse_error(
                f'Unexpected {{{{{terminator.keyword}}}}}', self.source_name,
                line=terminator.line)

        self._add_tree(self.source_name, body, line=0)
        return self._forest

    def _parse_list(
            self
            ) -> tuple[tuple[TemplateNode, ...], _ActionItem | None]:
        """Parses nodes until hitting either an ``end``/``else`` (which
        is returned as the terminator, for the caller to interpret) or
        the end of the source (in which case the terminator is None).
        """
        nodes: list[TemplateNode] = []
        while self._position < len(self._items):
            item = self._items[self._position]
            self._position += 1

            if isinstance(item, str):
                nodes.append(TextNode(item))
                continue

            keyword = item.keyword
            if keyword in ('end', 'else'):
                return tuple(nodes), item
            elif keyword == 'define':
                self._parse_define(item)
            elif keyword in _BLOCK_KEYWORDS:
                nodes.append(self._parse_block(keyword, item.tokens[1:], item))
            elif keyword in _INVOCATION_KEYWORDS:
                nodes.append(self._parse_invocation(keyword, item))
            else:
                nodes.append(ActionNode(
                    pipeline=self._parse_pipeline(item.tokens, item.line),
                    line=item.line))

        return tuple(nodes), None

    def _parse_define(self, item: _ActionItem):
        if self._block_depth:
            raise _parse_error(
                'Templates can only be defined at the top level',
                self.source_name, line=item.line)
        name = self._parse_name(item, 'define')

        self._block_depth += 1
        body, terminator = self._parse_list()
        self._block_depth -= 1
        if terminator is None or terminator.keyword != 'end':
            raise _parse_error(
                'Missing {{end}} for define', self.source_name, name,
                line=item.line)
        if len(terminator.tokens) > 1:
            raise _parse_error(
                'Unexpected tokens after {{end}}', self.source_name,
                line=terminator.line)

        self._add_tree(name, body, line=item.line)

    def _parse_block(
            self,
            keyword: str,
            pipeline_tokens: Sequence[_Token],
            item: _ActionItem
            ) -> IfNode | RangeNode | WithNode:
        pipeline = self._parse_pipeline(pipeline_tokens, item.line)

        self._block_depth += 1
        try:
            body, terminator = self._parse_list()
            else_body: tuple[TemplateNode, ...] | None = None
            if terminator is not None and terminator.keyword == 'else':
                chained_tokens = terminator.tokens[1:]
                if chained_tokens:
                    # {{else if ...}} and {{else with ...}} chain into a nested
                    # block, which consumes the shared {{end}} itself.
                    if (
                        keyword == 'range'
                        or chained_tokens[0].text != keyword
                    ):
                        raise _parse_error(
                            f'Invalid chained else in {{{{{keyword}}}}}',
                            self.source_name, line=terminator.line)

                    nested = self._parse_block(
                        keyword, chained_tokens[1:], terminator)
                    return _make_block(
                        keyword, pipeline, body, (nested,), item.line)

                else_body, terminator = self._parse_list()
                if terminator is not None and terminator.keyword == 'else':
                    raise _parse_error(
                        f'Multiple {{{{else}}}} in {{{{{keyword}}}}}',
                        self.source_name, line=terminator.line)

            if terminator is None:
                raise _parse_error(
                    f'Missing {{{{end}}}} for {{{{{keyword}}}}}',
                    self.source_name, line=item.line)
            if len(terminator.tokens) > 1:
                raise _parse_error(
                    'Unexpected tokens after {{end}}', self.source_name,
                    line=terminator.line)

            return _make_block(keyword, pipeline, body, else_body, item.line)

        finally:
            self._block_depth -= 1

    def _parse_invocation(
            self,
            keyword: str,
            item: _ActionItem
            ) -> InvocationNode:
        name = self._parse_name(item, keyword, allow_trailing=True)
        pipeline_tokens = item.tokens[2:]
        if pipeline_tokens:
            pipeline = self._parse_pipeline(pipeline_tokens, item.line)
        else:
            pipeline = None

        return InvocationNode(
            name=name,
            pipeline=pipeline,
            optional=_INVOCATION_KEYWORDS[keyword],
            line=item.line)

    def _parse_name(
            self,
            item: _ActionItem,
            keyword: str,
            *,
            allow_trailing: bool = False
            ) -> str:
        if len(item.tokens) < 2 or item.tokens[1].kind not in (
            'string', 'raw'
        ):
            raise _parse_error(
                f'{{{{{keyword}}}}} requires a quoted template name',
                self.source_name, line=item.line)
        if len(item.tokens) > 2 and not allow_trailing:
            raise _parse_error(
                f'Unexpected tokens after {{{{{keyword}}}}} name',
                self.source_name, line=item.line)

        name = _parse_string(item.tokens[1], self.source_name, item.line)
        if not name:
            raise _parse_error(
                'Template names cannot be empty', self.source_name,
                line=item.line)
        if is_reserved_name(name):
            exc = ReservedTemplateName(
                'Template names starting with ~ are reserved', name)
            exc.add_note(f'source_name={self.source_name!r}, line={item.line}')
            raise exc

        return name

    def _parse_pipeline(
            self,
            tokens: Sequence[_Token],
            line: int
            ) -> Pipeline:
        if not tokens:
            raise _parse_error('Missing value', self.source_name, line=line)

        commands: list[Command] = []
        current: list[Operand] = []
        position = 0
        while position < len(tokens):
            token = tokens[position]
            position += 1

            if token.kind == 'pipe':
                commands.append(self._finish_command(current, commands, line))
                current = []
            elif token.kind == 'lparen':
                closing = _find_closing_paren(tokens, position)
                if closing is None:
                    raise _parse_error(
                        'Unclosed parenthesis', self.source_name, line=line)
                current.append(self._parse_pipeline(
                    tokens[position:closing], line))
                position = closing + 1
            elif token.kind == 'rparen':
                raise _parse_error(
                    'Unexpected )', self.source_name, line=line)
            else:
                operand = self._parse_operand(token, line)
                if isinstance(operand, FunctionRef) and current:
                    raise _parse_error(
                        'Function calls used as arguments must be '
                        + 'parenthesized', self.source_name, operand.name,
                        line=line)
                current.append(operand)

        commands.append(self._finish_command(current, commands, line))
        return Pipeline(tuple(commands))

    def _finish_command(
            self,
            operands: list[Operand],
            previous_commands: list[Command],
            line: int
            ) -> Command:
        if not operands:
            raise _parse_error(
                'Missing command in pipeline', self.source_name, line=line)

        command = Command(tuple(operands))
        if command.function_name is None:
            if len(operands) > 1:
                raise _parse_error(
                    'Cannot give arguments to a non-function',
                    self.source_name, line=line)
            if previous_commands:
                raise _parse_error(
                    'Non-function in pipeline stage', self.source_name,
                    line=line)

        return command

    def _parse_operand(self, token: _Token, line: int) -> Operand:
        kind = token.kind
        if kind in ('string', 'raw'):
            return Literal(_parse_string(token, self.source_name, line))

        elif kind == 'number':
            if '.' in token.text:
                return Literal(float(token.text))
            return Literal(int(token.text))

        elif kind == 'field':
            from_root = token.text.startswith('$')
            path = token.text.lstrip('$').split('.')[1:]
            return FieldRef(tuple(path), from_root=from_root)

        elif kind == 'dot':
            return DotRef()

        elif kind == 'variable':
            return VariableRef()

        elif kind == 'ident':
            if token.text in _LITERAL_IDENTS:
                return Literal(_LITERAL_IDENTS[token.text])
            if token.text in _RESERVED_KEYWORDS:
                raise _parse_error(
                    'Unexpected keyword', self.source_name, token.text,
                    line=line)
            return FunctionRef(token.text)

        else:
            raise _parse_error(
                'Unexpected token', self.source_name, token.text, line=line)

    def _add_tree(
            self,
            name: str,
            body: tuple[TemplateNode, ...],
            *,
            line: int):
        if name in self._forest:
            raise _parse_error(
                'Template defined more than once', self.source_name, name,
                line=line)

        logger.debug('Parsed template %r from %r', name, self.source_name)
        self._forest[name] = TemplateTree(
            name=name,
            body=body,
            source_name=self.source_name)


def _make_block(
        keyword: str,
        pipeline: Pipeline,
        body: tuple[TemplateNode, ...],
        else_body: tuple[TemplateNode, ...] | None,
        line: int
        ) -> IfNode | RangeNode | WithNode:
    if keyword == 'if':
        return IfNode(pipeline, body, else_body, line=line)
    elif keyword == 'range':
        return RangeNode(pipeline, body, else_body, line=line)
    else:
        return WithNode(pipeline, body, else_body, line=line)


def _find_closing_paren(tokens: Sequence[_Token], start: int) -> int | None:
    depth = 1
    for index in range(start, len(tokens)):
        kind = tokens[index].kind
        if kind == 'lparen':
            depth += 1
        elif kind == 'rparen':
            depth -= 1
            if depth == 0:
                return index

    return None


def _parse_string(token: _Token, source_name: str, line: int) -> str:
    if token.kind == 'raw':
        return token.text[1:-1]

    try:
        return ast.literal_eval(token.text)
    except (ValueError, SyntaxError) as exc:
        raise _parse_error(
            'Invalid string literal', source_name, token.text, line=line
        ) from exc


def _parse_error(
        message: str,
        source_name: str,
        *args: object,
        line: int
        ) -> TemplateParseError:
    exc = TemplateParseError(message, *args)
    exc.add_note(f'{source_name=}, {line=}')
    return exc
