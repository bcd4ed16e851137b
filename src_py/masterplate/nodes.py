from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from dataclasses import field
from typing import Annotated

from docnote import Note
from typing_extensions import TypeIs

type Operand = (
    DotRef | FieldRef | VariableRef | Literal | FunctionRef | Pipeline)
type TemplateNode = (
    TextNode
    | ActionNode
    | IfNode
    | RangeNode
    | WithNode
    | InvocationNode)
type BlockNode = IfNode | RangeNode | WithNode
type TemplateForest = dict[str, TemplateTree]


@dataclass(frozen=True, slots=True)
class DotRef:
    """``{{.}}`` -- the current data value."""


@dataclass(frozen=True, slots=True)
class FieldRef:
    """``{{.foo.bar}}`` -- a chain of field lookups, starting either at
    the current data value or, if ``from_root`` is set, at ``$``.
    """
    path: tuple[str, ...]
    from_root: bool = False


@dataclass(frozen=True, slots=True)
class VariableRef:
    """``{{$}}`` -- the data value passed to the current template."""


@dataclass(frozen=True, slots=True)
class Literal:
    value: str | int | float | bool | None


@dataclass(frozen=True, slots=True)
class FunctionRef:
    name: str


@dataclass(frozen=True, slots=True)
class Command:
    """A single command within a pipeline. If the first operand is a
    ``FunctionRef``, the command is a function call and the remaining
    operands are its arguments; otherwise, there must be exactly one
    operand.
    """
    operands: tuple[Operand, ...]

    @property
    def function_name(self) -> str | None:
        first = self.operands[0]
        if isinstance(first, FunctionRef):
            return first.name

        return None


@dataclass(frozen=True, slots=True)
class Pipeline:
    """Commands separated by ``|``. The result of each command is
    passed as the final argument to the next one.
    """
    commands: tuple[Command, ...]


@dataclass(frozen=True, slots=True)
class TextNode:
    text: str


@dataclass(frozen=True, slots=True)
class ActionNode:
    """An interpolation. The value of the pipeline gets written to the
    output.
    """
    pipeline: Pipeline
    line: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class IfNode:
    pipeline: Pipeline
    body: tuple[TemplateNode, ...]
    else_body: tuple[TemplateNode, ...] | None = None
    line: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class RangeNode:
    pipeline: Pipeline
    body: tuple[TemplateNode, ...]
    else_body: Annotated[
            tuple[TemplateNode, ...] | None,
            Note('Executed instead of the body if there was nothing to range.')
        ] = None
    line: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class WithNode:
    pipeline: Pipeline
    body: tuple[TemplateNode, ...]
    else_body: tuple[TemplateNode, ...] | None = None
    line: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class InvocationNode:
    """``{{template "name" pipeline}}``, or, with ``optional=True``,
    ``{{optional_template "name" pipeline}}``.
    """
    name: str
    pipeline: Annotated[
            Pipeline | None,
            Note('''The value to bind as the invoked template's data. If
                omitted, the invoked template gets ``None``.''')
        ] = None
    optional: Annotated[
            bool,
            Note('''Optional invocations of missing templates produce empty
                output instead of an error.''')
        ] = False
    line: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class TemplateTree:
    """A single named template. ``source_name`` is the name of the
    source unit the tree was parsed from, and never changes, even when
    the tree itself gets renamed during composition.
    """
    name: str
    body: tuple[TemplateNode, ...]
    source_name: str = field(default='', compare=False)


def is_block_node(node: TemplateNode) -> TypeIs[BlockNode]:
    return isinstance(node, (IfNode, RangeNode, WithNode))


def iter_invocations(
        nodes: tuple[TemplateNode, ...]
        ) -> Iterator[InvocationNode]:
    """Recursively yields every invocation node within the passed
    nodes, including those nested within blocks and their else
    branches.
    """
    for node in nodes:
        if isinstance(node, InvocationNode):
            yield node

        elif is_block_node(node):
            yield from iter_invocations(node.body)
            if node.else_body is not None:
                yield from iter_invocations(node.else_body)


def iter_function_calls(
        nodes: tuple[TemplateNode, ...]
        ) -> Iterator[tuple[str, int]]:
    """Recursively yields ``(function_name, arg_count)`` for every
    function call within the passed nodes. The arg count includes the
    value piped in from the previous command, if any.
    """
    for node in nodes:
        if isinstance(node, (ActionNode, IfNode, RangeNode, WithNode)):
            yield from _iter_pipeline_calls(node.pipeline)
        elif isinstance(node, InvocationNode) and node.pipeline is not None:
            yield from _iter_pipeline_calls(node.pipeline)

        if is_block_node(node):
            yield from iter_function_calls(node.body)
            if node.else_body is not None:
                yield from iter_function_calls(node.else_body)


def _iter_pipeline_calls(pipeline: Pipeline) -> Iterator[tuple[str, int]]:
    for command_index, command in enumerate(pipeline.commands):
        piped_args = 1 if command_index > 0 else 0
        function_name = command.function_name
        if function_name is not None:
            yield function_name, len(command.operands) - 1 + piped_args

        for operand in command.operands:
            if isinstance(operand, Pipeline):
                yield from _iter_pipeline_calls(operand)
