from __future__ import annotations

import logging
from collections.abc import Iterable
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated

from docnote import Note

from masterplate._naming import unscope_name
from masterplate._types import EnvFunction
from masterplate._types import InjectedValue
from masterplate._types import RenderConfig
from masterplate._types import TextSink
from masterplate.exceptions import TemplateExecutionError
from masterplate.exceptions import TemplateFunctionFailure
from masterplate.exceptions import TemplateNotFound
from masterplate.nodes import ActionNode
from masterplate.nodes import DotRef
from masterplate.nodes import FieldRef
from masterplate.nodes import FunctionRef
from masterplate.nodes import IfNode
from masterplate.nodes import InvocationNode
from masterplate.nodes import Literal
from masterplate.nodes import Operand
from masterplate.nodes import Pipeline
from masterplate.nodes import RangeNode
from masterplate.nodes import TemplateNode
from masterplate.nodes import TemplateTree
from masterplate.nodes import TextNode
from masterplate.nodes import VariableRef
from masterplate.nodes import WithNode

# Each level of invocation costs a handful of python stack frames, so this
# needs to stay comfortably below the interpreter's recursion limit.
MAX_INVOCATION_DEPTH = 100
logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecutionContext:
    """Everything needed to execute templates for a single render.
    Contexts are never shared between renders.
    """
    namespace: Annotated[
        Mapping[str, TemplateTree],
        Note('''The composed namespace for the render. All invocations are
            resolved against this, by name.''')]
    env_functions: Mapping[str, EnvFunction]
    render_config: RenderConfig
    sink: TextSink
    depth: int = 0


@dataclass(frozen=True, slots=True)
class _Frame:
    tree: TemplateTree
    # This is what ``$`` refers to within the tree.
    root: object


def execute(ctx: ExecutionContext, name: str, data: object) -> None:
    """Executes the template with the passed name from the context's
    namespace against ``data``, writing output into the context's sink
    as it goes.
    """
    tree = ctx.namespace.get(name)
    if tree is None:
        raise TemplateNotFound('No such template', name)

    _execute_tree(ctx, tree, data)


def _execute_tree(ctx: ExecutionContext, tree: TemplateTree, data: object):
    _execute_nodes(ctx, _Frame(tree=tree, root=data), tree.body, data)


def _execute_nodes(
        ctx: ExecutionContext,
        frame: _Frame,
        nodes: tuple[TemplateNode, ...],
        dot: object):
    sink = ctx.sink
    for node in nodes:
        if isinstance(node, TextNode):
            sink.write(node.text)

        elif isinstance(node, ActionNode):
            value = _evaluate_pipeline(
                ctx, frame, node.pipeline, dot, node.line)
            _write_value(ctx, value)

        elif isinstance(node, IfNode):
            value = _evaluate_pipeline(
                ctx, frame, node.pipeline, dot, node.line)
            if _is_truthy(frame, value, node.line):
                _execute_nodes(ctx, frame, node.body, dot)
            elif node.else_body is not None:
                _execute_nodes(ctx, frame, node.else_body, dot)

        elif isinstance(node, WithNode):
            value = _evaluate_pipeline(
                ctx, frame, node.pipeline, dot, node.line)
            if _is_truthy(frame, value, node.line):
                _execute_nodes(ctx, frame, node.body, value)
            elif node.else_body is not None:
                _execute_nodes(ctx, frame, node.else_body, dot)

        elif isinstance(node, RangeNode):
            _execute_range(ctx, frame, node, dot)

        elif isinstance(node, InvocationNode):
            _execute_invocation(ctx, frame, node, dot)

        else:
            raise TypeError('Unknown template node type!', node)


def _execute_range(
        ctx: ExecutionContext,
        frame: _Frame,
        node: RangeNode,
        dot: object):
    value = _evaluate_pipeline(ctx, frame, node.pipeline, dot, node.line)
    if isinstance(value, InjectedValue):
        value = value.value

    items: Iterable[object]
    if value is None:
        items = ()
    elif isinstance(value, Mapping):
        try:
            keys = sorted(value)
        except TypeError:
            keys = list(value)
        items = [value[key] for key in keys]
    elif isinstance(value, bool):
        raise _execution_error(
            frame, node.line, 'Cannot range over a boolean', value)
    elif isinstance(value, int):
        items = range(value)
    elif isinstance(value, (str, bytes)):
        raise _execution_error(
            frame, node.line, 'Cannot range over a string', value)
    elif isinstance(value, Iterable):
        items = value
    else:
        raise _execution_error(
            frame, node.line, 'Cannot range over value', value)

    had_items = False
    for item in items:
        had_items = True
        _execute_nodes(ctx, frame, node.body, item)

    if not had_items and node.else_body is not None:
        _execute_nodes(ctx, frame, node.else_body, dot)


def _execute_invocation(
        ctx: ExecutionContext,
        frame: _Frame,
        node: InvocationNode,
        dot: object):
    tree = ctx.namespace.get(node.name)
    if tree is None:
        if node.optional:
            logger.debug('Skipping missing optional template %r', node.name)
            return

        raise _execution_error(
            frame, node.line, 'No such template', unscope_name(node.name))

    if node.pipeline is None:
        data = None
    else:
        data = _evaluate_pipeline(ctx, frame, node.pipeline, dot, node.line)

    if ctx.depth >= MAX_INVOCATION_DEPTH:
        raise _execution_error(
            frame, node.line, 'Exceeded maximum template invocation depth',
            MAX_INVOCATION_DEPTH)

    ctx.depth += 1
    try:
        _execute_tree(ctx, tree, data)
    finally:
        ctx.depth -= 1


def _evaluate_pipeline(
        ctx: ExecutionContext,
        frame: _Frame,
        pipeline: Pipeline,
        dot: object,
        line: int
        ) -> object:
    result: object = None
    for command_index, command in enumerate(pipeline.commands):
        function_name = command.function_name
        if function_name is None:
            result = _evaluate_operand(
                ctx, frame, command.operands[0], dot, line)
            continue

        args = [
            _evaluate_operand(ctx, frame, operand, dot, line)
            for operand in command.operands[1:]]
        if command_index > 0:
            args.append(result)
        result = _call_env_function(ctx, frame, function_name, args, line)

    return result


def _evaluate_operand(
        ctx: ExecutionContext,
        frame: _Frame,
        operand: Operand,
        dot: object,
        line: int
        ) -> object:
    if isinstance(operand, DotRef):
        return dot
    elif isinstance(operand, Literal):
        return operand.value
    elif isinstance(operand, FieldRef):
        start = frame.root if operand.from_root else dot
        return _lookup_field(frame, start, operand.path, line)
    elif isinstance(operand, VariableRef):
        return frame.root
    elif isinstance(operand, Pipeline):
        return _evaluate_pipeline(ctx, frame, operand, dot, line)
    elif isinstance(operand, FunctionRef):
        return _call_env_function(ctx, frame, operand.name, [], line)
    else:
        raise TypeError('Unknown operand type!', operand)


def _lookup_field(
        frame: _Frame,
        value: object,
        path: tuple[str, ...],
        line: int
        ) -> object:
    for field_name in path:
        if isinstance(value, InjectedValue):
            value = value.value

        if value is None:
            raise _execution_error(
                frame, line, 'Cannot look up field on a missing value',
                field_name, '.'.join(path))

        if isinstance(value, Mapping):
            try:
                value = value[field_name]
            except KeyError as exc:
                raise _execution_error(
                    frame, line, 'Missing key', field_name, '.'.join(path)
                ) from exc

        else:
            try:
                value = getattr(value, field_name)
            except AttributeError as exc:
                raise _execution_error(
                    frame, line, 'Missing field', field_name, '.'.join(path)
                ) from exc

    return value


def _call_env_function(
        ctx: ExecutionContext,
        frame: _Frame,
        name: str,
        args: list[object],
        line: int
        ) -> object:
    function = ctx.env_functions.get(name)
    if function is None:
        raise _execution_error(frame, line, 'No such env function', name)

    try:
        return function(*args)
    except Exception as exc:
        wrapped = TemplateFunctionFailure('Environment function failed', name)
        _add_location_note(wrapped, frame, line)
        raise wrapped from exc


def _write_value(ctx: ExecutionContext, value: object):
    if isinstance(value, InjectedValue):
        if value.value is None:
            return

        text = str(value.value)
        if value.use_variable_escaper:
            text = ctx.render_config.variable_escaper(text)

    elif value is None:
        return

    else:
        text = ctx.render_config.variable_escaper(str(value))

    ctx.sink.write(text)


def _is_truthy(frame: _Frame, value: object, line: int) -> bool:
    if isinstance(value, InjectedValue):
        value = value.value

    try:
        return bool(value)
    except Exception as exc:
        raise _execution_error(
            frame, line, 'Cannot determine truth of value', value
        ) from exc


def _execution_error(
        frame: _Frame,
        line: int,
        message: str,
        *args: object
        ) -> TemplateExecutionError:
    exc = TemplateExecutionError(message, *args)
    _add_location_note(exc, frame, line)
    return exc


def _add_location_note(exc: Exception, frame: _Frame, line: int):
    exc.add_note(
        f'template={unscope_name(frame.tree.name)!r}, '
        + f'source_name={frame.tree.source_name!r}, {line=}')
