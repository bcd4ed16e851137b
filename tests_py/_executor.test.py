from dataclasses import dataclass
from unittest.mock import Mock

import pytest

from masterplate._executor import MAX_INVOCATION_DEPTH
from masterplate._executor import ExecutionContext
from masterplate._executor import execute
from masterplate._rewriter import rewrite_tree
from masterplate._types import InjectedValue
from masterplate.exceptions import TemplateExecutionError
from masterplate.exceptions import TemplateFunctionFailure
from masterplate.exceptions import TemplateNotFound
from masterplate.parser import parse
from masterplate.prebaked.configs import html

from masterplate_testutils import RecordingSink
from masterplate_testutils import fake_render_config
from masterplate_testutils import zderr_render_config


@dataclass
class _User:
    name: str
    email: str | None = None


def _run(
        source: str,
        data: object = None,
        *,
        render_config=fake_render_config,
        env_functions=None
        ) -> str:
    sink = RecordingSink()
    ctx = ExecutionContext(
        namespace=parse('test', source),
        env_functions=env_functions or {},
        render_config=render_config,
        sink=sink)
    execute(ctx, 'test', data)
    return sink.getvalue()


class TestInterpolation:

    def test_text_and_fields(self):
        assert _run('Hello {{.name}}!', {'name': 'World'}) == 'Hello World!'

    def test_attribute_lookup(self):
        """Non-mapping data must have its fields looked up as
        attributes, including through nested paths.
        """
        data = {'user': _User(name='Ada')}
        assert _run('{{.user.name}}', data) == 'Ada'

    def test_none_prints_nothing(self):
        assert _run('[{{.email}}]', _User(name='Ada')) == '[]'

    def test_literals(self):
        assert _run('{{1.5}} {{42}} {{"s"}} {{true}} {{nil}}') == (
            '1.5 42 s True ')

    def test_escaping(self):
        """Interpolated values must pass through the variable escaper,
        but literal template text must not.
        """
        result = _run(
            '<p>{{.}}</p>', '<script>&', render_config=html)
        assert result == '<p>&lt;script&gt;&amp;</p>'

    def test_injected_value(self):
        """Injected values must only be escaped if they request it."""
        data = {
            'raw': InjectedValue('<b>', use_variable_escaper=False),
            'escaped': InjectedValue('<i>'),
            'empty': InjectedValue(None),}

        result = _run(
            '{{.raw}}{{.escaped}}{{.empty}}', data, render_config=html)

        assert result == '<b>&lt;i&gt;'

    def test_escaper_errors_propagate(self):
        with pytest.raises(ZeroDivisionError):
            _run('{{.}}', 'foo', render_config=zderr_render_config)

    def test_missing_key(self):
        """Missing fields must raise, noting the template and line."""
        with pytest.raises(TemplateExecutionError) as exc_info:
            _run('\n{{.missing}}', {})

        assert any(
            "template='test'" in note and 'line=2' in note
            for note in exc_info.value.__notes__)

    def test_missing_attribute(self):
        with pytest.raises(TemplateExecutionError):
            _run('{{.missing}}', _User(name='Ada'))

    def test_field_of_none(self):
        with pytest.raises(TemplateExecutionError):
            _run('{{.user.name}}', {'user': None})

    def test_partial_output_not_rolled_back(self):
        """Output written before a failure must stay in the sink."""
        sink = RecordingSink()
        ctx = ExecutionContext(
            namespace=parse('test', 'before {{.missing}} after'),
            env_functions={},
            render_config=fake_render_config,
            sink=sink)

        with pytest.raises(TemplateExecutionError):
            execute(ctx, 'test', {})

        assert sink.writes == ['before ']


class TestVariables:

    def test_root_within_range(self):
        data = {'items': [1, 2], 'sep': '|'}
        assert _run('{{range .items}}{{.}}{{$.sep}}{{end}}', data) == (
            '1|2|')

    def test_root_is_invocation_data(self):
        """Within an invoked template, ``$`` must be the data passed to
        that template, not the data passed to the render.
        """
        source = (
            '{{define "inner"}}{{$.x}}{{$}}{{end}}'
            + '{{template "inner" .child}}')
        data = {'child': {'x': 'X'}, 'x': 'wrong'}

        assert _run(source, data) == "X{'x': 'X'}"


class TestBlocks:

    @pytest.mark.parametrize(
        'value,expected',
        [
            (True, 'yes'),
            ('nonempty', 'yes'),
            (1, 'yes'),
            (False, 'no'),
            (0, 'no'),
            ('', 'no'),
            ([], 'no'),
            (None, 'no'),
            (InjectedValue(''), 'no'),
        ])
    def test_if_truthiness(self, value, expected):
        result = _run('{{if .v}}yes{{else}}no{{end}}', {'v': value})
        assert result == expected

    def test_else_if(self):
        source = '{{if .a}}A{{else if .b}}B{{else}}C{{end}}'
        assert _run(source, {'a': 0, 'b': 1}) == 'B'
        assert _run(source, {'a': 0, 'b': 0}) == 'C'

    def test_with_rebinds_dot(self):
        source = '{{with .user}}{{.name}}{{else}}anon{{end}}'
        assert _run(source, {'user': _User(name='Ada')}) == 'Ada'
        assert _run(source, {'user': None}) == 'anon'

    @pytest.mark.parametrize(
        'value,expected',
        [
            ([1, 2, 3], '123'),
            ((x for x in 'ab'), 'ab'),
            ({'b': 2, 'a': 1}, '12'),
            (3, '012'),
            ([], 'none'),
            (0, 'none'),
            (None, 'none'),
        ])
    def test_range(self, value, expected):
        """Ranges must iterate iterables directly, mapping values by
        sorted key, and ints as ``range(n)``. Empty ranges must execute
        the else branch.
        """
        result = _run(
            '{{range .v}}{{.}}{{else}}none{{end}}', {'v': value})
        assert result == expected

    @pytest.mark.parametrize('value', ['abc', True, object()])
    def test_range_over_invalid(self, value):
        with pytest.raises(TemplateExecutionError):
            _run('{{range .v}}{{.}}{{end}}', {'v': value})


class TestInvocation:

    def test_invocation_without_pipeline(self):
        """Invoking a template without a pipeline must pass it None."""
        source = (
            '{{define "inner"}}{{if .}}data{{else}}none{{end}}{{end}}'
            + '{{template "inner"}}')
        assert _run(source, {'x': 1}) == 'none'

    def test_missing_template(self):
        with pytest.raises(TemplateExecutionError):
            _run('{{template "nope"}}')

    def test_missing_optional_template(self):
        assert _run('a{{optional_template "nope" .}}b', {}) == 'ab'

    def test_missing_section_error_is_unscoped(self):
        """Errors for missing scoped sections must report the section
        name as the template author wrote it.
        """
        tree = rewrite_tree(
            parse('test', '{{template "__body"}}')['test'], '~home#0:')
        ctx = ExecutionContext(
            namespace={'test': tree},
            env_functions={},
            render_config=fake_render_config,
            sink=RecordingSink())

        with pytest.raises(TemplateExecutionError) as exc_info:
            execute(ctx, 'test', None)

        assert exc_info.value.args == ('No such template', '__body')

    def test_max_depth(self):
        source = '{{define "loop"}}x{{template "loop"}}{{end}}'
        sink = RecordingSink()
        ctx = ExecutionContext(
            namespace=parse('test', source),
            env_functions={},
            render_config=fake_render_config,
            sink=sink)

        with pytest.raises(TemplateExecutionError):
            execute(ctx, 'loop', None)

        assert sink.getvalue() == 'x' * (MAX_INVOCATION_DEPTH + 1)
        assert ctx.depth == 0

    def test_execute_unknown_name(self):
        ctx = ExecutionContext(
            namespace={},
            env_functions={},
            render_config=fake_render_config,
            sink=RecordingSink())

        with pytest.raises(TemplateNotFound):
            execute(ctx, 'nope', None)


class TestEnvFunctions:

    def test_call_with_args(self):
        def join(*parts):
            return '-'.join(str(part) for part in parts)

        result = _run('{{join .a "b" 3}}', {'a': 'a'}, env_functions={
            'join': join})
        assert result == 'a-b-3'

    def test_piped_value_is_last_arg(self):
        prefix = Mock(side_effect=lambda pre, value: pre + value)

        result = _run(
            '{{.v | prefix ">"}}', {'v': 'x'},
            env_functions={'prefix': prefix})

        assert result == '>x'
        prefix.assert_called_once_with('>', 'x')

    def test_parenthesized_call(self):
        result = _run(
            '{{if gt (count .items) 1}}many{{end}}',
            {'items': [1, 2]},
            env_functions={
                'count': len, 'gt': lambda left, right: left > right})
        assert result == 'many'

    def test_function_failure(self):
        """Exceptions raised by env functions must be wrapped, keeping
        the original as the cause.
        """
        original = ZeroDivisionError('boom')

        def explode():
            raise original

        with pytest.raises(TemplateFunctionFailure) as exc_info:
            _run('{{explode}}', env_functions={'explode': explode})

        assert exc_info.value.__cause__ is original
        assert isinstance(exc_info.value, TemplateExecutionError)

    def test_unknown_function(self):
        with pytest.raises(TemplateExecutionError):
            _run('{{nope}}')
