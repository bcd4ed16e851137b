import pytest

from masterplate._types import InjectedValue
from masterplate.prebaked.env_funcs import BUILTIN_ENV_FUNCTIONS
from masterplate.prebaked.env_funcs import eq
from masterplate.prebaked.env_funcs import html_encode
from masterplate.prebaked.env_funcs import len_
from masterplate.prebaked.env_funcs import not_


class TestHtmlEncode:

    def test_escapes_and_skips_escaper(self):
        """The encoded value must already be escaped, and must opt out
        of the render config's escaper to avoid double escaping.
        """
        rv = html_encode('<b>&</b>')

        assert rv == InjectedValue(
            '&lt;b&gt;&amp;&lt;/b&gt;', use_variable_escaper=False)

    def test_stringifies(self):
        assert html_encode(3).value == '3'

    def test_unwraps_injected(self):
        rv = html_encode(InjectedValue('<b>', use_variable_escaper=False))
        assert rv.value == '&lt;b&gt;'

    def test_none(self):
        assert html_encode(None).value == ''


class TestComparisons:

    @pytest.mark.parametrize(
        'left,right,expected',
        [
            (1, 1, True),
            ('a', 'b', False),
            (InjectedValue('a'), 'a', True),
            (None, None, True),
        ])
    def test_eq(self, left, right, expected):
        assert eq(left, right) is expected

    def test_not(self):
        assert not_(0) is True
        assert not_('x') is False
        assert not_(InjectedValue('')) is True

    def test_len(self):
        assert len_([1, 2]) == 2
        assert len_(InjectedValue('abc')) == 3


class TestBuiltins:

    def test_builtin_names(self):
        assert set(BUILTIN_ENV_FUNCTIONS) == {
            'htmlEncode', 'eq', 'not', 'len'}
        assert BUILTIN_ENV_FUNCTIONS['not'] is not_
