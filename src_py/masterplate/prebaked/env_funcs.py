from __future__ import annotations

from collections.abc import Sized
from typing import Annotated

from docnote import ClcNote

from masterplate._types import EnvFunction
from masterplate._types import InjectedValue
from masterplate.prebaked.configs import html_escaper


def html_encode(value: object) -> InjectedValue:
    """HTML-escapes the passed value. The result is injected without
    passing through the render config's escaper, so it won't be escaped
    twice under the ``html`` config.
    """
    if isinstance(value, InjectedValue):
        value = value.value
    if value is None:
        return InjectedValue('', use_variable_escaper=False)

    return InjectedValue(html_escaper(str(value)), use_variable_escaper=False)


def eq(left: object, right: object) -> bool:
    return _unwrap(left) == _unwrap(right)


def not_(value: object) -> bool:
    return not _unwrap(value)


def len_(value: Sized) -> int:
    return len(_unwrap(value))  # type: ignore


def _unwrap(value):
    if isinstance(value, InjectedValue):
        return value.value

    return value


BUILTIN_ENV_FUNCTIONS: Annotated[
        dict[str, EnvFunction],
        ClcNote('''
            The environment functions included in every ``ViewEngine`` by
            default, keyed by the name used to call them from template text.
            Pass ``include_builtins=False`` to the engine to leave them out.
            ''')
    ] = {
        'htmlEncode': html_encode,
        'eq': eq,
        'not': not_,
        'len': len_,}
