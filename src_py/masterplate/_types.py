from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated
from typing import Protocol
from typing import runtime_checkable

from docnote import ClcNote
from docnote import Note

type VariableEscaper = Callable[[str], str]
type EnvFunction = Callable[..., object]


@runtime_checkable
class TextSink(Protocol):
    """Anything with a ``write(str)`` method: an ``io.StringIO``, an
    open text file, ``sys.stdout``, etc. Binary streams can be wrapped
    in an ``io.TextIOWrapper``.
    """

    def write(self, text: str, /) -> object:
        ...


@runtime_checkable
class SyncSourceLoader[L: object](Protocol):

    def load_sync(self, locator: L) -> str:
        """This is responsible for loading the actual template text,
        based on the passed locator.
        """
        ...


@runtime_checkable
class AsyncSourceLoader[L: object](Protocol):

    async def load_async(self, locator: L) -> str:
        """This is responsible for loading the actual template text,
        based on the passed locator.
        """
        ...


@dataclass(frozen=True, slots=True)
class RenderConfig:
    """Render configs control how interpolated values are written to
    the output. These are generally specific to the output format (for
    example, this might be html-specific).
    """
    variable_escaper: Annotated[
        VariableEscaper,
        Note('''Interpolated values are always escaped (unless explicitly
            injected without escaping). The variable escaper is the callable
            responsible for performing that escaping. If you don't need
            escaping, there's a noop escaper within the prebaked configs that
            you can use for convenience.''')]


@dataclass(frozen=True, slots=True)
class InjectedValue:
    """Environment functions can return this instead of a bare value
    to control whether or not the variable escaper is applied to their
    result. For example, an environment function that already escapes
    its output would set ``use_variable_escaper=False`` to avoid double
    escaping.
    """
    value: object
    use_variable_escaper: Annotated[
        bool,
        ClcNote('''
            Set to ``False`` to write the value to the output verbatim.
            ''')] = True
