from __future__ import annotations

from html import escape as html_escape
from typing import Annotated

from docnote import Note

from masterplate._types import RenderConfig


def noop_escaper(value: str) -> str:
    return value


def html_escaper(value: str) -> str:
    return html_escape(value, quote=True)


trusted_text: Annotated[
        RenderConfig,
        Note('''This prebaked render config includes **no escaping**.

            Use this if, and **only if**, you trust all data passed to the
            engine's render calls, or if the output isn't markup at all.''')
    ] = RenderConfig(variable_escaper=noop_escaper)


html: Annotated[
        RenderConfig,
        Note('''This prebaked render config HTML-escapes every interpolated
            value (including quotes, so values are safe within attributes).
            Literal template text is never escaped. This is the default for
            a ``ViewEngine``.''')
    ] = RenderConfig(variable_escaper=html_escaper)
