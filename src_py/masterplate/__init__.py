from docnote import DocnoteConfig
from docnote import MarkupLang

import masterplate.prebaked as prebaked  # noqa: PLR0402
from masterplate._types import AsyncSourceLoader
from masterplate._types import InjectedValue
from masterplate._types import RenderConfig
from masterplate._types import SyncSourceLoader
from masterplate._types import TextSink
from masterplate.engine import ViewEngine

__all__ = [
    'AsyncSourceLoader',
    'InjectedValue',
    'RenderConfig',
    'SyncSourceLoader',
    'TextSink',
    'ViewEngine',
    'prebaked',
]


DOCNOTE_CONFIG = DocnoteConfig(markup_lang=MarkupLang.CLEANCOPY)
