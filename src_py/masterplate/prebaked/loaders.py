from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated

import anyio
from docnote import ClcNote

from masterplate._types import AsyncSourceLoader
from masterplate._types import SyncSourceLoader


class DictSourceLoader[L: object](AsyncSourceLoader[L], SyncSourceLoader[L]):
    """A barebones source loader that simply loads template text from
    a dictionary based on whatever key you supply.
    """
    lookup: Annotated[dict[L, str],
        ClcNote('''
            Provides direct access to the source lookup. Store literal
            template text here using whatever key you'll pass as the
            locator during registration.
            ''')]

    def __init__(self, sources: dict[L, str] | None = None):
        if sources is None:
            sources = {}

        self.lookup = sources

    def load_sync(self, locator: L) -> str:
        return self.lookup[locator]

    async def load_async(self, locator: L) -> str:
        return self.lookup[locator]


class FileSystemLoader(AsyncSourceLoader[str], SyncSourceLoader[str]):
    """Loads template text from files beneath a root directory. The
    locators are file names relative to the root, using forward slashes
    (for example, ``views/index.html``), which is also what glob
    expansion returns -- so they double as registration names.

    Async loading and globbing use ``anyio``, so they work under both
    asyncio and trio.
    """
    root: Path

    def __init__(self, root: str | os.PathLike[str]):
        self.root = Path(root)

    def load_sync(self, locator: str) -> str:
        return self._resolve(locator).read_text(encoding='utf-8')

    async def load_async(self, locator: str) -> str:
        return await anyio.Path(self._resolve(locator)).read_text(
            encoding='utf-8')

    def glob_sync(self, pattern: str) -> list[str]:
        """Returns the sorted locators of every file (but not directory)
        beneath the root that matches ``pattern``. Supports ``**``.
        """
        return sorted(
            path.relative_to(self.root).as_posix()
            for path in self.root.glob(pattern)
            if path.is_file())

    async def glob_async(self, pattern: str) -> list[str]:
        async_root = anyio.Path(self.root)
        locators: list[str] = []
        async for path in async_root.glob(pattern):
            if await path.is_file():
                locators.append(path.relative_to(async_root).as_posix())

        return sorted(locators)

    def _resolve(self, locator: str) -> Path:
        # Locators are always relative to the root, even when written with a
        # leading slash (like registration names sometimes are).
        return self.root / locator.lstrip('/\\')
