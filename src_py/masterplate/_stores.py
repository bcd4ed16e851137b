from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Annotated

from docnote import Note

from masterplate._classifier import ClassifiedSource
from masterplate._classifier import SourceKind
from masterplate.exceptions import DuplicateDefinition
from masterplate.nodes import TemplateTree

logger = logging.getLogger(__name__)

type PageForest = Mapping[str, TemplateTree]


class _CopyOnWriteStore[V]:
    """Stores never mutate a mapping once it has been published as a
    snapshot. Inserting builds a new mapping and swaps it in, so readers
    can hold on to a snapshot for as long as they like without locking.

    Note that the store itself doesn't lock; the owning catalog is
    responsible for serializing inserts.
    """
    _snapshot: MappingProxyType[str, V]

    def __init__(self):
        self._snapshot = MappingProxyType({})

    def __contains__(self, name: object) -> bool:
        return name in self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot)

    @property
    def snapshot(self) -> Mapping[str, V]:
        return self._snapshot

    def _insert_all(self, items: Mapping[str, V]):
        if not items:
            return

        merged = dict(self._snapshot)
        merged.update(items)
        self._snapshot = MappingProxyType(merged)


class PartialRegistry(_CopyOnWriteStore[TemplateTree]):
    """The shared pool of reusable templates: layouts, snippets, and
    master pages. Keyed by tree name.
    """


class PageStore(_CopyOnWriteStore[PageForest]):
    """Pages, keyed by their registration name. Each value is the
    page's entire private forest, including its top-level tree and all
    of its content sections.
    """


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    """A consistent, point-in-time view of both stores. Neither mapping
    will change, regardless of any subsequent registrations.
    """
    partials: Mapping[str, TemplateTree]
    pages: Mapping[str, PageForest]


class TemplateCatalog:
    """Owns the partial registry and the page store, along with the one
    lock that serializes every duplicate-check-then-insert against
    them.
    """
    partials: PartialRegistry
    pages: PageStore
    _lock: threading.Lock

    def __init__(self):
        self.partials = PartialRegistry()
        self.pages = PageStore()
        self._lock = threading.Lock()

    def admit(
            self,
            sources: Annotated[
                Sequence[ClassifiedSource],
                Note('''Either every source is admitted, or (if any of them
                    has a name collision) none are.''')]
            ) -> None:
        """Atomically adds the passed sources to the catalog, raising
        ``DuplicateDefinition`` if any name they claim is already taken
        -- including by another source within the same call.
        """
        new_partials: dict[str, TemplateTree] = {}
        new_pages: dict[str, PageForest] = {}

        with self._lock:
            claimed: set[str] = set()
            for source in sources:
                for name in sorted(source.claimed_names):
                    if (
                        name in claimed
                        or name in self.partials
                        or name in self.pages
                    ):
                        raise DuplicateDefinition(
                            'Template name is already defined', name,
                            source.name)
                    claimed.add(name)

                if source.kind is SourceKind.PAGE:
                    new_pages[source.name] = MappingProxyType(
                        dict(source.forest))
                else:
                    new_partials.update(source.forest)

            self.partials._insert_all(new_partials)
            self.pages._insert_all(new_pages)

        for page_name in new_pages:
            logger.info('Added page %r', page_name)
        for partial_name in new_partials:
            logger.info('Added partial %r', partial_name)

    def snapshot(self) -> CatalogSnapshot:
        with self._lock:
            return CatalogSnapshot(
                partials=self.partials.snapshot,
                pages=self.pages.snapshot)
