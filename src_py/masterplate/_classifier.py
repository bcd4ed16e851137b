from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from masterplate._naming import is_content_section_name
from masterplate.nodes import TemplateForest


class SourceKind(Enum):
    PAGE = 'page'
    PARTIAL = 'partial'


@dataclass(frozen=True, slots=True)
class ClassifiedSource:
    """A parsed source unit, ready to be admitted into the catalog.
    Pages are admitted whole under ``name``; partials are admitted
    tree-by-tree under their own tree names.
    """
    name: str
    kind: SourceKind
    forest: TemplateForest

    @property
    def claimed_names(self) -> frozenset[str]:
        """All of the names this source would take in the catalog if
        admitted. Pages only claim their registration name, since the
        rest of their forest stays private.
        """
        if self.kind is SourceKind.PAGE:
            return frozenset({self.name})

        return frozenset({self.name, *self.forest})


def is_page(tree_names: Iterable[str]) -> bool:
    """A forest is a page if, and only if, it defines at least one
    content section.
    """
    return any(is_content_section_name(name) for name in tree_names)


def classify(name: str, forest: TemplateForest) -> ClassifiedSource:
    if is_page(forest):
        kind = SourceKind.PAGE
    else:
        kind = SourceKind.PARTIAL

    return ClassifiedSource(name=name, kind=kind, forest=forest)
