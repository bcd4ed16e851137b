"""The composer builds the throwaway namespace that a single page
render executes against. Roughly:

1.. resolve the page's master chain: the requested page, then any page
    it invokes (which acts as its master), then any page *that* page
    invokes, and so on, until reaching a page whose master is a plain
    partial (or that has no master at all)
2.. clone the partial registry snapshot
3.. merge every page in the chain into the clone, scoping content
    section definitions to the page that defines them, and content
    section invocations to the page one level further in (the innermost
    page's own invocations point back at itself)
4.. rewrite the section invocations of partials (masters and snippets
    alike) to point, section by section, at the outermost page in the
    chain that defines that section

Since trees are immutable, "cloning" the registry only copies the
mapping; trees that don't need rewriting are shared with the registry.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import replace as dc_replace

from masterplate._naming import PAGE_ROOT_NAME
from masterplate._naming import is_content_section_name
from masterplate._naming import make_scope_token
from masterplate._rewriter import references_sections
from masterplate._rewriter import scope_definition
from masterplate._rewriter import scope_invocations
from masterplate._rewriter import scope_invocations_by_section
from masterplate._stores import PageForest
from masterplate.exceptions import DuplicateDefinition
from masterplate.exceptions import InvalidMasterChain
from masterplate.nodes import TemplateTree
from masterplate.nodes import iter_invocations

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _ChainLink:
    page_name: str
    forest: PageForest
    scope_token: str


def compose_namespace(
        page_name: str,
        partials: Mapping[str, TemplateTree],
        pages: Mapping[str, PageForest]
        ) -> dict[str, TemplateTree]:
    """Builds the render namespace for the page with the passed name.
    The page's own top-level tree is stored under ``PAGE_ROOT_NAME``.

    Neither ``partials`` nor ``pages`` is modified.
    """
    chain = resolve_master_chain(page_name, pages)
    namespace = dict(partials)

    for depth, link in enumerate(chain):
        if depth == 0:
            # The innermost page supplies its own sections.
            invocation_token = link.scope_token
        else:
            invocation_token = chain[depth - 1].scope_token

        for tree in link.forest.values():
            scoped = scope_invocations(
                scope_definition(tree, link.scope_token),
                invocation_token)
            if depth == 0 and tree.name == link.page_name:
                scoped = dc_replace(scoped, name=PAGE_ROOT_NAME)

            if scoped.name in namespace:
                raise DuplicateDefinition(
                    'Page template collides with an existing template',
                    scoped.name, link.page_name)
            namespace[scoped.name] = scoped

    # Outer pages override inner ones, so walking inside-out leaves each
    # section pointing at the outermost page that defines it.
    section_tokens: dict[str, str] = {}
    for link in chain:
        for tree_name in link.forest:
            if is_content_section_name(tree_name):
                section_tokens[tree_name] = link.scope_token

    outermost_token = chain[-1].scope_token
    for partial_name, partial in partials.items():
        if references_sections(partial):
            namespace[partial_name] = scope_invocations_by_section(
                partial, section_tokens, outermost_token)

    logger.debug(
        'Composed namespace for %r with master chain %r',
        page_name, [link.page_name for link in chain])
    return namespace


def resolve_master_chain(
        page_name: str,
        pages: Mapping[str, PageForest]
        ) -> list[_ChainLink]:
    """Follows page-to-page invocations outward from the requested
    page. Each page may invoke at most one other page, and the chain
    may not revisit a page.
    """
    chain: list[_ChainLink] = []
    seen: set[str] = set()
    next_page_name: str | None = page_name

    while next_page_name is not None:
        if next_page_name in seen:
            raise InvalidMasterChain(
                'Master chain loops back on itself', next_page_name,
                [link.page_name for link in chain])
        seen.add(next_page_name)

        forest = pages[next_page_name]
        chain.append(_ChainLink(
            page_name=next_page_name,
            forest=forest,
            scope_token=make_scope_token(next_page_name, len(chain))))
        next_page_name = _find_master_page(next_page_name, forest, pages)

    return chain


def _find_master_page(
        page_name: str,
        forest: PageForest,
        pages: Mapping[str, PageForest]
        ) -> str | None:
    master_names: set[str] = set()
    for tree in forest.values():
        for invocation in iter_invocations(tree.body):
            if (
                not is_content_section_name(invocation.name)
                and invocation.name in pages
            ):
                master_names.add(invocation.name)

    if len(master_names) > 1:
        raise InvalidMasterChain(
            'Pages can only have a single master page', page_name,
            sorted(master_names))

    if master_names:
        master_name, = master_names
        return master_name

    return None
