"""The namespace rewriter scopes content section names to a single
render. Trees are never mutated: every function here returns a new
tree (or node), and returns the original object whenever nothing within
it needed rewriting, so that unaffected subtrees stay shared.
"""
from __future__ import annotations

from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import replace as dc_replace
from functools import singledispatch

from masterplate._naming import is_content_section_name
from masterplate.nodes import IfNode
from masterplate.nodes import InvocationNode
from masterplate.nodes import RangeNode
from masterplate.nodes import TemplateNode
from masterplate.nodes import TemplateTree
from masterplate.nodes import WithNode
from masterplate.nodes import iter_invocations


def rewrite_tree(tree: TemplateTree, scope_token: str) -> TemplateTree:
    """Scopes both the tree's own name (if it's a content section) and
    every content section it invokes, using the same token for both.
    """
    return scope_invocations(scope_definition(tree, scope_token), scope_token)


def scope_definition(tree: TemplateTree, scope_token: str) -> TemplateTree:
    """Prefixes the tree's name with the scope token, if (and only if)
    the tree is a content section. Its body is left alone.
    """
    if is_content_section_name(tree.name):
        return dc_replace(tree, name=scope_token + tree.name)

    return tree


def scope_invocations(
        tree: TemplateTree,
        scope_token: str | None
        ) -> TemplateTree:
    """Prefixes every content section invocation within the tree with
    the scope token. The tree's own name is left alone. A token of
    None leaves the tree untouched.
    """
    if scope_token is None:
        return tree

    return _scope_body(tree, lambda section_name: scope_token + section_name)


def scope_invocations_by_section(
        tree: TemplateTree,
        section_tokens: Mapping[str, str],
        fallback_token: str
        ) -> TemplateTree:
    """Like ``scope_invocations``, but picks the token separately for
    each invoked content section, by looking up the section's name in
    ``section_tokens``. Sections missing from it get the fallback.
    """
    return _scope_body(
        tree,
        lambda section_name: section_tokens.get(
            section_name, fallback_token) + section_name)


def references_sections(tree: TemplateTree) -> bool:
    """Returns True if the tree invokes (optionally or otherwise) any
    not-yet-scoped content section.
    """
    return any(
        is_content_section_name(invocation.name)
        for invocation in iter_invocations(tree.body))


def _scope_body(
        tree: TemplateTree,
        scope_name: Callable[[str], str]
        ) -> TemplateTree:
    body = _rewrite_nodes(tree.body, scope_name)
    if body is tree.body:
        return tree

    return dc_replace(tree, body=body)


def _rewrite_nodes(
        nodes: tuple[TemplateNode, ...],
        scope_name: Callable[[str], str]
        ) -> tuple[TemplateNode, ...]:
    rewritten = tuple(_rewrite_node(node, scope_name) for node in nodes)
    if all(
        new_node is old_node
        for new_node, old_node in zip(rewritten, nodes, strict=True)
    ):
        return nodes

    return rewritten


@singledispatch
def _rewrite_node(node, scope_name: Callable[[str], str]) -> TemplateNode:
    # Text and interpolations never reference templates.
    return node


@_rewrite_node.register
def _(
        node: InvocationNode,
        scope_name: Callable[[str], str]
        ) -> TemplateNode:
    if is_content_section_name(node.name):
        return dc_replace(node, name=scope_name(node.name))

    return node


@_rewrite_node.register(IfNode)
@_rewrite_node.register(RangeNode)
@_rewrite_node.register(WithNode)
def _(
        node: IfNode | RangeNode | WithNode,
        scope_name: Callable[[str], str]
        ) -> TemplateNode:
    body = _rewrite_nodes(node.body, scope_name)
    if node.else_body is None:
        else_body = None
    else:
        else_body = _rewrite_nodes(node.else_body, scope_name)

    if body is node.body and else_body is node.else_body:
        return node

    return dc_replace(node, body=body, else_body=else_body)
