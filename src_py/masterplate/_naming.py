"""Naming conventions shared by the parser, the classifier, the
rewriter, and the composer. These prefixes are part of the template
contract: template authors rely on them, so they aren't configurable.
"""
from __future__ import annotations

import re
from typing import Annotated

from docnote import Note

CONTENT_SECTION_PREFIX: Annotated[
        str,
        Note('''Any template name beginning with this prefix is a content
            section: a fragment supplied by a page and consumed by whatever
            master invokes it. A source unit that defines at least one of
            them is a page.''')
    ] = '__'
RESERVED_PREFIX: Annotated[
        str,
        Note('''Names beginning with this prefix belong to the engine. They
            can't be registered, defined, or invoked from template text.''')
    ] = '~'
PAGE_ROOT_NAME = RESERVED_PREFIX + 'page'

_PATH_SEPARATORS = ('/', '\\')
_SCOPED_NAME_MATCHER = re.compile(
    r'^~.*#\d+:(?P<name>__.*)$', re.DOTALL)


def normalize_name(name: str) -> str:
    """Strips a single leading path separator, so that ``/index.html``
    and ``index.html`` refer to the same template.
    """
    if name.startswith(_PATH_SEPARATORS):
        return name[1:]

    return name


def is_content_section_name(name: str) -> bool:
    return name.startswith(CONTENT_SECTION_PREFIX)


def is_reserved_name(name: str) -> bool:
    return name.startswith(RESERVED_PREFIX)


def make_scope_token(page_name: str, depth: int) -> str:
    """Scope tokens are unique per page per position within a single
    render's master chain. They start with the reserved prefix, so a
    scoped name can never collide with a name from template text, and
    never carries the content section prefix itself.
    """
    return f'{RESERVED_PREFIX}{page_name}#{depth}:'


def unscope_name(name: str) -> str:
    """Recovers the original content section name from a scoped one,
    for use in error messages. Unscoped names are returned unchanged.
    """
    match = _SCOPED_NAME_MATCHER.match(name)
    if match is None:
        return name

    return match.group('name')
