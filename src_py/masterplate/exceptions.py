from __future__ import annotations


class MasterplateException(Exception):
    """Base class for all masterplate exceptions."""


class InvalidTemplate(MasterplateException):
    """The most general form of "there's a problem with this template."
    """


class TemplateParseError(InvalidTemplate):
    """Raised when template source text is malformed. Registration is
    aborted before anything is admitted, so the engine is left exactly
    as it was.

    The source name and line number (where known) are attached as an
    exception note.
    """


class MismatchedTemplateEnvironment(TemplateParseError):
    """Raised when registering templates, if the template text calls an
    environment function that the engine doesn't have, or calls one
    with an argument count its signature can't accept.
    """


class ReservedTemplateName(InvalidTemplate):
    """Raised when a registration name, a ``define`` name, or an
    invocation target uses the reserved ``~`` prefix. Those names belong
    to the engine itself (for example, the render root).
    """


class DuplicateDefinition(InvalidTemplate):
    """Raised when a template name is already taken, either by a
    partial or by a page. At registration time, nothing from the
    offending call is admitted.

    Also raised during rendering if a page's private (non-section)
    trees collide with a partial when they're merged into the render
    namespace.
    """


class InvalidMasterChain(InvalidTemplate):
    """Raised during rendering when the pages in a master chain don't
    form a single-parent chain: either a page invokes more than one
    other page, or the chain loops back on itself.
    """


class TemplateNotFound(MasterplateException, LookupError):
    """Raised when rendering a name that was never registered, either
    as a page or as a partial. Nothing is written to the sink.
    """


class NoMatchingTemplates(MasterplateException):
    """Raised by glob registration if the pattern didn't match a single
    file. Nothing is registered.
    """


class TemplateExecutionError(MasterplateException):
    """Raised when executing a composed template against its data fails,
    for example because of a missing field or an invocation of a
    template that doesn't exist.

    Anything written to the sink before the failure stays there.
    """


class TemplateFunctionFailure(TemplateExecutionError):
    """Raised when an environment function raised an exception during
    rendering. Always raised ^^from^^ the original exception, so that
    its traceback is preserved.
    """
