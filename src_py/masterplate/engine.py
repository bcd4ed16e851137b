from __future__ import annotations

import inspect
import io
import logging
import os
from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from functools import partial
from typing import Annotated
from typing import Literal
from typing import Optional

from anyio import create_task_group
from docnote import Note

from masterplate._classifier import ClassifiedSource
from masterplate._classifier import classify
from masterplate._composer import compose_namespace
from masterplate._executor import ExecutionContext
from masterplate._executor import execute
from masterplate._naming import PAGE_ROOT_NAME
from masterplate._naming import is_reserved_name
from masterplate._naming import normalize_name
from masterplate._stores import TemplateCatalog
from masterplate._types import AsyncSourceLoader
from masterplate._types import EnvFunction
from masterplate._types import RenderConfig
from masterplate._types import SyncSourceLoader
from masterplate._types import TextSink
from masterplate.exceptions import MasterplateException
from masterplate.exceptions import MismatchedTemplateEnvironment
from masterplate.exceptions import NoMatchingTemplates
from masterplate.exceptions import ReservedTemplateName
from masterplate.exceptions import TemplateNotFound
from masterplate.nodes import TemplateForest
from masterplate.nodes import TemplateTree
from masterplate.nodes import iter_function_calls
from masterplate.parser import parse
from masterplate.prebaked.configs import html
from masterplate.prebaked.env_funcs import BUILTIN_ENV_FUNCTIONS
from masterplate.prebaked.loaders import FileSystemLoader

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _EnvFunctionContainer:
    """
    """
    name: str
    function: EnvFunction
    # Some callables (certain builtins, for example) don't expose a signature.
    # Those are never validated at registration time.
    signature: inspect.Signature | None


class ViewEngine:
    """The view engine holds every registered template, sorted into
    partials (reusable templates: layouts, snippets, master pages) and
    pages (templates that define at least one ``__``-prefixed content
    section). Rendering a page splices its content sections into its
    chain of master templates, within a namespace private to that one
    render call.

    Registration and rendering are both threadsafe.
    """
    render_config: RenderConfig
    _catalog: TemplateCatalog
    _env_functions: dict[str, _EnvFunctionContainer]
    # We use this to prevent registering env functions after any templates
    # have been registered, since registration validates function calls.
    _has_registered_any_template: bool

    def __init__(
            self,
            *,
            render_config: Annotated[
                    RenderConfig,
                    Note('''Controls escaping of interpolated values. Defaults
                        to HTML escaping.''')
                ] = html,
            env_functions: Optional[Iterable[EnvFunction]] = None,
            include_builtins: Annotated[
                    bool,
                    Note('''If True, ``htmlEncode``, ``eq``, ``not``, and
                        ``len`` are available to every template.''')
                ] = True):
        self.render_config = render_config
        self._catalog = TemplateCatalog()
        self._env_functions = {}
        self._has_registered_any_template = False

        if include_builtins:
            for builtin_name, builtin in BUILTIN_ENV_FUNCTIONS.items():
                self.register_env_function(builtin, with_name=builtin_name)

        if env_functions is not None:
            for function in env_functions:
                self.register_env_function(function)

    def register_env_function(
            self,
            env_function: EnvFunction,
            *,
            with_name: str | None = None):
        """Manually register an environment function with the engine,
        instead of passing it in to the engine constructor.

        Normally, registered functions are assigned their __name__ as
        the function name; manual registration can also be used to
        override this behavior via the ``with_name`` parameter.
        """
        if self._has_registered_any_template:
            raise MasterplateException(
                'To prevent having different env functions per template, '
                + 'you cannot register new env functions after registering '
                + 'any templates in an engine.')

        if inspect.iscoroutinefunction(env_function):
            raise TypeError(
                'Rendering is synchronous; async env functions are not '
                + 'supported', env_function)

        if with_name is None:
            function_name = env_function.__name__
        else:
            function_name = with_name

        try:
            signature = inspect.signature(env_function)
        except (TypeError, ValueError):
            signature = None

        self._env_functions[function_name] = _EnvFunctionContainer(
            name=function_name,
            function=env_function,
            signature=signature)

    def register(self, name: str, source: str) -> None:
        """Parses the source text and registers the result under
        ``name``. If the source defines any content sections, it's
        registered as a page; otherwise, each of its templates is
        registered as a partial.
        """
        self._register_sources([(name, source)])

    def register_files(
            self,
            root: str | os.PathLike[str],
            *filenames: str
            ) -> None:
        """Registers each of the named files, relative to ``root``,
        using the file name as the registration name. There must be at
        least one file.

        All of the files are read and parsed before any of them are
        registered, so a failure leaves the engine unchanged.
        """
        if not filenames:
            raise ValueError('No files named in call to register_files')

        self.register_from(FileSystemLoader(root), *filenames)

    def register_glob(
            self,
            root: str | os.PathLike[str],
            pattern: str
            ) -> None:
        """Registers every file beneath ``root`` matching the glob
        pattern (which may use ``**``). The pattern must match at least
        one file.
        """
        loader = FileSystemLoader(root)
        filenames = loader.glob_sync(pattern)
        if not filenames:
            raise NoMatchingTemplates(
                'Pattern matches no files', pattern, os.fspath(root))

        self.register_from(loader, *filenames)

    def register_from(
            self,
            loader: SyncSourceLoader[str],
            *locators: str
            ) -> None:
        """Loads each locator from the passed loader and registers it,
        using the locator as its registration name. Like
        ``register_files``, this is all-or-nothing.
        """
        if not locators:
            raise ValueError('No locators passed to register_from')

        self._register_sources([
            (locator, loader.load_sync(locator)) for locator in locators])

    async def register_files_async(
            self,
            root: str | os.PathLike[str],
            *filenames: str
            ) -> None:
        """The async equivalent of ``register_files``. The files are
        read concurrently.
        """
        if not filenames:
            raise ValueError('No files named in call to register_files')

        await self.register_from_async(FileSystemLoader(root), *filenames)

    async def register_glob_async(
            self,
            root: str | os.PathLike[str],
            pattern: str
            ) -> None:
        loader = FileSystemLoader(root)
        filenames = await loader.glob_async(pattern)
        if not filenames:
            raise NoMatchingTemplates(
                'Pattern matches no files', pattern, os.fspath(root))

        await self.register_from_async(loader, *filenames)

    async def register_from_async(
            self,
            loader: AsyncSourceLoader[str],
            *locators: str
            ) -> None:
        """The async equivalent of ``register_from``. Loads happen
        concurrently within a task group, so any load failures are
        raised as an ``ExceptionGroup``.
        """
        if not locators:
            raise ValueError('No locators passed to register_from')

        loaded: dict[int, str] = {}
        async with create_task_group() as task_group:
            for index, locator in enumerate(locators):
                task_group.start_soon(partial(
                    _load_into, loader, locator, index, loaded))

        self._register_sources([
            (locator, loaded[index])
            for index, locator in enumerate(locators)])

    def _register_sources(self, sources: Sequence[tuple[str, str]]) -> None:
        classified: list[ClassifiedSource] = []
        for raw_name, source in sources:
            name = normalize_name(raw_name)
            if not name:
                raise ValueError('Template names cannot be empty', raw_name)
            if is_reserved_name(name):
                raise ReservedTemplateName(
                    'Template names starting with ~ are reserved', name)

            forest = parse(name, source)
            self._validate_env_functions(name, forest)
            classified.append(classify(name, forest))

        self._catalog.admit(classified)
        # Only once something was admitted; failed registrations leave the
        # env functions open.
        self._has_registered_any_template = True

    def _validate_env_functions(
            self,
            name: str,
            forest: TemplateForest
            ) -> Literal[True]:
        """Makes sure that the engine contains all of the env functions
        called by the template text, and that each call passes a number
        of arguments the function can accept. Returns True or raises
        MismatchedTemplateEnvironment.
        """
        for tree in forest.values():
            for function_name, arg_count in iter_function_calls(tree.body):
                container = self._env_functions.get(function_name)
                if container is None:
                    raise MismatchedTemplateEnvironment(
                        'Template calls an unknown env function', name,
                        tree.name, function_name)

                if container.signature is None:
                    continue

                try:
                    container.signature.bind(*(None,) * arg_count)
                except TypeError as exc:
                    raise MismatchedTemplateEnvironment(
                        'Env function call has an invalid argument count',
                        name, tree.name, function_name, arg_count
                    ) from exc

        return True

    def render(
            self,
            sink: Annotated[
                TextSink,
                Note('''Output is written to the sink as it's produced. If
                    rendering fails partway through, anything already written
                    stays written.''')],
            name: str,
            data: Annotated[
                object,
                Note('''Bound as ``.`` (and ``$``) within the top-level
                    template.''')
            ] = None
            ) -> None:
        """Renders the page or partial registered under ``name``.

        Raises ``TemplateNotFound`` (without writing anything) if
        nothing by that name was registered.
        """
        name = normalize_name(name)
        snapshot = self._catalog.snapshot()

        namespace: Mapping[str, TemplateTree]
        if name in snapshot.pages:
            namespace = compose_namespace(
                name, snapshot.partials, snapshot.pages)
            root_name = PAGE_ROOT_NAME
        elif name in snapshot.partials:
            # Plain partials have no sections to splice, so they can execute
            # directly against the (immutable) registry snapshot.
            namespace = snapshot.partials
            root_name = name
        else:
            raise TemplateNotFound('No such template', name)

        logger.debug('Rendering %r', name)
        ctx = ExecutionContext(
            namespace=namespace,
            env_functions={
                function_name: container.function
                for function_name, container in self._env_functions.items()},
            render_config=self.render_config,
            sink=sink)
        execute(ctx, root_name, data)

    def render_to_str(self, name: str, data: object = None) -> str:
        """A convenience wrapper around ``render`` that collects the
        output into a string.
        """
        buffer = io.StringIO()
        self.render(buffer, name, data)
        return buffer.getvalue()

    def has_template(self, name: str) -> bool:
        name = normalize_name(name)
        snapshot = self._catalog.snapshot()
        return name in snapshot.pages or name in snapshot.partials

    def page_names(self) -> frozenset[str]:
        return frozenset(self._catalog.snapshot().pages)

    def partial_names(self) -> frozenset[str]:
        return frozenset(self._catalog.snapshot().partials)


async def _load_into(
        loader: AsyncSourceLoader[str],
        locator: str,
        index: int,
        loaded: dict[int, str]):
    loaded[index] = await loader.load_async(locator)
