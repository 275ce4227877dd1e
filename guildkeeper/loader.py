"""Discovery of command and event definitions.

Definitions live in ordinary Python modules: the shipped
``guildkeeper.commands`` / ``guildkeeper.events`` packages plus any
extra directories from settings.yaml. A module exports its handlers in
one of three ways, checked in this order:

    definitions = [...]   an explicit list
    definition = ...      a single object (a mapping is accepted)
    module-level CommandDefinition / EventDefinition instances

The loader only enumerates candidates; validation and indexing belong
to HandlerRegistry.load_definitions(). Modules that fail to import, or
export nothing, are still yielded so the registry can report them.
"""

import importlib
import importlib.util
import pkgutil
import sys
from pathlib import Path
from typing import Any, Iterator, List, Sequence, Tuple

import structlog

from .exceptions import DefinitionInvalidError
from .handlers.definitions import CommandDefinition, EventDefinition

logger = structlog.get_logger("guildkeeper.bot")

DEFAULT_PACKAGES = ("guildkeeper.commands", "guildkeeper.events")

# Namespace for modules loaded from extra directories
_EXTERNAL_PREFIX = "guildkeeper_definitions"

Candidate = Tuple[str, Any]


class DefinitionLoader:
    """Enumerates ``(source, candidate)`` pairs from packages and directories.

    Every call to iter_sources() re-imports the modules, so calling it
    again after editing a file picks up the change (hot reload).

    Args:
        packages: Dotted package names whose submodules hold definitions.
        directories: Extra directories of ``*.py`` definition files.
    """

    def __init__(
        self,
        packages: Sequence[str] = DEFAULT_PACKAGES,
        directories: Sequence[Path] = (),
    ):
        self.packages = list(packages)
        self.directories = [Path(d) for d in directories]

    def iter_sources(self) -> Iterator[Candidate]:
        for package_name in self.packages:
            yield from self._iter_package(package_name)
        for directory in self.directories:
            yield from self._iter_directory(directory)

    def _iter_package(self, package_name: str) -> Iterator[Candidate]:
        try:
            package = importlib.import_module(package_name)
        except Exception as e:
            logger.error(
                "definition_package_import_failed",
                package=package_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            yield package_name, _import_failure(package_name, e)
            return

        search_path = getattr(package, "__path__", None)
        if search_path is None:
            yield from self._module_candidates(package_name, package)
            return

        for info in sorted(pkgutil.iter_modules(search_path), key=lambda m: m.name):
            if info.name.startswith("_"):
                continue
            module_name = f"{package_name}.{info.name}"
            try:
                if module_name in sys.modules:
                    module = importlib.reload(sys.modules[module_name])
                else:
                    module = importlib.import_module(module_name)
            except Exception as e:
                logger.error(
                    "definition_import_failed",
                    source=module_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                yield module_name, _import_failure(module_name, e)
                continue
            yield from self._module_candidates(module_name, module)

    def _iter_directory(self, directory: Path) -> Iterator[Candidate]:
        if not directory.is_dir():
            logger.info("definition_dir_missing", path=str(directory))
            return

        for path in sorted(directory.glob("*.py")):
            if path.name.startswith("_"):
                continue
            source = str(path)
            module_name = f"{_EXTERNAL_PREFIX}.{directory.name}.{path.stem}"
            try:
                spec = importlib.util.spec_from_file_location(module_name, path)
                module = importlib.util.module_from_spec(spec)
                sys.modules[module_name] = module
                spec.loader.exec_module(module)
            except Exception as e:
                sys.modules.pop(module_name, None)
                logger.error(
                    "definition_import_failed",
                    source=source,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                yield source, _import_failure(source, e)
                continue
            yield from self._module_candidates(source, module)

    @staticmethod
    def _module_candidates(source: str, module: Any) -> Iterator[Candidate]:
        explicit = getattr(module, "definitions", None)
        if explicit is not None:
            if isinstance(explicit, (list, tuple)):
                for candidate in explicit:
                    yield source, candidate
            else:
                yield source, DefinitionInvalidError(
                    "'definitions' must be a list", source=source
                )
            return

        if hasattr(module, "definition"):
            yield source, module.definition
            return

        found: List[Any] = [
            value for value in vars(module).values()
            if isinstance(value, (CommandDefinition, EventDefinition))
        ]
        if not found:
            yield source, DefinitionInvalidError("no handler definition found", source=source)
            return
        for candidate in found:
            yield source, candidate


def _import_failure(source: str, exc: Exception) -> DefinitionInvalidError:
    return DefinitionInvalidError(
        f"import failed: {type(exc).__name__}: {exc}", source=source
    )
