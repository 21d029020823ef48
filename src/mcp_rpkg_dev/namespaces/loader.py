"""Loading packages under development without installing them."""

from pathlib import Path
from typing import Any, Optional, Union

from mcp_rpkg_dev.config import BASE_PACKAGES, Settings, get_settings
from mcp_rpkg_dev.errors import MissingDescriptor
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.namespaces.manager import EnvironmentManager
from mcp_rpkg_dev.packages.description import (
    as_package,
    collate_order,
    package_imports,
    parse_dcf,
)
from mcp_rpkg_dev.packages.namespace_file import exported_names, read_namespace
from mcp_rpkg_dev.packages.sources import collect_definitions
from mcp_rpkg_dev.types import ImportedObject, Package, Scope, ScopeChain

logger = get_logger(__name__)

Target = Union[str, Path, Package]


def unit_name(target: Target) -> str:
    """Package name for a descriptor, a package directory or a bare name."""
    if isinstance(target, Package):
        return target.name
    path = Path(target).expanduser()
    description = path / "DESCRIPTION"
    if description.is_file():
        return parse_dcf(description.read_text(encoding="utf-8")).get("Package", path.name)
    return str(target)


def find_installed(name: str, settings: Settings) -> Optional[Path]:
    """Directory of an installed package in the configured libraries."""
    for lib in settings.lib_paths:
        candidate = lib / name
        if (candidate / "DESCRIPTION").is_file():
            return candidate
    return None


def package_exports(
    manager: EnvironmentManager, name: str, settings: Settings
) -> Optional[tuple[dict[str, Any], bool]]:
    """Exports of a dependency and whether it may export more than listed.

    Dependencies are looked up among units loaded in the same manager first,
    then in the installed libraries, then among R's base packages. Returns
    None when the dependency can't be found anywhere.
    """
    chain = manager.registry.get(name)
    if chain is not None:
        bindings = manager.arena.get(chain.namespace).bindings
        spec = chain.source.namespace if chain.source else None
        if spec is None:
            return dict(manager.arena.get(chain.package).bindings), False
        names = exported_names(spec, bindings)
        return {n: bindings[n] for n in names}, False

    installed = find_installed(name, settings)
    if installed is not None:
        spec = read_namespace(installed)
        if spec is None:
            return {}, True
        values = {n: ImportedObject(name, n) for n in spec.exports}
        return values, bool(spec.export_patterns)

    if name in BASE_PACKAGES:
        return {}, True

    return None


def resolve_imports(
    manager: EnvironmentManager, pkg: Package, settings: Settings
) -> dict[str, Any]:
    """Symbols for the imports scope, per the NAMESPACE import directives."""
    spec = pkg.namespace
    imported: dict[str, Any] = {}
    sources: dict[str, tuple[dict[str, Any], bool]] = {}

    def exports_of(dep: str) -> tuple[dict[str, Any], bool]:
        if dep not in sources:
            found = package_exports(manager, dep, settings)
            if found is None:
                raise MissingDescriptor(
                    pkg.name, f"Dependency package {dep} of {pkg.name} is not available"
                )
            sources[dep] = found
        return sources[dep]

    for dep in package_imports(pkg):
        if dep != pkg.name:
            exports_of(dep)

    for dep in spec.imports:
        values, _ = exports_of(dep)
        imported.update(values)

    for dep, symbols in spec.import_from.items():
        values, open_ended = exports_of(dep)
        for symbol in symbols:
            if symbol in values:
                imported[symbol] = values[symbol]
            elif open_ended:
                imported[symbol] = ImportedObject(dep, symbol)
            else:
                raise MissingDescriptor(
                    pkg.name, f"object '{symbol}' is not exported by 'namespace:{dep}'"
                )

    return imported


def load_all(
    manager: EnvironmentManager,
    target: Target,
    reset: bool = False,
    export_all: bool = True,
    settings: Optional[Settings] = None,
) -> ScopeChain:
    """Load a package's sources into the manager and attach it.

    Loading an already loaded package refreshes its scopes in place; with
    `reset` the old scopes are thrown away and new ones built. With
    `export_all` every definition is placed in the package scope, otherwise
    only what NAMESPACE exports.
    """
    settings = settings or get_settings()
    pkg = as_package(target)

    if pkg.namespace is None:
        raise MissingDescriptor(pkg.name, f"Package {pkg.name} has no NAMESPACE file")

    logger.info("loading_package", package=pkg.name, path=str(pkg.path), reset=reset)

    with manager.loading(pkg.name):
        definitions = collect_definitions(collate_order(pkg))
        if export_all:
            exports = set(definitions)
        else:
            exports = exported_names(pkg.namespace, definitions)
        imported = resolve_imports(manager, pkg, settings)

        chain = manager.registry.get(pkg.name)
        if chain is not None and reset:
            manager.discard(chain)
            chain = None

        if chain is None:
            chain = manager.build_chain(pkg.name, definitions, exports, imported, source=pkg)
        else:
            manager.refresh_chain(chain, definitions, exports, imported, source=pkg)

        manager.attach(chain)

    if pkg.namespace.dynlibs:
        logger.warning("dynlibs_not_loaded", package=pkg.name, dynlibs=list(pkg.namespace.dynlibs))

    logger.info(
        "package_loaded",
        package=pkg.name,
        definitions=len(definitions),
        exports=len(exports),
        imports=len(imported),
    )
    return chain


def unload(manager: EnvironmentManager, target: Target) -> bool:
    """Detach and drop a loaded package. Returns False if it wasn't loaded."""
    name = unit_name(target)
    chain = manager.registry.get(name)
    if chain is None:
        logger.debug("unload_skipped", package=name)
        return False

    manager.discard(chain)
    logger.info("package_unloaded", package=name)
    return True


def is_loaded_pkg(manager: EnvironmentManager, name: str) -> bool:
    """Is the package scope on the search path?"""
    return manager.is_attached(name)


def is_loaded_ns(manager: EnvironmentManager, name: str) -> bool:
    """Is the namespace in the loaded-unit registry?"""
    return manager.is_registered(name)


def as_namespace(manager: EnvironmentManager, name: str) -> Scope:
    """Namespace scope of a loaded package; KeyError when not loaded."""
    return manager.ns_scope(name)
