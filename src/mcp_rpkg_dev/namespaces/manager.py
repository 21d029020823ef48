"""Environment manager: loaded-unit registry and search path."""

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from mcp_rpkg_dev.errors import MissingDescriptor, StateConflict
from mcp_rpkg_dev.logging import get_logger
from mcp_rpkg_dev.namespaces.scopes import ScopeArena
from mcp_rpkg_dev.types import Package, Scope, ScopeChain

logger = get_logger(__name__)

_MISSING = object()


def pkg_scope_name(unit: str) -> str:
    return f"package:{unit}"


def ns_scope_name(unit: str) -> str:
    return f"namespace:{unit}"


def imports_scope_name(unit: str) -> str:
    return f"imports:{unit}"


class EnvironmentManager:
    """Emulates R's package loading hierarchy for packages under development.

    Each loaded unit gets an imports scope (parent: base), a namespace scope
    (parent: imports) and a package scope holding exported names. Package
    scopes are kept in `search_path`, most recently attached first, and are
    consulted by top-level lookups after the global scope.

    Managers are independent; pass one explicitly to the loader functions.
    """

    def __init__(self, base_bindings: Optional[Mapping[str, Any]] = None) -> None:
        self.arena = ScopeArena()
        self.base = self.arena.new("base", None, dict(base_bindings or {}))
        self.global_scope = self.arena.new("R_GlobalEnv", None)
        self.search_path: list[int] = []
        self.registry: dict[str, ScopeChain] = {}
        self._in_flight: set[str] = set()

    # -- chain construction -------------------------------------------------

    def build_chain(
        self,
        unit: str,
        definitions: Mapping[str, Any],
        exported_names: Optional[set[str]],
        imported_symbols: Mapping[str, Any],
        source: Optional[Package] = None,
    ) -> ScopeChain:
        """Create and register the imports, namespace and package scopes."""
        if exported_names is None:
            raise MissingDescriptor(unit, f"Package {unit} has no export declaration")
        if unit in self.registry:
            raise StateConflict(unit)

        imports = self.arena.new(imports_scope_name(unit), self.base, dict(imported_symbols))
        namespace = self.arena.new(ns_scope_name(unit), imports, dict(definitions))
        package = self.arena.new(
            pkg_scope_name(unit), None, _exported(definitions, exported_names)
        )

        chain = ScopeChain(
            unit=unit, imports=imports, namespace=namespace, package=package, source=source
        )
        self.registry[unit] = chain

        logger.debug(
            "chain_built",
            unit=unit,
            definitions=len(definitions),
            exports=len(exported_names),
            imports=len(imported_symbols),
        )
        return chain

    def refresh_chain(
        self,
        chain: ScopeChain,
        definitions: Mapping[str, Any],
        exported_names: Optional[set[str]],
        imported_symbols: Mapping[str, Any],
        source: Optional[Package] = None,
    ) -> ScopeChain:
        """Re-populate an existing chain's scopes without changing handles."""
        if exported_names is None:
            raise MissingDescriptor(chain.unit, f"Package {chain.unit} has no export declaration")

        self.arena.replace(chain.imports, dict(imported_symbols))
        self.arena.replace(chain.namespace, dict(definitions))
        self.arena.replace(chain.package, _exported(definitions, exported_names))
        if source is not None:
            chain.source = source

        logger.debug("chain_refreshed", unit=chain.unit)
        return chain

    def discard(self, chain: ScopeChain) -> None:
        """Detach a chain, free its scopes and drop it from the registry."""
        self.detach(chain)
        for handle in (chain.package, chain.namespace, chain.imports):
            self.arena.free(handle)
        if self.registry.get(chain.unit) is chain:
            del self.registry[chain.unit]
        logger.debug("chain_discarded", unit=chain.unit)

    # -- search path --------------------------------------------------------

    def attach(self, chain: ScopeChain) -> None:
        """Put the unit's package scope at the front of the search path."""
        if chain.package in self.search_path:
            self.search_path.remove(chain.package)
        self.search_path.insert(0, chain.package)
        logger.debug("package_attached", unit=chain.unit, position=0)

    def detach(self, chain: ScopeChain) -> None:
        """Remove the unit's package scope from the search path, if present."""
        if chain.package in self.search_path:
            self.search_path.remove(chain.package)
            logger.debug("package_detached", unit=chain.unit)

    def search(self) -> list[str]:
        """Display names in lookup order, like R's search()."""
        names = [".GlobalEnv"]
        names.extend(self.arena.get(h).name for h in self.search_path)
        names.append("package:base")
        return names

    # -- lookup -------------------------------------------------------------

    def lookup(self, name: str, default: Any = _MISSING) -> Any:
        """Resolve name from the top level: global, search path, base."""
        for handle in (self.global_scope, *self.search_path, self.base):
            bindings = self.arena.get(handle).bindings
            if name in bindings:
                return bindings[name]
        if default is _MISSING:
            raise KeyError(name)
        return default

    def lookup_from(self, unit: str, name: str, default: Any = _MISSING) -> Any:
        """Resolve name as code running inside the unit's namespace would."""
        chain = self.get_chain(unit)
        found = self.arena.find(chain.namespace, name)
        if found is not None:
            return self.arena.get(found).bindings[name]
        return self.lookup(name, default)

    def exists(self, name: str) -> bool:
        try:
            self.lookup(name)
        except KeyError:
            return False
        return True

    def assign_global(self, name: str, value: Any) -> None:
        self.arena.get(self.global_scope).bindings[name] = value

    # -- queries ------------------------------------------------------------

    def get_chain(self, unit: str) -> ScopeChain:
        try:
            return self.registry[unit]
        except KeyError:
            raise KeyError(f"There is no package called '{unit}'") from None

    def pkg_scope(self, unit: str) -> Scope:
        return self.arena.get(self.get_chain(unit).package)

    def ns_scope(self, unit: str) -> Scope:
        return self.arena.get(self.get_chain(unit).namespace)

    def imports_scope(self, unit: str) -> Scope:
        return self.arena.get(self.get_chain(unit).imports)

    def is_registered(self, unit: str) -> bool:
        return unit in self.registry

    def is_attached(self, unit: str) -> bool:
        chain = self.registry.get(unit)
        return chain is not None and chain.package in self.search_path

    def snapshot(self) -> tuple[tuple[int, ...], dict[str, ScopeChain]]:
        """Copy of the search path and registry, for before/after comparisons."""
        return tuple(self.search_path), dict(self.registry)

    @contextmanager
    def loading(self, unit: str) -> Iterator[None]:
        """Mark a unit as mid-load; a nested load of the same unit is refused."""
        if unit in self._in_flight:
            raise StateConflict(unit)
        self._in_flight.add(unit)
        try:
            yield
        finally:
            self._in_flight.discard(unit)


def _exported(definitions: Mapping[str, Any], exported_names: set[str]) -> dict[str, Any]:
    return {name: value for name, value in definitions.items() if name in exported_names}
