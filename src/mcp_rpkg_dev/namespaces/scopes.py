"""Scope arena.

Scopes are addressed by integer handles and refer to their parent by
handle, so tearing a chain down is a matter of freeing handles. A freed
handle is never reused.
"""

from itertools import count
from typing import Any, Iterator, Optional

from mcp_rpkg_dev.types import Scope


class ScopeArena:
    """Owns every scope created by one environment manager."""

    def __init__(self) -> None:
        self._scopes: dict[int, Scope] = {}
        self._handles = count(1)

    def __contains__(self, handle: object) -> bool:
        return handle in self._scopes

    def __len__(self) -> int:
        return len(self._scopes)

    def new(
        self,
        name: Optional[str] = None,
        parent: Optional[int] = None,
        bindings: Optional[dict[str, Any]] = None,
    ) -> int:
        if parent is not None and parent not in self._scopes:
            raise KeyError(f"Unknown parent scope {parent}")
        handle = next(self._handles)
        self._scopes[handle] = Scope(
            handle=handle, name=name, parent=parent, bindings=dict(bindings or {})
        )
        return handle

    def get(self, handle: int) -> Scope:
        try:
            return self._scopes[handle]
        except KeyError:
            raise KeyError(f"Scope {handle} has been freed or never existed") from None

    def free(self, handle: int) -> None:
        self._scopes.pop(handle, None)

    def replace(self, handle: int, bindings: dict[str, Any]) -> None:
        """Swap a scope's contents in place, keeping its handle."""
        scope = self.get(handle)
        scope.bindings.clear()
        scope.bindings.update(bindings)

    def ancestors(self, handle: int) -> Iterator[int]:
        """The handle itself followed by each parent up to the root."""
        current: Optional[int] = handle
        while current is not None:
            yield current
            current = self.get(current).parent

    def find(self, handle: int, name: str) -> Optional[int]:
        """Handle of the nearest scope in the parent chain that binds name."""
        for ancestor in self.ancestors(handle):
            if name in self._scopes[ancestor].bindings:
                return ancestor
        return None
