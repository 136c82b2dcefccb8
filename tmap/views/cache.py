"""
In-memory cache of a view.

Every cached part of a view lives in a :class:`CacheSlot` with an explicit
state. A slot moves ``UNLOADED -> CACHED`` on first access, ``CACHED ->
STALE`` when its backing tiddler is reported as changed, and back to
``CACHED`` when it is reloaded.

The :class:`SuppressSet` holds the titles a setter has just written. The
rebuild swaps it out at the start of each cycle so an entry silences exactly
one change report, while writes made during the cycle land in the fresh set.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Optional, Set

from tmap.filters import CompiledFilter, compile_filter


class CacheState(Enum):
    UNLOADED = "unloaded"
    CACHED = "cached"
    STALE = "stale"


@dataclass
class CacheSlot:
    """One cached value and its state."""
    state: CacheState = CacheState.UNLOADED
    value: Any = None

    def is_fresh(self) -> bool:
        return self.state is CacheState.CACHED

    def store(self, value: Any) -> Any:
        self.value = value
        self.state = CacheState.CACHED
        return value

    def invalidate(self) -> None:
        if self.state is CacheState.CACHED:
            self.state = CacheState.STALE

    def reset(self) -> None:
        self.state = CacheState.UNLOADED
        self.value = None


@dataclass(frozen=True)
class FilterPair:
    """A filter expression together with its compiled form."""
    expression: str
    compiled: CompiledFilter

    @classmethod
    def empty(cls) -> "FilterPair":
        return cls("", compile_filter(""))

    def select(self, kind: Optional[str] = None):
        """Return the pair, or one of ``"expression"`` / ``"compiled"``."""
        if kind is None:
            return self
        if kind == "expression":
            return self.expression
        if kind == "compiled":
            return self.compiled
        return None


class SuppressSet:
    """Titles whose next change report is already reflected in the cache."""

    def __init__(self):
        self._next: Set[str] = set()

    def add(self, title: str) -> None:
        self._next.add(title)

    def swap(self) -> FrozenSet[str]:
        """Hand out the current set and start collecting a new one."""
        current, self._next = self._next, set()
        return frozenset(current)

    def __contains__(self, title: str) -> bool:
        return title in self._next

    def __len__(self) -> int:
        return len(self._next)


@dataclass
class ViewCache:
    config: CacheSlot = field(default_factory=CacheSlot)
    node_filter: CacheSlot = field(default_factory=CacheSlot)
    edge_filter: CacheSlot = field(default_factory=CacheSlot)
    positions: CacheSlot = field(default_factory=CacheSlot)
    type_white_list: CacheSlot = field(default_factory=CacheSlot)
    suppress: SuppressSet = field(default_factory=SuppressSet)

    def slots(self):
        return (self.config, self.node_filter, self.edge_filter, self.positions, self.type_white_list)

    def reset(self) -> None:
        for slot in self.slots():
            slot.reset()
        self.suppress = SuppressSet()
