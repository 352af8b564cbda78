import logging
from typing import Dict, Iterable, List, Optional

from .models import Bounds, LatLng, ResultEntry


logger = logging.getLogger(__name__)


class ResultStore:
    """
    Holds the full result collection and the user location, and derives the
    viewport-visible subset that drives marker rendering and the side list.

    `generation` increases every time the collection is replaced wholesale so
    async work started against an older collection can tell it is stale.
    """

    def __init__(self):
        self._entries: Dict[str, ResultEntry] = {}
        self._viewport: Optional[Bounds] = None
        self._visible: List[ResultEntry] = []
        self.user_location: Optional[LatLng] = None
        self.generation = 0

    @property
    def entries(self) -> List[ResultEntry]:
        return list(self._entries.values())

    @property
    def visible(self) -> List[ResultEntry]:
        return list(self._visible)

    @property
    def viewport(self) -> Optional[Bounds]:
        return self._viewport

    def get(self, entry_id: str) -> Optional[ResultEntry]:
        return self._entries.get(entry_id)

    def __len__(self) -> int:
        return len(self._entries)

    def set_results(self, entries: Iterable[ResultEntry]) -> int:
        """Replace the whole collection. Duplicate ids are merged, first position wins."""
        merged: Dict[str, ResultEntry] = {}
        for entry in entries:
            if entry.id in merged:
                merged[entry.id] = merged[entry.id].merge(entry)
            else:
                merged[entry.id] = entry
        self._entries = merged
        self.generation += 1
        self._recompute()
        logger.info("Result set replaced: %d entries (generation %d)", len(merged), self.generation)
        return self.generation

    def set_viewport(self, bounds: Optional[Bounds]) -> List[ResultEntry]:
        self._viewport = bounds
        self._recompute()
        return self.visible

    def upsert(self, entry: ResultEntry) -> ResultEntry:
        """Fold newer data for one place into the current collection."""
        existing = self._entries.get(entry.id)
        merged = existing.merge(entry) if existing else entry
        self._entries[entry.id] = merged
        self._recompute()
        return merged

    def _recompute(self) -> None:
        # Always filters the live collection, never a snapshot
        located = [e for e in self._entries.values() if e.coordinates is not None]
        if self._viewport is None:
            self._visible = located
        else:
            self._visible = [e for e in located if self._viewport.contains(e.coordinates)]
        logger.debug("Visible results: %d of %d", len(self._visible), len(self._entries))
