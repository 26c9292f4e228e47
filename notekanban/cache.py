"""
Optimistic note overlay.

Holds notes the user just created or changed, so they show up on the
board before the store's search path reflects them. Entries are keyed by
note id, expire after a fixed lifetime, and are evicted as soon as a
fetch returns them.
"""
import time
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Tuple

from .schema import Note, UpdateQuery


class NoteCache:
    """Bounded, self-expiring overlay of note snapshots."""

    def __init__(
        self,
        ttl_secs: float = 60.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_secs = ttl_secs
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Note, float]]" = OrderedDict()

    def _expire(self) -> None:
        now = self._clock()
        for note_id in [k for k, (_, expires) in self._entries.items() if expires <= now]:
            del self._entries[note_id]

    def append(self, note: Note) -> None:
        """Add or replace the overlay entry for `note`."""
        self._expire()
        self._entries.pop(note.id, None)
        self._entries[note.id] = (note, self._clock() + self.ttl_secs)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def remove(self, note_ids: Iterable[str]) -> None:
        for note_id in note_ids:
            self._entries.pop(note_id, None)

    def merge(self, fetched: List[Note]) -> List[Note]:
        """Cached notes first, then fetched notes the cache does not shadow."""
        self._expire()
        cached = [note for note, _ in self._entries.values()]
        return cached + [n for n in fetched if n.id not in self._entries]

    def apply(self, query: UpdateQuery) -> None:
        """Re-apply a mutation that was just sent to the store."""
        for note_id, (note, expires) in list(self._entries.items()):
            self._entries[note_id] = (note.apply_update_query(query), expires)

    @property
    def notes(self) -> List[Note]:
        self._expire()
        return [note for note, _ in self._entries.values()]

    def snapshot(self) -> Dict[str, Note]:
        return {note.id: note for note in self.notes}

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, note_id: str) -> bool:
        self._expire()
        return note_id in self._entries

    def __len__(self) -> int:
        self._expire()
        return len(self._entries)
