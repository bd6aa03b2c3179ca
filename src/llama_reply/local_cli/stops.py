"""Stop-marker detection on the streamed stdout of llama-cli."""
from __future__ import annotations
from typing import Sequence

# The CLI never signals the end of an answer; these show up when it starts
# writing the next turn.
STOP_SEQUENCES: tuple[str, ...] = (">", "User:", "Assistant:")

def contains_stop(chunk: str, markers: Sequence[str] = STOP_SEQUENCES) -> bool:
    """True if this chunk alone contains a marker. Split markers are missed."""
    if not chunk:
        return False
    return any(marker in chunk for marker in markers)

class StopSequenceDetector:
    """
    Per-run detector fed with stdout chunks in arrival order.

    With `carry_tail` the last `len(longest marker) - 1` characters of the
    previous chunk are prepended before scanning, so "Us" + "er:" is caught on
    the second chunk. Without it, detection is chunk-local.
    """

    def __init__(self, markers: Sequence[str] = STOP_SEQUENCES, *, carry_tail: bool = True) -> None:
        self.markers = tuple(markers)
        self.carry_tail = carry_tail
        self._tail_len = max((len(m) for m in self.markers), default=1) - 1
        self._tail = ""

    def feed(self, chunk: str) -> bool:
        if not self.carry_tail:
            return contains_stop(chunk, self.markers)
        window = self._tail + chunk
        self._tail = window[-self._tail_len:] if self._tail_len else ""
        return contains_stop(window, self.markers)
