"""Generation stamps for supersedable background loads.

Every load is issued with a fresh sequence number; its result may be
applied only while that number is still the latest issued one. Results
of superseded loads are dropped after they arrive, never aborted.
"""


class GenerationGuard:
    """Monotonic issue counter with a "still current?" check."""

    def __init__(self) -> None:
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        """Stamp a new load and return its sequence number."""
        self._latest += 1
        return self._latest

    def is_current(self, sequence: int) -> bool:
        return sequence == self._latest
