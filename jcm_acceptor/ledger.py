"""
Cash ledger for accepted notes.

Counts accepted notes per denomination. Guarded by a threading lock so
that reporting threads can read it while the polling loop writes.
"""

import logging
import threading
from typing import Iterable, Mapping, Optional


logger = logging.getLogger(__name__)


class CashLedger:
    """
    Denomination -> accepted note count, plus the derived total.

    Attributes:
        denominations: Known note values, fixed for the ledger lifetime.
    """

    def __init__(
        self,
        denominations: Iterable[int],
        preset: Optional[Mapping[int, int]] = None,
    ) -> None:
        self._denominations = tuple(sorted(set(denominations)))
        self._lock = threading.Lock()
        self._counts: dict[int, int] = dict.fromkeys(self._denominations, 0)
        if preset:
            self.preset(preset)

    @property
    def denominations(self) -> tuple[int, ...]:
        return self._denominations

    @property
    def total(self) -> int:
        """Sum of denomination * count."""
        with self._lock:
            return self._total_unlocked()

    def _total_unlocked(self) -> int:
        return sum(value * count for value, count in self._counts.items())

    def credit(self, denomination: int) -> int:
        """
        Count one accepted note.

        Args:
            denomination: Note value.

        Returns:
            New count for the denomination.

        Raises:
            ValueError: Denomination is not known to the ledger.
        """
        with self._lock:
            if denomination not in self._counts:
                raise ValueError(f"Unknown denomination: {denomination}")
            self._counts[denomination] += 1
            return self._counts[denomination]

    def snapshot(self) -> dict[int, int]:
        """Copy of the current counts."""
        with self._lock:
            return dict(self._counts)

    def get(self) -> tuple[dict[int, int], int]:
        """Consistent (counts, total) pair taken under one lock."""
        with self._lock:
            return dict(self._counts), self._total_unlocked()

    def preset(self, counts: Mapping[int, int]) -> None:
        """
        Replace the ledger contents.

        All known denominations are zeroed first; unknown denominations in
        ``counts`` are ignored.

        Raises:
            ValueError: A count is negative.
        """
        for value, count in counts.items():
            if count < 0:
                raise ValueError(f"Negative count for {value}: {count}")

        with self._lock:
            self._counts = dict.fromkeys(self._denominations, 0)
            for value, count in counts.items():
                if value in self._counts:
                    self._counts[value] = count
                else:
                    logger.warning(f"Ignoring unknown denomination in preset: {value}")

    def reset(self) -> None:
        """Zero every count."""
        with self._lock:
            for value in self._counts:
                self._counts[value] = 0
