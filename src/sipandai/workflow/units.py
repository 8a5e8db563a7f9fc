"""Unit partition: which organisational units need central approval.

The partition is static deployment configuration, injected into the
workflow engine. Any unit id outside the central set, including an
absent id, is unit-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class UnitPartition:
    """Immutable central-approval unit set."""
    central_units: frozenset[int]

    @classmethod
    def from_iterable(cls, unit_ids: Iterable[int]) -> UnitPartition:
        units = frozenset(unit_ids)
        for unit_id in units:
            if isinstance(unit_id, bool) or not isinstance(unit_id, int) or unit_id <= 0:
                raise ValueError(f"Unit ids must be positive integers, got {unit_id!r}")
        return cls(central_units=units)

    def is_central(self, unit_id: Optional[int]) -> bool:
        if not unit_id:
            return False
        return unit_id in self.central_units

    def is_unit_only(self, unit_id: Optional[int]) -> bool:
        return not self.is_central(unit_id)
