"""Grow-only counter (G-Counter CRDT) for conflict-free counting across devices.

Each device only ever increments its own entry. Merging takes the maximum
per device, so replicas converge no matter how often or in which order
they are merged. Counts are unsigned 64-bit values that saturate instead
of wrapping.
"""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

UINT64_MAX = 2**64 - 1

DeviceCount = Annotated[int, Field(ge=0, le=UINT64_MAX)]


def saturating_add(a: int, b: int) -> int:
    """Add two unsigned counts, clamping at UINT64_MAX."""
    total = a + b
    if total > UINT64_MAX:
        return UINT64_MAX
    return total


class GCounter(BaseModel):
    """Per-device grow-only counter."""

    counts: dict[str, DeviceCount] = Field(
        default_factory=dict, description="Count per device identifier"
    )

    model_config = ConfigDict(extra="ignore")

    def increment(self, device_id: str, amount: int = 1) -> None:
        """Increment the entry for a device.

        Args:
            device_id: Identifier of the device that observed the events
            amount: Non-negative amount to add

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"G-Counter cannot decrement (amount={amount})")
        self.counts[device_id] = saturating_add(self.counts.get(device_id, 0), amount)

    def count(self, device_id: str) -> int:
        """Get the count for a device, 0 if the device was never seen."""
        return self.counts.get(device_id, 0)

    @property
    def total(self) -> int:
        """Saturating sum over all devices."""
        total = 0
        for value in self.counts.values():
            total = saturating_add(total, value)
        return total

    @property
    def device_ids(self) -> frozenset[str]:
        """All device identifiers that contributed to this counter."""
        return frozenset(self.counts)

    def merge(self, other: "GCounter") -> None:
        """Merge another counter into this one (per-device maximum).

        Devices absent from ``other`` are left untouched.
        """
        for device_id, remote_count in other.counts.items():
            local_count = self.counts.get(device_id, 0)
            self.counts[device_id] = max(local_count, remote_count)
