from dataclasses import dataclass
from enum import IntEnum

from .exceptions import ContractViolation


class XdpAction(IntEnum):
    ABORTED = 0
    DROP = 1
    PASS = 2
    TX = 3
    REDIRECT = 4

    @property
    def label(self) -> str:
        return f"XDP_{self.name}"


NUM_SLOTS: int = len(XdpAction)


def action_name(index: int) -> str:
    """
    Returns the display name of the action stored at a slot index.

    Args:
        index (int): Slot index, 0 to 4.

    Returns:
        str: The action name, e.g. "XDP_PASS".

    Raises:
        ContractViolation: If the index is not one of the fixed action slots.
    """
    if isinstance(index, bool) or not isinstance(index, int):
        raise ContractViolation(f"slot index must be an int, got {index!r}")
    try:
        return XdpAction(index).label
    except ValueError:
        raise ContractViolation(f"slot index {index} outside 0..{NUM_SLOTS - 1}") from None


@dataclass(slots=True, frozen=True)
class CounterPair:
    packets: int = 0
    bytes: int = 0

    def __add__(self, other: "CounterPair") -> "CounterPair":
        return CounterPair(packets=self.packets + other.packets, bytes=self.bytes + other.bytes)


@dataclass(slots=True, frozen=True)
class SlotSnapshot:
    timestamp: float
    total: CounterPair


@dataclass(slots=True)
class RateRecord:
    packets_total: int = 0
    packets_per_sec: float = 0.0
    bytes_total: int = 0
    bits_per_sec: float = 0.0
    period: float = 0.0
    reset: bool = False
