import logging
import time
from typing import Callable, Iterable, List, Tuple

from .PinnedMap import CounterTable
from .Stats import NUM_SLOTS, CounterPair, RateRecord, SlotSnapshot, action_name

logger = logging.getLogger(__name__)


class StatCollector:
    def __init__(self, table: CounterTable, clock: Callable[[], float] = time.monotonic):
        """
        Initializes a new instance of the StatCollector class.
        Args:
            table (CounterTable): The counter table to read the action slots from.
            clock (Callable[[], float], optional): Source of timestamps in seconds. Defaults to time.monotonic.
        Returns:
            None
        """
        self.table = table
        self.clock = clock

    def collect(self) -> List[SlotSnapshot]:
        """
        Takes one snapshot of every action slot, summing the per-CPU values of each one.

        Returns:
            List[SlotSnapshot]: Exactly one snapshot per slot, in slot order.

        Raises:
            AccessError: If a slot cannot be read. No partial snapshot is returned.
            DecodeError: If a per-CPU record of any slot is malformed.
        """
        snapshot: List[SlotSnapshot] = []
        for key in range(NUM_SLOTS):
            timestamp = self.clock()
            per_cpu_values = self.table.lookup_percpu(key)
            snapshot.append(SlotSnapshot(timestamp=timestamp, total=sum_counters(per_cpu_values)))
        return snapshot

    @staticmethod
    def calculate_rates(previous: List[SlotSnapshot], current: List[SlotSnapshot]) -> List[RateRecord]:
        """
        Calculates the rates of every slot between two snapshots.

        Args:
            previous (List[SlotSnapshot]): The older snapshot.
            current (List[SlotSnapshot]): The newer snapshot.

        Returns:
            List[RateRecord]: One record per slot, in slot order.

        Note:
            - Both snapshots must hold exactly one entry per slot.
        """
        if len(previous) != NUM_SLOTS or len(current) != NUM_SLOTS:
            raise ValueError(f"snapshots must hold {NUM_SLOTS} slots, got {len(previous)} and {len(current)}")
        records = []
        for key, (prev, curr) in enumerate(zip(previous, current)):
            record = calculate_rate(prev, curr)
            if record.reset:
                rates = []
                if curr.total.packets < prev.total.packets:
                    rates.append("packet")
                if curr.total.bytes < prev.total.bytes:
                    rates.append("bit")
                logger.warning(
                    "Counter reset detected for %s, reporting zero %s rate", action_name(key), " and ".join(rates)
                )
            records.append(record)
        return records


def sum_counters(values: Iterable[CounterPair]) -> CounterPair:
    """Sums per-CPU counter pairs into a single system-wide pair."""
    total = CounterPair()
    for value in values:
        total = total + value
    return total


def counter_delta(previous: int, current: int) -> Tuple[int, bool]:
    """
    Returns the increase of a cumulative counter and whether it went backwards.
    A counter that went backwards was reset externally, so its delta is 0.
    """
    if current < previous:
        return 0, True
    return current - previous, False


def calculate_rate(previous: SlotSnapshot, current: SlotSnapshot) -> RateRecord:
    """
    Calculates the packet and bit rates of one slot between two snapshots.

    Args:
        previous (SlotSnapshot): The older snapshot of the slot.
        current (SlotSnapshot): The newer snapshot of the slot.

    Returns:
        RateRecord: Totals come from `current`. Rates are 0 when the period is not positive or a counter was reset.
    """
    period = current.timestamp - previous.timestamp
    packets_delta, packets_reset = counter_delta(previous.total.packets, current.total.packets)
    bytes_delta, bytes_reset = counter_delta(previous.total.bytes, current.total.bytes)

    packets_per_sec = 0.0
    bits_per_sec = 0.0
    if period > 0:
        packets_per_sec = packets_delta / period
        bits_per_sec = bytes_delta * 8 / period

    return RateRecord(
        packets_total=current.total.packets,
        packets_per_sec=packets_per_sec,
        bytes_total=current.total.bytes,
        bits_per_sec=bits_per_sec,
        period=period,
        reset=packets_reset or bytes_reset,
    )
