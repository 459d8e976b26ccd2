import logging
import os
import select
import sys
import termios
import time
import tty
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Self

from rich import box
from rich.console import Console
from rich.live import Live
from rich.table import Table

from .PinnedMap import CounterTable
from .StatCollector import StatCollector
from .Stats import NUM_SLOTS, RateRecord, SlotSnapshot, action_name
from .utils import format_bitrate, format_bytes, format_period, format_pps

logger = logging.getLogger(__name__)

HEADER: List[str] = ["Action", "Total Packets", "Packets Per Sec", "Total Bytes", "Speed", "Period"]
QUIT_KEYS = frozenset({"q"})


class EventKind(Enum):
    TICK = "tick"
    KEY = "key"


@dataclass(slots=True, frozen=True)
class Event:
    kind: EventKind
    key: str = ""


class Ticker:
    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        """
        Fixed cadence timer. Deadlines advance by whole intervals so a slow tick does not shift later ones.

        Args:
            interval (float): Seconds between ticks.
            clock (Callable[[], float], optional): Monotonic clock in seconds.
        """
        if interval <= 0:
            raise ValueError(f"ticker interval must be positive, got {interval}")
        self.interval = interval
        self.clock = clock
        self.deadline = clock() + interval

    def remaining(self) -> float:
        return max(self.deadline - self.clock(), 0.0)

    def advance(self) -> None:
        now = self.clock()
        self.deadline += self.interval
        if self.deadline <= now:
            # Missed whole intervals are skipped, not replayed
            missed = int((now - self.deadline) // self.interval) + 1
            self.deadline += missed * self.interval


class KeyboardInput:
    def __init__(self, stream=None):
        """
        Single-key reader on the terminal. Entering the context puts the terminal in cbreak mode, leaving it restores the old settings.

        Args:
            stream (optional): A file object with a file descriptor. Defaults to sys.stdin.
        """
        self.stream = stream if stream is not None else sys.stdin
        self._saved_attrs = None
        self._eof = False

    def __enter__(self) -> Self:
        if self.stream.isatty():
            fd = self.stream.fileno()
            self._saved_attrs = termios.tcgetattr(fd)
            tty.setcbreak(fd, termios.TCSANOW)
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._saved_attrs is not None:
            termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None

    def poll(self, timeout: float) -> Optional[str]:
        """
        Waits up to `timeout` seconds for one key.
        Returns:
            Optional[str]: The key, or None if nothing was typed in time.
        """
        if self._eof:
            time.sleep(timeout)
            return None
        readable, _, _ = select.select([self.stream], [], [], timeout)
        if not readable:
            return None
        key = os.read(self.stream.fileno(), 1).decode("utf-8", errors="replace")
        if not key:
            logger.debug("Input stream closed, key polling disabled")
            self._eof = True
            return None
        return key


class StatsTable:
    """Fixed 6x6 grid of cell text: one header row plus one row per action slot."""

    def __init__(self):
        self.rows: List[List[str]] = [list(HEADER)] + [
            [action_name(slot)] + [""] * (len(HEADER) - 1) for slot in range(NUM_SLOTS)
        ]

    def update_totals(self, snapshot: List[SlotSnapshot]) -> None:
        """Fills only the total columns. Used for the frame drawn before any rate is known."""
        for slot, slot_snapshot in enumerate(snapshot):
            row = self.rows[slot + 1]
            row[0] = action_name(slot)
            row[1] = str(slot_snapshot.total.packets)
            row[2] = ""
            row[3] = format_bytes(slot_snapshot.total.bytes)
            row[4] = ""
            row[5] = ""

    def update(self, records: List[RateRecord]) -> None:
        for slot, record in enumerate(records):
            period = format_period(record.period)
            if record.reset:
                period += " (reset)"
            self.rows[slot + 1] = [
                action_name(slot),
                str(record.packets_total),
                format_pps(record.packets_per_sec),
                format_bytes(record.bytes_total),
                format_bitrate(record.bits_per_sec),
                period,
            ]

    def render(self) -> Table:
        table = Table(box=box.SQUARE, border_style="cyan", show_lines=True, expand=True)
        for title in self.rows[0]:
            table.add_column(title, justify="center", style="white")
        for row in self.rows[1:]:
            table.add_row(*row)
        return table


class Dashboard:
    def __init__(
        self,
        table: CounterTable,
        interval: float = 1.0,
        console: Optional[Console] = None,
        keyboard: Optional[KeyboardInput] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Live dashboard of the per-action packet and bit rates.

        Args:
            table (CounterTable): The opened counter table.
            interval (float, optional): Seconds between samples. Defaults to 1.0.
            console (Console, optional): The rich console to draw on.
            keyboard (KeyboardInput, optional): Source of key events. Defaults to stdin.
            clock (Callable[[], float], optional): Monotonic clock shared by the ticker and the snapshots.
        """
        self.collector = StatCollector(table, clock=clock)
        self.interval = interval
        self.console = console if console is not None else Console()
        self.keyboard = keyboard if keyboard is not None else KeyboardInput()
        self.clock = clock
        self.stats_table = StatsTable()
        self.previous: Optional[List[SlotSnapshot]] = None
        self.ticks = 0

    def next_event(self, ticker: Ticker) -> Event:
        """Blocks until a key is typed or the ticker fires, whichever comes first."""
        while True:
            key = self.keyboard.poll(ticker.remaining())
            if key is not None:
                return Event(EventKind.KEY, key)
            if ticker.remaining() <= 0:
                ticker.advance()
                return Event(EventKind.TICK)

    def on_tick(self) -> None:
        current = self.collector.collect()
        records = self.collector.calculate_rates(self.previous, current)
        self.previous = current
        self.stats_table.update(records)
        self.ticks += 1

    def run(self) -> None:
        """
        Runs the dashboard until `q` is typed or the process is interrupted.

        A baseline snapshot is taken before the screen opens, so the first tick already compares two real samples.
        The terminal is restored on every exit path, including a failed table read, which is re-raised.
        """
        try:
            self.previous = self.collector.collect()
            self.stats_table.update_totals(self.previous)
            with self.keyboard, Live(
                self.stats_table.render(), console=self.console, screen=True, auto_refresh=False
            ) as live:
                ticker = Ticker(self.interval, clock=self.clock)
                while True:
                    event = self.next_event(ticker)
                    if event.kind is EventKind.KEY:
                        if event.key in QUIT_KEYS:
                            break
                        continue
                    self.on_tick()
                    live.update(self.stats_table.render(), refresh=True)
        except KeyboardInterrupt:
            pass
        logger.debug("Dashboard stopped after %d ticks", self.ticks)
