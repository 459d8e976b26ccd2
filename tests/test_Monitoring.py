import io
import os
import pty
import termios
import unittest
from typing import List, Optional

from rich.console import Console

from xdpstats.exceptions import AccessError
from xdpstats.Monitoring import HEADER, Dashboard, Event, EventKind, KeyboardInput, StatsTable, Ticker
from xdpstats.PinnedMap import CounterTable
from xdpstats.Stats import CounterPair, RateRecord, SlotSnapshot


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeKeyboard:
    """Replays a script of keys. None means no key before the timeout, which moves the clock forward."""

    def __init__(self, clock: FakeClock, script: List[Optional[str]]):
        self.clock = clock
        self.script = list(script)
        self.entered = False
        self.exited = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.exited = True

    def poll(self, timeout: float) -> Optional[str]:
        if not self.script:
            return "q"
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if item is None:
            self.clock.now += timeout
        return item


class GrowingTable(CounterTable):
    """Every read of a key adds 50 packets and 1000 bytes, split over two CPUs."""

    def __init__(self, fail_on_read: Optional[int] = None):
        self.reads = {key: 0 for key in range(5)}
        self.fail_on_read = fail_on_read
        self.total_reads = 0

    def lookup_percpu(self, key: int) -> List[CounterPair]:
        self.total_reads += 1
        if self.fail_on_read is not None and self.total_reads == self.fail_on_read:
            raise AccessError("key not found in map", key)
        n = self.reads[key]
        self.reads[key] += 1
        packets = 100 + 50 * n
        nbytes = 1000 + 1000 * n
        return [CounterPair(packets - 40, nbytes - 400), CounterPair(40, 400)]


def make_console() -> Console:
    return Console(file=io.StringIO(), width=140)


class TestTicker(unittest.TestCase):

    def test_remaining(self):
        clock = FakeClock(10.0)
        ticker = Ticker(1.0, clock=clock)
        self.assertEqual(ticker.remaining(), 1.0)
        clock.now = 10.25
        self.assertEqual(ticker.remaining(), 0.75)
        clock.now = 12.0
        self.assertEqual(ticker.remaining(), 0.0)

    def test_advance_keeps_cadence(self):
        clock = FakeClock(0.0)
        ticker = Ticker(1.0, clock=clock)
        clock.now = 1.2
        ticker.advance()
        self.assertEqual(ticker.deadline, 2.0)

    def test_advance_skips_missed_ticks(self):
        clock = FakeClock(0.0)
        ticker = Ticker(1.0, clock=clock)
        clock.now = 3.5
        ticker.advance()
        self.assertEqual(ticker.deadline, 4.0)

    def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            Ticker(0)


class TestStatsTable(unittest.TestCase):

    def test_initial_shape(self):
        table = StatsTable()
        self.assertEqual(len(table.rows), 6)
        self.assertTrue(all(len(row) == 6 for row in table.rows))
        self.assertEqual(table.rows[0], HEADER)
        self.assertEqual([row[0] for row in table.rows[1:]], ["XDP_ABORTED", "XDP_DROP", "XDP_PASS", "XDP_TX", "XDP_REDIRECT"])

    def test_update(self):
        table = StatsTable()
        records = [RateRecord(150, 50.0, 2000, 8000.0, 1.0) for _ in range(5)]
        records[4] = RateRecord(10, 0.0, 100, 0.0, 1.0, reset=True)
        table.update(records)
        self.assertEqual(table.rows[1], ["XDP_ABORTED", "150", "50 pps", "1 KBs", "8 Kbits/s", "1.000000"])
        self.assertEqual(table.rows[5][5], "1.000000 (reset)")

    def test_update_totals_leaves_rates_blank(self):
        table = StatsTable()
        table.update_totals([SlotSnapshot(0.0, CounterPair(100, 2048)) for _ in range(5)])
        self.assertEqual(table.rows[3], ["XDP_PASS", "100", "", "2 KBs", "", ""])

    def test_render(self):
        rendered = StatsTable().render()
        self.assertEqual(len(rendered.columns), 6)
        self.assertEqual(rendered.row_count, 5)
        self.assertEqual([column.header for column in rendered.columns], HEADER)


class TestDashboard(unittest.TestCase):

    def make_dashboard(self, script, table=None):
        self.clock = FakeClock(100.0)
        self.keyboard = FakeKeyboard(self.clock, script)
        self.table = table if table is not None else GrowingTable()
        return Dashboard(self.table, interval=1.0, console=make_console(), keyboard=self.keyboard, clock=self.clock)

    def test_quit_before_first_tick_shows_totals_only(self):
        dashboard = self.make_dashboard(["q"])
        dashboard.run()
        self.assertEqual(dashboard.ticks, 0)
        self.assertEqual(dashboard.stats_table.rows[3], ["XDP_PASS", "100", "", "0 KBs", "", ""])
        self.assertTrue(self.keyboard.exited)

    def test_ticks_compute_rates(self):
        dashboard = self.make_dashboard([None, None, "x", None, "q"])
        dashboard.run()
        self.assertEqual(dashboard.ticks, 3)
        self.assertEqual(dashboard.stats_table.rows[3], ["XDP_PASS", "250", "50 pps", "3 KBs", "8 Kbits/s", "1.000000"])

    def test_first_tick_uses_baseline(self):
        dashboard = self.make_dashboard([None, "q"])
        dashboard.run()
        self.assertEqual(dashboard.ticks, 1)
        self.assertEqual(dashboard.stats_table.rows[1][2], "50 pps")
        self.assertEqual(dashboard.stats_table.rows[1][5], "1.000000")

    def test_table_shape_is_stable(self):
        dashboard = self.make_dashboard([None] * 10 + ["q"])
        dashboard.run()
        self.assertEqual(dashboard.ticks, 10)
        self.assertEqual(len(dashboard.stats_table.rows), 6)
        self.assertTrue(all(len(row) == 6 for row in dashboard.stats_table.rows))
        rendered = dashboard.stats_table.render()
        self.assertEqual((rendered.row_count, len(rendered.columns)), (5, 6))

    def test_other_keys_are_ignored(self):
        dashboard = self.make_dashboard(["a", "b", " ", "q"])
        dashboard.run()
        self.assertEqual(dashboard.ticks, 0)
        self.assertEqual(self.table.total_reads, 5)

    def test_capital_q_does_not_quit(self):
        dashboard = self.make_dashboard(["Q", None, "Q", None, "q", None])
        dashboard.run()
        self.assertEqual(dashboard.ticks, 2)
        self.assertEqual(self.keyboard.script, [None])

    def test_keyboard_interrupt_exits_cleanly(self):
        dashboard = self.make_dashboard([None, KeyboardInterrupt()])
        dashboard.run()
        self.assertEqual(dashboard.ticks, 1)
        self.assertTrue(self.keyboard.exited)

    def test_read_error_restores_terminal(self):
        # baseline reads 5 keys, the first tick fails on its third read
        dashboard = self.make_dashboard([None, None], table=GrowingTable(fail_on_read=8))
        with self.assertRaises(AccessError) as ctx:
            dashboard.run()
        self.assertEqual(ctx.exception.key, 2)
        self.assertTrue(self.keyboard.exited)

    def test_startup_error_never_enters_screen(self):
        dashboard = self.make_dashboard(["q"], table=GrowingTable(fail_on_read=1))
        with self.assertRaises(AccessError):
            dashboard.run()
        self.assertFalse(self.keyboard.entered)

    def test_next_event(self):
        dashboard = self.make_dashboard(["k", None])
        ticker = Ticker(1.0, clock=self.clock)
        self.assertEqual(dashboard.next_event(ticker), Event(EventKind.KEY, "k"))
        self.assertEqual(dashboard.next_event(ticker), Event(EventKind.TICK))
        self.assertEqual(ticker.deadline, 102.0)


class TestKeyboardInput(unittest.TestCase):

    def setUp(self):
        read_fd, write_fd = os.pipe()
        self.reader = os.fdopen(read_fd, "rb", buffering=0)
        self.write_fd = write_fd
        self.addCleanup(self.reader.close)

    def test_reads_one_key(self):
        os.write(self.write_fd, b"qx")
        os.close(self.write_fd)
        with KeyboardInput(self.reader) as keyboard:
            self.assertEqual(keyboard.poll(1.0), "q")
            self.assertEqual(keyboard.poll(1.0), "x")

    def test_timeout(self):
        with KeyboardInput(self.reader) as keyboard:
            self.assertIsNone(keyboard.poll(0.01))
        os.close(self.write_fd)

    def test_eof_disables_polling(self):
        os.close(self.write_fd)
        keyboard = KeyboardInput(self.reader)
        self.assertIsNone(keyboard.poll(0.01))
        self.assertIsNone(keyboard.poll(0.01))


class TestKeyboardInputTerminal(unittest.TestCase):

    def setUp(self):
        master_fd, slave_fd = pty.openpty()
        self.master_fd = master_fd
        self.terminal = os.fdopen(slave_fd, "rb", buffering=0)
        self.addCleanup(os.close, master_fd)
        self.addCleanup(self.terminal.close)
        self.saved = termios.tcgetattr(slave_fd)

    def test_cbreak_inside_and_restored_after(self):
        with KeyboardInput(self.terminal):
            attrs = termios.tcgetattr(self.terminal.fileno())
            self.assertNotEqual(attrs, self.saved)
            self.assertEqual(attrs[3] & termios.ICANON, 0)
            self.assertEqual(attrs[3] & termios.ECHO, 0)
        self.assertEqual(termios.tcgetattr(self.terminal.fileno()), self.saved)

    def test_restored_when_loop_raises(self):
        with self.assertRaises(AccessError):
            with KeyboardInput(self.terminal):
                raise AccessError("key not found in map", 1)
        self.assertEqual(termios.tcgetattr(self.terminal.fileno()), self.saved)

    def test_key_typed_before_entering_is_kept(self):
        os.write(self.master_fd, b"q")
        with KeyboardInput(self.terminal) as keyboard:
            self.assertEqual(keyboard.poll(1.0), "q")


if __name__ == "__main__":
    unittest.main()
