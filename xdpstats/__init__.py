from .exceptions import AccessError, ConfigError, ContractViolation, DecodeError, XdpStatsError
from .Monitoring import Dashboard, StatsTable
from .PinnedMap import CounterTable, MapInfo, PinnedMap, decode_counter_pair
from .StatCollector import StatCollector, calculate_rate, sum_counters
from .Stats import CounterPair, RateRecord, SlotSnapshot, XdpAction, action_name

__all__ = [
    "AccessError",
    "ConfigError",
    "ContractViolation",
    "DecodeError",
    "XdpStatsError",
    "Dashboard",
    "StatsTable",
    "CounterTable",
    "MapInfo",
    "PinnedMap",
    "decode_counter_pair",
    "StatCollector",
    "calculate_rate",
    "sum_counters",
    "CounterPair",
    "RateRecord",
    "SlotSnapshot",
    "XdpAction",
    "action_name",
]
