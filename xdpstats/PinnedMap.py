import ctypes
import errno
import logging
import os
import platform
import struct
from dataclasses import dataclass
from typing import List, Optional, Self

import psutil

from .exceptions import AccessError, DecodeError
from .Stats import CounterPair
from .utils import parse_cpu_list

logger = logging.getLogger(__name__)

COUNTER_PAIR_FORMAT: str = "<QQ"
COUNTER_PAIR_SIZE: int = struct.calcsize(COUNTER_PAIR_FORMAT)
KEY_SIZE: int = 4
POSSIBLE_CPUS_PATH: str = "/sys/devices/system/cpu/possible"

# bpf(2) commands
BPF_MAP_LOOKUP_ELEM = 1
BPF_OBJ_GET = 7
BPF_OBJ_GET_INFO_BY_FD = 15
BPF_F_RDONLY = 1 << 3

BPF_MAP_TYPE_PERCPU_HASH = 5
BPF_MAP_TYPE_PERCPU_ARRAY = 6
BPF_MAP_TYPE_LRU_PERCPU_HASH = 10
PERCPU_MAP_TYPES = frozenset({BPF_MAP_TYPE_PERCPU_HASH, BPF_MAP_TYPE_PERCPU_ARRAY, BPF_MAP_TYPE_LRU_PERCPU_HASH})

SYS_BPF = {
    "x86_64": 321,
    "aarch64": 280,
    "riscv64": 280,
    "armv7l": 386,
    "ppc64le": 361,
    "s390x": 351,
}


class _ObjGetAttr(ctypes.Structure):
    _fields_ = [
        ("pathname", ctypes.c_uint64),
        ("bpf_fd", ctypes.c_uint32),
        ("file_flags", ctypes.c_uint32),
    ]


class _MapElemAttr(ctypes.Structure):
    _fields_ = [
        ("map_fd", ctypes.c_uint32),
        ("key", ctypes.c_uint64),
        ("value", ctypes.c_uint64),
        ("flags", ctypes.c_uint64),
    ]


class _InfoByFdAttr(ctypes.Structure):
    _fields_ = [
        ("bpf_fd", ctypes.c_uint32),
        ("info_len", ctypes.c_uint32),
        ("info", ctypes.c_uint64),
    ]


class _BpfMapInfo(ctypes.Structure):
    _fields_ = [
        ("type", ctypes.c_uint32),
        ("id", ctypes.c_uint32),
        ("key_size", ctypes.c_uint32),
        ("value_size", ctypes.c_uint32),
        ("max_entries", ctypes.c_uint32),
        ("map_flags", ctypes.c_uint32),
        ("name", ctypes.c_char * 16),
    ]


@dataclass(slots=True, frozen=True)
class MapInfo:
    map_type: int
    map_id: int
    name: str
    key_size: int
    value_size: int
    max_entries: int

    @property
    def is_percpu(self) -> bool:
        return self.map_type in PERCPU_MAP_TYPES

    def describe(self) -> str:
        map_id = self.map_id if self.map_id else "n/a"
        return (
            f" - BPF map (bpf_map_type: {self.map_type}) id: {map_id} name: {self.name} "
            f"key_size: {self.key_size} value_size: {self.value_size} max entries: {self.max_entries}"
        )


def decode_counter_pair(buf: bytes, key: Optional[int] = None) -> CounterPair:
    """
    Decodes one per-CPU record into a CounterPair.

    Args:
        buf (bytes): Exactly 16 bytes, packets then bytes, both little-endian u64.
        key (int, optional): The slot key, only used in the error message.

    Returns:
        CounterPair: The decoded counters.

    Raises:
        DecodeError: If the buffer is not exactly 16 bytes long.
    """
    if len(buf) != COUNTER_PAIR_SIZE:
        raise DecodeError(f"counter record must be {COUNTER_PAIR_SIZE} bytes, got {len(buf)}", key)
    packets, nbytes = struct.unpack(COUNTER_PAIR_FORMAT, buf)
    return CounterPair(packets=packets, bytes=nbytes)


def split_percpu_values(raw: bytes, value_size: int, ncpus: int) -> List[bytes]:
    """
    Splits the buffer filled by a per-CPU lookup into one record per CPU.
    The kernel pads every CPU's slot to a multiple of 8 bytes.
    """
    stride = (value_size + 7) & ~7
    if len(raw) < stride * ncpus:
        raise DecodeError(f"per-CPU buffer holds {len(raw)} bytes, expected {stride * ncpus}")
    return [raw[i * stride : i * stride + value_size] for i in range(ncpus)]


def possible_cpus(path: str = POSSIBLE_CPUS_PATH) -> int:
    """
    Returns the number of possible CPUs, which is the length of a per-CPU map value.
    Falls back to the logical CPU count reported by psutil if sysfs is not readable.
    """
    try:
        with open(path, encoding="utf-8") as f:
            return len(parse_cpu_list(f.read()))
    except (OSError, ValueError) as e:
        logger.debug("Cannot read %s (%s), using psutil cpu count", path, e)
    count = psutil.cpu_count(logical=True)
    return count if count else 1


class CounterTable:
    """
    Read-only view of the externally owned action counter table.
    Subclasses implement `lookup_percpu` and `info`. Use as a context manager so the table is closed on every exit path.
    """

    def lookup_percpu(self, key: int) -> List[CounterPair]:
        raise NotImplementedError

    def info(self) -> MapInfo:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class PinnedMap(CounterTable):
    def __init__(self, path: str, ncpus: Optional[int] = None):
        """
        Initializes a read-only handle on a BPF map pinned in the BPF filesystem. The map is opened by `open()`.

        Args:
            path (str): Path of the pinned map, e.g. /sys/fs/bpf/xdp_stats_map.
            ncpus (int, optional): Number of possible CPUs. Detected when omitted.
        """
        self.path = path
        self.ncpus = ncpus
        self.fd: Optional[int] = None
        self._info: Optional[MapInfo] = None
        self._libc = None

    def open(self) -> Self:
        """
        Opens the pinned map read-only and validates its key and value sizes.

        Returns:
            PinnedMap: self, so it can be used as `with PinnedMap(path).open() as table:`.

        Raises:
            AccessError: If the map does not exist or cannot be opened.
            DecodeError: If the key or value size does not match a u32 key and a (packets, bytes) record.
        """
        path_buf = ctypes.create_string_buffer(os.fsencode(self.path))
        attr = _ObjGetAttr(pathname=ctypes.addressof(path_buf), file_flags=BPF_F_RDONLY)
        try:
            self.fd = self._bpf(BPF_OBJ_GET, attr)
        except OSError as e:
            if e.errno == errno.ENOENT:
                raise AccessError(f"error loading pinned map at {self.path}: no such map") from e
            raise AccessError(f"error loading pinned map at {self.path}: {e.strerror}") from e

        try:
            self._info = self._fetch_info()
            self._validate(self._info)
        except Exception:
            self.close()
            raise
        if self.ncpus is None:
            self.ncpus = possible_cpus() if self._info.is_percpu else 1
        return self

    def info(self) -> MapInfo:
        if self._info is None:
            raise AccessError(f"map at {self.path} is not open")
        return self._info

    def lookup_percpu(self, key: int) -> List[CounterPair]:
        if self.fd is None or self._info is None:
            raise AccessError(f"map at {self.path} is closed", key)

        ncpus = self.ncpus if self._info.is_percpu else 1
        stride = (self._info.value_size + 7) & ~7
        key_buf = ctypes.c_uint32(key)
        value_buf = ctypes.create_string_buffer(stride * ncpus)
        attr = _MapElemAttr(
            map_fd=self.fd,
            key=ctypes.addressof(key_buf),
            value=ctypes.addressof(value_buf),
        )
        try:
            self._bpf(BPF_MAP_LOOKUP_ELEM, attr)
        except OSError as e:
            if e.errno == errno.ENOENT:
                raise AccessError("key not found in map", key) from e
            raise AccessError(f"map lookup failed: {e.strerror}", key) from e

        records = split_percpu_values(value_buf.raw, self._info.value_size, ncpus)
        return [decode_counter_pair(record, key) for record in records]

    def close(self) -> None:
        if self.fd is not None:
            os.close(self.fd)
            self.fd = None

    def _fetch_info(self) -> MapInfo:
        raw_info = _BpfMapInfo()
        attr = _InfoByFdAttr(
            bpf_fd=self.fd,
            info_len=ctypes.sizeof(raw_info),
            info=ctypes.addressof(raw_info),
        )
        try:
            self._bpf(BPF_OBJ_GET_INFO_BY_FD, attr)
        except OSError as e:
            raise AccessError(f"error getting map info: {e.strerror}") from e
        if not raw_info.id:
            logger.info("map ID field not available")
        return MapInfo(
            map_type=raw_info.type,
            map_id=raw_info.id,
            name=raw_info.name.decode("utf-8", errors="replace"),
            key_size=raw_info.key_size,
            value_size=raw_info.value_size,
            max_entries=raw_info.max_entries,
        )

    @staticmethod
    def _validate(info: MapInfo) -> None:
        if info.key_size != KEY_SIZE:
            raise DecodeError(f"map key size is {info.key_size}, expected {KEY_SIZE}")
        if info.value_size != COUNTER_PAIR_SIZE:
            raise DecodeError(f"map value size is {info.value_size}, expected {COUNTER_PAIR_SIZE}")

    def _bpf(self, cmd: int, attr: ctypes.Structure) -> int:
        """Issues one bpf(2) call. Raises OSError with the kernel errno on failure."""
        nr = SYS_BPF.get(platform.machine())
        if nr is None:
            raise AccessError(f"bpf syscall number unknown for {platform.machine()}")
        if self._libc is None:
            self._libc = ctypes.CDLL(None, use_errno=True)
            self._libc.syscall.restype = ctypes.c_long
        ret = self._libc.syscall(
            ctypes.c_long(nr), ctypes.c_int(cmd), ctypes.byref(attr), ctypes.c_uint(ctypes.sizeof(attr))
        )
        if ret < 0:
            err = ctypes.get_errno()
            raise OSError(err, os.strerror(err))
        return ret
