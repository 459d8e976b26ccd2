from typing import List


def format_bitrate(bits_per_sec: float) -> str:
    """
    Converts a bit rate into Kbits/s or Mbits/s text.
    Parameters:
        bits_per_sec (float): The rate in bits per second.
    Returns:
        str: "<n> Kbits/s" below 1000 Kbit/s, "<n> Mbits/s" from 1000 Kbit/s on. The number is truncated.
    """
    kbps = bits_per_sec / 1000
    if kbps < 1000:
        return f"{int(kbps)} Kbits/s"
    return f"{int(kbps / 1000)} Mbits/s"


def format_bytes(total_bytes: int) -> str:
    """
    Converts a cumulative byte count into KBs or MBs text using integer division.
    Parameters:
        total_bytes (int): The raw byte count.
    Returns:
        str: "<n> KBs" below 1024 KB, "<n> MBs" otherwise.
    """
    kbs = total_bytes // 1024
    if kbs < 1024:
        return f"{kbs} KBs"
    return f"{kbs // 1024} MBs"


def format_pps(packets_per_sec: float) -> str:
    return f"{int(packets_per_sec)} pps"


def format_period(period: float) -> str:
    return f"{period:f}"


def parse_cpu_list(text: str) -> List[int]:
    """
    Parses a kernel CPU list such as "0-3,5,7-8" into the list of CPU ids.
    Parameters:
        text (str): The content of a sysfs cpu list file.
    Returns:
        List[int]: The CPU ids in ascending order.
    Raises:
        ValueError: If the text is empty or malformed.
    """
    cpus: List[int] = []
    for part in text.strip().split(","):
        if not part:
            raise ValueError(f"malformed cpu list: {text!r}")
        if "-" in part:
            first, last = part.split("-", 1)
            cpus.extend(range(int(first), int(last) + 1))
        else:
            cpus.append(int(part))
    return sorted(cpus)
