import functools
import ipaddress
import re

SIZE_UNITS = {
    "b": 1,
    "k": 1 << 10,
    "m": 1 << 20,
    "g": 1 << 30,
}

_size_re = re.compile(r"(\d+)([bkmg]?)", re.IGNORECASE)


def pretty_size(size: int) -> str:
    """
    Render a byte count in at most five characters, e.g. "512b", "1.5k" or "100m".
    Anything past gigabytes is still shown in gigabytes.
    """
    if size < SIZE_UNITS["k"]:
        return f"{size}b"
    for suffix in "kmg":
        value = size / SIZE_UNITS[suffix]
        if value < 99.95:
            return f"{value:.1f}{suffix}"
        if value < 1024 or suffix == "g":
            return f"{value:.0f}{suffix}"
    raise AssertionError


@functools.lru_cache
def parse_size(s: str | None) -> int | None:
    """
    Parse a size such as "100", "16k" or "1M". `None` means no limit and is passed through.

    Raises:
        ValueError, if the value is not a valid size.
    """
    if s is None:
        return None
    m = _size_re.fullmatch(s.strip())
    if not m:
        raise ValueError(f"Invalid size specification: {s!r}")
    number, unit = m.groups()
    return int(number) * SIZE_UNITS[unit.lower() or "b"]


def format_address(address: tuple | None) -> str:
    """
    Format a socket address for log output: IPv6 hosts are bracketed,
    IPv4-mapped addresses unwrapped and wildcard binds shown as *.
    """
    if address is None:
        return "<no address>"
    host, port = address[:2]
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return f"{host}:{port}"
    if ip.is_unspecified:
        return f"*:{port}"
    if isinstance(ip, ipaddress.IPv6Address):
        if ip.ipv4_mapped is None:
            return f"[{ip}]:{port}"
        ip = ip.ipv4_mapped
    return f"{ip}:{port}"
