"""Helpers for RouterOS address pool range strings.

RouterOS reports pool ranges as a comma separated list where each element is
a single address, a ``start-end`` span or a CIDR block, e.g.
``10.0.0.2-10.0.0.254,10.0.1.0/28``.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


@dataclass(frozen=True)
class RangeSummary:
    network_address: str
    start_ip: str
    end_ip: str
    size: int


def parse_ranges(ranges: str | None) -> list[tuple[IPAddress, IPAddress]]:
    """Parse a RouterOS ranges string into inclusive (start, end) spans.

    Raises:
        ValueError: if any element is not an address, span or network.
    """
    spans: list[tuple[IPAddress, IPAddress]] = []
    if not ranges or not ranges.strip():
        return spans
    for part in ranges.split(","):
        item = part.strip()
        if not item:
            continue
        if "/" in item:
            network = ipaddress.ip_network(item, strict=False)
            spans.append((network[0], network[-1]))
            continue
        if "-" in item:
            start_raw, end_raw = item.split("-", 1)
            start = ipaddress.ip_address(start_raw.strip())
            end = ipaddress.ip_address(end_raw.strip())
            if start.version != end.version:
                raise ValueError(f"Mixed address families in range {item!r}")
            if end < start:
                raise ValueError(f"Range end before start in {item!r}")
            spans.append((start, end))
            continue
        address = ipaddress.ip_address(item)
        spans.append((address, address))
    return spans


def range_size(spans: list[tuple[IPAddress, IPAddress]]) -> int:
    return sum(int(end) - int(start) + 1 for start, end in spans)


def expand_ranges(ranges: str | None, limit: int) -> list[str]:
    """Return every address covered by ``ranges`` in ascending order.

    Raises:
        ValueError: on malformed ranges or when the pool exceeds ``limit``.
    """
    spans = parse_ranges(ranges)
    size = range_size(spans)
    if size > limit:
        raise ValueError(f"Pool range covers {size} addresses (limit {limit})")
    if len({start.version for start, _ in spans}) > 1:
        raise ValueError("Pool mixes IPv4 and IPv6 ranges")
    seen: set[IPAddress] = set()
    for start, end in spans:
        address_type = type(start)
        current = int(start)
        while current <= int(end):
            seen.add(address_type(current))
            current += 1
    return [str(address) for address in sorted(seen)]


def _covering_network(start: IPAddress, end: IPAddress):
    prefix = start.max_prefixlen
    network = ipaddress.ip_network(f"{start}/{prefix}", strict=False)
    while end not in network:
        prefix -= 1
        network = ipaddress.ip_network(f"{start}/{prefix}", strict=False)
    return network


def summarize_ranges(ranges: str | None) -> RangeSummary | None:
    spans = parse_ranges(ranges)
    if not spans:
        return None
    versions = {start.version for start, _ in spans}
    if len(versions) > 1:
        raise ValueError("Pool mixes IPv4 and IPv6 ranges")
    start = min(span[0] for span in spans)
    end = max(span[1] for span in spans)
    return RangeSummary(
        network_address=str(_covering_network(start, end)),
        start_ip=str(start),
        end_ip=str(end),
        size=range_size(spans),
    )
