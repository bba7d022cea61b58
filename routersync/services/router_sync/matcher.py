"""Identity matching between device records and stored rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Iterable, TypeVar

D = TypeVar("D")
R = TypeVar("R")


@dataclass
class MatchResult(Generic[D, R]):
    matched: dict[str, tuple[D, R]] = field(default_factory=dict)
    missing_in_db: list[D] = field(default_factory=list)
    missing_in_device: list[R] = field(default_factory=list)


def match_records(
    device_records: Iterable[D],
    db_records: Iterable[R],
    *,
    device_key: str = "external_id",
    db_key: str = "external_id",
) -> MatchResult[D, R]:
    """Hash-join device records to rows on their immutable external id.

    A repeated external id in the device listing keeps the last occurrence.
    """
    by_id: dict[str, D] = {}
    for record in device_records:
        by_id[str(getattr(record, device_key))] = record

    result: MatchResult[D, R] = MatchResult()
    for row in db_records:
        external_id = str(getattr(row, db_key))
        device_record = by_id.pop(external_id, None)
        if device_record is None:
            result.missing_in_device.append(row)
        else:
            result.matched[external_id] = (device_record, row)
    result.missing_in_db = list(by_id.values())
    return result
