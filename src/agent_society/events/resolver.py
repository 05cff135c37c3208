# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Replaceable record resolution.

Relays may return several versions of a replaceable record (kinds 0, 3,
10000-19999) for the same author, in any order and with duplicates. Only
the version with the greatest ``created_at`` is authoritative; the rest are
discarded, never merged.

Tie-break: when two versions share the greatest ``created_at``, the one with
the lexicographically smallest event id wins. This makes resolution a pure
function of the record set, independent of arrival order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from ..core.exceptions import InvalidRecordError
from .models import Record

logger = logging.getLogger(__name__)

Validator = Callable[[Record], Any]
PartitionKey = tuple[str, int]


def _precedence(record: Record) -> tuple[int, str]:
    """Sort key: smaller means more authoritative."""
    return (-record.created_at, record.id)


def supersedes(candidate: Record, current: Record | None) -> bool:
    """True if ``candidate`` wins over ``current`` under the tie-break rule."""
    return current is None or _precedence(candidate) < _precedence(current)


def is_newer(record: Record, last_seen: int | None) -> bool:
    """Live-update filter: strictly newer than the last seen timestamp."""
    return last_seen is None or record.created_at > last_seen


def _is_valid(record: Record, validate: Validator | None) -> bool:
    if validate is None:
        return True
    try:
        validate(record)
    except InvalidRecordError as e:
        logger.debug(f"Excluding malformed record {record.id[:16]}...: {e.message}")
        return False
    return True


def resolve_partitions(
    records: Iterable[Record],
    validate: Validator | None = None,
) -> dict[PartitionKey, Record]:
    """Latest valid record per ``(pubkey, kind)`` partition.

    Malformed records (those for which ``validate`` raises
    InvalidRecordError) are excluded before timestamps are compared, so a
    newer but broken record never hides an older valid one.
    """
    winners: dict[PartitionKey, Record] = {}
    for record in records:
        if not _is_valid(record, validate):
            continue
        key = (record.pubkey, record.kind)
        if supersedes(record, winners.get(key)):
            winners[key] = record
    return winners


def resolve_latest(
    records: Iterable[Record],
    validate: Validator | None = None,
) -> Record | None:
    """Authoritative record out of a set of versions, or None.

    Intended for records of a single ``(pubkey, kind)`` pair. If several
    partitions are present, the newest partition winner is returned using
    the same tie-break.
    """
    winners = resolve_partitions(records, validate)
    if not winners:
        return None
    return min(winners.values(), key=_precedence)


def resolve_latest_by_author(
    records: Iterable[Record],
    kind: int,
    validate: Validator | None = None,
) -> dict[str, Record]:
    """Latest valid record of ``kind`` for each author."""
    return {
        pubkey: record
        for (pubkey, record_kind), record in resolve_partitions(records, validate).items()
        if record_kind == kind
    }


class ReplaceableResolver:
    """Per-``(pubkey, kind)`` latest-seen state.

    One instance is owned by a discovery session or by a single live
    subscription; state is never shared across instances and only changes
    through ``offer`` and ``clear``.
    """

    def __init__(self, validate: Validator | None = None):
        self._validate = validate
        self._latest: dict[PartitionKey, Record] = {}

    def __len__(self) -> int:
        return len(self._latest)

    def offer(self, record: Record, strict: bool = False) -> bool:
        """Offer a record; return True if it became the latest for its partition.

        Args:
            record: Candidate record
            strict: Only accept strictly newer ``created_at`` (live streams).
                When False, equal timestamps fall back to the id tie-break so
                batch feeds converge regardless of order.
        """
        if not _is_valid(record, self._validate):
            return False
        key = (record.pubkey, record.kind)
        current = self._latest.get(key)
        if strict:
            accepted = is_newer(record, current.created_at if current else None)
        else:
            accepted = supersedes(record, current)
        if accepted:
            self._latest[key] = record
        return accepted

    def offer_all(self, records: Iterable[Record]) -> list[Record]:
        """Offer records in order; return the ones that were accepted."""
        return [r for r in records if self.offer(r)]

    def latest(self, pubkey: str, kind: int) -> Record | None:
        return self._latest.get((pubkey, kind))

    def last_seen(self, pubkey: str, kind: int) -> int | None:
        record = self._latest.get((pubkey, kind))
        return record.created_at if record else None

    def records(self, kind: int | None = None) -> list[Record]:
        """Current latest records, optionally restricted to one kind."""
        return [r for (_, k), r in self._latest.items() if kind is None or k == kind]

    def forget(self, pubkey: str, kind: int | None = None) -> None:
        """Drop state for one author (all kinds unless ``kind`` is given)."""
        for key in [k for k in self._latest if k[0] == pubkey and (kind is None or k[1] == kind)]:
            del self._latest[key]

    def clear(self) -> None:
        self._latest.clear()
