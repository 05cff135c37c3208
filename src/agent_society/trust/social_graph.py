# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Social Graph - credit limits and trust scores from NIP-02 follow lists.

This module handles:
- Resolving the authoritative follow list of an identity (memoized per author)
- Reverse lookups (who follows an identity)
- Trust arithmetic on unbounded integers
- A synchronous calculator over cached graph data for peer configuration

Caches are only invalidated by explicit calls to ``invalidate``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ..events.kinds import FOLLOW_LIST_KIND
from ..events.models import FollowEdge, validate_identity
from ..events.parsers import parse_follow_list
from ..events.resolver import resolve_latest, resolve_latest_by_author
from ..transport.base import Transport

logger = logging.getLogger(__name__)

TrustCalculator = Callable[[str, bool], int]


@dataclass(frozen=True)
class TrustConfig:
    """Credit parameters, in the connector's base units."""

    base_credit_for_followed: int = 1000
    mutual_follower_bonus: int = 100
    max_mutual_bonus: int = 500
    base_credit_for_unfollowed: int = 0
    max_credit_limit: int = 10000

    def __post_init__(self) -> None:
        if self.max_credit_limit <= 0:
            raise ValueError("max_credit_limit must be positive")
        for name in (
            "base_credit_for_followed",
            "mutual_follower_bonus",
            "max_mutual_bonus",
            "base_credit_for_unfollowed",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")

    def credit_limit(self, is_followed: bool, follows_back: bool, mutual_count: int) -> int:
        """Credit limit for a subject, clamped to ``max_credit_limit``."""
        base = self.base_credit_for_followed if is_followed else self.base_credit_for_unfollowed
        bonus = min(mutual_count * self.mutual_follower_bonus, self.max_mutual_bonus)
        credit = base + bonus
        if follows_back and is_followed:
            credit += base // 2
        return min(credit, self.max_credit_limit)

    def score(self, credit_limit: int) -> int:
        """Map a credit limit onto 0..100."""
        return credit_limit * 100 // self.max_credit_limit


@dataclass(frozen=True)
class TrustScore:
    """Derived trust for one subject, relative to our own identity."""

    subject: str
    is_followed: bool
    follows_back: bool
    mutual_follower_count: int
    credit_limit: int
    score: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "is_followed": self.is_followed,
            "follows_back": self.follows_back,
            "mutual_follower_count": self.mutual_follower_count,
            # str keeps large limits exact for JSON consumers
            "credit_limit": str(self.credit_limit),
            "score": self.score,
        }


class SocialGraph:
    """Follow-graph reader and trust calculator for one own identity.

    Responsible for:
    - Memoizing resolved follow lists per author
    - Computing TrustScores (cached per subject)
    - Exposing a synchronous calculator over cached data
    """

    def __init__(
        self,
        transport: Transport,
        relays: Sequence[str],
        own_pubkey: str,
        config: TrustConfig | None = None,
    ):
        self.transport = transport
        self.relays = list(relays)
        self.own_pubkey = validate_identity(own_pubkey)
        self.config = config or TrustConfig()

        self._edges: dict[str, list[FollowEdge]] = {}
        self._followers: dict[str, frozenset[str]] = {}
        self._scores: dict[str, TrustScore] = {}

    # -------------------------------------------------------------------------
    # FOLLOW GRAPH
    # -------------------------------------------------------------------------

    async def get_follow_edges(self, identity: str) -> list[FollowEdge]:
        """Edges of the latest valid follow list of ``identity``.

        An identity that never published a follow list has no edges; that
        is not an error.
        """
        identity = validate_identity(identity)
        cached = self._edges.get(identity)
        if cached is not None:
            return list(cached)

        records = await self.transport.query_all(
            self.relays, {"kinds": [FOLLOW_LIST_KIND], "authors": [identity]}
        )
        latest = resolve_latest(
            (r for r in records if r.pubkey == identity and r.kind == FOLLOW_LIST_KIND),
            validate=parse_follow_list,
        )
        edges = parse_follow_list(latest) if latest else []
        logger.debug(f"Resolved {len(edges)} follows for {identity[:16]}...")

        self._edges[identity] = edges
        return list(edges)

    async def get_follows(self, identity: str) -> frozenset[str]:
        """Deduplicated set of identities followed by ``identity``."""
        return frozenset(edge.to_pubkey for edge in await self.get_follow_edges(identity))

    async def get_followers(self, identity: str) -> frozenset[str]:
        """Authors whose latest follow list includes ``identity``.

        Queries every follow list tagging ``identity``, then re-reads the
        latest list of each tagging author and keeps only the authors whose
        authoritative list still contains it. Those lists are cached as
        follow edges too.
        """
        identity = validate_identity(identity)
        cached = self._followers.get(identity)
        if cached is not None:
            return cached

        tagged = await self.transport.query_all(
            self.relays, {"kinds": [FOLLOW_LIST_KIND], "#p": [identity]}
        )
        candidates = sorted({r.pubkey for r in tagged})
        current = []
        if candidates:
            # A newer list that dropped ``identity`` no longer tags it
            current = await self.transport.query_all(
                self.relays, {"kinds": [FOLLOW_LIST_KIND], "authors": candidates}
            )
        latest = resolve_latest_by_author(
            [*tagged, *current], FOLLOW_LIST_KIND, validate=parse_follow_list
        )

        followers = set()
        for author, record in latest.items():
            edges = parse_follow_list(record)
            self._edges.setdefault(author, edges)
            if any(edge.to_pubkey == identity for edge in edges):
                followers.add(author)

        self._followers[identity] = frozenset(followers)
        return self._followers[identity]

    # -------------------------------------------------------------------------
    # TRUST
    # -------------------------------------------------------------------------

    async def compute_trust(self, subject: str) -> TrustScore:
        """Trust score of ``subject`` from our point of view.

        Raises:
            InvalidIdentityError: if ``subject`` is not a valid pubkey
        """
        subject = validate_identity(subject)
        cached = self._scores.get(subject)
        if cached is not None:
            return cached

        own_follows = await self.get_follows(self.own_pubkey)
        subject_follows = await self.get_follows(subject)

        is_followed = subject in own_follows
        follows_back = self.own_pubkey in subject_follows
        mutual_count = len(subject_follows & own_follows)

        credit_limit = self.config.credit_limit(is_followed, follows_back, mutual_count)
        score = TrustScore(
            subject=subject,
            is_followed=is_followed,
            follows_back=follows_back,
            mutual_follower_count=mutual_count,
            credit_limit=credit_limit,
            score=self.config.score(credit_limit),
        )
        logger.debug(
            f"Trust for {subject[:16]}...: followed={is_followed} back={follows_back} "
            f"mutual={mutual_count} credit={credit_limit}"
        )

        self._scores[subject] = score
        return score

    async def warm(self) -> None:
        """Load our own follows and followers into the cache."""
        await self.get_follows(self.own_pubkey)
        await self.get_followers(self.own_pubkey)

    def trust_calculator(self) -> TrustCalculator:
        """Synchronous ``(pubkey, is_followed) -> credit`` over cached data.

        Reverse follows come from the cached follower set of our own
        identity, mutual counts from cached follow lists. Nothing is
        fetched; call ``warm`` (and ``get_follows`` for peers) first for
        richer results.
        """

        def calculate(pubkey: str, is_followed: bool) -> int:
            own_edges = self._edges.get(self.own_pubkey) or []
            own_follows = {e.to_pubkey for e in own_edges}
            peer_edges = self._edges.get(pubkey)
            mutual_count = (
                len({e.to_pubkey for e in peer_edges} & own_follows) if peer_edges else 0
            )
            follows_back = pubkey in self._followers.get(self.own_pubkey, frozenset())
            return self.config.credit_limit(is_followed, follows_back, mutual_count)

        return calculate

    def invalidate(self, identity: str | None = None) -> None:
        """Drop cached graph data for one identity, or everything.

        Trust scores depend on several follow lists, so all of them are
        dropped either way.
        """
        if identity is None:
            self._edges.clear()
            self._followers.clear()
        else:
            self._edges.pop(identity, None)
            self._followers.pop(identity, None)
        self._scores.clear()
