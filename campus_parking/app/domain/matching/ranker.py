"""
Match Ranker.

Produces ordered top-N candidate lists per user and match kind. Rankings
are cached in Redis and keyed by a fingerprint over every profile that fed
them, so a stale entry is recomputed rather than served.
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_parking.app.core.config import settings
from campus_parking.app.domain.matching.scoring import (
    CompatibilityScore,
    ProfileSnapshot,
    RouteBonus,
    score_cache_key,
    score_candidate,
)
from campus_parking.app.models.enums import MatchKind
from campus_parking.app.services import schedule_store
from campus_parking.app.services.events import EventPublisher, MatchFound

logger = logging.getLogger("campus_parking.matching")


@dataclass(frozen=True)
class RankedMatch:
    candidate_id: int
    score: int
    breakdown: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Candidate:
    """A scorable candidate: one user (tandem) or one group (carpool)."""
    candidate_id: int
    created_at: Optional[datetime]
    members: Tuple[ProfileSnapshot, ...]


def rank_key(score: CompatibilityScore, created_at: Optional[datetime]):
    """Higher score first, then earlier creation, then lowest id."""
    return (-score.score, created_at is None, created_at or datetime.min, score.candidate_id)


def cache_key(kind: MatchKind, user_id: int) -> str:
    return f"matches:{kind.value}:{user_id}"


def inputs_fingerprint(kind: MatchKind, subject: ProfileSnapshot, candidates: List[Candidate]) -> str:
    digest = hashlib.sha256(f"{kind.value}:{subject.user_id}".encode())
    for candidate in sorted(candidates, key=lambda c: c.candidate_id):
        digest.update(f"|{candidate.candidate_id}:".encode())
        digest.update(score_cache_key(kind, subject, candidate.members).encode())
    return digest.hexdigest()


def rank(
    kind: MatchKind,
    subject: ProfileSnapshot,
    candidates: List[Candidate],
    route_bonus: Optional[RouteBonus] = None,
) -> List[RankedMatch]:
    """Score every candidate and order them deterministically."""
    scored = []
    for candidate in candidates:
        result = score_candidate(kind, subject, candidate.candidate_id, candidate.members, route_bonus)
        scored.append((rank_key(result, candidate.created_at), result))
    scored.sort(key=lambda pair: pair[0])
    return [
        RankedMatch(candidate_id=r.candidate_id, score=r.score, breakdown=r.breakdown)
        for _, r in scored
    ]


class MatchRanker:
    """
    Ranks candidates for a user, with Redis caching and request coalescing.

    Concurrent requests for the same (kind, user) share one in-flight
    computation; only the request that started it publishes MatchFound
    events.
    """

    def __init__(
        self,
        redis,
        publisher: Optional[EventPublisher] = None,
        route_bonus: Optional[RouteBonus] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.redis = redis
        self.publisher = publisher or EventPublisher()
        self.route_bonus = route_bonus
        self.ttl_seconds = ttl_seconds or settings.match_cache_ttl_seconds
        self._inflight: Dict[Tuple[str, int], asyncio.Future] = {}
        self.computations = 0

    async def top_matches(
        self,
        db: AsyncSession,
        user_id: int,
        kind: MatchKind,
        limit: Optional[int] = None,
    ) -> List[RankedMatch]:
        """
        Top candidates for a user.

        Raises:
            ResourceNotFoundError: user has no schedule profile
            ValidationError: malformed profile
        """
        limit = limit or settings.default_match_limit
        subject = await schedule_store.load_snapshot(db, user_id)
        candidates = await self._candidates(db, kind, subject)
        fingerprint = inputs_fingerprint(kind, subject, candidates)

        cached = await self._read_cache(kind, user_id, fingerprint)
        if cached is not None:
            return cached[:limit]

        ranking, leader = await self._coalesced(
            (kind.value, user_id),
            lambda: self._recompute(kind, subject, candidates, fingerprint),
        )

        if leader:
            for match in ranking[:limit]:
                await self.publisher.publish(db, MatchFound(
                    user_id=user_id,
                    candidate_id=match.candidate_id,
                    kind=kind.value,
                    score=match.score,
                    fingerprint=fingerprint,
                ))
            await db.commit()

        return ranking[:limit]

    async def invalidate(self, user_id: int) -> None:
        """Drop cached rankings of a user (schedule or preference update)."""
        for kind in MatchKind:
            try:
                await self.redis.delete(cache_key(kind, user_id))
            except (RedisError, OSError) as e:
                logger.warning("Ranking cache invalidation failed: %r", e, extra={"user_id": user_id})

    async def _candidates(self, db: AsyncSession, kind: MatchKind, subject: ProfileSnapshot) -> List[Candidate]:
        if kind == MatchKind.TANDEM:
            others = await schedule_store.load_all_snapshots(db, exclude_user_id=subject.user_id)
            return [Candidate(p.user_id, p.created_at, (p,)) for p in others]

        candidates = []
        for group in await schedule_store.open_carpools(db, exclude_member_id=subject.user_id):
            members = await schedule_store.load_snapshots_for(db, group.member_ids)
            if not members:
                logger.debug("Skipping carpool without scorable members", extra={"group_id": group.id})
                continue
            candidates.append(Candidate(group.id, group.created_at, tuple(members)))
        return candidates

    async def _recompute(
        self,
        kind: MatchKind,
        subject: ProfileSnapshot,
        candidates: List[Candidate],
        fingerprint: str,
    ) -> List[RankedMatch]:
        self.computations += 1
        ranking = rank(kind, subject, candidates, self.route_bonus)
        await self._write_cache(kind, subject.user_id, fingerprint, ranking)

        logger.info(
            "Ranking recomputed",
            extra={"user_id": subject.user_id, "kind": kind.value, "candidates": len(candidates)},
        )
        return ranking

    async def _coalesced(self, key, compute: Callable[[], Awaitable[Any]]) -> Tuple[Any, bool]:
        """
        Run `compute` once per key at a time.

        Returns:
            (result, leader) where leader is True for the caller that
            started the computation
        """
        task = self._inflight.get(key)
        if task is not None:
            return await asyncio.shield(task), False

        task = asyncio.ensure_future(compute())
        self._inflight[key] = task

        def _forget(done):
            if self._inflight.get(key) is done:
                del self._inflight[key]

        task.add_done_callback(_forget)
        return await asyncio.shield(task), True

    async def _read_cache(self, kind: MatchKind, user_id: int, fingerprint: str) -> Optional[List[RankedMatch]]:
        try:
            raw = await self.redis.get(cache_key(kind, user_id))
        except (RedisError, OSError) as e:
            logger.warning("Ranking cache read failed: %r", e, extra={"user_id": user_id})
            return None
        if not raw:
            return None

        entry = json.loads(raw)
        if entry.get("fingerprint") != fingerprint:
            return None
        return [RankedMatch(**m) for m in entry["matches"]]

    async def _write_cache(self, kind: MatchKind, user_id: int, fingerprint: str, ranking: List[RankedMatch]) -> None:
        payload = json.dumps({
            "fingerprint": fingerprint,
            "matches": [asdict(m) for m in ranking],
        })
        try:
            await self.redis.set(cache_key(kind, user_id), payload, ex=self.ttl_seconds)
        except (RedisError, OSError) as e:
            logger.warning("Ranking cache write failed: %r", e, extra={"user_id": user_id})
