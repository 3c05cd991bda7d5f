"""
Compatibility Scoring Engine.

Pure functions over immutable profile snapshots. No I/O, no clocks, no
randomness: identical inputs always produce identical scores.

Two strategies share one shape, `(subject, other, route_bonus) ->
ScoreBreakdown`:

* TANDEM: two users sharing one spot sequentially during the day.
* CARPOOL: a user joining a ride group; scored pairwise against every
  member and aggregated with `min` (a carpool is as compatible as its
  weakest pair).
"""

import hashlib
import json
import statistics
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Callable, Dict, FrozenSet, Optional, Sequence, Tuple

from campus_parking.app.core.exceptions import ValidationError
from campus_parking.app.domain.matching.geo import haversine_miles, proximity_band_points
from campus_parking.app.models.enums import GradeLevel, MatchKind

MINUTES_PER_DAY = 24 * 60
WEEKDAYS = frozenset(range(5))

# Tandem component maxima
OVERLAP_MAX = 40.0
OVERLAP_POINTS_PER_HOUR = 5.0
GRADE_MAX = 20.0
ARRIVAL_GAP_MAX = 20.0
GAP_PENALTY_MINUTES_PER_POINT = 3.0
EXTRACURRICULAR_MAX = 10.0
EXTRACURRICULAR_MIXED = 5.0
EXTRACURRICULAR_TOLERANCE_MIN = 15
LUNCH_MAX = 10.0

# Carpool component maxima
PROXIMITY_MAX = 35.0
SCHEDULE_MAX = 35.0
SCHEDULE_FULL_CREDIT_MIN = 15
SCHEDULE_ZERO_CREDIT_MIN = 60
SCHEDULE_CONSISTENCY_TOLERANCE_MIN = 15.0
SENIOR_PRIORITY_POINTS = 15.0
PERSONAL_MAX = 15.0

# Grades that get full tandem credit with each other besides an exact match
UNDERCLASS_PAIRING = frozenset({GradeLevel.SOPHOMORE, GradeLevel.JUNIOR})

RouteBonus = Callable[["ProfileSnapshot", "ProfileSnapshot"], float]


def to_minutes(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class DaySchedule:
    weekday: int
    arrival: int  # minutes since midnight
    departure: int
    lunch_off_campus: bool = False
    extracurricular_end: Optional[int] = None


@dataclass(frozen=True)
class ProfileSnapshot:
    """Immutable view of a schedule profile for one scoring run."""
    user_id: int
    grade: GradeLevel
    days: Tuple[DaySchedule, ...]
    home_latitude: float
    home_longitude: float
    tags: FrozenSet[str] = frozenset()
    created_at: Optional[datetime] = None

    def day(self, weekday: int) -> DaySchedule:
        for entry in self.days:
            if entry.weekday == weekday:
                return entry
        raise ValidationError(
            f"Profile {self.user_id} has no entry for weekday {weekday}",
            details={"user_id": self.user_id, "weekday": weekday},
        )


@dataclass(frozen=True)
class ScoreBreakdown:
    """Component sub-scores, each already clamped to its maximum."""
    components: Dict[str, float] = field(default_factory=dict)

    @property
    def total(self) -> float:
        return _clamp(sum(self.components.values()), 0.0, 100.0)

    @property
    def score(self) -> int:
        return int(round(self.total))

    def rounded(self) -> Dict[str, float]:
        return {name: round(value, 2) for name, value in self.components.items()}


@dataclass(frozen=True)
class CompatibilityScore:
    subject_id: int
    candidate_id: int
    kind: MatchKind
    score: int
    breakdown: Dict[str, float]
    cache_key: str


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# Validation

def validate_snapshot(profile: ProfileSnapshot) -> ProfileSnapshot:
    """
    Reject malformed profiles before they reach a scoring function.

    Raises:
        ValidationError: on the first problem found
    """
    details = {"user_id": profile.user_id}

    if not isinstance(profile.grade, GradeLevel):
        raise ValidationError("Unknown grade level", details={**details, "field": "grade"})

    weekdays = [d.weekday for d in profile.days]
    if len(weekdays) != 5 or set(weekdays) != WEEKDAYS:
        raise ValidationError(
            "Schedule must contain exactly one entry per weekday (Mon-Fri)",
            details={**details, "field": "days", "weekdays": sorted(weekdays)},
        )

    for d in profile.days:
        if not (0 <= d.arrival < MINUTES_PER_DAY and 0 <= d.departure < MINUTES_PER_DAY):
            raise ValidationError("Time outside of day", details={**details, "weekday": d.weekday})
        if d.arrival >= d.departure:
            raise ValidationError(
                "Arrival must be before departure",
                details={**details, "weekday": d.weekday, "field": "arrival"},
            )
        if d.extracurricular_end is not None and not 0 <= d.extracurricular_end < MINUTES_PER_DAY:
            raise ValidationError(
                "Extracurricular end outside of day",
                details={**details, "weekday": d.weekday, "field": "extracurricular_end"},
            )

    if not -90.0 <= profile.home_latitude <= 90.0 or not -180.0 <= profile.home_longitude <= 180.0:
        raise ValidationError("Home coordinates out of range", details={**details, "field": "home"})

    if any(not isinstance(tag, str) or not tag.strip() for tag in profile.tags):
        raise ValidationError("Preference tags must be non-empty strings", details={**details, "field": "tags"})

    return profile


# Cache keys

def _canonical(profile: ProfileSnapshot) -> dict:
    return {
        "u": profile.user_id,
        "g": profile.grade.value,
        "d": [
            [d.weekday, d.arrival, d.departure, d.lunch_off_campus, d.extracurricular_end]
            for d in sorted(profile.days, key=lambda d: d.weekday)
        ],
        "h": [round(profile.home_latitude, 6), round(profile.home_longitude, 6)],
        "t": sorted(profile.tags),
    }


def profile_fingerprint(profile: ProfileSnapshot) -> str:
    """Stable hash of every field that feeds a score."""
    payload = json.dumps(_canonical(profile), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode()).hexdigest()


def score_cache_key(kind: MatchKind, subject: ProfileSnapshot, others: Sequence[ProfileSnapshot]) -> str:
    """Invalidation key of a score: hash of the profiles and preferences involved."""
    digest = hashlib.sha256(kind.value.encode())
    digest.update(profile_fingerprint(subject).encode())
    for other in sorted(others, key=lambda p: p.user_id):
        digest.update(profile_fingerprint(other).encode())
    return digest.hexdigest()


# Tandem components

def overlap_hours(a: ProfileSnapshot, b: ProfileSnapshot) -> float:
    """Weekly hours during which both users need the spot."""
    total_minutes = 0
    for weekday in sorted(WEEKDAYS):
        da, db = a.day(weekday), b.day(weekday)
        total_minutes += max(0, min(da.departure, db.departure) - max(da.arrival, db.arrival))
    return total_minutes / 60.0


def overlap_points(a: ProfileSnapshot, b: ProfileSnapshot) -> float:
    return _clamp(OVERLAP_MAX - OVERLAP_POINTS_PER_HOUR * overlap_hours(a, b), 0.0, OVERLAP_MAX)


def grade_points(a: ProfileSnapshot, b: ProfileSnapshot) -> float:
    if a.grade == b.grade:
        return GRADE_MAX
    if {a.grade, b.grade} <= UNDERCLASS_PAIRING:
        return GRADE_MAX
    return 0.0


def arrival_gaps(a: ProfileSnapshot, b: ProfileSnapshot) -> Tuple[int, ...]:
    """Per-day signed gap (minutes) between A leaving and B arriving."""
    return tuple(b.day(w).arrival - a.day(w).departure for w in sorted(WEEKDAYS))


def arrival_gap_points(a: ProfileSnapshot, b: ProfileSnapshot) -> float:
    # Asymmetric: A is the earlier user handing the spot over to B
    gaps = arrival_gaps(a, b)
    if all(gap >= 0 for gap in gaps):
        return ARRIVAL_GAP_MAX
    shortfall = sum(-gap for gap in gaps if gap < 0) / len(gaps)
    return _clamp(ARRIVAL_GAP_MAX - shortfall / GAP_PENALTY_MINUTES_PER_POINT, 0.0, ARRIVAL_GAP_MAX)


def extracurricular_points(a: ProfileSnapshot, b: ProfileSnapshot) -> float:
    per_day = []
    for weekday in sorted(WEEKDAYS):
        end_a, end_b = a.day(weekday).extracurricular_end, b.day(weekday).extracurricular_end
        if end_a is None and end_b is None:
            per_day.append(EXTRACURRICULAR_MAX)
        elif end_a is not None and end_b is not None and abs(end_a - end_b) <= EXTRACURRICULAR_TOLERANCE_MIN:
            per_day.append(EXTRACURRICULAR_MAX)
        else:
            per_day.append(EXTRACURRICULAR_MIXED)
    return sum(per_day) / len(per_day)


def lunch_points(a: ProfileSnapshot, b: ProfileSnapshot) -> float:
    per_day = [
        0.0 if a.day(w).lunch_off_campus and b.day(w).lunch_off_campus else LUNCH_MAX
        for w in sorted(WEEKDAYS)
    ]
    return sum(per_day) / len(per_day)


def tandem_breakdown(a: ProfileSnapshot, b: ProfileSnapshot, route_bonus: Optional[RouteBonus] = None) -> ScoreBreakdown:
    """Tandem strategy. `route_bonus` does not apply to shared spots."""
    return ScoreBreakdown({
        "schedule_overlap": overlap_points(a, b),
        "grade_level": grade_points(a, b),
        "arrival_gap": arrival_gap_points(a, b),
        "extracurricular": extracurricular_points(a, b),
        "lunch": lunch_points(a, b),
    })


# Carpool components

def proximity_points(a: ProfileSnapshot, b: ProfileSnapshot, route_bonus: Optional[RouteBonus] = None) -> float:
    miles = haversine_miles(a.home_latitude, a.home_longitude, b.home_latitude, b.home_longitude)
    points = proximity_band_points(miles)
    if route_bonus is not None:
        points += route_bonus(a, b)
    return _clamp(points, 0.0, PROXIMITY_MAX)


def _time_credit(diff_minutes: int) -> float:
    diff = abs(diff_minutes)
    if diff <= SCHEDULE_FULL_CREDIT_MIN:
        return 1.0
    if diff >= SCHEDULE_ZERO_CREDIT_MIN:
        return 0.0
    return (SCHEDULE_ZERO_CREDIT_MIN - diff) / (SCHEDULE_ZERO_CREDIT_MIN - SCHEDULE_FULL_CREDIT_MIN)


def schedule_alignment_points(a: ProfileSnapshot, b: ProfileSnapshot) -> float:
    weekdays = sorted(WEEKDAYS)
    arrival_diffs = [a.day(w).arrival - b.day(w).arrival for w in weekdays]
    departure_diffs = [a.day(w).departure - b.day(w).departure for w in weekdays]

    half = SCHEDULE_MAX / 2
    arrival_part = half * sum(_time_credit(d) for d in arrival_diffs) / len(weekdays)
    departure_part = half * sum(_time_credit(d) for d in departure_diffs) / len(weekdays)
    points = arrival_part + departure_part

    # Alignment must hold every day, not only on average
    if (statistics.pstdev(arrival_diffs) > SCHEDULE_CONSISTENCY_TOLERANCE_MIN
            or statistics.pstdev(departure_diffs) > SCHEDULE_CONSISTENCY_TOLERANCE_MIN):
        points /= 2

    return _clamp(points, 0.0, SCHEDULE_MAX)


def grade_priority_points(a: ProfileSnapshot) -> float:
    return SENIOR_PRIORITY_POINTS if a.grade == GradeLevel.SENIOR else 0.0


def personal_points(a: ProfileSnapshot, b: ProfileSnapshot) -> float:
    tags_a = {t.strip().lower() for t in a.tags}
    tags_b = {t.strip().lower() for t in b.tags}
    union = tags_a | tags_b
    if not union:
        return 0.0
    return PERSONAL_MAX * len(tags_a & tags_b) / len(union)


def carpool_breakdown(a: ProfileSnapshot, b: ProfileSnapshot, route_bonus: Optional[RouteBonus] = None) -> ScoreBreakdown:
    """Carpool strategy for one (subject, member) pair."""
    return ScoreBreakdown({
        "proximity": proximity_points(a, b, route_bonus),
        "schedule_alignment": schedule_alignment_points(a, b),
        "grade_priority": grade_priority_points(a),
        "personal": personal_points(a, b),
    })


STRATEGIES: Dict[MatchKind, Callable[..., ScoreBreakdown]] = {
    MatchKind.TANDEM: tandem_breakdown,
    MatchKind.CARPOOL: carpool_breakdown,
}


def score_candidate(
    kind: MatchKind,
    subject: ProfileSnapshot,
    candidate_id: int,
    members: Sequence[ProfileSnapshot],
    route_bonus: Optional[RouteBonus] = None,
) -> CompatibilityScore:
    """
    Score one candidate for a subject.

    For TANDEM the candidate is a single user (`members` holds exactly that
    profile); for CARPOOL it is a group and the weakest pair wins.

    Raises:
        ValidationError: malformed profile or empty candidate
    """
    if not members:
        raise ValidationError(
            "Candidate has no members to score against",
            details={"candidate_id": candidate_id, "kind": kind.value},
        )
    validate_snapshot(subject)
    for member in members:
        validate_snapshot(member)

    strategy = STRATEGIES[kind]
    pairs = [
        (strategy(subject, member, route_bonus), member.user_id)
        for member in sorted(members, key=lambda p: p.user_id)
    ]
    weakest, _ = min(pairs, key=lambda pair: (pair[0].total, pair[1]))

    return CompatibilityScore(
        subject_id=subject.user_id,
        candidate_id=candidate_id,
        kind=kind,
        score=weakest.score,
        breakdown=weakest.rounded(),
        cache_key=score_cache_key(kind, subject, members),
    )


def tandem_score(a: ProfileSnapshot, b: ProfileSnapshot) -> CompatibilityScore:
    """Tandem score of A (earlier user) with B (later user)."""
    return score_candidate(MatchKind.TANDEM, a, b.user_id, [b])


def carpool_score(
    subject: ProfileSnapshot,
    group_id: int,
    members: Sequence[ProfileSnapshot],
    route_bonus: Optional[RouteBonus] = None,
) -> CompatibilityScore:
    """Carpool score of a subject against an existing group."""
    return score_candidate(MatchKind.CARPOOL, subject, group_id, members, route_bonus)
