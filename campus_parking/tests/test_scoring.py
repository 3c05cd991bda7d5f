"""
Compatibility scoring tests.

Pure functions: no database or cache involved.
"""

import itertools
import pytest

from campus_parking.app.core.exceptions import ValidationError
from campus_parking.app.domain.matching import scoring
from campus_parking.app.domain.matching.geo import haversine_miles, proximity_band_points
from campus_parking.app.domain.matching.scoring import (
    DaySchedule,
    ProfileSnapshot,
    carpool_score,
    score_candidate,
    tandem_score,
)
from campus_parking.app.models.enums import GradeLevel, MatchKind

CAMPUS = (40.0, -75.0)


def snap(
    user_id,
    grade=GradeLevel.JUNIOR,
    arrival=8 * 60,
    departure=12 * 60,
    lunch=False,
    extracurricular=None,
    home=CAMPUS,
    tags=(),
    days=None,
):
    if days is None:
        days = tuple(
            DaySchedule(weekday=w, arrival=arrival, departure=departure,
                        lunch_off_campus=lunch, extracurricular_end=extracurricular)
            for w in range(5)
        )
    return ProfileSnapshot(
        user_id=user_id,
        grade=grade,
        days=days,
        home_latitude=home[0],
        home_longitude=home[1],
        tags=frozenset(tags),
    )


# Tandem

def test_perfect_tandem_pair_scores_100():
    morning = snap(1, arrival=8 * 60, departure=12 * 60)
    afternoon = snap(2, arrival=12 * 60 + 30, departure=16 * 60)

    result = tandem_score(morning, afternoon)

    assert result.score == 100
    assert result.breakdown == {
        "schedule_overlap": 40.0,
        "grade_level": 20.0,
        "arrival_gap": 20.0,
        "extracurricular": 10.0,
        "lunch": 10.0,
    }


def test_overlap_and_grade_are_symmetric_gap_is_not():
    morning = snap(1, arrival=8 * 60, departure=12 * 60)
    afternoon = snap(2, arrival=12 * 60 + 30, departure=16 * 60)

    assert scoring.overlap_points(morning, afternoon) == scoring.overlap_points(afternoon, morning)
    assert scoring.grade_points(morning, afternoon) == scoring.grade_points(afternoon, morning)

    # Reversed roles: the "earlier" user leaves after the other arrives
    assert scoring.arrival_gap_points(morning, afternoon) == 20.0
    assert scoring.arrival_gap_points(afternoon, morning) == 0.0
    assert tandem_score(afternoon, morning).score == 80


def test_overlap_penalty_per_hour():
    a = snap(1, arrival=8 * 60, departure=12 * 60)
    b = snap(2, arrival=11 * 60, departure=15 * 60)

    assert scoring.overlap_hours(a, b) == 5.0  # 1 h a day
    assert scoring.overlap_points(a, b) == 15.0

    c = snap(3, arrival=10 * 60, departure=14 * 60)
    assert scoring.overlap_points(a, c) == 0.0  # 10 h clamps at zero


def test_arrival_gap_shortfall():
    a = snap(1, arrival=8 * 60, departure=12 * 60)
    b = snap(2, arrival=11 * 60 + 30, departure=15 * 60)

    # 30 min short every day, 3 minutes per point
    assert scoring.arrival_gap_points(a, b) == pytest.approx(10.0)


@pytest.mark.parametrize("grade_a,grade_b,expected", [
    (GradeLevel.SENIOR, GradeLevel.SENIOR, 20.0),
    (GradeLevel.SOPHOMORE, GradeLevel.JUNIOR, 20.0),
    (GradeLevel.FRESHMAN, GradeLevel.SENIOR, 0.0),
    (GradeLevel.JUNIOR, GradeLevel.SENIOR, 0.0),
])
def test_grade_points(grade_a, grade_b, expected):
    assert scoring.grade_points(snap(1, grade=grade_a), snap(2, grade=grade_b)) == expected


def test_extracurricular_and_lunch():
    none = snap(1)
    practice = snap(2, extracurricular=17 * 60)
    practice_close = snap(3, extracurricular=17 * 60 + 10)

    assert scoring.extracurricular_points(none, none) == 10.0
    assert scoring.extracurricular_points(none, practice) == 5.0
    assert scoring.extracurricular_points(practice, practice_close) == 10.0

    both_out = snap(4, lunch=True)
    assert scoring.lunch_points(both_out, snap(5, lunch=True)) == 0.0
    assert scoring.lunch_points(both_out, none) == 10.0

    monday_only = snap(6, days=tuple(
        DaySchedule(weekday=w, arrival=480, departure=720, lunch_off_campus=(w == 0)) for w in range(5)
    ))
    assert scoring.lunch_points(monday_only, both_out) == pytest.approx(8.0)


def test_tandem_scores_stay_in_bounds():
    times = [7 * 60, 9 * 60, 12 * 60, 15 * 60]
    grades = [GradeLevel.FRESHMAN, GradeLevel.JUNIOR, GradeLevel.SENIOR]
    profiles = [
        snap(i, grade=g, arrival=arr, departure=arr + length, lunch=lunch)
        for i, (g, arr, length, lunch) in enumerate(
            itertools.product(grades, times, [60, 240], [False, True])
        )
    ]
    for a, b in itertools.product(profiles[:12], profiles[12:]):
        result = tandem_score(a, b)
        assert 0 <= result.score <= 100
        assert result == tandem_score(a, b)


# Carpool

def test_identical_senior_neighbours_score_100():
    a = snap(1, grade=GradeLevel.SENIOR, tags={"quiet", "podcasts"})
    b = snap(2, tags={"quiet", "podcasts"})

    result = carpool_score(a, group_id=10, members=[b])

    assert result.score == 100
    assert result.candidate_id == 10
    assert result.kind == MatchKind.CARPOOL


def test_carpool_group_score_is_its_weakest_pair():
    subject = snap(1)
    neighbour = snap(2)
    far_away = snap(3, home=(CAMPUS[0] + 0.2, CAMPUS[1]))  # ~14 miles

    result = carpool_score(subject, group_id=10, members=[neighbour, far_away])

    assert result.score == 35
    assert result.breakdown["proximity"] == 0.0
    assert carpool_score(subject, 10, [neighbour]).score == 70


def test_empty_group_is_rejected():
    with pytest.raises(ValidationError):
        carpool_score(snap(1), group_id=10, members=[])


def test_route_bonus_is_clamped():
    subject = snap(1)
    near = snap(2)
    far_away = snap(3, home=(CAMPUS[0] + 0.2, CAMPUS[1]))

    def bonus(a, b):
        return 10.0

    assert scoring.proximity_points(subject, far_away, bonus) == 10.0
    assert scoring.proximity_points(subject, near, bonus) == 35.0


def test_schedule_alignment_credit_and_consistency():
    a = snap(1)
    half_hour_later = snap(2, arrival=8 * 60 + 30, departure=12 * 60 + 30)
    # 30 min off: credit (60 - 30) / 45 on both sides
    assert scoring.schedule_alignment_points(a, half_hour_later) == pytest.approx(35 * 30 / 45)

    friday_late = snap(3, days=tuple(
        DaySchedule(weekday=w, arrival=480 + (60 if w == 4 else 0), departure=720) for w in range(5)
    ))
    # Arrival credits 1,1,1,1,0 -> 14 + 17.5, halved for inconsistency
    assert scoring.schedule_alignment_points(a, friday_late) == pytest.approx((14 + 17.5) / 2)


def test_personal_points_jaccard():
    a = snap(1, tags={"music", "quiet"})
    b = snap(2, tags={"music", "coffee"})
    assert scoring.personal_points(a, b) == pytest.approx(15 / 3)
    assert scoring.personal_points(snap(3), snap(4)) == 0.0


def test_proximity_bands():
    assert proximity_band_points(0.5) == 35.0
    assert proximity_band_points(2.0) == 25.0
    assert proximity_band_points(4.0) == 15.0
    assert proximity_band_points(7.5) == 0.0
    assert haversine_miles(*CAMPUS, CAMPUS[0] + 1, CAMPUS[1]) == pytest.approx(69.1, abs=0.2)


# Validation and cache keys

def test_schedule_must_cover_five_weekdays():
    four_days = tuple(DaySchedule(weekday=w, arrival=480, departure=720) for w in range(4))
    with pytest.raises(ValidationError):
        tandem_score(snap(1, days=four_days), snap(2))


def test_arrival_must_precede_departure():
    with pytest.raises(ValidationError):
        tandem_score(snap(1, arrival=12 * 60, departure=8 * 60), snap(2))


def test_coordinates_are_range_checked():
    with pytest.raises(ValidationError):
        carpool_score(snap(1, home=(95.0, 0.0)), 10, [snap(2)])


def test_cache_key_tracks_inputs():
    a, b = snap(1), snap(2, arrival=13 * 60, departure=17 * 60)
    first = score_candidate(MatchKind.TANDEM, a, 2, [b])
    again = score_candidate(MatchKind.TANDEM, a, 2, [b])
    retagged = score_candidate(MatchKind.TANDEM, snap(1, tags={"music"}), 2, [b])

    assert first.cache_key == again.cache_key
    assert first.cache_key != retagged.cache_key
    assert len(first.cache_key) == 64
