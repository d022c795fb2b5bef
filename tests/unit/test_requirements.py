"""Achievement requirement parsing and evaluation."""

from dataclasses import dataclass

import pytest

from paxrewards.errors import InvalidRequirement
from paxrewards.gamification.requirements import (
    AllLessonsCompleted,
    ChallengesCompletedAtLeast,
    DailyStreakAtLeast,
    LessonsCompletedAtLeast,
    LevelAtLeast,
    evaluate_achievement,
    parse_requirement,
    requirement_to_dict,
)


@dataclass
class Snapshot:
    level: int = 1
    streak: int = 0
    lessons_completed: int = 0
    challenges_completed: int = 0


class TestParseRequirement:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ({"type": "lessons_completed", "value": 10}, LessonsCompletedAtLeast(10)),
            ({"type": "daily_streak", "value": 7}, DailyStreakAtLeast(7)),
            ({"type": "level_reached", "value": 5}, LevelAtLeast(5)),
            ({"type": "challenges_completed", "value": 5}, ChallengesCompletedAtLeast(5)),
            ({"type": "all_lessons_completed", "value": 1}, AllLessonsCompleted()),
        ],
    )
    def test_known_shapes(self, raw, expected):
        assert parse_requirement(raw) == expected
        assert requirement_to_dict(expected)["type"] == raw["type"]

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidRequirement):
            parse_requirement({"type": "swaps_made", "value": 3})

    def test_non_integer_value_rejected(self):
        with pytest.raises(InvalidRequirement):
            parse_requirement({"type": "lessons_completed", "value": "3"})

    def test_negative_value_rejected(self):
        with pytest.raises(InvalidRequirement):
            parse_requirement({"type": "daily_streak", "value": -1})


class TestEvaluateAchievement:
    def test_lessons_threshold(self):
        req = LessonsCompletedAtLeast(1)
        assert not evaluate_achievement(req, Snapshot(lessons_completed=0), 6)
        assert evaluate_achievement(req, Snapshot(lessons_completed=1), 6)

    def test_streak_threshold(self):
        assert evaluate_achievement(DailyStreakAtLeast(3), Snapshot(streak=3), 6)
        assert not evaluate_achievement(DailyStreakAtLeast(3), Snapshot(streak=2), 6)

    def test_level_threshold(self):
        assert evaluate_achievement(LevelAtLeast(5), Snapshot(level=6), 6)

    def test_challenges_threshold(self):
        assert evaluate_achievement(ChallengesCompletedAtLeast(5), Snapshot(challenges_completed=5), 6)

    def test_all_lessons(self):
        req = AllLessonsCompleted()
        assert evaluate_achievement(req, Snapshot(lessons_completed=6), 6)
        assert not evaluate_achievement(req, Snapshot(lessons_completed=5), 6)

    def test_all_lessons_with_empty_catalog_never_satisfied(self):
        assert not evaluate_achievement(AllLessonsCompleted(), Snapshot(lessons_completed=0), 0)
