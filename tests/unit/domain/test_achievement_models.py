"""
Unit tests for badge definitions and criteria.
"""

import pytest

from academy.domain.models.achievement import (
    DEFAULT_BADGE_XP_REWARD,
    AchievementDefinition,
    CoursesCompleted,
    FirstCourse,
    FirstLesson,
    LessonsCompleted,
    LevelReached,
    PerfectScores,
    Rarity,
    StreakDays,
    TotalXp,
    UnknownCriterion,
    UserStats,
    parse_criterion,
)
from academy.domain.models.base import DomainValidationError


@pytest.mark.unit
@pytest.mark.domain
class TestParseCriterion:
    """Test conversion of stored criteria payloads."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ({"type": "lessons_completed", "value": 10}, LessonsCompleted(10)),
            ({"type": "courses_completed", "value": 2}, CoursesCompleted(2)),
            ({"type": "perfect_scores", "value": 5}, PerfectScores(5)),
            ({"type": "streak_days", "value": 7}, StreakDays(7)),
            ({"type": "total_xp", "value": 1000}, TotalXp(1000)),
            ({"type": "level_reached", "value": 5}, LevelReached(5)),
            ({"type": "first_lesson"}, FirstLesson()),
            ({"type": "first_course"}, FirstCourse()),
        ],
    )
    def test_known_kinds(self, raw, expected):
        """Each known kind parses into its typed criterion."""
        assert parse_criterion(raw) == expected

    def test_float_threshold_truncated(self):
        """JSON numbers may arrive as floats."""
        assert parse_criterion({"type": "total_xp", "value": 250.0}) == TotalXp(250)

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "moon_phase", "value": 3},
            {"value": 3},
            {"type": "lessons_completed"},
            {"type": "lessons_completed", "value": -1},
            {"type": "lessons_completed", "value": "ten"},
            {"type": "lessons_completed", "value": True},
            ["lessons_completed", 10],
            None,
        ],
    )
    def test_unusable_payloads_become_unknown(self, raw):
        """Unknown or malformed criteria never raise."""
        result = parse_criterion(raw)

        assert isinstance(result, UnknownCriterion)
        assert result.is_satisfied(UserStats(user_id="u-1", lessons_completed=99)) is False

    def test_unknown_keeps_raw_type(self):
        """The raw type is kept for logging."""
        result = parse_criterion({"type": "moon_phase", "value": 3})

        assert result.raw_type == "moon_phase"
        assert result.to_dict() == {"type": "moon_phase", "value": 3}


@pytest.mark.unit
@pytest.mark.domain
class TestCriterionEvaluation:
    """Test criteria against stat snapshots."""

    def test_threshold_is_inclusive(self):
        """Reaching the threshold exactly satisfies it."""
        assert LessonsCompleted(10).is_satisfied(UserStats("u-1", lessons_completed=10))
        assert not LessonsCompleted(10).is_satisfied(UserStats("u-1", lessons_completed=9))

    def test_streak_uses_current_or_longest(self):
        """A broken streak still counts through longest_streak."""
        criterion = StreakDays(7)

        assert criterion.is_satisfied(UserStats("u-1", current_streak=1, longest_streak=7))
        assert criterion.is_satisfied(UserStats("u-1", current_streak=7, longest_streak=7))
        assert not criterion.is_satisfied(UserStats("u-1", current_streak=6, longest_streak=6))

    def test_level_reached_uses_derived_level(self):
        """Level criteria read the level in the snapshot."""
        assert LevelReached(3).is_satisfied(UserStats("u-1", level=3))
        assert not LevelReached(3).is_satisfied(UserStats("u-1", level=2))

    def test_firsts(self):
        """First lesson and first course need one of each."""
        stats = UserStats("u-1", lessons_completed=1)

        assert FirstLesson().is_satisfied(stats)
        assert not FirstCourse().is_satisfied(stats)

    def test_round_trip_to_dict(self):
        """Typed criteria serialise back to the stored shape."""
        assert parse_criterion(PerfectScores(5).to_dict()) == PerfectScores(5)
        assert FirstLesson().to_dict() == {"type": "first_lesson", "value": 1}


@pytest.mark.unit
@pytest.mark.domain
class TestAchievementDefinition:
    """Test badge definition construction."""

    def test_from_raw_defaults_reward(self):
        """A missing or zero reward falls back to the default."""
        unset = AchievementDefinition.from_raw(
            achievement_id="a-1", name="First Steps", criteria={"type": "first_lesson"}
        )
        zero = AchievementDefinition.from_raw(
            achievement_id="a-2", name="Zero", criteria={"type": "first_lesson"}, xp_reward=0
        )

        assert unset.xp_reward == DEFAULT_BADGE_XP_REWARD
        assert zero.xp_reward == DEFAULT_BADGE_XP_REWARD

    def test_from_raw_custom_default(self):
        """Callers can supply their own default reward."""
        definition = AchievementDefinition.from_raw(
            achievement_id="a-1",
            name="First Steps",
            criteria={"type": "first_lesson"},
            default_xp_reward=75,
        )

        assert definition.xp_reward == 75

    def test_rarity_parsed_from_string(self):
        """Rarity strings are case-insensitive; None means common."""
        epic = AchievementDefinition.from_raw(
            achievement_id="a-1", name="Epic", criteria={"type": "first_lesson"}, rarity="EPIC"
        )

        assert epic.rarity is Rarity.EPIC
        assert Rarity.from_value(None) is Rarity.COMMON
        assert Rarity.from_value(Rarity.RARE) is Rarity.RARE

    def test_unknown_rarity_rejected(self):
        """Rarity outside the four tiers is invalid."""
        with pytest.raises(DomainValidationError):
            Rarity.from_value("mythic")

    def test_negative_reward_rejected(self):
        """Rewards cannot be negative."""
        with pytest.raises(DomainValidationError):
            AchievementDefinition(
                achievement_id="a-1", name="Bad", criterion=FirstLesson(), xp_reward=-5
            )
