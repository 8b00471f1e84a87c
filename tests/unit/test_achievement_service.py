"""
Unit tests for AchievementService.

Tests criteria evaluation, idempotent awarding, badge XP, failure
isolation within the badge pass and the earned-badge reads.
"""

import pytest

from academy.core.event.types import EventNames
from academy.core.exceptions import DuplicateRecordError, StoreError
from academy.domain.models.base import DomainValidationError
from academy.modules.shared.exceptions import ValidationError
from tests.conftest import FIXED_NOW, criterion, event_names, event_payload


@pytest.mark.unit
@pytest.mark.asyncio
class TestCheckAndAwardBadges:
    """Test the automatic badge pass."""

    async def test_first_lesson_badge(self, achievement_service, seeded_store, published):
        """A satisfied badge is recorded, rewarded and announced."""
        # Arrange
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement(
            "first-steps",
            criterion("first_lesson"),
            xp_reward=25,
            rarity="rare",
            icon="star",
            description="Finish a lesson",
        )

        # Act
        awarded = await achievement_service.check_and_award_badges("u-2")

        # Assert
        assert awarded == [
            {
                "badge_id": "first-steps",
                "badge_name": "First Steps",
                "xp_earned": 25,
                "rarity": "rare",
                "icon": "star",
                "description": "Finish a lesson",
                "awarded": True,
            }
        ]
        user = seeded_store.users["u-2"]
        assert user.total_xp == 25
        assert user.badges_earned == 1
        assert seeded_store.achievements["first-steps"].times_earned == 1
        assert seeded_store.user_achievements[("u-2", "first-steps")].earned_at == FIXED_NOW
        assert event_payload(published, EventNames.BADGE_AWARDED) == {
            "user_id": "u-2",
            "achievement_id": "first-steps",
            "name": "First Steps",
            "xp_reward": 25,
            "rarity": "rare",
        }

    async def test_second_pass_awards_nothing(self, achievement_service, seeded_store):
        """Earned badges are never awarded twice."""
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement("first-steps", criterion("first_lesson"))
        await achievement_service.check_and_award_badges("u-2")

        again = await achievement_service.check_and_award_badges("u-2")

        assert again == []
        assert seeded_store.users["u-2"].total_xp == 50
        assert seeded_store.achievements["first-steps"].times_earned == 1

    async def test_only_met_thresholds(self, achievement_service, seeded_store):
        """Thresholds not yet reached are left for later."""
        seeded_store.add_user("u-2", lessons_completed=5)
        seeded_store.add_achievement("five", criterion("lessons_completed", 5))
        seeded_store.add_achievement("ten", criterion("lessons_completed", 10))

        awarded = await achievement_service.check_and_award_badges("u-2")

        assert [badge["badge_id"] for badge in awarded] == ["five"]

    async def test_unknown_criterion_skipped(self, achievement_service, seeded_store):
        """Unparseable criteria are skipped without stopping the pass."""
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement("a-mystery", {"type": "moon_phase", "value": 3})
        seeded_store.add_achievement("b-broken", {"type": "total_xp", "value": "lots"})
        seeded_store.add_achievement("c-first", criterion("first_lesson"))

        awarded = await achievement_service.check_and_award_badges("u-2")

        assert [badge["badge_id"] for badge in awarded] == ["c-first"]

    async def test_inactive_badge_ignored(self, achievement_service, seeded_store):
        """Inactive definitions are not evaluated."""
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement("retired", criterion("first_lesson"), is_active=False)

        assert await achievement_service.check_and_award_badges("u-2") == []

    async def test_streak_uses_longest(self, achievement_service, seeded_store):
        """A broken streak still counts through longest_streak."""
        seeded_store.add_user("u-2", current_streak=0, longest_streak=7)
        seeded_store.add_achievement("week", criterion("streak_days", 7))

        awarded = await achievement_service.check_and_award_badges("u-2")

        assert [badge["badge_id"] for badge in awarded] == ["week"]

    async def test_level_reached(self, achievement_service, seeded_store):
        """Level criteria use the level derived from total XP."""
        seeded_store.add_user("u-2", total_xp=300)
        seeded_store.add_achievement("level-2", criterion("level_reached", 2))
        seeded_store.add_achievement("level-3", criterion("level_reached", 3))

        awarded = await achievement_service.check_and_award_badges("u-2")

        assert [badge["badge_id"] for badge in awarded] == ["level-2"]

    async def test_unknown_user(self, achievement_service, seeded_store):
        """A missing learner yields no badges."""
        seeded_store.add_achievement("first-steps", criterion("first_lesson"))

        assert await achievement_service.check_and_award_badges("ghost") == []
        assert seeded_store.user_achievements == {}


@pytest.mark.unit
@pytest.mark.asyncio
class TestBadgePassFailures:
    """Test that failures stay inside the badge pass."""

    async def test_definitions_unreadable(self, achievement_service, seeded_store):
        """A store failure listing definitions returns an empty list."""
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.failures["list_active_achievements"] = StoreError("store.list")

        assert await achievement_service.check_and_award_badges("u-2") == []

    async def test_insert_failure_skips_badge(self, achievement_service, seeded_store, published):
        """A badge that cannot be recorded is skipped."""
        # Arrange
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement("first-steps", criterion("first_lesson"))
        seeded_store.failures["insert_user_achievement"] = StoreError("store.insert")

        # Act
        awarded = await achievement_service.check_and_award_badges("u-2")

        # Assert
        assert awarded == []
        assert seeded_store.users["u-2"].total_xp == 0
        assert EventNames.BADGE_AWARDED not in event_names(published)

    async def test_one_failure_does_not_block_others(self, achievement_service, seeded_store):
        """Later badges are still evaluated after one fails."""
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement("a-first", criterion("first_lesson"))
        seeded_store.add_achievement("b-one", criterion("lessons_completed", 1))
        seeded_store.failures["insert_user_achievement"] = [StoreError("store.insert")]

        awarded = await achievement_service.check_and_award_badges("u-2")

        assert [badge["badge_id"] for badge in awarded] == ["b-one"]

    @pytest.mark.parametrize(
        "error",
        [
            DomainValidationError("Unknown rarity 'uncommon'", field="rarity"),
            ValidationError("rarity", "Unknown rarity 'uncommon'"),
        ],
    )
    async def test_invalid_definitions(self, achievement_service, seeded_store, error):
        """Definitions that break a model invariant end the pass with no badges."""
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.failures["list_active_achievements"] = error

        assert await achievement_service.check_and_award_badges("u-2") == []

    async def test_invalid_badge_does_not_block_others(self, achievement_service, seeded_store):
        """A model error while awarding one badge skips only that badge."""
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement("a-first", criterion("first_lesson"))
        seeded_store.add_achievement("b-one", criterion("lessons_completed", 1))
        seeded_store.failures["insert_user_achievement"] = [
            DomainValidationError("earned_at must be set", field="earned_at")
        ]

        awarded = await achievement_service.check_and_award_badges("u-2")

        assert [badge["badge_id"] for badge in awarded] == ["b-one"]

    async def test_concurrent_award_is_not_an_error(self, achievement_service, seeded_store):
        """Losing the uniqueness race is treated as already earned."""
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement("first-steps", criterion("first_lesson"))
        seeded_store.failures["insert_user_achievement"] = DuplicateRecordError(
            "user_achievement", {"user_id": "u-2", "achievement_id": "first-steps"}
        )

        assert await achievement_service.check_and_award_badges("u-2") == []
        assert seeded_store.users["u-2"].badges_earned == 0

    async def test_badge_xp_failure(self, achievement_service, seeded_store):
        """The badge stays awarded even when its XP cannot be granted."""
        # Arrange
        seeded_store.add_user("u-2", lessons_completed=1)
        seeded_store.add_achievement("first-steps", criterion("first_lesson"), xp_reward=25)
        seeded_store.failures["award_xp"] = StoreError("store.award_xp")
        seeded_store.failures["set_user_xp"] = StoreError("store.set_user_xp")

        # Act
        awarded = await achievement_service.check_and_award_badges("u-2")

        # Assert
        assert len(awarded) == 1
        assert awarded[0]["awarded"] is True
        assert awarded[0]["xp_earned"] == 0
        assert ("u-2", "first-steps") in seeded_store.user_achievements
        assert seeded_store.users["u-2"].total_xp == 0
        assert seeded_store.users["u-2"].badges_earned == 1


@pytest.mark.unit
@pytest.mark.asyncio
class TestAwardSpecificBadge:
    """Test manual badge awards."""

    async def test_awards_regardless_of_criteria(self, achievement_service, seeded_store):
        """Manual awards skip criteria evaluation."""
        seeded_store.add_achievement("mentor", criterion("lessons_completed", 100), xp_reward=75)

        result = await achievement_service.award_specific_badge("u-1", "mentor")

        assert result["awarded"] is True
        assert result["xp_earned"] == 75
        assert seeded_store.users["u-1"].total_xp == 75

    async def test_already_earned(self, achievement_service, seeded_store):
        """A second manual award is refused."""
        seeded_store.add_achievement("mentor", criterion("first_course"))
        await achievement_service.award_specific_badge("u-1", "mentor")

        result = await achievement_service.award_specific_badge("u-1", "mentor")

        assert result["awarded"] is False
        assert result["error"] == "Already earned"
        assert result["badge_name"] == "Mentor"

    @pytest.mark.parametrize("active", [False, None])
    async def test_inactive_or_missing(self, achievement_service, seeded_store, active):
        """Inactive and unknown badges cannot be awarded."""
        if active is not None:
            seeded_store.add_achievement("mentor", criterion("first_course"), is_active=active)

        result = await achievement_service.award_specific_badge("u-1", "mentor")

        assert result["awarded"] is False
        assert result["error"] == "Badge not found or inactive"

    async def test_unknown_user(self, achievement_service, seeded_store):
        """Badges go to existing learners only."""
        seeded_store.add_achievement("mentor", criterion("first_course"))

        result = await achievement_service.award_specific_badge("ghost", "mentor")

        assert result["awarded"] is False
        assert result["error"] == "User not found"

    async def test_store_failure(self, achievement_service, seeded_store):
        """Store failures are reported, not raised."""
        seeded_store.failures["get_achievement"] = StoreError("store.get_achievement")

        result = await achievement_service.award_specific_badge("u-1", "mentor")

        assert result["awarded"] is False
        assert "store.get_achievement" in result["error"]


@pytest.mark.unit
@pytest.mark.asyncio
class TestBadgeReads:
    """Test earned-badge listings and lookups."""

    @pytest.fixture
    def badges(self, seeded_store):
        seeded_store.add_achievement(
            "bookworm", criterion("lessons_completed", 50), rarity="rare"
        )
        seeded_store.add_achievement(
            "champion", criterion("courses_completed", 5), rarity="legendary"
        )
        seeded_store.add_achievement("first-steps", criterion("first_lesson"), icon="star")
        seeded_store.add_achievement("regular", criterion("streak_days", 3))
        return seeded_store

    async def test_earned_newest_first(self, achievement_service, badges, clock):
        """Earned badges come back with their award time, newest first."""
        # Arrange
        first_award = clock.now
        await achievement_service.award_specific_badge("u-1", "first-steps")
        clock.advance(hours=1)
        await achievement_service.award_specific_badge("u-1", "champion")

        # Act
        earned = await achievement_service.get_user_earned_badges("u-1")

        # Assert
        assert [badge["badge_id"] for badge in earned] == ["champion", "first-steps"]
        assert earned[0]["earned_at"] == clock.now
        assert earned[1] == {
            "badge_id": "first-steps",
            "badge_name": "First Steps",
            "description": "",
            "icon": "star",
            "rarity": "common",
            "xp_reward": 50,
            "earned": True,
            "earned_at": first_award,
        }

    async def test_earned_includes_retired_badges(self, achievement_service, badges):
        """A deactivated badge stays in the learner's collection."""
        await achievement_service.award_specific_badge("u-1", "regular")
        badges.add_achievement("regular", criterion("streak_days", 3), is_active=False)

        earned = await achievement_service.get_user_earned_badges("u-1")

        assert [badge["badge_id"] for badge in earned] == ["regular"]

    async def test_earned_store_failure(self, achievement_service, badges):
        """Store failures read as an empty collection."""
        badges.failures["list_user_achievements"] = StoreError("store.list_user_achievements")

        assert await achievement_service.get_user_earned_badges("u-1") == []

    async def test_with_status_ordering(self, achievement_service, badges):
        """Earned first, then rarity from common up, then name."""
        # Arrange
        await achievement_service.award_specific_badge("u-1", "champion")
        await achievement_service.award_specific_badge("u-1", "regular")

        # Act
        badges_with_status = await achievement_service.get_user_badges_with_status("u-1")

        # Assert
        assert [(badge["badge_id"], badge["earned"]) for badge in badges_with_status] == [
            ("regular", True),
            ("champion", True),
            ("first-steps", False),
            ("bookworm", False),
        ]
        assert badges_with_status[2]["earned_at"] is None

    async def test_with_status_hides_inactive(self, achievement_service, badges):
        """Only active badges are listed."""
        badges.add_achievement("retired", criterion("first_course"), is_active=False)

        badges_with_status = await achievement_service.get_user_badges_with_status("u-1")

        assert "retired" not in [badge["badge_id"] for badge in badges_with_status]
        assert len(badges_with_status) == 4

    async def test_with_status_store_failure(self, achievement_service, badges):
        """Store failures read as an empty list."""
        badges.failures["list_active_achievements"] = StoreError("store.list")

        assert await achievement_service.get_user_badges_with_status("u-1") == []

    async def test_has_earned(self, achievement_service, badges):
        """Lookups reflect awards; failures read as not earned."""
        await achievement_service.award_specific_badge("u-1", "bookworm")

        assert await achievement_service.has_user_earned_badge("u-1", "bookworm") is True
        assert await achievement_service.has_user_earned_badge("u-1", "champion") is False

        badges.failures["has_user_achievement"] = StoreError("store.has")
        assert await achievement_service.has_user_earned_badge("u-1", "bookworm") is False


@pytest.mark.unit
@pytest.mark.asyncio
class TestUserStats:
    """Test the stats snapshot."""

    async def test_snapshot(self, achievement_service, seeded_store):
        """Counters, perfect scores and derived level are collected."""
        # Arrange
        seeded_store.add_user(
            "u-2", total_xp=600, lessons_completed=4, courses_completed=1, longest_streak=3
        )
        seeded_store.add_completion("u-2", "q-1", 30, FIXED_NOW, score=100)
        seeded_store.add_completion("u-2", "q-2", 20, FIXED_NOW, score=90)
        seeded_store.add_completion("u-2", "q-3", 30, FIXED_NOW, score=100)

        # Act
        stats = await achievement_service.get_user_stats("u-2")

        # Assert
        assert stats.perfect_scores == 2
        assert stats.lessons_completed == 4
        assert stats.courses_completed == 1
        assert stats.longest_streak == 3
        assert stats.level == 3

    async def test_unknown_user(self, achievement_service):
        """Missing learners have no stats."""
        assert await achievement_service.get_user_stats("ghost") is None
