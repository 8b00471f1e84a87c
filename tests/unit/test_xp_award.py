"""
Unit tests for XpAwarder.

Tests the atomic path, the read-modify-write fallback and double failure.
"""

import pytest

from academy.core.config.manager import ConfigManager
from academy.core.exceptions import StoreError, StoreUnavailableError
from academy.modules.progression.xp_award import XpAwarder, xp_curve_from_config


@pytest.fixture
def log(mocker):
    return mocker.MagicMock()


@pytest.fixture
def awarder(seeded_store, log):
    return XpAwarder(seeded_store, log)


@pytest.mark.unit
@pytest.mark.asyncio
class TestAtomicPath:
    """Test awards through the store's atomic add."""

    async def test_award_adds_xp(self, awarder, seeded_store):
        """The atomic add returns the new total."""
        # Act
        result = await awarder.award("u-1", 300, reason="test")

        # Assert
        assert result.success is True
        assert result.total_xp == 300
        assert result.used_fallback is False
        assert seeded_store.users["u-1"].total_xp == 300
        assert seeded_store.users["u-1"].current_level == 2

    async def test_zero_amount_is_noop(self, awarder, seeded_store):
        """Nothing to award means no store call."""
        result = await awarder.award("u-1", 0, reason="test")

        assert result.success is True
        assert result.amount == 0
        assert seeded_store.call_count("award_xp") == 0


@pytest.mark.unit
@pytest.mark.asyncio
class TestFallbackPath:
    """Test the read-modify-write fallback."""

    async def test_not_implemented_falls_back(self, awarder, seeded_store, log):
        """Stores without an atomic add still get the XP."""
        # Arrange
        seeded_store.atomic_xp = False

        # Act
        result = await awarder.award("u-1", 300, reason="test")

        # Assert
        assert result.success is True
        assert result.used_fallback is True
        assert seeded_store.users["u-1"].total_xp == 300
        assert seeded_store.users["u-1"].current_level == 2
        assert seeded_store.call_count("set_user_xp") == 1
        warning_extra = log.warning.call_args.kwargs["extra"]
        assert warning_extra["consistency"] == "read_modify_write"

    async def test_store_error_falls_back(self, awarder, seeded_store):
        """A failed atomic add is retried through the fallback."""
        seeded_store.failures["award_xp"] = StoreUnavailableError("store.award_xp")

        result = await awarder.award("u-1", 10, reason="test")

        assert result.success is True
        assert result.used_fallback is True
        assert seeded_store.users["u-1"].total_xp == 10

    async def test_fallback_without_user(self, awarder, seeded_store, log):
        """A missing learner on the fallback path is a failure."""
        seeded_store.atomic_xp = False

        result = await awarder.award("ghost", 10, reason="test")

        assert result.success is False
        assert result.error == "User not found"
        assert log.error.call_args.kwargs["extra"]["soft_inconsistency"] is True

    async def test_both_paths_fail(self, awarder, seeded_store, log):
        """Double failure reports an error instead of raising."""
        # Arrange
        seeded_store.failures["award_xp"] = StoreError("store.award_xp")
        seeded_store.failures["set_user_xp"] = StoreError("store.set_user_xp")

        # Act
        result = await awarder.award("u-1", 10, reason="test")

        # Assert
        assert result.success is False
        assert result.error.startswith("Failed to award XP")
        assert seeded_store.users["u-1"].total_xp == 0
        assert log.error.call_args.kwargs["extra"]["soft_inconsistency"] is True


@pytest.mark.unit
class TestCurveConfig:
    """Test reading the XP curve from configuration."""

    def test_defaults(self):
        """Empty configuration yields the production curve."""
        assert xp_curve_from_config(ConfigManager()) == (100, 1.5)

    def test_configured_curve_drives_levels(self, seeded_store, log):
        """A configured curve changes level derivation."""
        config = ConfigManager({"progression": {"xp_curve": {"base_xp": 50, "exponent": 2}}})

        awarder = XpAwarder.from_config(seeded_store, config, log)

        assert awarder.level_for(199) == 1
        assert awarder.level_for(200) == 2
