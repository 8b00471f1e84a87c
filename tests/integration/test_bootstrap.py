"""
Integration tests for application startup and shutdown.
"""

import pytest

from academy.core.config.config import Config
from academy.core.event.bus import EventBus
from academy.domain.models.progress import Lesson, LessonType
from academy.main import Application, shutdown, startup

pytestmark = [pytest.mark.integration, pytest.mark.database]


@pytest.fixture
async def app(monkeypatch):
    saved = {name: value for name, value in vars(Config).items() if name.isupper()}
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("TESTING", "true")
    monkeypatch.setattr(Config, "_validated", False)

    application = await startup(create_schema=True, event_bus=EventBus())
    yield application
    await shutdown(application)

    for name, value in saved.items():
        setattr(Config, name, value)


class TestStartup:
    """Test the bootstrap sequence."""

    async def test_health_report(self, app: Application):
        """A booted application reports a healthy database and wired engine."""
        # Act
        report = await app.health()

        # Assert
        assert report["database_healthy"] is True
        assert report["config"]["database_url_set"] is True
        assert report["config"]["testing"] is True
        assert report["engine"]["store"] == "SqlAlchemyProgressStore"
        assert report["engine"]["config"]["loaded_files"]

    async def test_engine_uses_shipped_config(self, app: Application):
        """The YAML in config/ drives the engine's rules."""
        # Arrange
        store = app.engine.store
        await store.add_user("u-1")
        await store.add_course(
            "c-1",
            [Lesson(lesson_id="l-1", course_id="c-1", lesson_type=LessonType.PRACTICAL)],
        )
        await store.enroll("u-1", "c-1")

        # Act
        result = await app.engine.complete_lesson("u-1", "l-1", "c-1")

        # Assert
        assert result["success"] is True
        assert result["xp_earned"] == 50 + app.config_manager.get(
            "progression.course_completion_bonus"
        )
        assert result["course_complete"] is True

    async def test_shutdown_is_idempotent(self, app: Application):
        """Shutting down twice leaves the database closed without raising."""
        await shutdown(app)
        await shutdown(app)

        assert app.database.is_initialized is False
