"""
Achievement Service

Purpose
-------
Evaluates badge definitions against a learner's aggregate stats and awards
the ones newly satisfied.

Domain
------
- Stat snapshot: lessons, courses, perfect quiz scores, streaks, XP, level
- Typed criteria evaluation (criteria are parsed once at load time)
- Idempotent awarding: the (user, achievement) record is the only guard
- Badge XP through the shared `XpAwarder`
- `badge.awarded` events

Failure semantics
-----------------
`check_and_award_badges` never raises for store or domain failures. A
problem with one badge is logged and the pass moves on to the next; a
missing user or unreadable definitions yield an empty list.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from academy.core.event.types import EventNames
from academy.core.exceptions import AcademyInfrastructureException, DuplicateRecordError
from academy.core.logging.logger import LogContext
from academy.domain.models.achievement import (
    AchievementDefinition,
    Rarity,
    UnknownCriterion,
    UserAchievement,
    UserStats,
)
from academy.domain.models.base import DomainValidationError
from academy.modules.progression.xp_award import XpAwarder
from academy.modules.shared.base_service import BaseService
from academy.modules.shared.exceptions import AcademyDomainException

if TYPE_CHECKING:
    from logging import Logger

    from academy.core.config.manager import ConfigManager
    from academy.core.event.bus import EventBus
    from academy.modules.shared.store import ProgressStore

Clock = Callable[[], datetime]

_HANDLED_ERRORS = (AcademyDomainException, AcademyInfrastructureException, DomainValidationError)

_RARITY_ORDER = {Rarity.COMMON: 1, Rarity.RARE: 2, Rarity.EPIC: 3, Rarity.LEGENDARY: 4}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AchievementService(BaseService):
    """
    Badge auto-award pass and manual badge awards.

    Dependencies:
        - ProgressStore: stats, definitions and user-achievement records
        - XpAwarder: badge XP rewards
        - EventBus: badge.awarded

    Public Methods:
        - get_user_stats() -> Stat snapshot used for evaluation
        - check_and_award_badges() -> Award every newly satisfied badge
        - award_specific_badge() -> Manual award of one badge
        - get_user_earned_badges() -> Badges a learner holds, newest first
        - get_user_badges_with_status() -> Active badges with an earned flag
        - has_user_earned_badge() -> Whether one badge is held
    """

    def __init__(
        self,
        store: ProgressStore,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        xp_awarder: Optional[XpAwarder] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._xp = xp_awarder or XpAwarder.from_config(store, config_manager, logger)
        self._clock: Clock = clock or _utcnow

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def get_user_stats(self, user_id: str) -> Optional[UserStats]:
        """
        Snapshot the aggregates badge criteria are evaluated against.

        Returns None when the user does not exist. Store failures propagate.
        """
        user = await self._store.get_user(user_id)
        if user is None:
            return None

        perfect_scores = await self._store.count_perfect_scores(user_id)
        return UserStats(
            user_id=user_id,
            lessons_completed=user.lessons_completed,
            courses_completed=user.courses_completed,
            perfect_scores=perfect_scores,
            current_streak=user.current_streak,
            longest_streak=user.longest_streak,
            total_xp=user.total_xp,
            level=self._xp.level_for(user.total_xp),
        )

    async def check_and_award_badges(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Evaluate every active badge for `user_id` and award the satisfied ones.

        Already-earned badges are skipped silently. Badges whose criteria
        could not be parsed are skipped with a log line.

        Returns:
            Newly awarded badges:
                [{
                    "badge_id": str,
                    "badge_name": str,
                    "xp_earned": int,
                    "rarity": str,
                    "icon": str,
                    "description": str,
                    "awarded": True,
                }]
        """
        async with LogContext(
            user_id=user_id, operation="check_and_award_badges", component="achievements"
        ):
            self.log_operation("check_and_award_badges", user_id=user_id)

            try:
                stats = await self.get_user_stats(user_id)
                if stats is None:
                    self.log.info("Badge pass skipped: user not found", extra={"user_id": user_id})
                    return []
                definitions = await self._store.list_active_achievements()
            except _HANDLED_ERRORS as exc:
                self.log_error("check_and_award_badges", exc, user_id=user_id)
                return []

            awarded: List[Dict[str, Any]] = []
            for definition in definitions:
                criterion = definition.criterion

                if isinstance(criterion, UnknownCriterion):
                    self.log.warning(
                        "Skipping badge with unusable criteria",
                        extra={
                            "achievement_id": definition.achievement_id,
                            "criteria_type": criterion.raw_type,
                            "reason": criterion.reason,
                        },
                    )
                    continue

                if not criterion.is_satisfied(stats):
                    continue

                try:
                    result = await self._award(user_id, definition)
                except _HANDLED_ERRORS as exc:
                    self.log_error(
                        "award_badge",
                        exc,
                        user_id=user_id,
                        achievement_id=definition.achievement_id,
                    )
                    continue

                if result["awarded"]:
                    awarded.append(result)

            if awarded:
                self.log.info(
                    f"Badges awarded: {len(awarded)}",
                    extra={
                        "user_id": user_id,
                        "badge_ids": [badge["badge_id"] for badge in awarded],
                    },
                )
            return awarded

    async def award_specific_badge(self, user_id: str, badge_id: str) -> Dict[str, Any]:
        """
        Award one badge regardless of its criteria.

        Returns the badge result dict; `awarded=False` with `error` when the
        badge is missing, inactive or already earned.
        """
        self.log_operation("award_specific_badge", user_id=user_id, badge_id=badge_id)

        try:
            definition = await self._store.get_achievement(badge_id)
            if definition is None or not definition.is_active:
                return self._not_awarded(badge_id, "Badge not found or inactive")

            user = await self._store.get_user(user_id)
            if user is None:
                return self._not_awarded(badge_id, "User not found", definition)

            return await self._award(user_id, definition)

        except _HANDLED_ERRORS as exc:
            self.log_error("award_specific_badge", exc, user_id=user_id, badge_id=badge_id)
            return self._not_awarded(badge_id, str(exc))

    # ========================================================================
    # PUBLIC API - Badge reads
    # ========================================================================

    async def get_user_earned_badges(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Badges `user_id` holds, newest first.

        Earned badges stay listed after their definition is deactivated.
        Records whose definition is gone are dropped. Store failures read
        as an empty list.

        Returns:
            [{"badge_id", "badge_name", "description", "icon", "rarity",
              "xp_reward", "earned": True, "earned_at": datetime}]
        """
        try:
            records = await self._store.list_user_achievements(user_id)
            badges: List[Dict[str, Any]] = []
            for record in records:
                definition = await self._store.get_achievement(record.achievement_id)
                if definition is None:
                    continue
                badges.append(self._badge_view(definition, record.earned_at))
            return badges
        except _HANDLED_ERRORS as exc:
            self.log_error("get_user_earned_badges", exc, user_id=user_id)
            return []

    async def get_user_badges_with_status(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Every active badge with the learner's earned flag.

        Sorted earned first, then by rarity (common to legendary), then by
        name. Unearned badges carry `earned_at=None`.
        """
        try:
            definitions = await self._store.list_active_achievements()
            records = await self._store.list_user_achievements(user_id)
        except _HANDLED_ERRORS as exc:
            self.log_error("get_user_badges_with_status", exc, user_id=user_id)
            return []

        earned_at = {record.achievement_id: record.earned_at for record in records}
        badges = [
            self._badge_view(definition, earned_at.get(definition.achievement_id))
            for definition in definitions
        ]
        badges.sort(
            key=lambda badge: (
                not badge["earned"],
                _RARITY_ORDER[Rarity.from_value(badge["rarity"])],
                badge["badge_name"],
            )
        )
        return badges

    async def has_user_earned_badge(self, user_id: str, badge_id: str) -> bool:
        """False on store failure."""
        try:
            return await self._store.has_user_achievement(user_id, badge_id)
        except _HANDLED_ERRORS as exc:
            self.log_error("has_user_earned_badge", exc, user_id=user_id, badge_id=badge_id)
            return False

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _award(self, user_id: str, definition: AchievementDefinition) -> Dict[str, Any]:
        badge_id = definition.achievement_id

        if await self._store.has_user_achievement(user_id, badge_id):
            return self._not_awarded(badge_id, "Already earned", definition)

        try:
            await self._store.insert_user_achievement(
                UserAchievement(user_id=user_id, achievement_id=badge_id, earned_at=self._clock())
            )
        except DuplicateRecordError:
            return self._not_awarded(badge_id, "Already earned", definition)

        award = await self._xp.award(
            user_id,
            definition.xp_reward,
            reason="badge_awarded",
            context={"achievement_id": badge_id},
        )
        if not award.success:
            self.log.error(
                "Badge recorded without its XP reward",
                extra={
                    "user_id": user_id,
                    "achievement_id": badge_id,
                    "xp_reward": definition.xp_reward,
                    "soft_inconsistency": True,
                },
            )

        await self._store.increment_user_counter(user_id, "badges_earned")
        await self._store.increment_achievement_earned(badge_id)

        await self.emit_event(
            EventNames.BADGE_AWARDED,
            {
                "user_id": user_id,
                "achievement_id": badge_id,
                "name": definition.name,
                "xp_reward": definition.xp_reward,
                "rarity": definition.rarity.value,
            },
        )

        self.log.info(
            f"Badge awarded: {definition.name}",
            extra={
                "user_id": user_id,
                "achievement_id": badge_id,
                "xp_reward": definition.xp_reward,
            },
        )

        return {
            "badge_id": badge_id,
            "badge_name": definition.name,
            "xp_earned": definition.xp_reward if award.success else 0,
            "rarity": definition.rarity.value,
            "icon": definition.icon,
            "description": definition.description,
            "awarded": True,
        }

    @staticmethod
    def _not_awarded(
        badge_id: str,
        error: str,
        definition: Optional[AchievementDefinition] = None,
    ) -> Dict[str, Any]:
        return {
            "badge_id": badge_id,
            "badge_name": definition.name if definition else "",
            "xp_earned": 0,
            "rarity": definition.rarity.value if definition else "",
            "icon": definition.icon if definition else "",
            "description": definition.description if definition else "",
            "awarded": False,
            "error": error,
        }

    @staticmethod
    def _badge_view(
        definition: AchievementDefinition, earned_at: Optional[datetime]
    ) -> Dict[str, Any]:
        return {
            "badge_id": definition.achievement_id,
            "badge_name": definition.name,
            "description": definition.description,
            "icon": definition.icon,
            "rarity": definition.rarity.value,
            "xp_reward": definition.xp_reward,
            "earned": earned_at is not None,
            "earned_at": earned_at,
        }
