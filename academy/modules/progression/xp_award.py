"""
XP awarding with an explicit two-path strategy.

1. Atomic path: `store.award_xp` adds to the total and recomputes the
   cached level in one store operation. Concurrent awards cannot lose
   updates.
2. Fallback path: when the atomic primitive fails or is not implemented,
   read the user, add in memory and write back with `set_user_xp`. Two
   concurrent fallbacks can lose one award. This weaker guarantee is
   accepted and logged at WARNING with `consistency="read_modify_write"`.

When both paths fail the caller gets `success=False`; the failure is logged
at ERROR with `soft_inconsistency=True` because the triggering fact (a
completion or badge) is usually already written.

Both the completion recorder and the badge evaluator award XP through here.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import Logger
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from academy.core.exceptions import AcademyInfrastructureException
from academy.modules.progression.xp_model import (
    DEFAULT_BASE_XP,
    DEFAULT_EXPONENT,
    level_from_xp,
)
from academy.modules.shared.store import ProgressStore

if TYPE_CHECKING:
    from academy.core.config.manager import ConfigManager


def xp_curve_from_config(config: "ConfigManager") -> Tuple[int, float]:
    """`(base_xp, exponent)` from `progression.xp_curve.*`, defaulting to the production curve."""
    return (
        int(config.get("progression.xp_curve.base_xp", DEFAULT_BASE_XP)),
        float(config.get("progression.xp_curve.exponent", DEFAULT_EXPONENT)),
    )


@dataclass(frozen=True)
class XpAwardResult:
    success: bool
    amount: int
    total_xp: Optional[int] = None
    used_fallback: bool = False
    error: Optional[str] = None


class XpAwarder:
    def __init__(
        self,
        store: ProgressStore,
        logger: Logger,
        *,
        base_xp: int = DEFAULT_BASE_XP,
        exponent: float = DEFAULT_EXPONENT,
    ) -> None:
        self._store = store
        self.log = logger
        self._base_xp = base_xp
        self._exponent = exponent

    @classmethod
    def from_config(
        cls, store: ProgressStore, config: "ConfigManager", logger: Logger
    ) -> "XpAwarder":
        base_xp, exponent = xp_curve_from_config(config)
        return cls(store, logger, base_xp=base_xp, exponent=exponent)

    def level_for(self, total_xp: int) -> int:
        return level_from_xp(total_xp, self._base_xp, self._exponent)

    async def award(
        self,
        user_id: str,
        amount: int,
        *,
        reason: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> XpAwardResult:
        """
        Add `amount` XP to `user_id`.

        Never raises for store failures; see the module docstring for the
        two paths. Amounts <= 0 are a no-op success.
        """
        extra = {"user_id": user_id, "amount": amount, "reason": reason, **(context or {})}

        if amount <= 0:
            return XpAwardResult(success=True, amount=0)

        try:
            total = await self._store.award_xp(user_id, amount)
            self.log.debug("XP awarded atomically", extra={**extra, "total_xp": total})
            return XpAwardResult(success=True, amount=amount, total_xp=total)

        except (AcademyInfrastructureException, NotImplementedError) as exc:
            self.log.warning(
                "Atomic XP award failed; falling back to read-modify-write",
                extra={
                    **extra,
                    "consistency": "read_modify_write",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

        try:
            user = await self._store.get_user(user_id)
            if user is None:
                self.log.error(
                    "XP award fallback found no user",
                    extra={**extra, "soft_inconsistency": True},
                )
                return XpAwardResult(
                    success=False, amount=amount, used_fallback=True, error="User not found"
                )

            total = user.total_xp + amount
            await self._store.set_user_xp(user_id, total, self.level_for(total))
            self.log.info(
                "XP awarded via read-modify-write fallback",
                extra={**extra, "total_xp": total, "consistency": "read_modify_write"},
            )
            return XpAwardResult(success=True, amount=amount, total_xp=total, used_fallback=True)

        except AcademyInfrastructureException as exc:
            self.log.error(
                "XP award failed on both paths",
                extra={
                    **extra,
                    "soft_inconsistency": True,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return XpAwardResult(
                success=False,
                amount=amount,
                used_fallback=True,
                error=f"Failed to award XP: {exc.message}",
            )
