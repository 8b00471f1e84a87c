"""
Lesson XP Rules

Pure mapping from (lesson type, optional quiz score) to an XP amount.

| type                    | XP                                   |
|-------------------------|--------------------------------------|
| text, interactive       | 10                                   |
| quiz, no score          | 0                                    |
| quiz, score < 70        | 0 (completion is rejected upstream)  |
| quiz, 70 <= score < 100 | 20                                   |
| quiz, score == 100      | 30                                   |
| practical               | 50                                   |
| course completion bonus | 100, once per course                 |

`LessonXpRules` carries the table so it can be tuned from configuration;
the module-level functions use the defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from academy.domain.models.progress import LessonType

if TYPE_CHECKING:
    from academy.core.config.manager import ConfigManager


@dataclass(frozen=True)
class LessonXpRules:
    text_xp: int = 10
    interactive_xp: int = 10
    quiz_pass_xp: int = 20
    quiz_perfect_xp: int = 30
    practical_xp: int = 50
    quiz_passing_score: int = 70
    course_completion_bonus: int = 100

    @classmethod
    def from_config(cls, config: "ConfigManager") -> "LessonXpRules":
        """Read `progression.*` overrides, falling back to the defaults above."""
        defaults = cls()
        return cls(
            text_xp=int(config.get("progression.lesson_xp.text", defaults.text_xp)),
            interactive_xp=int(
                config.get("progression.lesson_xp.interactive", defaults.interactive_xp)
            ),
            quiz_pass_xp=int(config.get("progression.lesson_xp.quiz_pass", defaults.quiz_pass_xp)),
            quiz_perfect_xp=int(
                config.get("progression.lesson_xp.quiz_perfect", defaults.quiz_perfect_xp)
            ),
            practical_xp=int(
                config.get("progression.lesson_xp.practical", defaults.practical_xp)
            ),
            quiz_passing_score=int(
                config.get("progression.quiz_passing_score", defaults.quiz_passing_score)
            ),
            course_completion_bonus=int(
                config.get(
                    "progression.course_completion_bonus", defaults.course_completion_bonus
                )
            ),
        )

    def is_quiz_passed(self, score: Optional[int]) -> bool:
        return score is not None and score >= self.quiz_passing_score

    def xp_for_lesson(self, lesson_type: "LessonType | str", score: Optional[int] = None) -> int:
        lesson_type = LessonType.from_value(lesson_type)

        if lesson_type is LessonType.TEXT:
            return self.text_xp
        if lesson_type is LessonType.INTERACTIVE:
            return self.interactive_xp
        if lesson_type is LessonType.PRACTICAL:
            return self.practical_xp

        # quiz
        if not self.is_quiz_passed(score):
            return 0
        if score == 100:
            return self.quiz_perfect_xp
        return self.quiz_pass_xp


DEFAULT_RULES = LessonXpRules()
COURSE_COMPLETION_BONUS = DEFAULT_RULES.course_completion_bonus
QUIZ_PASSING_SCORE = DEFAULT_RULES.quiz_passing_score


def xp_for_lesson(lesson_type: "LessonType | str", score: Optional[int] = None) -> int:
    """
    XP for one completed lesson under the default table.

    Example:
        >>> xp_for_lesson("quiz", 100)
        30
        >>> xp_for_lesson("quiz", 85)
        20
        >>> xp_for_lesson("quiz", 69)
        0
        >>> xp_for_lesson("practical")
        50
    """
    return DEFAULT_RULES.xp_for_lesson(lesson_type, score)


def is_quiz_passed(score: Optional[int]) -> bool:
    return DEFAULT_RULES.is_quiz_passed(score)
