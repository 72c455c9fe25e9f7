"""
Learning Domain Enums

Defines the closed vocabularies used by scoring, progress tracking and
recommendations: learning modules, question types, proficiency levels and
recommendation types.
"""

from enum import Enum
from typing import Optional


class ModuleType(str, Enum):
    """
    Learning dimensions (skills) a lesson belongs to.

    Skill statistics are keyed by module type.
    """

    GRAMMAR = "grammar"
    READING = "reading"
    LISTENING = "listening"


class QuestionType(str, Enum):
    """
    Question types with an automatic grading strategy.

    Choice-based:
    - MULTIPLE_CHOICE, TRUE_FALSE, COMPLETE_CONVERSATION: pick one option

    Structured:
    - MATCHING: pair left items with right items
    - PRONUNCIATION: classify words into sound categories
    - READING_COMPREHENSION: passage with independently graded blanks

    Free text:
    - TEXT_ANSWER: short typed answer
    - SENTENCE_BUILDING: order the given words into a sentence
    - SENTENCE_TRANSFORMATION: rewrite a sentence starting with a given phrase
    - ERROR_CORRECTION: find the wrong span and correct it
    - OPEN_ENDED: free writing, compared to a suggested answer
    """

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    COMPLETE_CONVERSATION = "complete_conversation"
    MATCHING = "matching"
    PRONUNCIATION = "pronunciation"
    READING_COMPREHENSION = "reading_comprehension"
    TEXT_ANSWER = "text_answer"
    SENTENCE_BUILDING = "sentence_building"
    SENTENCE_TRANSFORMATION = "sentence_transformation"
    ERROR_CORRECTION = "error_correction"
    OPEN_ENDED = "open_ended"


class EnglishLevel(str, Enum):
    """
    CEFR proficiency levels, totally ordered A1 < A2 < B1 < B2 < C1 < C2.
    """

    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def next_level(self) -> Optional["EnglishLevel"]:
        """Return the next level up, or None at C2."""
        idx = self.rank + 1
        return _LEVEL_ORDER[idx] if idx < len(_LEVEL_ORDER) else None

    def __lt__(self, other: "EnglishLevel") -> bool:  # type: ignore[override]
        if not isinstance(other, EnglishLevel):
            return NotImplemented
        return self.rank < other.rank


_LEVEL_ORDER = list(EnglishLevel)


class RecommendationType(str, Enum):
    """
    Kinds of study recommendations.

    GENERATED_LESSON records carry teacher-approved generated content and are
    created outside the rule engine.
    """

    NEXT_LESSON = "next_lesson"
    PRACTICE_WEAK_SKILL = "practice_weak_skill"
    REVIEW_TOPIC = "review_topic"
    GENERATED_LESSON = "generated_lesson"
