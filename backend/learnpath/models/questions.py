"""
Typed Question Payloads

Every question stored in the catalog carries a type-specific JSON payload.
Before grading it is validated into one of the models below, selected by the
`question_type` discriminator. Adding a question type means adding a model
here, a member to QuestionType and a grading strategy; the grader refuses to
import if a strategy is missing.

Usage:
    from learnpath.models.questions import parse_question

    question = parse_question(row)  # row is a db.models.Question
    question.question_type          # "matching"
    question.pairs                  # [MatchingPair(left=..., right=...)]
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _QuestionBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    question_id: int
    points: int = Field(default=1, ge=0)
    question_text: Optional[str] = None
    explanation: Optional[str] = None


# ===========================================
# Choice Questions
# ===========================================


class ChoiceOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    is_correct: bool = False


class ChoiceQuestion(_QuestionBase):
    """Single-answer question: multiple choice, true/false, complete the conversation."""

    question_type: Literal["multiple_choice", "true_false", "complete_conversation"]
    options: list[ChoiceOption] = Field(min_length=1)


# ===========================================
# Structured Questions
# ===========================================


class MatchingPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    left: str
    right: str


class MatchingQuestion(_QuestionBase):
    question_type: Literal["matching"]
    pairs: list[MatchingPair] = Field(min_length=1)


class PronunciationWord(BaseModel):
    model_config = ConfigDict(frozen=True)

    word: str
    category: str


class PronunciationQuestion(_QuestionBase):
    """Classify each word into one of the sound categories."""

    question_type: Literal["pronunciation"]
    categories: list[str] = Field(default_factory=list)
    words: list[PronunciationWord] = Field(min_length=1)


class ReadingBlank(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    accepted_answers: list[str] = Field(min_length=1)
    case_sensitive: bool = False


class ReadingComprehensionQuestion(_QuestionBase):
    """Passage with blanks; each blank is graded on its own."""

    question_type: Literal["reading_comprehension"]
    passage: str = ""
    blanks: list[ReadingBlank] = Field(min_length=1)


# ===========================================
# Free-text Questions
# ===========================================


class TextAnswerQuestion(_QuestionBase):
    question_type: Literal["text_answer"]
    accepted_answers: list[str] = Field(min_length=1)
    case_sensitive: bool = False


class SentenceBuildingQuestion(_QuestionBase):
    question_type: Literal["sentence_building"]
    words: list[str] = Field(default_factory=list)
    correct_sentence: str


class SentenceTransformationQuestion(_QuestionBase):
    """Rewrite `original_sentence` so that it starts with `beginning_phrase`."""

    question_type: Literal["sentence_transformation"]
    original_sentence: str = ""
    beginning_phrase: str = ""
    accepted_answers: list[str] = Field(min_length=1)


class ErrorCorrectionQuestion(_QuestionBase):
    question_type: Literal["error_correction"]
    sentence: str = ""
    error_text: str
    correction: str


class OpenEndedQuestion(_QuestionBase):
    question_type: Literal["open_ended"]
    prompt: str = ""
    suggested_answer: str = ""
    min_words: Optional[int] = Field(default=None, ge=0)
    max_words: Optional[int] = Field(default=None, ge=0)


Question = Annotated[
    Union[
        ChoiceQuestion,
        MatchingQuestion,
        PronunciationQuestion,
        ReadingComprehensionQuestion,
        TextAnswerQuestion,
        SentenceBuildingQuestion,
        SentenceTransformationQuestion,
        ErrorCorrectionQuestion,
        OpenEndedQuestion,
    ],
    Field(discriminator="question_type"),
]

question_adapter: TypeAdapter[Question] = TypeAdapter(Question)


def parse_question(row: Any) -> Question:
    """
    Validate a stored question row into its typed payload.

    Args:
        row: Object with id, question_type, points, question_text,
            explanation and data attributes (a db.models.Question).

    Raises:
        pydantic.ValidationError: If the payload does not match its type.
    """
    return question_adapter.validate_python(
        {
            **(row.data or {}),
            "question_id": row.id,
            "question_type": row.question_type,
            "points": row.points,
            "question_text": row.question_text,
            "explanation": row.explanation,
        }
    )
