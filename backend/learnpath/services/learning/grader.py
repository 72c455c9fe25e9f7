"""
Answer Grader

Grades submitted answers against typed question payloads. Grading is pure:
no database access, no clock, same input always gives the same result.

Grading rules by question type:
- multiple_choice / true_false / complete_conversation: the selected option's
  `is_correct` flag decides. The option is resolved from `selected_option_id`,
  else from `raw_answer` as an option id, an option index or the option text.
- matching: the set of submitted (left, right) pairs equals the stored set.
- pronunciation: every word is put into its stored category.
- reading_comprehension: blanks are graded independently; points are
  awarded in proportion to the correct blanks (the only partial credit type).
- text_answer: any accepted answer matches, honoring `case_sensitive`.
- sentence_building: token sequence equals the canonical sentence.
- sentence_transformation: the rewrite, with or without the given
  beginning phrase, equals an accepted answer.
- error_correction: the corrected span (and the error span, when given)
  match.
- open_ended: auto-accepted only when close enough to the suggested answer,
  otherwise flagged for review with no points.

Usage:
    from learnpath.services.learning.grader import grade, grade_submission

    graded = grade(question, answer)
    result = grade_submission(questions, answers)
"""

import json
import logging
import math
import re
from difflib import SequenceMatcher
from typing import Any, Callable, Iterable, Mapping, Optional

from learnpath.config import settings
from learnpath.enums import QuestionType
from learnpath.middleware.error_handling import (
    NotFoundError,
    UnsupportedTypeError,
    ValidationError,
)
from learnpath.models.learning import GradedAnswer, SubmissionResult, SubmittedAnswer
from learnpath.models.questions import (
    ChoiceOption,
    ChoiceQuestion,
    ErrorCorrectionQuestion,
    MatchingQuestion,
    OpenEndedQuestion,
    PronunciationQuestion,
    Question,
    ReadingComprehensionQuestion,
    SentenceBuildingQuestion,
    SentenceTransformationQuestion,
    TextAnswerQuestion,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_TRAILING_PUNCTUATION = re.compile(r"[.!?]$")


# ===========================================
# Text helpers
# ===========================================


def normalize_text(value: Any, keep_case: bool = False) -> str:
    """
    Normalize free text for comparison.

    Trims, collapses runs of whitespace and drops one trailing sentence mark
    (".", "!" or "?"). Lowercases unless `keep_case` is set.
    """
    if value is None:
        return ""
    text = str(value).strip()
    if not keep_case:
        text = text.lower()
    text = _WHITESPACE.sub(" ", text)
    return _TRAILING_PUNCTUATION.sub("", text).rstrip()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _decode(raw: Any) -> Any:
    """Structured answers may arrive JSON-encoded in a string."""
    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped[:1] in ("{", "["):
            try:
                return json.loads(stripped)
            except json.JSONDecodeError:
                return raw
    return raw


def _scalar(question: Question, value: Any) -> Any:
    """
    Reject nested values inside a structured answer.

    Raises:
        ValidationError: If the value is a list or an object.
    """
    if isinstance(value, (dict, list, tuple)):
        raise ValidationError(
            f"Malformed answer to question {question.question_id}: "
            f"expected text, got {type(value).__name__}",
            details={"question_ids": [question.question_id]},
        )
    return value


def _is_blank(answer: Optional[SubmittedAnswer]) -> bool:
    if answer is None:
        return True
    if answer.selected_option_id:
        return False
    raw = answer.raw_answer
    return raw is None or (isinstance(raw, (str, list, dict)) and len(raw) == 0)


def _graded(
    question: Question,
    is_correct: bool,
    correct_answer_text: Optional[str] = None,
    points: Optional[int] = None,
    feedback: Optional[str] = None,
    needs_review: bool = False,
) -> GradedAnswer:
    if points is None:
        points = question.points if is_correct else 0
    return GradedAnswer(
        question_id=question.question_id,
        question_type=QuestionType(question.question_type),
        is_correct=is_correct,
        points_awarded=points,
        max_points=question.points,
        correct_answer_text=correct_answer_text,
        explanation=question.explanation,
        feedback=feedback,
        needs_review=needs_review,
    )


# ===========================================
# Strategies
# ===========================================


def _resolve_option(
    question: ChoiceQuestion, answer: SubmittedAnswer
) -> Optional[ChoiceOption]:
    if answer.selected_option_id:
        return next(
            (o for o in question.options if o.id == answer.selected_option_id), None
        )

    raw = answer.raw_answer
    if not isinstance(raw, str):
        return None
    raw = raw.strip()

    by_id = next((o for o in question.options if o.id == raw), None)
    if by_id is not None:
        return by_id
    if raw.isdigit() and int(raw) < len(question.options):
        return question.options[int(raw)]
    wanted = normalize_text(raw)
    return next((o for o in question.options if normalize_text(o.text) == wanted), None)


def _grade_choice(question: ChoiceQuestion, answer: SubmittedAnswer) -> GradedAnswer:
    option = _resolve_option(question, answer)
    correct = next((o for o in question.options if o.is_correct), None)
    is_correct = option is not None and option.is_correct
    feedback = None if option is not None else "Selected option does not exist"
    return _graded(
        question,
        is_correct,
        correct_answer_text=correct.text if correct else None,
        feedback=feedback,
    )


def _pairs_from(question: Question, raw: Any) -> set[tuple[str, str]]:
    raw = _decode(raw)
    pairs: set[tuple[str, str]] = set()
    if isinstance(raw, dict):
        items: Iterable = raw.items()
    elif isinstance(raw, list):
        items = []
        for item in raw:
            if isinstance(item, dict) and "left" in item and "right" in item:
                items.append((item["left"], item["right"]))
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                items.append((item[0], item[1]))
    else:
        return pairs
    for left, right in items:
        pairs.add(
            (
                normalize_text(_scalar(question, left)),
                normalize_text(_scalar(question, right)),
            )
        )
    return pairs


def _grade_matching(question: MatchingQuestion, answer: SubmittedAnswer) -> GradedAnswer:
    expected = {(normalize_text(p.left), normalize_text(p.right)) for p in question.pairs}
    submitted = _pairs_from(question, answer.raw_answer)
    is_correct = submitted == expected
    matched = len(submitted & expected)
    return _graded(
        question,
        is_correct,
        correct_answer_text="; ".join(f"{p.left} - {p.right}" for p in question.pairs),
        feedback=None if is_correct else f"{matched}/{len(expected)} pairs matched",
    )


def _grade_pronunciation(
    question: PronunciationQuestion, answer: SubmittedAnswer
) -> GradedAnswer:
    raw = _decode(answer.raw_answer)
    if isinstance(raw, list):
        raw = [
            (item.get("word"), item.get("category"))
            for item in raw
            if isinstance(item, dict)
        ]
    elif isinstance(raw, dict):
        raw = list(raw.items())
    else:
        raw = []
    submitted = {
        normalize_text(_scalar(question, word)): normalize_text(_scalar(question, category))
        for word, category in raw
    }

    correct_count = sum(
        1
        for w in question.words
        if submitted.get(normalize_text(w.word)) == normalize_text(w.category)
    )
    is_correct = correct_count == len(question.words)
    return _graded(
        question,
        is_correct,
        correct_answer_text="; ".join(f"{w.word}: {w.category}" for w in question.words),
        feedback=f"{correct_count}/{len(question.words)} words classified correctly",
    )


def _matches_any(value: Any, accepted: Iterable[str], case_sensitive: bool) -> bool:
    if value is None:
        return False
    text = normalize_text(value, keep_case=case_sensitive)
    return any(text == normalize_text(a, keep_case=case_sensitive) for a in accepted)


def _grade_reading_comprehension(
    question: ReadingComprehensionQuestion, answer: SubmittedAnswer
) -> GradedAnswer:
    raw = _decode(answer.raw_answer)
    if isinstance(raw, list):
        raw = {blank.id: value for blank, value in zip(question.blanks, raw)}
    elif not isinstance(raw, dict):
        # A bare string can only answer a single-blank passage
        raw = {question.blanks[0].id: raw} if len(question.blanks) == 1 else {}
    submitted = {str(k): _scalar(question, v) for k, v in raw.items()}

    correct_blanks = sum(
        1
        for blank in question.blanks
        if _matches_any(submitted.get(blank.id), blank.accepted_answers, blank.case_sensitive)
    )
    total_blanks = len(question.blanks)
    return _graded(
        question,
        correct_blanks == total_blanks,
        correct_answer_text="; ".join(
            f"{b.id}: {b.accepted_answers[0]}" for b in question.blanks
        ),
        points=round_half_up(question.points * correct_blanks / total_blanks),
        feedback=f"{correct_blanks}/{total_blanks} blanks correct",
    )


def _grade_text_answer(
    question: TextAnswerQuestion, answer: SubmittedAnswer
) -> GradedAnswer:
    is_correct = _matches_any(
        answer.raw_answer, question.accepted_answers, question.case_sensitive
    )
    return _graded(question, is_correct, correct_answer_text=question.accepted_answers[0])


def _grade_sentence_building(
    question: SentenceBuildingQuestion, answer: SubmittedAnswer
) -> GradedAnswer:
    raw = _decode(answer.raw_answer)
    sentence = " ".join(str(w) for w in raw) if isinstance(raw, list) else str(raw)
    is_correct = normalize_text(sentence).split() == normalize_text(
        question.correct_sentence
    ).split()
    return _graded(question, is_correct, correct_answer_text=question.correct_sentence)


def _grade_sentence_transformation(
    question: SentenceTransformationQuestion, answer: SubmittedAnswer
) -> GradedAnswer:
    text = str(answer.raw_answer)
    candidates = {normalize_text(text)}
    if question.beginning_phrase:
        candidates.add(normalize_text(f"{question.beginning_phrase} {text}"))
    is_correct = any(normalize_text(a) in candidates for a in question.accepted_answers)
    return _graded(question, is_correct, correct_answer_text=question.accepted_answers[0])


def _grade_error_correction(
    question: ErrorCorrectionQuestion, answer: SubmittedAnswer
) -> GradedAnswer:
    raw = _decode(answer.raw_answer)
    if isinstance(raw, dict):
        error_ok = normalize_text(_scalar(question, raw.get("error"))) == normalize_text(
            question.error_text
        )
        correction = _scalar(question, raw.get("correction"))
    else:
        error_ok = True
        correction = _scalar(question, raw)
    is_correct = error_ok and normalize_text(correction) == normalize_text(
        question.correction
    )
    return _graded(
        question,
        is_correct,
        correct_answer_text=question.correction,
        feedback=None
        if is_correct
        else f"The error is '{question.error_text}', corrected as '{question.correction}'",
    )


def _grade_open_ended(
    question: OpenEndedQuestion, answer: SubmittedAnswer
) -> GradedAnswer:
    text = str(answer.raw_answer).strip()
    word_count = len(text.split())

    if len(text) < settings.OPEN_ENDED_MIN_CHARS:
        return _graded(
            question,
            False,
            correct_answer_text=question.suggested_answer or None,
            feedback=f"Answer must be at least {settings.OPEN_ENDED_MIN_CHARS} characters",
        )
    if question.min_words is not None and word_count < question.min_words:
        return _graded(
            question,
            False,
            correct_answer_text=question.suggested_answer or None,
            feedback=f"Answer must have at least {question.min_words} words",
        )
    if question.max_words is not None and word_count > question.max_words:
        return _graded(
            question,
            False,
            correct_answer_text=question.suggested_answer or None,
            feedback=f"Answer must have at most {question.max_words} words",
        )

    if question.suggested_answer:
        similarity = SequenceMatcher(
            None, normalize_text(text), normalize_text(question.suggested_answer)
        ).ratio()
        if similarity >= settings.OPEN_ENDED_SIMILARITY_THRESHOLD:
            return _graded(question, True, correct_answer_text=question.suggested_answer)

    return _graded(
        question,
        False,
        correct_answer_text=question.suggested_answer or None,
        feedback="Answer recorded and waiting for review",
        needs_review=True,
    )


Strategy = Callable[[Any, SubmittedAnswer], GradedAnswer]

_STRATEGIES: dict[QuestionType, Strategy] = {
    QuestionType.MULTIPLE_CHOICE: _grade_choice,
    QuestionType.TRUE_FALSE: _grade_choice,
    QuestionType.COMPLETE_CONVERSATION: _grade_choice,
    QuestionType.MATCHING: _grade_matching,
    QuestionType.PRONUNCIATION: _grade_pronunciation,
    QuestionType.READING_COMPREHENSION: _grade_reading_comprehension,
    QuestionType.TEXT_ANSWER: _grade_text_answer,
    QuestionType.SENTENCE_BUILDING: _grade_sentence_building,
    QuestionType.SENTENCE_TRANSFORMATION: _grade_sentence_transformation,
    QuestionType.ERROR_CORRECTION: _grade_error_correction,
    QuestionType.OPEN_ENDED: _grade_open_ended,
}


def _check_strategies() -> None:
    missing = [t.value for t in QuestionType if t not in _STRATEGIES]
    if missing:
        raise UnsupportedTypeError(f"No grading strategy for: {', '.join(missing)}")


_check_strategies()


# ===========================================
# Public API
# ===========================================


def grade(question: Question, answer: Optional[SubmittedAnswer]) -> GradedAnswer:
    """
    Grade one answer.

    A missing or empty answer is graded as incorrect with no points.

    Raises:
        UnsupportedTypeError: If the question type has no strategy.
    """
    question_type = QuestionType(question.question_type)
    strategy = _STRATEGIES.get(question_type)
    if strategy is None:
        raise UnsupportedTypeError(f"No grading strategy for {question_type.value}")

    if _is_blank(answer):
        return _graded(question, False, feedback="No answer provided")
    return strategy(question, answer)


def grade_by_id(
    questions: Mapping[int, Question],
    question_id: int,
    answer: Optional[SubmittedAnswer],
) -> GradedAnswer:
    """Grade the answer to one question of a lesson, looked up by id."""
    question = questions.get(question_id)
    if question is None:
        raise NotFoundError(f"Question {question_id} not found")
    return grade(question, answer)


def summarize(results: list[GradedAnswer], pass_threshold: float) -> SubmissionResult:
    """
    Aggregate graded answers into a submission result.

    `score_percentage` is total score over max score, rounded half up; an
    empty lesson scores 0 and does not pass.
    """
    total_score = sum(r.points_awarded for r in results)
    max_score = sum(r.max_points for r in results)
    percentage = round_half_up(total_score * 100 / max_score) if max_score > 0 else 0
    return SubmissionResult(
        total_questions=len(results),
        correct_count=sum(1 for r in results if r.is_correct),
        total_score=total_score,
        max_score=max_score,
        score_percentage=percentage,
        is_passed=max_score > 0 and percentage >= pass_threshold,
        results=results,
    )


def grade_submission(
    questions: list[Question],
    answers: list[SubmittedAnswer],
    pass_threshold: Optional[float] = None,
) -> SubmissionResult:
    """
    Grade every question of a lesson, in lesson order.

    Questions without an answer are graded as incorrect.
    """
    threshold = (
        settings.PASS_THRESHOLD_PERCENT if pass_threshold is None else pass_threshold
    )
    by_question = {a.question_id: a for a in answers}
    results = [grade(q, by_question.get(q.question_id)) for q in questions]
    summary = summarize(results, threshold)
    logger.debug(
        f"Graded {summary.total_questions} questions: "
        f"{summary.total_score}/{summary.max_score} ({summary.score_percentage}%)"
    )
    return summary
