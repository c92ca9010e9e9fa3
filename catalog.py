from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple, Union

RawAnswer = Union[str, int, float, None]

AFFIRMATIVE_VALUES = frozenset({"yes", "true", "1", "y"})
SCALE_MIN = 0
SCALE_MAX = 10
# Text limits count JSON-escaped characters, the form answers take in the
# session cookie; non-ASCII text uses up its allowance faster.
MAX_TEXT_LENGTH = 700
MAX_SHORT_ANSWER_LENGTH = 10


class QuestionKind(str, Enum):
    YES_NO = "yes_no"
    SCALE = "scale"
    SINGLE_CHOICE = "single_choice"
    FREE_TEXT = "free_text"


class ScoringRole(str, Enum):
    BEST_PRACTICE = "best_practice"
    CONTEXT_CURRENT = "context_current"
    CONTEXT_DESIRED = "context_desired"
    OBSTACLE = "obstacle"
    SOLUTION_PREFERENCE = "solution_preference"
    NOTE = "note"


@dataclass(frozen=True)
class Question:
    id: str
    prompt: str
    kind: QuestionKind
    role: ScoringRole
    options: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def field_name(self) -> str:
        return self.id


@dataclass(frozen=True)
class AnswerValue:
    """Typed view of a raw answer; ``value`` is a bool, int or str depending on ``kind``."""

    kind: QuestionKind
    value: Union[bool, int, str]
    answered: bool


def _yes_no(qid: str, prompt: str) -> Question:
    return Question(qid, prompt, QuestionKind.YES_NO, ScoringRole.BEST_PRACTICE)


CLINIC_SIZE_OPTIONS: Tuple[str, ...] = (
    "Just starting out (0-1 staff)",
    "Growing clinic (2-10 staff)",
    "Established practice (10+ staff)",
    "Multi-location clinic",
)

DESIRED_OUTCOME_OPTIONS: Tuple[str, ...] = (
    "Reduce no-shows",
    "Increase new patient bookings",
    "Save staff time",
    "Outperform competition",
)

OBSTACLE_OPTIONS: Tuple[str, ...] = (
    "Manual reminders",
    "Hiring more staff",
    "Using outdated booking software",
    "Doing nothing",
)

SOLUTION_OPTIONS: Tuple[str, ...] = (
    "AI appointment booking system",
    "Automated follow-ups & rebooking",
    "Smart intake + patient communication hub",
)

QUESTIONS: Tuple[Question, ...] = (
    _yes_no("q1", "Do you currently send automated reminders for patient appointments?"),
    _yes_no("q2", "Does your intake process allow patients to book online without staff assistance?"),
    _yes_no("q3", "Do you track no-show rates and cancellations each month?"),
    _yes_no("q4", "Do your patients fill intake forms digitally?"),
    _yes_no("q5", "Do you follow up with no-show patients to rebook?"),
    _yes_no("q6", "Do you collect patient feedback automatically after visits?"),
    _yes_no("q7", "Do you personalize communication (SMS/email) for each patient?"),
    _yes_no("q8", "Do you measure staff time spent on manual intake tasks?"),
    _yes_no("q9", "Do you offer one-click flexible rescheduling?"),
    _yes_no("q10", "Do you analyze intake data to improve patient flow and revenue?"),
    Question(
        "q11",
        "Which best describes your clinic right now?",
        QuestionKind.SINGLE_CHOICE,
        ScoringRole.CONTEXT_CURRENT,
        CLINIC_SIZE_OPTIONS,
    ),
    Question(
        "q12",
        "What is your #1 desired outcome?",
        QuestionKind.SINGLE_CHOICE,
        ScoringRole.CONTEXT_DESIRED,
        DESIRED_OUTCOME_OPTIONS,
    ),
    Question(
        "q13",
        "What have you tried that hasn't worked?",
        QuestionKind.SINGLE_CHOICE,
        ScoringRole.OBSTACLE,
        OBSTACLE_OPTIONS,
    ),
    Question(
        "q14",
        "What kind of solution would best suit you?",
        QuestionKind.SINGLE_CHOICE,
        ScoringRole.SOLUTION_PREFERENCE,
        SOLUTION_OPTIONS,
    ),
    Question(
        "q15",
        "Any extra notes we should know?",
        QuestionKind.FREE_TEXT,
        ScoringRole.NOTE,
    ),
    Question(
        "q16",
        "On a scale of 0-10, how would you rate your current scheduling reliability?",
        QuestionKind.SCALE,
        ScoringRole.CONTEXT_CURRENT,
    ),
    Question(
        "q17",
        "On a scale of 0-10, where would you like your scheduling reliability to be?",
        QuestionKind.SCALE,
        ScoringRole.CONTEXT_DESIRED,
    ),
)

QUESTIONS_BY_ID: Dict[str, Question] = {question.id: question for question in QUESTIONS}

BEST_PRACTICE_QUESTIONS: Tuple[Question, ...] = tuple(
    question for question in QUESTIONS if question.role is ScoringRole.BEST_PRACTICE
)

CLINIC_SIZE_QUESTION = "q11"
DESIRED_OUTCOME_QUESTION = "q12"
CURRENT_RATING_QUESTION = "q16"
DESIRED_RATING_QUESTION = "q17"


def get_question(question_id: str) -> Optional[Question]:
    return QUESTIONS_BY_ID.get(question_id)


def question_label(question_id: str) -> str:
    question = QUESTIONS_BY_ID.get(question_id)
    return question.prompt if question else str(question_id)


def _as_text(raw: RawAnswer) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def is_affirmative(raw: RawAnswer) -> bool:
    return _as_text(raw).lower() in AFFIRMATIVE_VALUES


def scale_value(raw: RawAnswer) -> int:
    text = _as_text(raw)
    if not text:
        return 0
    try:
        number = int(float(text))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(SCALE_MIN, min(SCALE_MAX, number))


def normalize_answer(question: Question, raw: RawAnswer) -> AnswerValue:
    """Coerce a loosely typed form value into the shape its question expects.

    Never raises: missing or malformed input becomes "no", 0 or "" and is
    flagged as unanswered.
    """
    text = _as_text(raw)
    if question.kind is QuestionKind.YES_NO:
        return AnswerValue(question.kind, is_affirmative(text), bool(text))
    if question.kind is QuestionKind.SCALE:
        return AnswerValue(question.kind, scale_value(text), bool(text))
    return AnswerValue(question.kind, text, bool(text))


def answer_display(question_id: str, raw: RawAnswer) -> str:
    question = QUESTIONS_BY_ID.get(question_id)
    if question is None:
        return _as_text(raw)
    normalized = normalize_answer(question, raw)
    if not normalized.answered:
        return "-"
    if question.kind is QuestionKind.YES_NO:
        return "Yes" if normalized.value else "No"
    return str(normalized.value)


def encoded_length(text: str) -> int:
    return len(json.dumps(text)) - 2


def clip_text(text: str, limit: int) -> str:
    """Longest prefix of ``text`` whose JSON-escaped form fits in ``limit`` characters."""
    if encoded_length(text) <= limit:
        return text
    size = 0
    for index, char in enumerate(text):
        size += encoded_length(char)
        if size > limit:
            return text[:index]
    return text


def clean_answer(question: Question, raw: RawAnswer) -> str:
    text = _as_text(raw)
    if question.kind is QuestionKind.SINGLE_CHOICE:
        return text if text in question.options else ""
    if question.kind is QuestionKind.FREE_TEXT:
        return clip_text(text, MAX_TEXT_LENGTH)
    return clip_text(text, MAX_SHORT_ANSWER_LENGTH)


def extract_answers(form: Mapping[str, RawAnswer]) -> Dict[str, str]:
    """Pick catalog answers out of submitted form data, ignoring unknown fields.

    Choice answers outside the question's options are dropped and every other
    value is clipped, so a session never carries more than the catalog allows.
    """
    answers: Dict[str, str] = {}
    for question in QUESTIONS:
        if question.field_name in form:
            answers[question.id] = clean_answer(question, form.get(question.field_name))
    return answers


def ordered_answer_ids(answers: Mapping[str, RawAnswer]) -> List[str]:
    known = [question.id for question in QUESTIONS if question.id in answers]
    extra = sorted(key for key in answers if key not in QUESTIONS_BY_ID)
    return known + extra
