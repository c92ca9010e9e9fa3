"""
Funnel state machine: landing -> lead capture -> quiz -> results.

``step`` is a reducer over an explicit ``FunnelSession``. It never performs
I/O; side effects (persisting the record, emailing the report, notifying the
webhook) are returned as effect objects for the caller to execute.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union
from uuid import uuid4

from catalog import QUESTIONS, RawAnswer, clip_text, encoded_length, extract_answers
from insights import InsightGenerator, generate_insights, with_enrichment
from mailer import DeliveryOutcome
from scoring import ScoreResult, score

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")

# Lead fields live in the session cookie; limits count JSON-escaped characters.
MAX_NAME_LENGTH = 200
MAX_EMAIL_LENGTH = 254
MAX_LOCATION_LENGTH = 200


class FunnelError(Exception):
    pass


class InvalidTransition(FunnelError):
    def __init__(self, stage: "Stage", action: object):
        super().__init__(f"{type(action).__name__} is not allowed from {stage.value}")
        self.stage = stage
        self.action = action


class ValidationError(FunnelError):
    pass


class Stage(str, Enum):
    LANDING = "landing"
    LEAD_CAPTURE = "lead"
    QUIZ = "quiz"
    RESULTS = "results"


@dataclass(frozen=True)
class Begin:
    pass


@dataclass(frozen=True)
class SubmitLead:
    name: str = ""
    email: str = ""
    location: str = ""
    consent: bool = False


@dataclass(frozen=True)
class Answer:
    answers: Mapping[str, RawAnswer] = field(default_factory=dict)


@dataclass(frozen=True)
class Finish:
    answers: Mapping[str, RawAnswer] = field(default_factory=dict)


@dataclass(frozen=True)
class Restart:
    pass


Action = Union[Begin, SubmitLead, Answer, Finish, Restart]


@dataclass(frozen=True)
class LeadRecord:
    id: str
    name: str
    email: str
    location: str
    answers: Dict[str, str]
    score: ScoreResult
    insights: Tuple[str, ...]
    created_at: str
    delivery: Optional[DeliveryOutcome] = None

    def with_delivery(self, outcome: DeliveryOutcome) -> "LeadRecord":
        return replace(self, delivery=outcome)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "location": self.location,
            "answers": dict(self.answers),
            "score": self.score.to_dict(),
            "insights": list(self.insights),
            "created_at": self.created_at,
            "delivery": self.delivery.to_dict() if self.delivery else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LeadRecord":
        delivery = data.get("delivery")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            email=data.get("email", ""),
            location=data.get("location", ""),
            answers={str(key): str(value) for key, value in (data.get("answers") or {}).items()},
            score=ScoreResult.from_dict(data.get("score") or {}),
            insights=tuple(data.get("insights") or ()),
            created_at=data.get("created_at", ""),
            delivery=DeliveryOutcome.from_dict(delivery) if delivery else None,
        )


@dataclass(frozen=True)
class FunnelSession:
    stage: Stage = Stage.LANDING
    name: str = ""
    email: str = ""
    location: str = ""
    consent: bool = False
    answers: Dict[str, str] = field(default_factory=dict)
    submission_id: Optional[str] = None
    submitted: bool = False
    record_id: Optional[str] = None
    created_at: Optional[str] = None
    error: Optional[str] = None
    extra_insight: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "name": self.name,
            "email": self.email,
            "location": self.location,
            "consent": self.consent,
            "answers": dict(self.answers),
            "submission_id": self.submission_id,
            "submitted": self.submitted,
            "record_id": self.record_id,
            "created_at": self.created_at,
            "error": self.error,
            "extra_insight": self.extra_insight,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "FunnelSession":
        if not data:
            return cls()
        try:
            stage = Stage(data.get("stage", Stage.LANDING.value))
        except ValueError:
            return cls()
        return cls(
            stage=stage,
            name=data.get("name") or "",
            email=data.get("email") or "",
            location=data.get("location") or "",
            consent=bool(data.get("consent")),
            answers=dict(data.get("answers") or {}),
            submission_id=data.get("submission_id"),
            submitted=bool(data.get("submitted")),
            record_id=data.get("record_id"),
            created_at=data.get("created_at"),
            error=data.get("error"),
            extra_insight=data.get("extra_insight"),
        )


@dataclass(frozen=True)
class PersistRecord:
    record: LeadRecord


@dataclass(frozen=True)
class DeliverReport:
    record: LeadRecord


@dataclass(frozen=True)
class NotifyWebhook:
    kind: str
    payload: Dict[str, Any]


Effect = Union[PersistRecord, DeliverReport, NotifyWebhook]


@dataclass(frozen=True)
class Transition:
    session: FunnelSession
    effects: Tuple[Effect, ...] = ()
    record: Optional[LeadRecord] = None


def validate_lead(action: SubmitLead, require_location: bool = True) -> None:
    if not action.name.strip():
        raise ValidationError("Please enter your name.")
    email = action.email.strip()
    if encoded_length(email) > MAX_EMAIL_LENGTH or not EMAIL_PATTERN.fullmatch(email):
        raise ValidationError("Please enter a valid email address.")
    if require_location and not action.location.strip():
        raise ValidationError("Please enter your location.")
    if not action.consent:
        raise ValidationError("Please confirm you agree to receive your results.")


def complete_answers(answers: Mapping[str, RawAnswer]) -> Dict[str, str]:
    known = extract_answers(answers)
    return {question.id: known.get(question.id, "") for question in QUESTIONS}


def build_record(session: FunnelSession, record_id: str, created_at: str) -> LeadRecord:
    answers = complete_answers(session.answers)
    result = score(answers)
    insights = with_enrichment(generate_insights(answers, result), session.extra_insight)
    return LeadRecord(
        id=record_id,
        name=session.name,
        email=session.email,
        location=session.location,
        answers=answers,
        score=result,
        insights=tuple(insights),
        created_at=created_at,
    )


def rebuild_record(session: FunnelSession) -> Optional[LeadRecord]:
    """Recreate a submitted session's record from the answers and enrichment it kept."""
    if not session.submitted or not session.record_id:
        return None
    return build_record(session, session.record_id, session.created_at or "")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def step(
    session: FunnelSession,
    action: Action,
    *,
    insight_generator: Optional[InsightGenerator] = None,
    now: Callable[[], datetime] = _utc_now,
    new_id: Callable[[], str] = _new_id,
    require_location: bool = True,
) -> Transition:
    if isinstance(action, Restart):
        return Transition(FunnelSession())

    stage = session.stage

    if stage is Stage.LANDING and isinstance(action, Begin):
        return Transition(replace(session, stage=Stage.LEAD_CAPTURE, error=None))

    if stage is Stage.LEAD_CAPTURE and isinstance(action, SubmitLead):
        lead = replace(
            session,
            name=clip_text(action.name.strip(), MAX_NAME_LENGTH),
            email=clip_text(action.email.strip(), MAX_EMAIL_LENGTH),
            location=clip_text(action.location.strip(), MAX_LOCATION_LENGTH),
            consent=bool(action.consent),
        )
        try:
            validate_lead(action, require_location=require_location)
        except ValidationError as exc:
            return Transition(replace(lead, error=str(exc)))
        # Reserved once per submission; Finish uses it as the record id.
        lead = replace(lead, stage=Stage.QUIZ, submission_id=session.submission_id or new_id(), error=None)
        notify = NotifyWebhook(
            "lead",
            {"lead": {"name": lead.name, "email": lead.email, "location": lead.location}},
        )
        return Transition(lead, (notify,))

    if stage is Stage.QUIZ and isinstance(action, Answer):
        merged = {**session.answers, **extract_answers(action.answers)}
        return Transition(replace(session, answers=merged, error=None))

    if stage is Stage.QUIZ and isinstance(action, Finish):
        merged = {**session.answers, **extract_answers(action.answers)}
        record_id = session.submission_id or new_id()
        created_at = now().isoformat()
        extra = insight_generator.enrich(complete_answers(merged)) if insight_generator is not None else None
        pending = replace(session, answers=merged, extra_insight=extra)
        record = build_record(pending, record_id, created_at)
        finished = replace(
            pending,
            stage=Stage.RESULTS,
            submitted=True,
            record_id=record_id,
            created_at=created_at,
            error=None,
        )
        notify = NotifyWebhook("quizResults", {"record": record.to_dict()})
        return Transition(finished, (PersistRecord(record), DeliverReport(record), notify), record)

    if stage is Stage.RESULTS and isinstance(action, Finish) and session.submitted:
        return Transition(session)

    raise InvalidTransition(stage, action)
