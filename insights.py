from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Dict, List, Mapping, Optional, Sequence

from catalog import (
    BEST_PRACTICE_QUESTIONS,
    CURRENT_RATING_QUESTION,
    DESIRED_OUTCOME_QUESTION,
    DESIRED_RATING_QUESTION,
    RawAnswer,
    clip_text,
    is_affirmative,
    scale_value,
)
from enrichment import DEFAULT_TIMEOUT, DisabledEnricher, Enricher
from scoring import Band, ScoreResult

logger = logging.getLogger(__name__)

MAX_TOP_INSIGHTS = 5
ACCELERATED_GAP = 4
ENRICHMENT_PREFIX = "Expert recommendations: "
MAX_ENRICHMENT_LENGTH = 500

BASELINE_INSIGHTS: Dict[Band, str] = {
    Band.RED: (
        "You appear to be at an early stage. Quick wins: automated reminders, "
        "two-way messaging, and a clear rescheduling process."
    ),
    Band.AMBER: (
        "You have some automation in place but gaps remain. Prioritize no-show "
        "prevention and consolidated scheduling."
    ),
    Band.GREEN: (
        "You're already ahead. With AI intake you can scale without hiring more "
        "staff, so focus on optimization and analytics."
    ),
}

GAP_RECOMMENDATIONS: Dict[str, str] = {
    "q1": (
        "You're losing revenue to no-shows because reminders aren't automated. "
        "Patients pick clinics that nudge them to show up."
    ),
    "q2": "Patients find it harder to book with you than with competitors. Enable online self-booking 24/7.",
    "q3": "Start tracking no-shows and cancellations monthly so you can see what they cost you.",
    "q4": "Switch to digital intake forms to cut waiting room time and data entry.",
    "q5": "Follow up with every no-show automatically and offer the next free slot.",
    "q6": "Collect feedback automatically after each visit to catch problems before reviews do.",
    "q7": "Personalize SMS/email to lift confirmations and feedback.",
    "q8": "Measure the staff hours spent on manual intake to size the automation win.",
    "q9": "Offer one-click rescheduling to keep bookings instead of losing them.",
    "q10": "Start a monthly intake analytics review to spot bottlenecks early.",
}

OUTCOME_RECOMMENDATIONS: Dict[str, str] = {
    "Reduce no-shows": "Double down on reminders and rebooking flows. Add day-before and morning-of SMS nudges.",
    "Increase new patient bookings": "Simplify your booking funnel and add Google Business Profile booking links.",
    "Save staff time": "Automate data entry from forms to your EHR or sheets and remove phone-tag scheduling.",
    "Outperform competition": "Offer instant scheduling, waitlist auto-fill, and post-visit feedback loops.",
}


def gap_message(current: int, desired: int) -> str:
    if desired - current >= ACCELERATED_GAP:
        return (
            f"You want a big jump (from {current} to {desired}). An accelerated plan with a "
            "dedicated implementation partner and a quick pilot can close that gap faster."
        )
    return (
        f"An incremental plan (from {current} to {desired}) can often be achieved with "
        "4-8 weeks of focused changes."
    )


def generate_insights(answers: Mapping[str, RawAnswer], score: ScoreResult) -> List[str]:
    """Rule-based insights in presentation order; the band baseline always comes first."""
    insights = [BASELINE_INSIGHTS[score.band]]

    for question in BEST_PRACTICE_QUESTIONS:
        if not is_affirmative(answers.get(question.id)):
            recommendation = GAP_RECOMMENDATIONS.get(question.id)
            if recommendation:
                insights.append(recommendation)

    current = scale_value(answers.get(CURRENT_RATING_QUESTION))
    desired = scale_value(answers.get(DESIRED_RATING_QUESTION))
    if current and desired:
        insights.append(gap_message(current, desired))

    outcome = answers.get(DESIRED_OUTCOME_QUESTION)
    if outcome is not None:
        recommendation = OUTCOME_RECOMMENDATIONS.get(str(outcome).strip())
        if recommendation:
            insights.append(recommendation)

    return insights


def top_insights(insights: Sequence[str], limit: int = MAX_TOP_INSIGHTS) -> List[str]:
    return list(insights[:limit])


def with_enrichment(insights: Sequence[str], extra: Optional[str]) -> List[str]:
    result = list(insights)
    if extra:
        result.append(ENRICHMENT_PREFIX + extra)
    return result


class InsightGenerator:
    """Rule-based insights plus one optional entry from an injected enricher.

    The enricher runs on a worker thread and is abandoned after ``timeout``
    seconds, so a slow service never holds up the funnel.
    """

    def __init__(self, enricher: Optional[Enricher] = None, timeout: float = DEFAULT_TIMEOUT):
        self.enricher = enricher or DisabledEnricher()
        self.timeout = timeout

    def generate(self, answers: Mapping[str, RawAnswer], score: ScoreResult) -> List[str]:
        return with_enrichment(generate_insights(answers, score), self.enrich(answers))

    def enrich(self, answers: Mapping[str, RawAnswer]) -> Optional[str]:
        if isinstance(self.enricher, DisabledEnricher):
            return None
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self.enricher.suggest, dict(answers), self.timeout)
            extra = future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning("Enrichment exceeded %.1fs; skipping", self.timeout)
            return None
        except Exception:
            logger.exception("Enrichment failed; skipping")
            return None
        finally:
            executor.shutdown(wait=False)
        # Kept in the session cookie alongside the answers.
        return clip_text(extra, MAX_ENRICHMENT_LENGTH) if extra else None
