"""Uncertainty detection for free-text answers.

Flags answers where the respondent lacks knowledge, deflects, or stays
vague. Tracked across a session, a run of such answers suggests the
assumed persona does not match the questions being asked (e.g. a
business user receiving technical questions).

Tiers are checked in priority order and the first tier with a match
wins; categories are never blended:
    1. explicit   ("não sei", "I don't know")      confidence 0.95
    2. deflection ("not my area", "ask someone")   confidence 0.85
    3. vague      ("maybe", "depends")             min(0.7, n x 0.3)
A very short answer (< 10 chars, no digits) with no phrase match is
treated as vague with confidence 0.5.
"""

import re
from collections import Counter
from typing import Dict, Iterable, List, Optional

import structlog

from src.domain.models.answer_signals import (
    PersonaMismatch,
    UncertaintyCategory,
    UncertaintyResult,
)
from src.domain.models.conversation import UncertaintyEntry

log = structlog.get_logger(__name__)


EXPLICIT_UNCERTAINTY_PHRASES = [
    "não sei",
    "nao sei",
    "não tenho informações",
    "nao tenho informacoes",
    "não tenho informação",
    "nao tenho informacao",
    "não conheço",
    "nao conheco",
    "não tenho acesso",
    "nao tenho acesso",
    "não tenho visibilidade",
    "nao tenho visibilidade",
    "sem visibilidade",
    "não faço ideia",
    "nao faco ideia",
    "desconheço",
    "desconheco",
    "não saberia dizer",
    "nao saberia dizer",
    "não posso afirmar",
    "nao posso afirmar",
    "i don't know",
    "i dont know",
    "i do not know",
    "no idea",
    "no visibility",
    "can't say",
    "cannot say",
    "couldn't say",
    "don't have access",
]

DEFLECTION_PHRASES = [
    "não é minha área",
    "nao e minha area",
    "isso é com",
    "isso e com",
    "pergunta para",
    "pergunta pro",
    "o time que",
    "outro setor",
    "outra pessoa",
    "not my area",
    "not my department",
    "you'd have to ask",
    "you would have to ask",
    "better to ask",
    "ask someone",
    "someone else",
    "another team",
]

VAGUE_PHRASES = [
    "mais ou menos",
    "talvez",
    "acho que",
    "creio que",
    "difícil dizer",
    "dificil dizer",
    "não tenho certeza",
    "nao tenho certeza",
    "depende",
    "varia",
    "complicado",
    "complexo de responder",
    "kind of",
    "sort of",
    "maybe",
    "hard to say",
    "depends",
    "not sure",
    "i guess",
]

EXPLICIT_CONFIDENCE = 0.95
DEFLECTION_CONFIDENCE = 0.85
SHORT_ANSWER_CONFIDENCE = 0.5
SHORT_ANSWER_LENGTH = 10
SHORT_ANSWER_EVIDENCE = "very short answer"

_DIGIT = re.compile(r"\d")


def _matches(text: str, phrases: List[str]) -> List[str]:
    return [phrase for phrase in phrases if phrase in text]


def vague_confidence(match_count: int) -> float:
    """Vagueness is a weaker indicator: 0.3 per phrase, capped at 0.7."""
    return round(min(0.7, match_count * 0.3), 2)


def detect_uncertainty(answer: object) -> UncertaintyResult:
    """
    Detect uncertainty in a single answer.

    Args:
        answer: Free-text answer (non-strings yield no uncertainty)

    Returns:
        UncertaintyResult with category, confidence and matched phrases
    """
    if not isinstance(answer, str) or not answer:
        return UncertaintyResult(has_uncertainty=False)

    text = answer.lower().strip()

    explicit = _matches(text, EXPLICIT_UNCERTAINTY_PHRASES)
    if explicit:
        return UncertaintyResult(
            has_uncertainty=True,
            confidence=EXPLICIT_CONFIDENCE,
            category=UncertaintyCategory.EXPLICIT,
            detected_phrases=explicit,
        )

    deflection = _matches(text, DEFLECTION_PHRASES)
    if deflection:
        return UncertaintyResult(
            has_uncertainty=True,
            confidence=DEFLECTION_CONFIDENCE,
            category=UncertaintyCategory.DEFLECTION,
            detected_phrases=deflection,
        )

    vague = _matches(text, VAGUE_PHRASES)
    if vague:
        return UncertaintyResult(
            has_uncertainty=True,
            confidence=vague_confidence(len(vague)),
            category=UncertaintyCategory.VAGUE,
            detected_phrases=vague,
        )

    # Suspiciously terse reply to an open question
    if len(text) < SHORT_ANSWER_LENGTH and not _DIGIT.search(text):
        return UncertaintyResult(
            has_uncertainty=True,
            confidence=SHORT_ANSWER_CONFIDENCE,
            category=UncertaintyCategory.VAGUE,
            detected_phrases=[SHORT_ANSWER_EVIDENCE],
        )

    return UncertaintyResult(has_uncertainty=False)


class UncertaintyTracker:
    """Tracks uncertain answers in one session to detect persona mismatch.

    Only answers flagged as uncertain are kept. The tracker holds no
    reference to the session; the orchestrator persists the entries in the
    session's uncertainty history and rebuilds a tracker from it with
    ``from_history``.
    """

    def __init__(self) -> None:
        self.entries: List[UncertaintyEntry] = []

    @classmethod
    def from_history(cls, history: Iterable[UncertaintyEntry]) -> "UncertaintyTracker":
        tracker = cls()
        tracker.entries = list(history)
        return tracker

    def add_answer(
        self, question_id: str, question_text: str, answer: object
    ) -> Optional[UncertaintyEntry]:
        """
        Record an answer if it shows uncertainty.

        Args:
            question_id: Question that was answered
            question_text: Question wording (logged for diagnosis)
            answer: The respondent's answer

        Returns:
            The recorded entry, or None when the answer was confident
        """
        result = detect_uncertainty(answer)
        if not result.has_uncertainty:
            return None

        entry = UncertaintyEntry(
            question_id=question_id,
            category=result.category.value,
            confidence=result.confidence,
            detected_phrases=result.detected_phrases,
        )
        self.entries.append(entry)

        log.info(
            "uncertain_answer_recorded",
            question_id=question_id,
            question_text=question_text[:80],
            category=entry.category,
            confidence=entry.confidence,
            total_uncertain=len(self.entries),
        )
        return entry

    def detect_persona_mismatch(self) -> PersonaMismatch:
        """Check whether the uncertainty pattern suggests a persona mismatch.

        Rules, in order:
            - fewer than 2 uncertain answers: no mismatch
            - 2+ explicit answers: mismatch, confidence 0.9
            - 3+ uncertain answers averaging >= 0.6: mismatch, confidence 0.7
            - otherwise: no mismatch, average confidence reported
        """
        total = len(self.entries)

        if total < 2:
            return PersonaMismatch(
                has_mismatch=False,
                confidence=0.0,
                reason="Insufficient uncertainty signals",
                suggested_action="Continue assessment",
            )

        avg_confidence = sum(e.confidence for e in self.entries) / total
        explicit_count = sum(
            1 for e in self.entries if e.category == UncertaintyCategory.EXPLICIT.value
        )

        if explicit_count >= 2:
            return PersonaMismatch(
                has_mismatch=True,
                confidence=0.9,
                reason=f'User explicitly said "não sei" {explicit_count} times',
                suggested_action="Consider persona re-evaluation or skip technical questions",
            )

        if total >= 3 and avg_confidence >= 0.6:
            return PersonaMismatch(
                has_mismatch=True,
                confidence=0.7,
                reason=(
                    f"User showed uncertainty in {total} answers "
                    f"(avg confidence: {avg_confidence * 100:.0f}%)"
                ),
                suggested_action="Adjust question types or verify persona",
            )

        return PersonaMismatch(
            has_mismatch=False,
            confidence=round(avg_confidence, 2),
            reason=f"Some uncertainty detected but below threshold ({total} answers)",
            suggested_action="Monitor for additional signals",
        )

    def summary(self) -> Dict[str, object]:
        """Totals per category and the five most common phrases."""
        by_category = {c.value: 0 for c in UncertaintyCategory}
        phrases: Counter = Counter()
        for entry in self.entries:
            by_category[entry.category] = by_category.get(entry.category, 0) + 1
            phrases.update(entry.detected_phrases)

        return {
            "total_uncertain": len(self.entries),
            "by_category": by_category,
            "most_common_phrases": [p for p, _ in phrases.most_common(5)],
        }

    def reset(self) -> None:
        """Forget all recorded answers (session end or restart)."""
        self.entries = []
