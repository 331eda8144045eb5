"""Signal detection for free-text answers.

Finds thematic evidence (competition, urgency, cost, ...) that justifies
asking a tailored follow-up instead of the next pool question.

Matching is deliberately literal: lowercase the answer and count keyword
substrings per category. No tokenisation, stemming or fuzzy matching, so
the outcome for a given answer is fully deterministic.

Tie-break: when two categories have the same count, the one earlier in
CATEGORY_PRIORITY wins.
"""

from typing import Dict, List, Tuple

import structlog

from src.domain.models.answer_signals import SignalCategory, SignalResult

log = structlog.get_logger(__name__)


CATEGORY_PRIORITY: List[SignalCategory] = [
    SignalCategory.INNOVATION,
    SignalCategory.COMPETITION,
    SignalCategory.PAIN_QUANTIFIED,
    SignalCategory.URGENCY,
    SignalCategory.GROWTH,
    SignalCategory.COST,
    SignalCategory.QUALITY,
]

SIGNAL_KEYWORDS: Dict[SignalCategory, List[str]] = {
    SignalCategory.INNOVATION: [
        # pt-BR
        "inovar",
        "inovação",
        "inovacao",
        "novo produto",
        "novos produtos",
        "lançar",
        "lancar",
        "desenvolver",
        "inventar",
        "diferencial",
        "disruptiv",
        "tecnologia nova",
        "mvp",
        "prototype",
        "protótipo",
        "prototipo",
        "experimento",
        # en
        "innovat",
        "new product",
        "launch",
        "r&d",
    ],
    SignalCategory.COMPETITION: [
        "competidor",
        "concorrência",
        "concorrencia",
        "competitivo",
        "rival",
        "mercado",
        "perder cliente",
        "perdendo cliente",
        "churn",
        "ficando para trás",
        "ficando para tras",
        "market share",
        "participação de mercado",
        "participacao de mercado",
        "competitor",
        "competition",
        "falling behind",
        "losing customers",
    ],
    SignalCategory.PAIN_QUANTIFIED: [
        "perdemos",
        "perdendo",
        "atraso",
        "demora",
        "lento",
        "lenta",
        "problema",
        "frustrad",
        "ineficiente",
        "desperdício",
        "desperdicio",
        "retrabalho",
        "overhead",
        "gargalo",
        "bottleneck",
        "rework",
        "wasting",
        "frustrat",
        "inefficien",
    ],
    SignalCategory.URGENCY: [
        "urgência",
        "urgencia",
        "imediato",
        "conselho",
        "investidor",
        "prazo",
        "deadline",
        "crítico",
        "critico",
        "emergência",
        "emergencia",
        "asap",
        "urgent",
        "immediately",
        "board",
        "investor",
        "right now",
    ],
    SignalCategory.GROWTH: [
        "crescendo",
        "crescimento",
        "scaling",
        "escalar",
        "expansão",
        "expansao",
        "contratar",
        "contratando",
        "dobrar",
        "triplicar",
        "aumentar equipe",
        "aumentar time",
        "mais pessoas",
        "novos membros",
        "hiring",
        "expansion",
        "headcount",
    ],
    SignalCategory.COST: [
        "orçamento",
        "orcamento",
        "budget",
        "muito caro",
        "muito cara",
        "custo alto",
        "custos altos",
        "não temos verba",
        "nao temos verba",
        "recursos limitados",
        "milhão",
        "milhao",
        "expensive",
        "too costly",
        "limited resources",
    ],
    SignalCategory.QUALITY: [
        "qualidade",
        "bug",
        "erro",
        "falha",
        "quebra",
        "instável",
        "instavel",
        "dívida técnica",
        "divida tecnica",
        "technical debt",
        "refactoring",
        "refatorar",
        "código ruim",
        "codigo ruim",
        "legado",
        "quality",
        "defect",
        "outage",
        "legacy",
        "unstable",
    ],
}

REASONING_TEMPLATES: Dict[SignalCategory, str] = {
    SignalCategory.INNOVATION: (
        "User mentioned innovation/new products (keywords: {keywords}). "
        "Worth exploring product vision and competitive positioning."
    ),
    SignalCategory.COMPETITION: (
        "Competitive pressure detected (keywords: {keywords}). "
        "Should quantify threat and understand timeline."
    ),
    SignalCategory.PAIN_QUANTIFIED: (
        "Pain points mentioned (keywords: {keywords}). "
        "Should dig deeper to quantify impact and understand root cause."
    ),
    SignalCategory.URGENCY: (
        "Urgency signals detected (keywords: {keywords}). "
        "Should understand timeline pressures and decision-making context."
    ),
    SignalCategory.GROWTH: (
        "Growth/scaling mentioned (keywords: {keywords}). "
        "Should explore challenges and capacity planning."
    ),
    SignalCategory.COST: (
        "Budget/cost concerns mentioned (keywords: {keywords}). "
        "Should understand financial constraints and ROI expectations."
    ),
    SignalCategory.QUALITY: (
        "Quality issues mentioned (keywords: {keywords}). "
        "Should quantify impact and understand severity."
    ),
}

# Exact (trimmed, lowercased) answers that never justify a follow-up
NON_SUBSTANTIVE_ANSWERS = frozenset(
    {
        "sim",
        "não",
        "nao",
        "não sei",
        "nao sei",
        "talvez",
        "depende",
        "mais ou menos",
        "yes",
        "no",
        "maybe",
        "depends",
    }
)

MIN_SUBSTANTIVE_LENGTH = 20
MAX_EVIDENCE_KEYWORDS = 3


def signal_confidence(match_count: int) -> float:
    """Map keyword matches to confidence: 1 -> 0.5, 2 -> 0.7, 3+ -> 0.9."""
    if match_count <= 0:
        return 0.0
    return round(min(0.9, 0.3 + match_count * 0.2), 2)


class SignalDetector:
    """Keyword-based category classifier for answers.

    Stateless; one instance can be shared across sessions.
    """

    def __init__(self, keywords: Dict[SignalCategory, List[str]] = SIGNAL_KEYWORDS):
        self.keywords = keywords

    def detect(self, answer: object) -> SignalResult:
        """
        Classify an answer into the strongest signal category.

        Args:
            answer: Free-text answer (non-strings yield no signal)

        Returns:
            SignalResult with category, evidence and confidence
        """
        if not isinstance(answer, str) or not answer:
            return SignalResult(
                has_signals=False, reasoning="Empty or invalid answer"
            )

        text = answer.lower()
        best: Tuple[SignalCategory, List[str]] = (SignalCategory.NONE, [])

        for category in CATEGORY_PRIORITY:
            matched = [kw for kw in self.keywords.get(category, []) if kw in text]
            # Strict comparison keeps the earlier (higher-priority) category on ties
            if len(matched) > len(best[1]):
                best = (category, matched)

        category, matched = best
        if not matched:
            return SignalResult(
                has_signals=False, reasoning="No interesting keywords detected"
            )

        evidence = matched[:MAX_EVIDENCE_KEYWORDS]
        result = SignalResult(
            has_signals=True,
            category=category,
            keywords=evidence,
            match_count=len(matched),
            confidence=signal_confidence(len(matched)),
            reasoning=REASONING_TEMPLATES[category].format(keywords=", ".join(evidence)),
        )

        log.debug(
            "signal_detected",
            category=category.value,
            match_count=result.match_count,
            confidence=result.confidence,
        )
        return result


def is_answer_substantive(
    answer: object, min_length: int = MIN_SUBSTANTIVE_LENGTH
) -> bool:
    """Whether an answer is detailed enough to warrant a follow-up.

    Needs at least ``min_length`` characters after trimming and must not be
    one of the stock one-word replies.
    """
    if not isinstance(answer, str):
        return False

    trimmed = answer.strip()
    if len(trimmed) < min_length:
        return False

    return trimmed.lower() not in NON_SUBSTANTIVE_ANSWERS
