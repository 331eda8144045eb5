"""Topic coverage tracking.

Tracks which semantic topics a session has already discussed so the
interview avoids asking about the same thing twice. Each topic group has
a canonical label and a list of synonyms (English and pt-BR); an answer
covers a topic when any synonym appears in it as a literal substring.
"""

from typing import Dict, Iterable, List, Optional, Set

from src.domain.models.answer_signals import TopicCoverage
from src.domain.models.conversation import ConversationContext


TOPIC_GROUPS: Dict[str, List[str]] = {
    "velocity": [
        "velocity",
        "speed",
        "cycle-time",
        "cycle time",
        "time-to-market",
        "time to market",
        "deploy-frequency",
        "desenvolvimento lento",
        "rápido",
    ],
    "quality": [
        "quality",
        "bugs",
        "errors",
        "defects",
        "reliability",
        "qualidade",
        "bug rate",
    ],
    "cost": ["cost", "budget", "price", "expense", "custo", "orçamento", "financial"],
    "team": [
        "team",
        "people",
        "hiring",
        "talent",
        "developers",
        "equipe",
        "contratação",
    ],
    "tech-debt": [
        "tech-debt",
        "technical debt",
        "refactoring",
        "legacy",
        "débito técnico",
        "código legado",
    ],
    "scalability": [
        "scalability",
        "scale",
        "growth",
        "performance",
        "escalabilidade",
        "crescimento",
    ],
    "process": [
        "process",
        "workflow",
        "cicd",
        "devops",
        "automation",
        "processo",
        "automação",
    ],
    "competition": ["competition", "competitor", "market", "concorrência", "mercado"],
    "compliance": [
        "compliance",
        "security",
        "lgpd",
        "gdpr",
        "conformidade",
        "segurança",
    ],
    "customer": ["customer", "client", "user", "churn", "cliente", "usuário"],
}

ESSENTIAL_TOPICS: List[str] = ["velocity", "quality", "cost", "team", "process"]


class TopicTracker:
    """Detects topics in answers and answers coverage queries for sessions."""

    def __init__(
        self,
        groups: Optional[Dict[str, List[str]]] = None,
        essential: Optional[List[str]] = None,
    ):
        self.groups = groups if groups is not None else TOPIC_GROUPS
        self.essential = essential if essential is not None else ESSENTIAL_TOPICS

    def detect_topics(self, answer: object) -> Set[str]:
        """Canonical labels whose synonyms appear in the answer."""
        if answer is None or answer == "":
            return set()

        if isinstance(answer, (list, tuple, set)):
            text = " ".join(str(a) for a in answer).lower()
        else:
            text = str(answer).lower()

        return {
            topic
            for topic, synonyms in self.groups.items()
            if any(synonym in text for synonym in synonyms)
        }

    def _group_for(self, topic: str) -> Optional[str]:
        for label, synonyms in self.groups.items():
            if label == topic or topic in synonyms:
                return label
        return None

    def is_covered(self, topic: str, session: ConversationContext) -> bool:
        """True if the topic, its canonical label, or any synonym was covered."""
        covered = session.topics_covered
        if topic in covered:
            return True

        label = self._group_for(topic)
        if label is None:
            return False

        if label in covered:
            return True
        return any(synonym in covered for synonym in self.groups[label])

    def uncovered_topics(
        self, priority_topics: Iterable[str], session: ConversationContext
    ) -> List[str]:
        """Filter a priority list down to topics not yet covered."""
        return [t for t in priority_topics if not self.is_covered(t, session)]

    def coverage(self, session: ConversationContext) -> TopicCoverage:
        """Coverage of the essential topic subset."""
        covered = [t for t in self.essential if self.is_covered(t, session)]
        missing = [t for t in self.essential if t not in covered]
        total = len(self.essential)
        # Half-up rounding of covered/total x 100
        percentage = (200 * len(covered) + total) // (2 * total) if total else 0
        return TopicCoverage(percentage=percentage, covered=covered, missing=missing)
