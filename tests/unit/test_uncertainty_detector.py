"""Tests for uncertainty detection and persona mismatch tracking."""

import pytest

from src.domain.models.answer_signals import UncertaintyCategory
from src.domain.models.conversation import UncertaintyEntry
from src.services.uncertainty_detector import (
    UncertaintyTracker,
    detect_uncertainty,
    vague_confidence,
)


class TestDetectUncertainty:
    def test_exact_nao_sei(self):
        result = detect_uncertainty("não sei")

        assert result.has_uncertainty is True
        assert result.confidence == 0.95
        assert result.category == UncertaintyCategory.EXPLICIT

    def test_explicit_in_sentence(self):
        result = detect_uncertainty("Sinceramente não tenho acesso a esses números")

        assert result.category == UncertaintyCategory.EXPLICIT
        assert "não tenho acesso" in result.detected_phrases

    def test_deflection(self):
        result = detect_uncertainty("Isso não é minha área, melhor perguntar ao CTO")

        assert result.category == UncertaintyCategory.DEFLECTION
        assert result.confidence == 0.85

    def test_explicit_wins_over_deflection(self):
        result = detect_uncertainty("Não sei, isso é com o financeiro")

        assert result.category == UncertaintyCategory.EXPLICIT
        assert result.confidence == 0.95

    def test_single_vague_phrase(self):
        result = detect_uncertainty("Acho que umas duas semanas por entrega")

        assert result.category == UncertaintyCategory.VAGUE
        assert result.confidence == 0.3

    def test_vague_confidence_capped(self):
        result = detect_uncertainty(
            "Talvez, acho que depende, é difícil dizer com precisão"
        )

        assert result.category == UncertaintyCategory.VAGUE
        assert result.confidence == 0.7

    @pytest.mark.parametrize("count,expected", [(1, 0.3), (2, 0.6), (3, 0.7), (5, 0.7)])
    def test_vague_confidence_scale(self, count, expected):
        assert vague_confidence(count) == expected

    def test_short_answer_is_vague(self):
        result = detect_uncertainty("ok")

        assert result.category == UncertaintyCategory.VAGUE
        assert result.confidence == 0.5
        assert result.detected_phrases == ["very short answer"]

    def test_short_numeric_answer_is_not_uncertain(self):
        assert detect_uncertainty("15 dias").has_uncertainty is False

    def test_confident_answer(self):
        result = detect_uncertainty("Fazemos deploy toda semana com pipeline automatizado")

        assert result.has_uncertainty is False
        assert result.category == UncertaintyCategory.NONE

    @pytest.mark.parametrize("answer", ["", None, 3])
    def test_empty_or_non_text(self, answer):
        assert detect_uncertainty(answer).has_uncertainty is False


class TestUncertaintyTracker:
    def test_confident_answer_not_recorded(self):
        tracker = UncertaintyTracker()

        entry = tracker.add_answer("q1", "Pergunta?", "Fazemos deploy toda semana")

        assert entry is None
        assert tracker.entries == []

    def test_uncertain_answer_recorded(self):
        tracker = UncertaintyTracker()

        entry = tracker.add_answer("q1", "Pergunta?", "não sei")

        assert entry.question_id == "q1"
        assert entry.category == "explicit"
        assert tracker.entries == [entry]

    def test_sessions_tracked_independently(self):
        """One explicit answer per session is not a mismatch; a second in one session is."""
        session_a = UncertaintyTracker()
        session_b = UncertaintyTracker()

        session_a.add_answer("q1", "Pergunta?", "não sei")
        session_b.add_answer("q1", "Pergunta?", "não sei")

        assert session_a.detect_persona_mismatch().has_mismatch is False
        assert session_b.detect_persona_mismatch().has_mismatch is False

        session_a.add_answer("q2", "Outra?", "não faço ideia")

        mismatch = session_a.detect_persona_mismatch()
        assert mismatch.has_mismatch is True
        assert mismatch.confidence == 0.9
        assert session_b.detect_persona_mismatch().has_mismatch is False

    def test_three_uncertain_answers_above_average(self):
        tracker = UncertaintyTracker()
        tracker.add_answer("q1", "A?", "não é minha área")
        tracker.add_answer("q2", "B?", "ok")
        tracker.add_answer("q3", "C?", "pergunta para o time de TI")

        mismatch = tracker.detect_persona_mismatch()

        # (0.85 + 0.5 + 0.85) / 3 = 0.73
        assert mismatch.has_mismatch is True
        assert mismatch.confidence == 0.7

    def test_below_threshold_reports_average(self):
        tracker = UncertaintyTracker()
        tracker.add_answer("q1", "A?", "acho que umas duas semanas")
        tracker.add_answer("q2", "B?", "talvez uns dez por mês")

        mismatch = tracker.detect_persona_mismatch()

        assert mismatch.has_mismatch is False
        assert mismatch.confidence == 0.3

    def test_insufficient_signals(self):
        mismatch = UncertaintyTracker().detect_persona_mismatch()

        assert mismatch.has_mismatch is False
        assert mismatch.reason == "Insufficient uncertainty signals"

    def test_from_history_and_summary(self):
        history = [
            UncertaintyEntry(
                question_id="q1",
                category="explicit",
                confidence=0.95,
                detected_phrases=["não sei"],
            ),
            UncertaintyEntry(
                question_id="q2",
                category="vague",
                confidence=0.3,
                detected_phrases=["talvez"],
            ),
        ]
        tracker = UncertaintyTracker.from_history(history)

        summary = tracker.summary()

        assert summary["total_uncertain"] == 2
        assert summary["by_category"]["explicit"] == 1
        assert summary["by_category"]["vague"] == 1
        assert summary["by_category"]["deflection"] == 0
        assert set(summary["most_common_phrases"]) == {"não sei", "talvez"}

    def test_reset(self):
        tracker = UncertaintyTracker()
        tracker.add_answer("q1", "A?", "não sei")

        tracker.reset()

        assert tracker.entries == []
