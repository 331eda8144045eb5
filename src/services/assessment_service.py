"""
Assessment orchestration service.

Main entry point for adaptive assessment turns. For each answer it runs
signal and uncertainty detection, updates topic coverage, asks the
follow-up policy whether a dynamic question is justified, and either
generates one through the LLM (gated by the cost ledger) or falls back to
the static question pool.

Turn flow:
    1. Build the answer patch (counters, data, topics, uncertainty); decisions
       below run against the session with that patch projected on it
    2. Stop if the question limit is reached
    3. FollowUpPolicy decides between a dynamic follow-up and the pool
    4. Approved follow-up: generate under a timeout and record the cost
    5. Otherwise (or on any generation failure): next pool question, moving
       through the blocks in order; after the last block the session is
       complete

Each turn ends in exactly one SessionStore.update carrying the answer and
the next question together; a turn cancelled before that leaves the session
as it was. A recorded LLM cost is never rolled back. A per-session turn lock
serializes concurrent submits for the same id, and an answer to a question
that was already answered is rejected.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

from src.core.config import AssessmentConfig, assessment_config
from src.core.exceptions import GenerationError, SessionNotFoundError, ValidationError
from src.domain.models.answer_signals import SignalResult
from src.domain.models.conversation import (
    AnswerRecord,
    ConversationContext,
    Persona,
    SessionPatch,
)
from src.domain.models.cost import CostEntry, CostEnvironment
from src.domain.models.generation import FollowUpRequest
from src.domain.models.question import Question, QuestionBlock
from src.domain.models.turn import (
    AssessmentSummary,
    CompletionResult,
    SessionStatus,
    StartResult,
    TurnAction,
    TurnResult,
)
from src.persistence.repositories.cost_entry_repo import CostEntryRepository
from src.services.cost_ledger import CostLedger, track_follow_up_cost
from src.services.follow_up_policy import (
    DEFAULT_FOLLOW_UP_COST,
    FollowUpDecision,
    FollowUpPolicy,
)
from src.services.protocols import QuestionPool, TextGenerator
from src.services.session_store import SessionStore
from src.services.signal_detector import SignalDetector
from src.services.topic_tracker import TopicTracker
from src.services.uncertainty_detector import UncertaintyTracker

log = structlog.get_logger(__name__)

DEFAULT_GENERATION_TIMEOUT = 20.0
RECENT_EXCHANGES = 3

# Only free-text answers are screened for uncertainty; a choice value such
# as "fintech" would otherwise trip the very-short-answer rule
UNCERTAINTY_INPUT_TYPES = {"text"}


def _answer_text(answer: Any) -> str:
    """Flatten an answer (text, number or list of choices) to text."""
    if isinstance(answer, str):
        return answer
    if isinstance(answer, (list, tuple, set)):
        return " ".join(str(a) for a in answer)
    return str(answer)


def _extend(patch: SessionPatch, **fields: Any) -> SessionPatch:
    """Copy of ``patch`` with extra fields set (the two must not overlap)."""
    return patch.model_copy(update=fields)


class AssessmentService:
    """Drives adaptive assessment sessions turn by turn."""

    def __init__(
        self,
        store: SessionStore,
        ledger: CostLedger,
        pool: QuestionPool,
        generator: Optional[TextGenerator] = None,
        cost_repo: Optional[CostEntryRepository] = None,
        config: Optional[AssessmentConfig] = None,
        policy: Optional[FollowUpPolicy] = None,
        signal_detector: Optional[SignalDetector] = None,
        topic_tracker: Optional[TopicTracker] = None,
        generation_timeout: float = DEFAULT_GENERATION_TIMEOUT,
        follow_up_estimated_cost: float = DEFAULT_FOLLOW_UP_COST,
        cost_environment: CostEnvironment = "production",
    ):
        """
        Initialize assessment service.

        Args:
            store: Session store (owns all session state)
            ledger: Cost ledger gating and recording LLM spend
            pool: Static question bank
            generator: Follow-up generator (None disables dynamic follow-ups)
            cost_repo: Optional write-through persistence for cost entries
            config: Assessment tuning (defaults to assessment_config.yaml)
            policy: Follow-up policy (built from config and ledger if None)
            signal_detector: Answer signal classifier
            topic_tracker: Topic coverage tracker
            generation_timeout: Upper bound in seconds on one generation call
            follow_up_estimated_cost: Cost checked against the budget before a call
            cost_environment: Environment tag for recorded costs
        """
        self.store = store
        self.ledger = ledger
        self.pool = pool
        self.generator = generator
        self.cost_repo = cost_repo
        self.config = config or assessment_config
        self.signal_detector = signal_detector or SignalDetector()
        self.topic_tracker = topic_tracker or TopicTracker()
        self.policy = policy or FollowUpPolicy(
            ledger=ledger,
            min_confidence=self.config.follow_up.min_confidence,
            min_substantive_length=self.config.follow_up.min_substantive_length,
            estimated_cost=follow_up_estimated_cost,
        )
        self.generation_timeout = generation_timeout
        self.cost_environment = cost_environment
        self.block_order = [QuestionBlock(b) for b in self.config.flow.block_order]

        log.info(
            "assessment_service_initialized",
            dynamic_follow_ups=generator is not None,
            max_questions=self.config.flow.max_questions,
            blocks=self.config.flow.block_order,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(
        self,
        persona: Optional[Union[Persona, str]] = None,
        seed_data: Optional[Dict[str, Any]] = None,
    ) -> StartResult:
        """
        Start a new assessment.

        Args:
            persona: Respondent persona if already known
            seed_data: Initial answer data (e.g. from a landing form)

        Returns:
            StartResult with the new session id and first question

        Raises:
            ValidationError: On an unknown persona or non-mapping seed data
        """
        persona_value = self._parse_persona(persona)
        if seed_data is not None and not isinstance(seed_data, dict):
            raise ValidationError("seed_data must be an object")

        context = self.store.create(
            persona=persona_value,
            persona_confidence=1.0 if persona_value else 0.0,
            initial_data=seed_data,
            initial_block=self.block_order[0],
        )

        question, block = self._next_pool_question(context)
        patch = SessionPatch(current_block=block)
        if question is not None:
            patch = self._ask_patch(question, block)

        updated = self.store.update(context.session_id, patch) or context

        log.info(
            "assessment_started",
            session_id=context.session_id,
            persona=persona_value.value if persona_value else None,
            first_question_id=question.id if question else None,
        )

        return StartResult(
            session_id=context.session_id,
            first_question=question,
            session_status=self._status(updated),
        )

    async def answer(
        self,
        session_id: Optional[str],
        question_id: Optional[str],
        answer: Any,
        request_id: Optional[str] = None,
    ) -> TurnResult:
        """
        Process one answer and choose the next question.

        Args:
            session_id: Session being answered
            question_id: Question the answer belongs to
            answer: Answer value (text, number or list of choices)
            request_id: Correlation id recorded with any LLM cost

        Returns:
            TurnResult with the next question (or end) and diagnostics

        Raises:
            ValidationError: Missing fields, unknown question, or finished session
            SessionNotFoundError: Unknown or expired session
        """
        if not session_id:
            raise ValidationError("session_id is required")
        if not question_id:
            raise ValidationError("question_id is required")
        if answer is None or (isinstance(answer, str) and not answer.strip()):
            raise ValidationError("answer is required")

        async with self._turn_lock(session_id):
            context = self._require(session_id)

            if context.current_block == QuestionBlock.COMPLETION:
                raise ValidationError("Assessment already finished; call complete")

            question = self._resolve_question(context, question_id)
            return await self._process_turn(context, question, answer, request_id)

    async def complete(self, session_id: Optional[str]) -> CompletionResult:
        """
        Finish an assessment and release its session.

        Returns:
            CompletionResult with the accumulated data and summary

        Raises:
            ValidationError: Missing session id
            SessionNotFoundError: Unknown or expired session
        """
        if not session_id:
            raise ValidationError("session_id is required")

        async with self._turn_lock(session_id):
            context = self._require(session_id)

            tracker = UncertaintyTracker.from_history(context.uncertainty_history)
            summary = AssessmentSummary(
                questions_asked=context.questions_asked,
                questions_answered=context.questions_answered,
                dynamic_follow_ups_used=context.dynamic_follow_ups_used,
                persona=context.persona.value if context.persona else None,
                topic_coverage=self.topic_tracker.coverage(context),
                topics_covered=sorted(context.topics_covered),
                uncertainty=tracker.summary(),
                persona_mismatch=tracker.detect_persona_mismatch(),
                answers=context.answers,
                duration_seconds=(
                    context.last_updated - context.created_at
                ).total_seconds(),
            )

            self.store.delete(session_id)

        log.info(
            "assessment_completed",
            session_id=session_id,
            questions_answered=summary.questions_answered,
            dynamic_follow_ups_used=summary.dynamic_follow_ups_used,
            topic_coverage=summary.topic_coverage.percentage,
        )

        return CompletionResult(
            session_id=session_id, final_data=context.data, summary=summary
        )

    async def status(self, session_id: str) -> SessionStatus:
        """
        Progress snapshot for a live session.

        Raises:
            SessionNotFoundError: Unknown or expired session
        """
        return self._status(self._require(session_id))

    # ------------------------------------------------------------------
    # Turn processing
    # ------------------------------------------------------------------

    async def _process_turn(
        self,
        context: ConversationContext,
        question: Question,
        answer: Any,
        request_id: Optional[str],
    ) -> TurnResult:
        session_id = context.session_id
        text = _answer_text(answer)

        signal = self.signal_detector.detect(text)

        tracker = UncertaintyTracker.from_history(context.uncertainty_history)
        uncertainty = None
        if question.input_type in UNCERTAINTY_INPUT_TYPES:
            uncertainty = tracker.add_answer(question.id, question.text, text)

        topics = self.topic_tracker.detect_topics(answer)
        topics |= {t for t in question.tags if t in self.topic_tracker.groups}

        # Stored together with the next question in a single update, so a
        # turn cancelled mid-generation leaves the session untouched
        answered = SessionPatch(
            questions_answered=1,
            topics_covered=topics,
            uncertainty_entries=[uncertainty] if uncertainty else [],
            data={question.data_key: answer},
            answers=[
                AnswerRecord(
                    question_id=question.id,
                    question_text=question.text,
                    answer=answer,
                    source=question.source,
                    answered_at=datetime.now(timezone.utc),
                )
            ],
            clear_pending_question=True,
        )
        projected = context.apply_patch(answered, self.store.clock())

        mismatch = tracker.detect_persona_mismatch()
        if mismatch.has_mismatch:
            log.warning(
                "persona_mismatch_detected",
                session_id=session_id,
                persona=context.persona.value if context.persona else None,
                confidence=mismatch.confidence,
                reason=mismatch.reason,
            )

        log.info(
            "answer_received",
            session_id=session_id,
            question_id=question.id,
            signal_category=signal.category.value,
            signal_confidence=signal.confidence,
            uncertain=uncertainty is not None,
            topics=sorted(topics),
        )

        def result(**kwargs: Any) -> TurnResult:
            return TurnResult(
                signal=signal,
                uncertainty=uncertainty,
                persona_mismatch=mismatch,
                **kwargs,
            )

        if projected.questions_answered >= self.config.flow.max_questions:
            context = self._apply(
                session_id, _extend(answered, current_block=QuestionBlock.COMPLETION)
            )
            log.info(
                "question_limit_reached",
                session_id=session_id,
                max_questions=self.config.flow.max_questions,
            )
            return result(
                action="end",
                session_status=self._status(context),
                turn_action=TurnAction.END_BLOCK,
                reason="Maximum number of questions reached",
            )

        decision = self.policy.decide(projected, text, signal)

        if decision.should_follow_up:
            if self.generator is None:
                decision = FollowUpDecision(
                    action=TurnAction.USE_POOL_QUESTION,
                    reason="Dynamic follow-ups disabled (no generator configured)",
                )
            else:
                generated = await self._generate_follow_up(
                    projected, answered, question, text, signal, decision, request_id
                )
                if generated is not None:
                    follow_up, context = generated
                    return result(
                        action="ask_next",
                        next_question=follow_up,
                        session_status=self._status(context),
                        turn_action=TurnAction.ASK_FOLLOW_UP,
                        reason=decision.reason,
                    )
                decision = FollowUpDecision(
                    action=TurnAction.USE_POOL_QUESTION,
                    reason="Follow-up generation failed; using pool question",
                )

        next_question, block = self._next_pool_question(projected)
        block_changed = block != projected.current_block

        if next_question is None:
            context = self._apply(session_id, _extend(answered, current_block=block))
            log.info("assessment_blocks_exhausted", session_id=session_id)
            return result(
                action="end",
                session_status=self._status(context),
                turn_action=TurnAction.END_BLOCK,
                reason=decision.reason,
                budget_denied=decision.budget_denied,
            )

        context = self._apply(session_id, self._ask_patch(next_question, block, answered))
        return result(
            action="ask_next",
            next_question=next_question,
            session_status=self._status(context),
            turn_action=TurnAction.END_BLOCK if block_changed else TurnAction.USE_POOL_QUESTION,
            reason=decision.reason,
            budget_denied=decision.budget_denied,
        )

    async def _generate_follow_up(
        self,
        context: ConversationContext,
        answered: SessionPatch,
        question: Question,
        answer: str,
        signal: SignalResult,
        decision: FollowUpDecision,
        request_id: Optional[str],
    ) -> Optional[Tuple[Question, ConversationContext]]:
        """Generate, cost and register a follow-up; None on any generation failure.

        ``context`` already includes the answer; ``answered`` is stored with
        the follow-up in one update.
        """
        request = FollowUpRequest(
            session_id=context.session_id,
            persona=context.persona.value if context.persona else None,
            question_id=question.id,
            question_text=question.text,
            answer=answer,
            signal_category=signal.category.value,
            signal_keywords=signal.keywords,
            signal_reasoning=signal.reasoning,
            recent_exchanges=[
                {"question": a.question_text, "answer": _answer_text(a.answer)}
                for a in context.answers[-(RECENT_EXCHANGES + 1):-1]
            ],
            uncovered_topics=self.topic_tracker.coverage(context).missing,
        )

        try:
            generated = await asyncio.wait_for(
                self.generator.generate(request), timeout=self.generation_timeout
            )
        except GenerationError as e:
            log.warning(
                "follow_up_generation_failed",
                session_id=context.session_id,
                reason=e.message,
                billed=e.billed,
            )
            if e.billed:
                await self._charge(e.input_tokens, e.output_tokens, request_id)
            return None
        except asyncio.TimeoutError:
            log.warning(
                "follow_up_generation_failed",
                session_id=context.session_id,
                reason="timeout",
                timeout_seconds=self.generation_timeout,
            )
            return None

        # The call happened; its cost stands whatever happens next
        entry = self._record_cost(generated.input_tokens, generated.output_tokens, request_id)

        follow_up = Question.follow_up(
            text=generated.text,
            triggered_by=question,
            reason=decision.reason,
            follow_up_number=context.dynamic_follow_ups_used + 1,
        )
        updated = self._apply(
            context.session_id,
            self._ask_patch(follow_up, None, answered, dynamic_follow_ups_used=1),
        )

        log.info(
            "follow_up_asked",
            session_id=context.session_id,
            follow_up_id=follow_up.id,
            triggered_by=follow_up.triggered_by,
            cost=entry.cost,
            follow_ups_used=updated.dynamic_follow_ups_used,
        )

        await self._persist_cost(entry)
        return follow_up, updated

    def _record_cost(
        self, input_tokens: int, output_tokens: int, request_id: Optional[str]
    ) -> CostEntry:
        return track_follow_up_cost(
            self.ledger,
            input_tokens,
            output_tokens,
            environment=self.cost_environment,
            request_id=request_id,
        )

    async def _charge(
        self, input_tokens: int, output_tokens: int, request_id: Optional[str]
    ) -> CostEntry:
        """Record and persist a call's cost."""
        entry = self._record_cost(input_tokens, output_tokens, request_id)
        await self._persist_cost(entry)
        return entry

    async def _persist_cost(self, entry: CostEntry) -> None:
        """Write-through to the database; failures are logged, never raised."""
        if self.cost_repo is None:
            return
        try:
            await self.cost_repo.save(entry)
        except Exception as e:
            log.error(
                "cost_entry_persist_failed",
                error=str(e),
                error_type=type(e).__name__,
                cost=entry.cost,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_persona(self, persona: Optional[Union[Persona, str]]) -> Optional[Persona]:
        if persona is None or persona == "":
            return None
        try:
            return Persona(persona)
        except ValueError:
            valid = ", ".join(p.value for p in Persona)
            raise ValidationError(f"Unknown persona '{persona}'. Valid: {valid}")

    def _require(self, session_id: str) -> ConversationContext:
        context = self.store.get(session_id)
        if context is None:
            raise SessionNotFoundError(f"Session not found or expired: {session_id}")
        return context

    def _turn_lock(self, session_id: str) -> asyncio.Lock:
        lock = self.store.turn_lock(session_id)
        if lock is None:
            raise SessionNotFoundError(f"Session not found or expired: {session_id}")
        return lock

    def _apply(self, session_id: str, patch: SessionPatch) -> ConversationContext:
        context = self.store.update(session_id, patch)
        if context is None:
            raise SessionNotFoundError(f"Session not found or expired: {session_id}")
        return context

    def _resolve_question(self, context: ConversationContext, question_id: str) -> Question:
        """The pending question if ids match, else the pool's question.

        Raises:
            ValidationError: Unknown id, or a question already answered
        """
        pending = context.pending_question
        if pending is not None and pending.id == question_id:
            return pending

        if any(a.question_id == question_id for a in context.answers):
            log.warning(
                "duplicate_answer_rejected",
                session_id=context.session_id,
                question_id=question_id,
                pending_question_id=pending.id if pending else None,
            )
            raise ValidationError(f"Question already answered: {question_id}")

        question = self.pool.lookup(question_id)
        if question is None:
            raise ValidationError(f"Unknown question id: {question_id}")

        if pending is not None:
            log.warning(
                "answer_for_non_pending_question",
                session_id=context.session_id,
                question_id=question_id,
                pending_question_id=pending.id,
            )
        return question

    def _next_pool_question(
        self, context: ConversationContext
    ) -> Tuple[Optional[Question], QuestionBlock]:
        """Next unasked pool question from the current block onwards.

        Returns:
            (question, block it came from), or (None, COMPLETION) when every
            remaining block is exhausted
        """
        if context.current_block == QuestionBlock.COMPLETION:
            return None, QuestionBlock.COMPLETION

        blocks: List[QuestionBlock] = self.block_order
        if context.current_block in blocks:
            blocks = blocks[blocks.index(context.current_block):]

        for block in blocks:
            question = self.pool.next_in_block(block, context.asked_question_ids)
            if isinstance(question, Question):
                return question, block
            log.info(
                "block_exhausted",
                session_id=context.session_id,
                block=block.value,
                action=TurnAction.END_BLOCK.value,
            )

        return None, QuestionBlock.COMPLETION

    def _ask_patch(
        self,
        question: Question,
        block: Optional[QuestionBlock],
        answered: Optional[SessionPatch] = None,
        dynamic_follow_ups_used: int = 0,
    ) -> SessionPatch:
        """Patch registering `question` as asked and pending, on top of `answered`."""
        return _extend(
            answered or SessionPatch(),
            questions_asked=1,
            asked_question_ids=[question.id],
            pending_question=question,
            current_block=block,
            dynamic_follow_ups_used=dynamic_follow_ups_used,
        )

    def _status(self, context: ConversationContext) -> SessionStatus:
        return SessionStatus(
            session_id=context.session_id,
            persona=context.persona.value if context.persona else None,
            persona_confidence=context.persona_confidence,
            current_block=context.current_block,
            questions_asked=context.questions_asked,
            questions_answered=context.questions_answered,
            dynamic_follow_ups_used=context.dynamic_follow_ups_used,
            max_follow_ups=context.max_follow_ups,
            follow_ups_remaining=context.follow_ups_remaining,
            topic_coverage=self.topic_tracker.coverage(context).percentage,
            is_complete=context.current_block == QuestionBlock.COMPLETION,
            created_at=context.created_at,
            last_updated=context.last_updated,
        )
