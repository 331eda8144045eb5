"""
Cost ledger for hosted LLM usage.

Converts token counts into currency, keeps an append-only log of calls,
and answers "can we afford this?" against daily and monthly caps.

Pricing defaults (per 1k tokens): input R$ 0.018, output R$ 0.090.

Recording never fails: the call it describes has already happened and
its cost must be kept. ``can_afford`` is the only gate used before a call.
"""

import csv
import io
import threading
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, List, Optional, Tuple

import structlog

from src.core.exceptions import BudgetExceededError
from src.domain.models.cost import (
    BudgetAlert,
    BudgetCheck,
    BudgetConfig,
    CostEntry,
    CostEnvironment,
    CostService,
    CostSummary,
)

log = structlog.get_logger(__name__)

INPUT_COST_PER_1K = 0.018
OUTPUT_COST_PER_1K = 0.090

CSV_HEADERS = [
    "Timestamp",
    "Service",
    "Environment",
    "Input Tokens",
    "Output Tokens",
    "Cost (R$)",
    "Request ID",
]

_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")

AlertSink = Callable[[BudgetAlert], None]


def _money(value: Decimal) -> float:
    """Round half-up to 2 decimal places."""
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def _percent(spent: Decimal, limit: Decimal) -> float:
    """spent/limit x 100, rounded half-up to 1 decimal place."""
    return float((spent / limit * 100).quantize(_TENTH, rounding=ROUND_HALF_UP))


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


class CostLedger:
    """Append-only ledger of LLM costs with budget enforcement.

    One ledger is shared process-wide; every method is safe to call from
    concurrent requests. The log and the alert flags are guarded by a single
    lock held only for in-memory work.
    """

    def __init__(
        self,
        budget: Optional[BudgetConfig] = None,
        input_cost_per_1k: float = INPUT_COST_PER_1K,
        output_cost_per_1k: float = OUTPUT_COST_PER_1K,
        currency_symbol: str = "R$",
        clock: Callable[[], datetime] = datetime.now,
        alert_sink: Optional[AlertSink] = None,
    ):
        """
        Initialize the ledger.

        Args:
            budget: Daily/monthly caps and alert threshold (defaults if None)
            input_cost_per_1k: Currency per 1k input tokens
            output_cost_per_1k: Currency per 1k output tokens
            currency_symbol: Prefix used in denial reasons
            clock: Source of "now"; day and month boundaries follow it
            alert_sink: Optional callback receiving BudgetAlert events
        """
        self.budget = budget or BudgetConfig()
        self.input_cost_per_1k = input_cost_per_1k
        self.output_cost_per_1k = output_cost_per_1k
        self.currency_symbol = currency_symbol
        self.clock = clock
        self.alert_sink = alert_sink

        self._entries: List[CostEntry] = []
        self._lock = threading.Lock()
        # Period keys for which an alert has already fired
        self._daily_alerted: Optional[Tuple[int, int, int]] = None
        self._monthly_alerted: Optional[Tuple[int, int]] = None

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Convert token counts to currency, rounded half-up to 2 decimals."""
        input_cost = Decimal(input_tokens) / 1000 * _dec(self.input_cost_per_1k)
        output_cost = Decimal(output_tokens) / 1000 * _dec(self.output_cost_per_1k)
        return _money(input_cost + output_cost)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        service: CostService,
        input_tokens: int,
        output_tokens: int,
        environment: CostEnvironment = "production",
        request_id: Optional[str] = None,
    ) -> CostEntry:
        """
        Append an entry for an LLM call that already happened.

        Args:
            service: Which policy issued the call
            input_tokens: Prompt tokens billed
            output_tokens: Completion tokens billed
            environment: test or production
            request_id: Optional correlation id

        Returns:
            The immutable CostEntry appended to the ledger
        """
        # Negative counts from a misbehaving provider are clamped, not rejected
        input_tokens = max(0, int(input_tokens or 0))
        output_tokens = max(0, int(output_tokens or 0))

        entry = CostEntry(
            timestamp=self.clock(),
            service=service,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.calculate_cost(input_tokens, output_tokens),
            environment=environment,
            request_id=request_id,
        )

        with self._lock:
            self._entries.append(entry)
            alerts = self._collect_alerts(entry.timestamp)

        log.info(
            "cost_recorded",
            service=service,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=entry.cost,
            environment=environment,
            request_id=request_id,
        )

        for alert in alerts:
            self._emit_alert(alert)

        return entry

    def load(self, entries: Iterable[CostEntry]) -> int:
        """Restore persisted history without firing alerts.

        Periods already past the threshold are marked as alerted so a
        restart does not repeat the warning.

        Returns:
            Number of entries loaded
        """
        loaded = list(entries)
        with self._lock:
            self._entries.extend(loaded)
            self._entries.sort(key=lambda e: e.timestamp)
            self._collect_alerts(self.clock())
        log.info("cost_ledger_loaded", entry_count=len(loaded))
        return len(loaded)

    def clear(self) -> None:
        """Drop all entries and re-arm alerts."""
        with self._lock:
            self._entries.clear()
            self._daily_alerted = None
            self._monthly_alerted = None
        log.info("cost_ledger_cleared")

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def _totals(self, now: datetime) -> Tuple[Decimal, Decimal]:
        """Sum of today's and this month's costs. Caller holds the lock."""
        today = Decimal(0)
        month = Decimal(0)
        for entry in self._entries:
            ts = entry.timestamp
            if ts.year == now.year and ts.month == now.month:
                cost = _dec(entry.cost)
                month += cost
                if ts.day == now.day:
                    today += cost
        return today, month

    def summarize(self) -> CostSummary:
        """Spend for the current calendar day and month."""
        now = self.clock()
        with self._lock:
            today, month = self._totals(now)
            count = len(self._entries)

        daily_limit = _dec(self.budget.daily_limit)
        monthly_limit = _dec(self.budget.monthly_limit)

        return CostSummary(
            today=_money(today),
            this_month=_money(month),
            daily_remaining=_money(max(Decimal(0), daily_limit - today)),
            monthly_remaining=_money(max(Decimal(0), monthly_limit - month)),
            percent_used_daily=_percent(today, daily_limit),
            percent_used_monthly=_percent(month, monthly_limit),
            entry_count=count,
        )

    # ------------------------------------------------------------------
    # Budget gate
    # ------------------------------------------------------------------

    def can_afford(self, estimated_cost: float) -> BudgetCheck:
        """
        Predict whether a call costing ``estimated_cost`` stays within budget.

        Daily cap is checked before the monthly cap. The denial reason names
        the breached limit and both operands.
        """
        now = self.clock()
        with self._lock:
            today, month = self._totals(now)

        estimate = _dec(estimated_cost)
        daily_limit = _dec(self.budget.daily_limit)
        monthly_limit = _dec(self.budget.monthly_limit)

        if today + estimate > daily_limit:
            return BudgetCheck(
                allowed=False,
                reason=self._denial("Daily", today, estimate, daily_limit),
            )

        if month + estimate > monthly_limit:
            return BudgetCheck(
                allowed=False,
                reason=self._denial("Monthly", month, estimate, monthly_limit),
            )

        return BudgetCheck(allowed=True)

    def ensure_affordable(self, estimated_cost: float) -> None:
        """Raise BudgetExceededError when ``can_afford`` would deny."""
        check = self.can_afford(estimated_cost)
        if not check.allowed:
            raise BudgetExceededError(check.reason or "Budget exceeded")

    def _denial(self, period: str, spent: Decimal, estimate: Decimal, limit: Decimal) -> str:
        c = self.currency_symbol
        return (
            f"{period} budget exceeded "
            f"({c} {_money(spent):.2f} + {c} {_money(estimate):.2f} > {c} {_money(limit):.2f})"
        )

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def _collect_alerts(self, now: datetime) -> List[BudgetAlert]:
        """Mark and return threshold crossings not yet alerted. Caller holds the lock."""
        today, month = self._totals(now)
        threshold_percent = self.budget.alert_threshold * 100
        alerts: List[BudgetAlert] = []

        day_key = (now.year, now.month, now.day)
        daily_pct = _percent(today, _dec(self.budget.daily_limit))
        if daily_pct >= threshold_percent and self._daily_alerted != day_key:
            self._daily_alerted = day_key
            alerts.append(
                BudgetAlert(
                    period="daily",
                    percent_used=daily_pct,
                    threshold_percent=threshold_percent,
                    spent=_money(today),
                    limit=self.budget.daily_limit,
                )
            )

        month_key = (now.year, now.month)
        monthly_pct = _percent(month, _dec(self.budget.monthly_limit))
        if monthly_pct >= threshold_percent and self._monthly_alerted != month_key:
            self._monthly_alerted = month_key
            alerts.append(
                BudgetAlert(
                    period="monthly",
                    percent_used=monthly_pct,
                    threshold_percent=threshold_percent,
                    spent=_money(month),
                    limit=self.budget.monthly_limit,
                )
            )

        return alerts

    def _emit_alert(self, alert: BudgetAlert) -> None:
        log.warning(
            "budget_threshold_reached",
            period=alert.period,
            percent_used=alert.percent_used,
            threshold_percent=alert.threshold_percent,
            spent=alert.spent,
            limit=alert.limit,
        )
        if self.alert_sink is not None:
            try:
                self.alert_sink(alert)
            except Exception as e:
                # A broken sink must not turn a recorded cost into a failure
                log.error("budget_alert_sink_failed", error=str(e))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def entries(
        self,
        service: Optional[CostService] = None,
        environment: Optional[CostEnvironment] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[CostEntry]:
        """Entries matching every given filter, oldest first."""
        with self._lock:
            selected = list(self._entries)

        if service:
            selected = [e for e in selected if e.service == service]
        if environment:
            selected = [e for e in selected if e.environment == environment]
        if start:
            selected = [e for e in selected if e.timestamp >= start]
        if end:
            selected = [e for e in selected if e.timestamp <= end]
        return selected

    def export_csv(self) -> str:
        """All entries as CSV for reporting."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for e in self.entries():
            writer.writerow(
                [
                    e.timestamp.isoformat(),
                    e.service,
                    e.environment,
                    e.input_tokens,
                    e.output_tokens,
                    f"{e.cost:.2f}",
                    e.request_id or "",
                ]
            )
        return buffer.getvalue()


def track_follow_up_cost(
    ledger: CostLedger,
    input_tokens: int,
    output_tokens: int,
    environment: CostEnvironment = "production",
    request_id: Optional[str] = None,
) -> CostEntry:
    """Record the cost of a dynamic follow-up generation."""
    return ledger.record("followup", input_tokens, output_tokens, environment, request_id)
