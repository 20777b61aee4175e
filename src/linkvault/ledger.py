"""
Cost ledger for metered model calls.

All spend-cap policy lives here: totals are recomputed from the append-only
``cost_records`` log on every check, so there is no cached counter to drift.

Checks are check-then-act, not a reservation. Concurrent requests that pass
``can_spend`` before any of them records its cost can jointly overshoot a cap
by roughly one request's cost per concurrent caller. A hard cap would need the
check and the insert to be one atomic statement, e.g. an
``INSERT ... SELECT ... WHERE (SELECT SUM(cost_usd) ...) + ? <= cap`` that
reports whether a row was written.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Literal, TypeAlias

from .config import resolve_cost_limits
from .exceptions import CostLimitReachedError
from .logging_config import get_logger
from .models import (
    CostLimits,
    CostSummaryResponse,
    DailyCosts,
    ModelCostBreakdown,
    MonthlyCosts,
    RecentCostRequest,
)
from .storage import CostRecord, StorageBackend
from .storage.base import utc_now

CostScope: TypeAlias = Literal["daily", "monthly"]

RECENT_REQUESTS_LIMIT = 10

logger = get_logger("ledger")


def day_window(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def month_window(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class CostLedger:
    """Append-only spend log with daily and monthly caps (UTC windows)."""

    def __init__(
        self,
        storage: StorageBackend,
        *,
        daily_limit_usd: float | None = None,
        monthly_limit_usd: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.storage = storage
        self.daily_limit_usd, self.monthly_limit_usd = resolve_cost_limits(
            daily_limit_usd, monthly_limit_usd
        )
        self._clock = clock

    def window(self, scope: CostScope) -> tuple[datetime, datetime]:
        now = self._clock()
        if scope == "daily":
            return day_window(now)
        if scope == "monthly":
            return month_window(now)
        raise ValueError(f"Unknown cost scope: {scope!r}")

    def limit_for(self, scope: CostScope) -> float:
        return self.daily_limit_usd if scope == "daily" else self.monthly_limit_usd

    def spent(self, scope: CostScope) -> float:
        start, end = self.window(scope)
        total, _ = self.storage.sum_costs(start=start, end=end)
        return total

    def can_spend(self, scope: CostScope, estimated_cost: float = 0.0) -> bool:
        """Return False once the window total meets the cap, or would exceed it
        after spending *estimated_cost*."""
        spent = self.spent(scope)
        limit = self.limit_for(scope)
        if spent >= limit:
            return False
        return spent + max(estimated_cost, 0.0) <= limit

    def ensure_can_spend(
        self,
        *,
        estimated_cost: float = 0.0,
        scopes: tuple[CostScope, ...] = ("daily", "monthly"),
    ) -> None:
        """Raise CostLimitReachedError if any scope would be exceeded."""
        for scope in scopes:
            if not self.can_spend(scope, estimated_cost):
                spent = self.spent(scope)
                limit = self.limit_for(scope)
                logger.warning(
                    "Rejected metered call: %s spend %.6f USD + estimate %.6f USD "
                    "against limit %.2f USD",
                    scope,
                    spent,
                    estimated_cost,
                    limit,
                )
                raise CostLimitReachedError(
                    f"{scope.capitalize()} cost limit reached",
                    context={
                        "scope": scope,
                        "spent_usd": round(spent, 6),
                        "limit_usd": limit,
                    },
                )

    def record(self, entry: CostRecord) -> None:
        """Append *entry*. Failed calls are recorded too, usually at zero cost."""
        self.storage.insert_cost_record(entry)
        if entry.success:
            logger.debug(
                "Recorded %s cost %.8f USD (%d tokens, %s)",
                entry.request_type,
                entry.cost_usd,
                entry.total_tokens,
                entry.model,
            )
        else:
            logger.info(
                "Recorded failed %s call to %s: %s",
                entry.request_type,
                entry.model,
                entry.error_message,
            )

    def summary(self) -> CostSummaryResponse:
        """Read-only spend overview for the current UTC day and month."""
        day_start, day_end = self.window("daily")
        month_start, month_end = self.window("monthly")
        daily_total, daily_count = self.storage.sum_costs(start=day_start, end=day_end)
        monthly_total, monthly_count = self.storage.sum_costs(
            start=month_start, end=month_end
        )

        daily_reached = daily_total >= self.daily_limit_usd
        monthly_reached = monthly_total >= self.monthly_limit_usd

        return CostSummaryResponse(
            daily=DailyCosts(
                date=day_start.date().isoformat(),
                total_cost_usd=daily_total,
                request_count=daily_count,
                limit_usd=self.daily_limit_usd,
                remaining_usd=max(0.0, self.daily_limit_usd - daily_total),
                percentage_used=daily_total / self.daily_limit_usd * 100,
            ),
            monthly=MonthlyCosts(
                month=month_start.strftime("%Y-%m"),
                total_cost_usd=monthly_total,
                request_count=monthly_count,
                limit_usd=self.monthly_limit_usd,
                remaining_usd=max(0.0, self.monthly_limit_usd - monthly_total),
                percentage_used=monthly_total / self.monthly_limit_usd * 100,
            ),
            breakdown_by_model=[
                ModelCostBreakdown(**row)
                for row in self.storage.cost_breakdown_by_model(
                    start=month_start, end=month_end
                )
            ],
            recent_requests=[
                RecentCostRequest(
                    id=record.id,
                    document_id=record.document_id,
                    model=record.model,
                    request_type=record.request_type,
                    tokens=record.total_tokens,
                    cost_usd=record.cost_usd,
                    created_at=record.created_at,
                    success=record.success,
                )
                for record in self.storage.recent_cost_records(
                    limit=RECENT_REQUESTS_LIMIT
                )
            ],
            limits=CostLimits(
                daily_limit_usd=self.daily_limit_usd,
                monthly_limit_usd=self.monthly_limit_usd,
                daily_reached=daily_reached,
                monthly_reached=monthly_reached,
                can_process=not daily_reached and not monthly_reached,
            ),
        )
