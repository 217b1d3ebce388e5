from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Literal, Optional, Tuple


AllocationKind = Literal["committed", "pending"]

DEFAULT_FORECAST_WEEKS = 24
DEFAULT_UNDER_UTILIZED_THRESHOLD = 0.7
PENDING_PRIORITY_SENTINEL = 999


def _is_missing(value: object) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def resolve_remaining_hours(
    remaining_shop_hours: Optional[float],
    estimated_shop_hours_total: Optional[float] = None,
) -> float:
    """Remaining fabrication hours for a project record.

    Precedence: remaining shop hours, then total estimated shop hours, then 0.
    NaN (an empty CSV cell) counts as missing.
    """
    for candidate in (remaining_shop_hours, estimated_shop_hours_total):
        if not _is_missing(candidate):
            return float(candidate)  # type: ignore[arg-type]
    return 0.0


@dataclass(frozen=True)
class ProjectDemand:
    """A committed project or pipeline bid carrying shop hours."""

    id: str
    name: str
    remaining_hours: float
    status: str = ""
    archived: bool = False
    scheduled_start_date: Optional[date] = None
    projected_start_date: Optional[date] = None
    priority: Optional[int] = None

    def start_date(self) -> Optional[date]:
        if self.scheduled_start_date is not None:
            return self.scheduled_start_date
        return self.projected_start_date

    def demand_hours(self) -> float:
        """Hours to place; non-finite or negative values carry no demand."""
        if not math.isfinite(self.remaining_hours):
            return 0.0
        return max(0.0, self.remaining_hours)


@dataclass(frozen=True)
class CompanySettings:
    shop_capacity_hours_per_week: float = 0.0
    backlog_forecast_weeks: int = DEFAULT_FORECAST_WEEKS
    under_utilized_threshold: float = DEFAULT_UNDER_UTILIZED_THRESHOLD
    logging_level: str = "INFO"


@dataclass(frozen=True)
class ForecastOptions:
    shift_multiplier: float = 1.0
    weeks: Optional[int] = None
    start_date: Optional[date] = None


@dataclass
class BucketAllocation:
    project_id: str
    name: str
    hours: float
    status: str
    kind: AllocationKind


@dataclass
class WeekBucket:
    """One forecast week with a fixed capacity and a running used total."""

    week_index: int
    start_date: datetime
    end_date: datetime
    capacity_hours: float
    used_hours: float = 0.0
    allocations: List[BucketAllocation] = field(default_factory=list)

    def available_hours(self) -> float:
        return self.capacity_hours - self.used_hours

    def utilization(self) -> Optional[float]:
        if self.capacity_hours <= 0:
            return None
        return self.used_hours / self.capacity_hours

    def assign(self, project: ProjectDemand, hours: float, kind: AllocationKind) -> None:
        if hours <= 0:
            return
        if hours >= self.available_hours():
            self.used_hours = self.capacity_hours
        else:
            self.used_hours += hours
        for entry in self.allocations:
            if entry.project_id == project.id and entry.kind == kind:
                entry.hours += hours
                return
        self.allocations.append(
            BucketAllocation(
                project_id=project.id,
                name=project.name,
                hours=hours,
                status=project.status,
                kind=kind,
            )
        )


@dataclass(frozen=True)
class UnallocatedDemand:
    project_id: str
    name: str
    kind: AllocationKind
    hours: float
    reason: str


@dataclass(frozen=True)
class CapacityGap:
    week_index: int
    start_date: datetime
    end_date: datetime
    used_hours: float
    capacity_hours: float
    utilization: float


@dataclass(frozen=True)
class BookingRecommendation:
    week_index: int
    start_date: datetime
    end_date: datetime
    available_hours: float
    suggested_min_hours: float
    suggested_max_hours: float


@dataclass(frozen=True)
class ForecastScenario:
    shift_multiplier: float
    weeks: int


@dataclass(frozen=True)
class ForecastSummary:
    total_committed_hours: float
    total_pending_hours: float
    total_remaining_hours: float
    backlog_months: float
    weekly_capacity: float
    buckets: Tuple[WeekBucket, ...]
    gaps: Tuple[CapacityGap, ...]
    overloads: Tuple[WeekBucket, ...]
    recommendations: Tuple[BookingRecommendation, ...]
    scenario: ForecastScenario
    unallocated: Tuple[UnallocatedDemand, ...] = ()

    def allocated_hours(self) -> float:
        return sum(bucket.used_hours for bucket in self.buckets)

    def unallocated_hours(self) -> float:
        return sum(item.hours for item in self.unallocated)
