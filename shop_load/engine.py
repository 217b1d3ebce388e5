from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from .buckets import build_week_buckets, week_start, weeks_between
from .models import (
    DEFAULT_FORECAST_WEEKS,
    PENDING_PRIORITY_SENTINEL,
    AllocationKind,
    CompanySettings,
    ForecastOptions,
    ForecastScenario,
    ForecastSummary,
    ProjectDemand,
    UnallocatedDemand,
    WeekBucket,
)
from .recommendations import UtilizationAnalyzer

logger = logging.getLogger(__name__)

WEEKS_PER_MONTH = 4.345


def _project_sort_key(project: ProjectDemand) -> Tuple:
    start = project.start_date()
    if start is not None:
        return (0, start.toordinal())
    if project.priority is not None:
        return (1, 0, project.priority, project.name)
    return (1, 1, 0, project.name)


def sort_projects(projects: Iterable[ProjectDemand]) -> List[ProjectDemand]:
    """Drop archived projects and order the rest for allocation.

    Dated projects come first (earliest date first, input order kept for equal
    dates); undated projects follow by explicit priority, then those without a
    priority, with the name as the final tie-break.
    """
    active = [project for project in projects if not project.archived]
    return sorted(active, key=_project_sort_key)


def sort_pending_projects(projects: Iterable[ProjectDemand]) -> List[ProjectDemand]:
    with_sentinel = [
        project if project.priority is not None else replace(project, priority=PENDING_PRIORITY_SENTINEL)
        for project in projects
    ]
    return sort_projects(with_sentinel)


def start_index_for(project: ProjectDemand, buckets: Sequence[WeekBucket]) -> int:
    start = project.start_date()
    if start is None or not buckets:
        return 0
    return max(0, weeks_between(buckets[0].start_date, start))


def allocate_projects(
    buckets: Sequence[WeekBucket],
    projects: Iterable[ProjectDemand],
    kind: AllocationKind,
) -> List[UnallocatedDemand]:
    """Greedily place each project's hours into the buckets in list order.

    Mutates bucket state only. Returns the demand that found no room, either
    because the project starts past the last bucket or because every bucket
    from its start index on was already full.
    """
    unallocated: List[UnallocatedDemand] = []
    for project in projects:
        remaining = project.demand_hours()
        if remaining <= 0:
            continue
        start_idx = start_index_for(project, buckets)
        if start_idx >= len(buckets):
            logger.debug("%s %s starts beyond the horizon", kind, project.id)
            unallocated.append(
                UnallocatedDemand(project.id, project.name, kind, remaining, "beyond_horizon")
            )
            continue
        for bucket in buckets[start_idx:]:
            if remaining <= 0:
                break
            available = bucket.available_hours()
            if available <= 0:
                continue
            share = min(available, remaining)
            bucket.assign(project, share, kind)
            remaining -= share
            logger.debug(
                "week %d: %.2f h to %s %s (%.2f h left)",
                bucket.week_index,
                share,
                kind,
                project.id,
                remaining,
            )
        if remaining > 0:
            unallocated.append(
                UnallocatedDemand(project.id, project.name, kind, remaining, "insufficient_capacity")
            )
    return unallocated


def build_forecast(
    projects: Sequence[ProjectDemand],
    pending_projects: Sequence[ProjectDemand],
    company_settings: CompanySettings,
    options: Optional[ForecastOptions] = None,
    threshold: Optional[float] = None,
) -> ForecastSummary:
    opts = options or ForecastOptions()
    shift = opts.shift_multiplier
    weeks = opts.weeks
    if weeks is None:
        weeks = company_settings.backlog_forecast_weeks
    if weeks is None:
        weeks = DEFAULT_FORECAST_WEEKS
    weekly_capacity = max(0.0, (company_settings.shop_capacity_hours_per_week or 0.0) * shift)

    buckets = build_week_buckets(opts.start_date, weeks, weekly_capacity)
    committed = sort_projects(projects)
    pending = sort_pending_projects(project for project in pending_projects if not project.archived)

    unallocated = allocate_projects(buckets, committed, "committed")
    if pending:
        unallocated.extend(allocate_projects(buckets, pending, "pending"))

    total_committed = sum((project.demand_hours() for project in committed), 0.0)
    total_pending = sum((project.demand_hours() for project in pending), 0.0)
    monthly_capacity = weekly_capacity * WEEKS_PER_MONTH
    backlog_months = total_committed / monthly_capacity if monthly_capacity > 0 else 0.0

    if unallocated:
        logger.info(
            "%.2f h across %d project(s) could not be scheduled within %d weeks from %s",
            sum(item.hours for item in unallocated),
            len(unallocated),
            weeks,
            buckets[0].start_date.date().isoformat() if buckets else "n/a",
        )

    analyzer = UtilizationAnalyzer(buckets, _resolve_threshold(company_settings, threshold))
    analysis = analyzer.analyze()

    return ForecastSummary(
        total_committed_hours=total_committed,
        total_pending_hours=total_pending,
        total_remaining_hours=total_committed + total_pending,
        backlog_months=backlog_months,
        weekly_capacity=weekly_capacity,
        buckets=tuple(buckets),
        gaps=analysis.gaps,
        overloads=analysis.overloads,
        recommendations=analysis.recommendations,
        scenario=ForecastScenario(shift_multiplier=shift, weeks=weeks),
        unallocated=tuple(unallocated),
    )


def _resolve_threshold(settings: CompanySettings, threshold: Optional[float]) -> float:
    if threshold is not None:
        return threshold
    return settings.under_utilized_threshold


def compare_scenarios(
    projects: Sequence[ProjectDemand],
    pending_projects: Sequence[ProjectDemand],
    company_settings: CompanySettings,
    shift_multipliers: Iterable[float],
    options: Optional[ForecastOptions] = None,
    threshold: Optional[float] = None,
) -> List[ForecastSummary]:
    base = options or ForecastOptions()
    if base.start_date is None:
        # Pin the anchor so every scenario shares week 0.
        base = replace(base, start_date=week_start(date.today()).date())
    return [
        build_forecast(
            projects,
            pending_projects,
            company_settings,
            replace(base, shift_multiplier=multiplier),
            threshold,
        )
        for multiplier in shift_multipliers
    ]
