"""
Utilization analysis for a filled weekly forecast.

Scans allocated buckets and turns them into:
- Gaps (weeks below the under-utilization threshold)
- Overloads (weeks above 100% utilization)
- Booking recommendations (how many hours to book into each gap)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .models import BookingRecommendation, CapacityGap, WeekBucket

logger = logging.getLogger(__name__)

SUGGESTED_MIN_FRACTION = 0.6


@dataclass(frozen=True)
class UtilizationAnalysis:
    gaps: Tuple[CapacityGap, ...]
    overloads: Tuple[WeekBucket, ...]
    recommendations: Tuple[BookingRecommendation, ...]


class UtilizationAnalyzer:
    """Read-only pass over final bucket state."""

    def __init__(self, buckets: Sequence[WeekBucket], threshold: float):
        self.buckets = buckets
        self.threshold = threshold

        self.gaps: List[CapacityGap] = []
        self.overloads: List[WeekBucket] = []
        self.recommendations: List[BookingRecommendation] = []

    def analyze(self) -> UtilizationAnalysis:
        self._scan_buckets()
        self._recommend_bookings()
        return UtilizationAnalysis(
            gaps=tuple(self.gaps),
            overloads=tuple(self.overloads),
            recommendations=tuple(self.recommendations),
        )

    def _scan_buckets(self):
        for bucket in self.buckets:
            utilization = bucket.utilization()
            if utilization is None:
                continue
            if utilization < self.threshold:
                self.gaps.append(
                    CapacityGap(
                        week_index=bucket.week_index,
                        start_date=bucket.start_date,
                        end_date=bucket.end_date,
                        used_hours=bucket.used_hours,
                        capacity_hours=bucket.capacity_hours,
                        utilization=utilization,
                    )
                )
            if utilization > 1.0:
                # Allocation clamps to available capacity, so this signals a broken invariant.
                logger.warning(
                    "week %d over capacity: %.2f of %.2f h used",
                    bucket.week_index,
                    bucket.used_hours,
                    bucket.capacity_hours,
                )
                self.overloads.append(bucket)

    def _recommend_bookings(self):
        for gap in self.gaps:
            available = gap.capacity_hours - gap.used_hours
            self.recommendations.append(
                BookingRecommendation(
                    week_index=gap.week_index,
                    start_date=gap.start_date,
                    end_date=gap.end_date,
                    available_hours=available,
                    suggested_min_hours=max(0.0, available * SUGGESTED_MIN_FRACTION),
                    suggested_max_hours=available,
                )
            )
