"""
Bid pipeline forecast.

Weights open bids by their win probability so the pending side of the shop
load can be read as expected dollars:
- PUBLIC bids use a capped baseline win rate
- PRIVATE bids use a per-stage probability map
- Manual overrides win over both
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, Literal, Optional

BidType = Literal["PUBLIC", "PRIVATE"]
BidStatus = Literal["ACTIVE", "AWARDED", "LOST", "ARCHIVED"]

BID_STAGES = (
    "BUDGET",
    "PROPOSAL_SUBMITTED",
    "SHORTLISTED",
    "NEGOTIATION",
    "VERBAL",
    "AWARDED",
    "LOST",
)
BID_STATUSES = ("ACTIVE", "AWARDED", "LOST", "ARCHIVED")

DEFAULT_PRIVATE_STAGE_PROBABILITIES: Dict[str, float] = {
    "BUDGET": 0.20,
    "PROPOSAL_SUBMITTED": 0.35,
    "SHORTLISTED": 0.55,
    "NEGOTIATION": 0.75,
    "VERBAL": 0.90,
    "AWARDED": 1.00,
    "LOST": 0.00,
}
DEFAULT_PUBLIC_BASELINE_WIN_RATE = 0.10
PUBLIC_MIN_PROBABILITY = 0.02
PUBLIC_MAX_PROBABILITY = 0.25


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


@dataclass(frozen=True)
class Bid:
    id: str
    project_name: str
    bid_type: BidType
    bid_amount: float
    bid_due_date: date
    status: BidStatus = "ACTIVE"
    stage: Optional[str] = None
    probability: Optional[float] = None
    probability_override: Optional[float] = None
    project_id: Optional[str] = None
    client_name: Optional[str] = None


@dataclass(frozen=True)
class ForecastContext:
    public_baseline_win_rate: float = DEFAULT_PUBLIC_BASELINE_WIN_RATE
    private_stage_probabilities: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_PRIVATE_STAGE_PROBABILITIES)
    )

    def stage_probability(self, stage: Optional[str]) -> float:
        probabilities = self.private_stage_probabilities
        budget = probabilities.get("BUDGET", DEFAULT_PRIVATE_STAGE_PROBABILITIES["BUDGET"])
        if stage is None:
            return budget
        return probabilities.get(stage, budget)


@dataclass
class BidForecastTotals:
    total: float = 0.0
    public_total: float = 0.0
    private_total: float = 0.0
    by_stage: Dict[str, float] = field(default_factory=lambda: {stage: 0.0 for stage in BID_STAGES})
    count_total: int = 0
    count_public: int = 0
    count_private: int = 0
    count_by_status: Dict[str, int] = field(default_factory=lambda: {status: 0 for status in BID_STATUSES})

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "public_total": self.public_total,
            "private_total": self.private_total,
            "by_stage": dict(self.by_stage),
            "counts": {
                "total": self.count_total,
                "public": self.count_public,
                "private": self.count_private,
                "by_status": dict(self.count_by_status),
            },
        }


def compute_bid_probability(bid: Bid, context: Optional[ForecastContext] = None) -> float:
    ctx = context or ForecastContext()
    if bid.status != "ACTIVE":
        return 1.0 if bid.status == "AWARDED" else 0.0
    if bid.probability_override is not None:
        return _clamp(bid.probability_override, 0.0, 1.0)
    if bid.probability is not None:
        if bid.bid_type == "PUBLIC":
            return _clamp(bid.probability, PUBLIC_MIN_PROBABILITY, PUBLIC_MAX_PROBABILITY)
        return _clamp(bid.probability, 0.0, 1.0)
    if bid.bid_type == "PUBLIC":
        return _clamp(ctx.public_baseline_win_rate, PUBLIC_MIN_PROBABILITY, PUBLIC_MAX_PROBABILITY)
    if bid.bid_type == "PRIVATE":
        return ctx.stage_probability(bid.stage)
    return 0.0


def compute_expected_award(bid: Bid, context: Optional[ForecastContext] = None) -> float:
    return bid.bid_amount * compute_bid_probability(bid, context)


def calculate_bid_forecast(
    bids: Iterable[Bid],
    context: Optional[ForecastContext] = None,
    *,
    active_only: bool = True,
    date_horizon_days: Optional[int] = None,
    today: Optional[date] = None,
) -> BidForecastTotals:
    selected = list(bids)
    if active_only:
        selected = [bid for bid in selected if bid.status == "ACTIVE"]
    if date_horizon_days is not None:
        horizon = (today or date.today()) + timedelta(days=date_horizon_days)
        selected = [bid for bid in selected if bid.bid_due_date <= horizon]

    totals = BidForecastTotals(count_total=len(selected))
    for bid in selected:
        expected = compute_expected_award(bid, context)
        totals.total += expected
        if bid.bid_type == "PUBLIC":
            totals.public_total += expected
            totals.count_public += 1
        else:
            totals.private_total += expected
            totals.count_private += 1
            if bid.stage in totals.by_stage:
                totals.by_stage[bid.stage] += expected
        totals.count_by_status[bid.status] = totals.count_by_status.get(bid.status, 0) + 1
    return totals
