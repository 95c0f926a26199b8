"""Influencer score and rank.

The score is a fixed weighted sum of four components, each capped to 0-100:

* consideration: average consideration comments, 50 per campaign = 100
* engagement: average likes, 1000 per campaign = 100
* efficiency: cost per like, 50 or less = 100, 200 or more = 0, unknown = 50
* reliability: on-time posting rate, 80 when not computed

The total is rounded half-up and banded into S/A/B/C.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Mapping

CONSIDERATION_COMMENTS_BASE = 50
AVG_LIKES_BASE = 1000
COST_PER_LIKE_THRESHOLD = 200
COST_PER_LIKE_RANGE = 150
DEFAULT_EFFICIENCY = 50
DEFAULT_RELIABILITY = 80

WEIGHT_CONSIDERATION = 0.40
WEIGHT_ENGAGEMENT = 0.25
WEIGHT_EFFICIENCY = 0.20
WEIGHT_RELIABILITY = 0.15


class Rank(str, Enum):
    S = "S"
    A = "A"
    B = "B"
    C = "C"


RANK_THRESHOLDS = ((Rank.S, 75), (Rank.A, 55), (Rank.B, 35))


@dataclass(frozen=True)
class ScoreInput:
    avg_consideration_comments: float
    avg_likes: float
    cost_per_like: float
    on_time_rate: float | None = None


@dataclass(frozen=True)
class ScoreResult:
    consideration_score: float
    engagement_score: float
    efficiency_score: float
    reliability_score: float
    total_score: int
    rank: Rank


@dataclass(frozen=True)
class CampaignStats:
    total_campaigns: int
    total_likes: float
    total_comments: float
    total_spent: float
    total_consideration_comments: float
    avg_likes: float
    avg_consideration_comments: float
    cost_per_like: float
    on_time_rate: float

    def score_input(self) -> ScoreInput:
        return ScoreInput(
            avg_consideration_comments=self.avg_consideration_comments,
            avg_likes=self.avg_likes,
            cost_per_like=self.cost_per_like,
            on_time_rate=self.on_time_rate,
        )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def consideration_score(avg_consideration_comments: float) -> float:
    return min(100.0, avg_consideration_comments / CONSIDERATION_COMMENTS_BASE * 100)


def engagement_score(avg_likes: float) -> float:
    return min(100.0, avg_likes / AVG_LIKES_BASE * 100)


def efficiency_score(cost_per_like: float) -> float:
    if cost_per_like <= 0:
        return float(DEFAULT_EFFICIENCY)
    raw = (COST_PER_LIKE_THRESHOLD - cost_per_like) / COST_PER_LIKE_RANGE * 100
    return max(0.0, min(100.0, raw))


def determine_rank(total_score: float) -> Rank:
    for rank, threshold in RANK_THRESHOLDS:
        if total_score >= threshold:
            return rank
    return Rank.C


def score(score_input: ScoreInput) -> ScoreResult:
    consideration = consideration_score(score_input.avg_consideration_comments)
    engagement = engagement_score(score_input.avg_likes)
    efficiency = efficiency_score(score_input.cost_per_like)
    reliability = DEFAULT_RELIABILITY if score_input.on_time_rate is None else score_input.on_time_rate

    total = _round_half_up(
        consideration * WEIGHT_CONSIDERATION
        + engagement * WEIGHT_ENGAGEMENT
        + efficiency * WEIGHT_EFFICIENCY
        + reliability * WEIGHT_RELIABILITY
    )
    return ScoreResult(
        consideration_score=consideration,
        engagement_score=engagement,
        efficiency_score=efficiency,
        reliability_score=float(reliability),
        total_score=total,
        rank=determine_rank(total),
    )


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def stats_from_campaigns(campaigns: Iterable[Mapping[str, Any]]) -> CampaignStats:
    rows = list(campaigns)
    total = len(rows)
    if total == 0:
        return CampaignStats(0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 100.0)

    total_likes = sum(_number(c.get("likes")) for c in rows)
    total_comments = sum(_number(c.get("comments")) for c in rows)
    total_spent = sum(_number(c.get("agreed_amount")) for c in rows)
    total_consideration = sum(_number(c.get("consideration_comment")) for c in rows)

    with_deadline = 0
    on_time = 0
    for c in rows:
        desired = _as_date(c.get("desired_post_date"))
        posted = _as_date(c.get("post_date"))
        if desired is None or posted is None:
            continue
        with_deadline += 1
        if posted <= desired:
            on_time += 1

    return CampaignStats(
        total_campaigns=total,
        total_likes=total_likes,
        total_comments=total_comments,
        total_spent=total_spent,
        total_consideration_comments=total_consideration,
        avg_likes=total_likes / total,
        avg_consideration_comments=total_consideration / total,
        cost_per_like=total_spent / total_likes if total_likes > 0 else 0.0,
        on_time_rate=on_time / with_deadline * 100 if with_deadline else 100.0,
    )


def rank_influencers(
    influencers: Iterable[Mapping[str, Any]],
    campaigns: Iterable[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    by_influencer: dict[Any, list[Mapping[str, Any]]] = defaultdict(list)
    for campaign in campaigns:
        by_influencer[campaign.get("influencer_id")].append(campaign)

    ranking: list[dict[str, Any]] = []
    for influencer in influencers:
        stats = stats_from_campaigns(by_influencer.get(influencer.get("id"), []))
        if stats.total_campaigns:
            result = score(stats.score_input())
            total_score, rank = result.total_score, result.rank
        else:
            total_score, rank = 0, Rank.C
        row = dict(influencer)
        row.update(asdict(stats))
        row["score"] = total_score
        row["rank"] = rank.value
        ranking.append(row)

    ranking.sort(key=lambda r: (-r["score"], -r["total_campaigns"], str(r.get("insta_name") or r.get("tiktok_name") or "")))
    return ranking
