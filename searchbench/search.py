from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .client import RETURN_FIELDS, SearchResult

CTR_TIERS: tuple[tuple[float, float], ...] = ((0.05, 3.5), (0.02, 1.75))
RELEVANCE_TIERS: tuple[tuple[float, float], ...] = ((0.8, 2.0), (0.5, 1.0))
LANDING_TIERS: tuple[tuple[float, float], ...] = ((0.7, 3.5), (0.4, 1.75))


@dataclass(frozen=True)
class AdResult:
    key: str
    term: str
    score: float


def parse_float(value: str | None) -> float:
    try:
        return float(value) if value is not None else 0.0
    except ValueError:
        return 0.0


def _points(value: float, tiers: tuple[tuple[float, float], ...]) -> float:
    for threshold, points in tiers:
        if value > threshold:
            return points
    return 0.0


def quality_score(fields: Mapping[str, str]) -> float:
    """Score an ad from its returned fields; higher is better.

    ``sim_score`` is a cosine distance, so closer ads keep more of their score.
    """
    score = (
        1.0
        + _points(parse_float(fields.get("expected_ctr")), CTR_TIERS)
        + _points(parse_float(fields.get("ad_relevance")), RELEVANCE_TIERS)
        + _points(parse_float(fields.get("landing_experience")), LANDING_TIERS)
    )
    return score * (1.0 - parse_float(fields.get("sim_score")))


def rank_results(result: SearchResult) -> list[AdResult]:
    ads: list[AdResult] = []
    for hit in result.hits:
        fields = hit.field_map()
        if any(name not in fields for name in RETURN_FIELDS):
            continue
        ads.append(AdResult(key=hit.key, term=fields["search_term"], score=quality_score(fields)))
    ads.sort(key=lambda ad: ad.score, reverse=True)
    return ads


def format_ranked(term: str, result: SearchResult, ads: list[AdResult]) -> str:
    lines = [f"Found {result.total} results for '{term}', ranked by quality score:"]
    lines.extend(f"{ad.key} (Term: {ad.term}): {ad.score:.1f}" for ad in ads)
    return "\n".join(lines)
