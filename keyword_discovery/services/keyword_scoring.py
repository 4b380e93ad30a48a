"""
Purpose: Deterministic keyword scoring from App Store signals.

Role: Turns a keyword into popularity / difficulty / competitor numbers using two
catalog calls (ranked search results and autocomplete hints). The formula
functions are pure; KeywordScorer only fetches the inputs.

Two opportunity formulas live here and are NOT interchangeable:
- weighted_opportunity_score(): discovery / filtering path (filter_and_sort_keywords).
- ratio_opportunity_score(): stored on per-job KeywordSearchResult rows so values
  stay comparable across cycles of the same job.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from keyword_discovery.services.appstore.base import AppCatalog

logger = logging.getLogger(__name__)

NO_COMPETITION_DIFFICULTY = 10
MIN_POPULARITY = 5
MAX_SCORE = 100

TOP_APPS_LIMIT = 5
RELATED_TERMS_LIMIT = 10

DIFFICULTY_WEIGHTS = {
    "avg_rating": 15,
    "avg_rating_count": 35,
    "top_app_strength": 30,
    "competitor_count": 20,
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _rating(app: Dict[str, Any]) -> float:
    return float(app.get("rating") or 0)


def _rating_count(app: Dict[str, Any]) -> float:
    return float(app.get("rating_count") or 0)


def calculate_difficulty(search_results: Sequence[Dict[str, Any]]) -> int:
    """Difficulty 0-100 (higher = harder) from the ranked search results."""
    if not search_results:
        return NO_COMPETITION_DIFFICULTY

    count = len(search_results)
    score = 0.0

    avg_rating = sum(_rating(app) for app in search_results) / count
    score += (avg_rating / 5) * DIFFICULTY_WEIGHTS["avg_rating"]

    avg_rating_count = sum(_rating_count(app) for app in search_results) / count
    score += min(avg_rating_count / 100_000, 1) * DIFFICULTY_WEIGHTS["avg_rating_count"]

    # Strength of the (up to) three leading apps
    top_apps = search_results[:3]
    top_strength = sum(
        0.3 * (_rating(app) / 5) + 0.7 * min(_rating_count(app) / 500_000, 1)
        for app in top_apps
    ) / len(top_apps)
    score += top_strength * DIFFICULTY_WEIGHTS["top_app_strength"]

    score += min(count / 10, 1) * DIFFICULTY_WEIGHTS["competitor_count"]

    return min(round_half_up(score), MAX_SCORE)


def estimate_popularity(
    keyword: str,
    suggestions: Sequence[Dict[str, Any]],
    search_results: Sequence[Dict[str, Any]],
) -> int:
    """Popularity 5-100 estimated from autocomplete placement, result ratings and length."""
    score = float(MIN_POPULARITY)
    needle = keyword.strip().lower()

    match = next(
        (s for s in suggestions if str(s.get("keyword", "")).strip().lower() == needle),
        None,
    )
    if match is not None:
        position = match.get("position")
        if position is None:
            position = suggestions.index(match) + 1
        score += max(0, 50 - 5 * position)
        priority = match.get("priority")
        if priority:
            score += min(priority / 2, 25)

    if search_results:
        avg_rating_count = sum(_rating_count(app) for app in search_results) / len(search_results)
        score += min(avg_rating_count / 10_000, 20)

    length = len(keyword.strip())
    if length <= 5:
        score += 10
    elif length <= 10:
        score += 5

    return min(round_half_up(score), MAX_SCORE)


def weighted_opportunity_score(popularity: float, difficulty: float) -> int:
    """
    Discovery ranking score 0-100: 60% popularity, 40% ease.

    Ease is 1.0 up to difficulty 30, falls linearly to 0.3 at 60 and stays there.
    """
    if difficulty <= 30:
        diff_score = 1.0
    elif difficulty <= 60:
        diff_score = 1.0 - ((difficulty - 30) / 30) * 0.7
    else:
        diff_score = 0.3

    return round_half_up((popularity / 100) * 0.6 * 100 + diff_score * 0.4 * 100)


def ratio_opportunity_score(popularity: float, difficulty: float) -> int:
    """Per-job result score: popularity over difficulty, scaled by ten."""
    divisor = difficulty if difficulty else 1
    return round_half_up((popularity / divisor) * 10)


@dataclass
class KeywordAnalysis:
    keyword: str
    country: str
    popularity: int
    difficulty: int
    competitor_count: int
    top_apps: List[Dict[str, Any]] = field(default_factory=list)
    related_terms: List[str] = field(default_factory=list)
    opportunity_score: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "country": self.country,
            "popularity": self.popularity,
            "difficulty": self.difficulty,
            "competitor_count": self.competitor_count,
            "top_apps": self.top_apps,
            "related_terms": self.related_terms,
            "opportunity_score": self.opportunity_score,
        }


class KeywordScorer:
    """Fetches catalog signals for a keyword and applies the scoring formulas."""

    def __init__(self, catalog: AppCatalog, search_limit: int = 10):
        self.catalog = catalog
        self.search_limit = search_limit

    async def analyze(self, keyword: str, country: str = "us") -> KeywordAnalysis:
        """
        Score one keyword.

        Raises whatever the catalog search raises; callers decide how to absorb it.
        """
        search_results = await self.catalog.search(keyword, country, self.search_limit)
        suggestions = await self.catalog.autocomplete(keyword, country)

        top_apps = [
            {
                "rank": index + 1,
                "id": app.get("id"),
                "name": app.get("name"),
                "developer": app.get("developer"),
                "rating": app.get("rating"),
                "rating_count": app.get("rating_count"),
                "icon": app.get("icon"),
            }
            for index, app in enumerate(search_results[:TOP_APPS_LIMIT])
        ]

        return KeywordAnalysis(
            keyword=keyword,
            country=country,
            popularity=estimate_popularity(keyword, suggestions, search_results),
            difficulty=calculate_difficulty(search_results),
            competitor_count=len(search_results),
            top_apps=top_apps,
            related_terms=[s["keyword"] for s in suggestions[:RELATED_TERMS_LIMIT]],
        )

    async def analyze_many(self, keywords: Sequence[str], country: str = "us") -> List[Dict[str, Any]]:
        """
        Score several keywords concurrently; one entry per keyword, failures included.

        Library helper for ad-hoc discovery (no job or route calls it); entries carry
        the weighted opportunity score, not the per-job ratio score.
        """
        outcomes = await asyncio.gather(
            *(self.analyze(keyword, country) for keyword in keywords),
            return_exceptions=True,
        )

        results = []
        for keyword, outcome in zip(keywords, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Analysis failed for '{keyword}': {outcome}")
                results.append({"keyword": keyword, "success": False, "data": None, "error": str(outcome)})
            else:
                outcome.opportunity_score = weighted_opportunity_score(outcome.popularity, outcome.difficulty)
                results.append({"keyword": keyword, "success": True, "data": outcome, "error": None})
        return results


SORT_KEYS = {
    "opportunity_score": (lambda k: k.opportunity_score or 0, True),
    "popularity": (lambda k: k.popularity, True),
    "difficulty": (lambda k: k.difficulty, False),
    "competitor_count": (lambda k: k.competitor_count, False),
}


def filter_and_sort_keywords(
    keywords: Sequence[KeywordAnalysis],
    filters: Optional[Dict[str, Any]] = None,
    sort_by: str = "opportunity_score",
) -> List[KeywordAnalysis]:
    """
    Filter analysed keywords by min/max bounds and sort them.

    Library helper for ad-hoc discovery; job results are ranked by
    get_job_details() on their stored ratio score instead.

    Missing opportunity scores are filled with weighted_opportunity_score().
    Supported filters: min_popularity, max_popularity, min_difficulty,
    max_difficulty, min_opportunity_score, max_competitors.
    """
    filters = filters or {}

    for item in keywords:
        if item.opportunity_score is None:
            item.opportunity_score = weighted_opportunity_score(item.popularity, item.difficulty)

    def keep(item: KeywordAnalysis) -> bool:
        if filters.get("min_popularity") is not None and item.popularity < filters["min_popularity"]:
            return False
        if filters.get("max_popularity") is not None and item.popularity > filters["max_popularity"]:
            return False
        if filters.get("min_difficulty") is not None and item.difficulty < filters["min_difficulty"]:
            return False
        if filters.get("max_difficulty") is not None and item.difficulty > filters["max_difficulty"]:
            return False
        if filters.get("min_opportunity_score") is not None and item.opportunity_score < filters["min_opportunity_score"]:
            return False
        if filters.get("max_competitors") is not None and item.competitor_count > filters["max_competitors"]:
            return False
        return True

    filtered = [item for item in keywords if keep(item)]

    if sort_by in SORT_KEYS:
        key, descending = SORT_KEYS[sort_by]
        filtered.sort(key=key, reverse=descending)
    return filtered
