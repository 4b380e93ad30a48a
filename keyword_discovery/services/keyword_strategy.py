"""
Candidate keyword sourcing for job cycles.

Each strategy asks the suggestion provider for ideas and keeps only keywords the
job has not used yet. Provider failures are logged and skipped, so generate()
can come back short (or empty) but never raises.
"""

import asyncio
import logging
import math
import random
from typing import Awaitable, Callable, Iterable, List, Optional, Set, Union

from keyword_discovery.core.enums import DEFAULT_SEED_CATEGORY, KeywordStrategy
from keyword_discovery.services.suggestions.base import KeywordSuggestionProvider

logger = logging.getLogger(__name__)

ALL_CATEGORIES = [
    "Health & Fitness",
    "Productivity",
    "Finance",
    "Education",
    "Entertainment",
    "Social Networking",
    "Games",
    "Travel",
    "Food & Drink",
    "Shopping",
    "Lifestyle",
    "Business",
    "Medical",
    "Sports",
    "Music",
    "News",
    "Weather",
    "Utilities",
    "Navigation",
    "Photo & Video",
    "Reference",
    "Books",
    "Magazines & Newspapers",
    "Developer Tools",
    "Graphics & Design",
    "Stickers",
    "Home & Garden",
    "Parenting",
    "Pets",
    "Dating",
    "Kids",
    "Mind & Body",
    "Self-improvement",
    "Cooking",
    "Real Estate",
    "Investment",
    "Language Learning",
    "Mental Health",
    "Meditation",
    "Sleep",
    "Water Tracking",
]

TRENDING_CATEGORIES = ["Health & Fitness", "Productivity", "Finance", "Education", "Entertainment"]

MAX_RANDOM_CATEGORIES = 15
CATEGORY_MAX_ATTEMPTS = 3


def normalize_keyword(keyword) -> str:
    return str(keyword).strip().lower()


class KeywordStrategyGenerator:
    """Produces up to N unused, normalised keywords for a job's strategy."""

    def __init__(
        self,
        provider: KeywordSuggestionProvider,
        call_delay: float = 1.0,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.call_delay = call_delay
        self.rng = rng or random.Random()
        self._sleep = sleep

    def random_categories(self, count: int) -> List[str]:
        """Unbiased sample of the category catalog (Fisher-Yates via random.shuffle)."""
        shuffled = list(ALL_CATEGORIES)
        self.rng.shuffle(shuffled)
        return shuffled[:min(count, len(shuffled))]

    async def generate(
        self,
        strategy: Union[KeywordStrategy, str],
        seed_category: Optional[str],
        count: int,
        used_keywords: Iterable[str],
    ) -> List[str]:
        """
        Return at most `count` distinct lower-cased keywords absent from used_keywords.

        Args:
            strategy: random, category or trending
            seed_category: category for the `category` strategy (falls back to Health & Fitness)
            count: number of keywords wanted this cycle
            used_keywords: everything the job has produced so far
        """
        if count <= 0:
            return []

        used = {normalize_keyword(k) for k in used_keywords}
        collected: List[str] = []

        try:
            strategy = KeywordStrategy(strategy)
            if strategy == KeywordStrategy.RANDOM:
                await self._random(count, used, collected)
            elif strategy == KeywordStrategy.CATEGORY:
                await self._category(seed_category or DEFAULT_SEED_CATEGORY, count, used, collected)
            elif strategy == KeywordStrategy.TRENDING:
                await self._trending(count, used, collected)
        except Exception as e:
            logger.error(f"Error generating keywords for strategy '{strategy}': {str(e)}")
            return []

        keywords = collected[:count]
        if len(keywords) < count:
            logger.warning(f"Only generated {len(keywords)} keywords out of requested {count}")
        return keywords

    @staticmethod
    def _collect(candidates: Iterable[str], used: Set[str], collected: List[str], limit: int) -> int:
        """Append up to `limit` new keywords to collected; returns how many were added."""
        added = 0
        for candidate in candidates:
            if added >= limit:
                break
            keyword = normalize_keyword(candidate)
            if not keyword or keyword in used or keyword in collected:
                continue
            collected.append(keyword)
            added += 1
        return added

    async def _pause(self) -> None:
        if self.call_delay > 0:
            await self._sleep(self.call_delay)

    async def _random(self, count: int, used: Set[str], collected: List[str]) -> None:
        categories = self.random_categories(min(count * 2, MAX_RANDOM_CATEGORIES))
        per_request = max(3, math.ceil(count / 2))
        per_category = math.ceil(count / 3)

        for index, category in enumerate(categories):
            if len(collected) >= count:
                break
            if index:
                await self._pause()
            try:
                suggestions = await self.provider.suggest(category, "", per_request, None)
            except Exception as e:
                logger.error(f"Error generating keywords for category {category}: {str(e)}")
                continue
            self._collect(suggestions, used, collected, min(per_category, count - len(collected)))

    async def _category(self, category: str, count: int, used: Set[str], collected: List[str]) -> None:
        for attempt in range(CATEGORY_MAX_ATTEMPTS):
            if len(collected) >= count:
                break
            if attempt:
                await self._pause()
            # Bias retries towards variants of what we already have
            reference = collected[0] if attempt > 0 and collected else None
            try:
                suggestions = await self.provider.suggest(category, "", count * 2, reference)
            except Exception as e:
                logger.error(f"Error generating category keywords (attempt {attempt + 1}): {str(e)}")
                continue
            self._collect(suggestions, used, collected, count - len(collected))

    async def _trending(self, count: int, used: Set[str], collected: List[str]) -> None:
        per_category = math.ceil(count / len(TRENDING_CATEGORIES))

        for index, category in enumerate(TRENDING_CATEGORIES):
            if len(collected) >= count:
                break
            if index:
                await self._pause()
            try:
                suggestions = await self.provider.suggest(category, "", per_category * 2, None)
            except Exception as e:
                logger.error(f"Error generating trending keywords for {category}: {str(e)}")
                continue
            self._collect(suggestions, used, collected, min(per_category, count - len(collected)))
