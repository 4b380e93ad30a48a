"""
Gemini-backed keyword suggestions for a category, optionally biased towards
variations of a reference keyword.
"""

import asyncio
import json
import logging
import re
from typing import List, Optional

import google.generativeai as genai

from keyword_discovery.core.exceptions import KeywordSuggestionError
from keyword_discovery.services.suggestions.base import KeywordSuggestionProvider

logger = logging.getLogger(__name__)

MAX_PARSED_KEYWORDS = 100

PROMPT_TEMPLATE = """You are an expert ASO strategist and keyword researcher. Generate a comprehensive list of keyword ideas for the "{category}" category in the App Store.

Target Audience: {audience}
Count Goal: {count}+ keywords{reference_context}

Generate diverse keyword variations including:

1. Primary Keywords - Core category terms (e.g., "fitness tracker", "workout app")
2. Feature Keywords - Specific features users search for (e.g., "calorie counter", "step tracker")
3. User Intent Keywords - What users type when they have a need (e.g., "lose weight fast")
4. Long-tail Keywords - Specific, less competitive phrases (e.g., "beginner home workout no equipment")
5. Synonym Variations - Different ways to express the same concept
6. Problem-Solution Keywords - Pain points users want to solve (e.g., "quick morning workout")
7. Modifiers - Combined with action words (e.g., "track calories", "count steps")

Return ONLY a JSON array of keyword strings: ["keyword1", "keyword2", "keyword3", ...]

Think like a user searching the App Store. Mix short and long-tail keywords. Aim for {count} diverse keywords."""

REFERENCE_TEMPLATE = (
    '\n\nIMPORTANT: Generate keywords that are RELATED TO or VARIATIONS OF the reference keyword: "{reference}". '
    "Include semantic variations, synonyms, long-tail versions, and problem-solution combinations around this core concept."
)


def build_prompt(category: str, audience_hint: str, count: int, reference_keyword: Optional[str]) -> str:
    reference_context = REFERENCE_TEMPLATE.format(reference=reference_keyword) if reference_keyword else ""
    return PROMPT_TEMPLATE.format(
        category=category,
        audience=audience_hint or "General users",
        count=count,
        reference_context=reference_context,
    )


def extract_keywords_from_lines(text: str) -> List[str]:
    """Pull quoted phrases out of free text when the model ignores the JSON format."""
    keywords = []
    for line in text.splitlines():
        for match in re.findall(r'"([^"]+)"', line):
            keyword = match.strip().lower()
            if 2 < len(keyword) < 50 and keyword not in keywords:
                keywords.append(keyword)
    return keywords[:MAX_PARSED_KEYWORDS]


def parse_keyword_response(content: str) -> List[str]:
    """Parse the model output: a JSON array if present, quoted phrases otherwise."""
    match = re.search(r"\[[\s\S]*\]", content or "")
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse keyword array, falling back to line extraction: {e}")
        else:
            return [str(item).strip() for item in parsed if isinstance(item, (str, int, float)) and str(item).strip()]
    return extract_keywords_from_lines(content or "")


class GeminiSuggestionProvider(KeywordSuggestionProvider):
    """Keyword ideas from a Gemini model, bounded by a per-call timeout."""

    def __init__(self, api_key: str, model_name: str = "gemini-1.5-flash", timeout: float = 30.0):
        self.timeout = timeout
        self.model_name = model_name
        if api_key:
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(model_name)
        else:
            logger.warning("GEMINI_API_KEY not configured. Keyword suggestions are disabled.")
            self.model = None

    @property
    def is_configured(self) -> bool:
        return self.model is not None

    async def suggest(
        self,
        category: str,
        audience_hint: str = "",
        count: int = 10,
        reference_keyword: Optional[str] = None,
    ) -> List[str]:
        if self.model is None:
            raise KeywordSuggestionError("Keyword suggestion provider not configured. Please set GEMINI_API_KEY.")

        prompt = build_prompt(category, audience_hint, count, reference_keyword)

        try:
            response = await asyncio.wait_for(self.model.generate_content_async(prompt), timeout=self.timeout)
            content = response.text
        except asyncio.TimeoutError:
            raise KeywordSuggestionError(f"Keyword suggestion timed out after {self.timeout}s for '{category}'")
        except Exception as e:
            raise KeywordSuggestionError(f"Keyword suggestion failed for '{category}': {str(e)}") from e

        keywords = parse_keyword_response(content)
        logger.info(f"Generated {len(keywords)} keyword ideas for category: {category}")
        return keywords
