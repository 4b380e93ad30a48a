import logging
import httpx
from cachetools import TTLCache
from typing import Dict, List, Optional, Any, Tuple

from keyword_discovery.core.exceptions import AppStoreAPIError
from keyword_discovery.services.appstore.base import AppCatalog

logger = logging.getLogger(__name__)


# iTunes storefront ids used by the search hints endpoint
STOREFRONT_IDS = {
    "us": 143441,
    "gb": 143444,
    "ca": 143455,
    "au": 143460,
    "de": 143443,
    "fr": 143442,
    "jp": 143462,
    "kr": 143466,
    "cn": 143465,
    "br": 143503,
    "mx": 143468,
    "es": 143454,
    "it": 143450,
    "nl": 143452,
    "ru": 143469,
    "in": 143467,
    "se": 143456,
    "sg": 143464,
    "tw": 143470,
    "hk": 143463,
}


class AppStoreClient(AppCatalog):
    """
    Asynchronous client for the public App Store catalog.

    Functionality:
        - search(): ranked app search through the iTunes Search API, normalised to
          plain dicts (id, name, developer, rating, rating_count, ...).
        - autocomplete(): search hints with a priority per suggestion. Failures are
          logged and turned into an empty list so scoring can carry on.

    Requests go through _make_request(), which raises AppStoreAPIError for non-2xx
    responses, network errors and timeouts.

    Successful search and hint responses are kept in in-memory TTL caches keyed by
    (term, country[, limit]), so jobs scoring the same keyword within cache_ttl
    seconds share one catalog call. Failures are never cached. cache_ttl <= 0
    disables caching.
    """

    SEARCH_BASE_URL = "https://itunes.apple.com"
    SEARCH_HINTS_URL = "https://search.itunes.apple.com/WebObjects/MZSearchHints.woa/wa/hints"
    USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

    def __init__(self, timeout: float = 10.0, cache_ttl: float = 1800, cache_maxsize: int = 1000):
        self.timeout = timeout
        if cache_ttl and cache_ttl > 0:
            self._search_cache: Optional[TTLCache] = TTLCache(maxsize=cache_maxsize, ttl=cache_ttl)
            self._hints_cache: Optional[TTLCache] = TTLCache(maxsize=cache_maxsize, ttl=cache_ttl)
        else:
            self._search_cache = None
            self._hints_cache = None

    @staticmethod
    def _cache_key(term: str, country: str, *extra) -> Tuple:
        return ((term or "").strip().lower(), (country or "us").lower()) + extra

    def clear_cache(self) -> None:
        for cache in (self._search_cache, self._hints_cache):
            if cache is not None:
                cache.clear()

    def _get_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.USER_AGENT,
            "Accept": "application/json",
        }

    async def _make_request(self, url: str, params: Optional[Dict] = None) -> Dict:
        """
        GET a catalog endpoint and return the decoded JSON body.

        Raises:
            AppStoreAPIError: If the request fails
        """
        logger.debug(f"App Store request: {url} params={params}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method="GET",
                    url=url,
                    headers=self._get_headers(),
                    params=params
                )

                if response.status_code != 200:
                    logger.error(f"App Store API error {response.status_code}: {response.text[:200]}")
                    raise AppStoreAPIError(f"Request failed ({response.status_code}): {response.text[:200]}")

                return response.json()

        except AppStoreAPIError:
            raise
        except httpx.TimeoutException as e:
            logger.error(f"Timeout error: {str(e)}")
            raise AppStoreAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Network error: {str(e)}")
            raise AppStoreAPIError(f"Network error: {str(e)}")
        except ValueError as e:
            logger.error(f"Invalid JSON from App Store: {str(e)}")
            raise AppStoreAPIError(f"Invalid response: {str(e)}")

    @staticmethod
    def get_storefront_id(country: str) -> int:
        return STOREFRONT_IDS.get((country or "us").lower(), STOREFRONT_IDS["us"])

    @staticmethod
    def _normalise_app(app: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": app.get("trackId"),
            "bundle_id": app.get("bundleId"),
            "name": app.get("trackName"),
            "developer": app.get("artistName"),
            "icon": app.get("artworkUrl100"),
            "price": app.get("price"),
            "currency": app.get("currency"),
            "rating": app.get("averageUserRating") or 0,
            "rating_count": app.get("userRatingCount") or 0,
            "category": app.get("primaryGenreName"),
            "url": app.get("trackViewUrl"),
        }

    async def search(self, term: str, country: str = "us", limit: int = 10) -> List[Dict[str, Any]]:
        """Search apps for a term; raises AppStoreAPIError on failure."""
        key = self._cache_key(term, country, limit)
        cached = self._search_cache.get(key) if self._search_cache is not None else None
        if cached is not None:
            logger.debug(f"App Store search cache hit: {key}")
            return list(cached)

        data = await self._make_request(
            f"{self.SEARCH_BASE_URL}/search",
            params={
                "term": term,
                "country": country,
                "media": "software",
                "entity": "software",
                "limit": limit,
            },
        )
        apps = [self._normalise_app(app) for app in data.get("results", [])]
        if self._search_cache is not None:
            self._search_cache[key] = apps
        return list(apps)

    async def autocomplete(self, term: str, country: str = "us") -> List[Dict[str, Any]]:
        """Search hints for a term, or [] when the hints endpoint fails."""
        key = self._cache_key(term, country)
        cached = self._hints_cache.get(key) if self._hints_cache is not None else None
        if cached is not None:
            return list(cached)

        try:
            data = await self._make_request(
                self.SEARCH_HINTS_URL,
                params={
                    "clientApplication": "Software",
                    "term": term,
                    "storefront": self.get_storefront_id(country),
                },
            )
        except AppStoreAPIError as e:
            logger.warning(f"Search hints unavailable for '{term}' ({country}): {e}")
            return []

        suggestions = []
        for index, hint in enumerate(data.get("hints") or []):
            keyword = hint.get("term")
            if not keyword:
                continue
            suggestions.append({
                "keyword": keyword,
                # Estimated priority when Apple omits one
                "priority": hint.get("priority") or (100 - index * 5),
                "position": index + 1,
            })

        if self._hints_cache is not None:
            self._hints_cache[key] = suggestions
        return list(suggestions)
