from abc import ABC, abstractmethod
from typing import Any, Dict, List


class AppCatalog(ABC):
    """
    Contract for the app-catalog search collaborator used by keyword scoring.

    search() returns ranked app dicts carrying at least id, rating and
    rating_count. autocomplete() returns ordered dicts of keyword, priority
    and 1-based position, and should degrade to an empty list on failure.
    """

    @abstractmethod
    async def search(self, term: str, country: str = "us", limit: int = 10) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def autocomplete(self, term: str, country: str = "us") -> List[Dict[str, Any]]:
        pass
