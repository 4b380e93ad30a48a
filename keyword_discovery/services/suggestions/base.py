from abc import ABC, abstractmethod
from typing import List, Optional


class KeywordSuggestionProvider(ABC):
    """
    Contract for the generative keyword source used by the strategy generator.

    suggest() may return fewer keywords than requested and must give up within a
    bounded time. Failures raise KeywordSuggestionError.
    """

    @abstractmethod
    async def suggest(
        self,
        category: str,
        audience_hint: str = "",
        count: int = 10,
        reference_keyword: Optional[str] = None,
    ) -> List[str]:
        pass
