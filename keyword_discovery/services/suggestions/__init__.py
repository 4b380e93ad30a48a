from .base import KeywordSuggestionProvider
from .gemini import GeminiSuggestionProvider
