"""
Core module exports.
"""
from .enums import (
    JobStatus,
    KeywordStrategy,
    ResultStatus,
)

from .exceptions import (
    BaseServiceError,
    KeywordJobError,
    JobNotFoundError,
    JobAlreadyRunningError,
    JobNotRunningError,
    ValidationError,
    ProviderError,
    AppStoreAPIError,
    KeywordSuggestionError,
)
