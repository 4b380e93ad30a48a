class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class KeywordJobError(BaseServiceError):
    """Base exception for keyword job lifecycle errors."""
    pass

class JobNotFoundError(KeywordJobError):
    """Raised when a keyword job does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Job not found")

class JobAlreadyRunningError(KeywordJobError):
    """Raised when starting a job that is already running."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Job is already running")

class JobNotRunningError(KeywordJobError):
    """Raised when stopping a job that is not running."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Job is not running")

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass

class ProviderError(BaseServiceError):
    """Base exception for external provider errors."""
    pass

class AppStoreAPIError(ProviderError):
    """Raised when App Store catalog calls fail."""
    pass

class KeywordSuggestionError(ProviderError):
    """Raised when the keyword suggestion provider fails or is not configured."""
    pass
