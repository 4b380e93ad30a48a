from .keyword_job import KeywordSearchJob, KeywordSearchResult
from .tracked_keyword import TrackedKeyword

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'KeywordSearchJob',
    'KeywordSearchResult',
    'TrackedKeyword',
]
