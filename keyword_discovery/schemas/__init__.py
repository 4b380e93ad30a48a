from .base import BaseSchema
from .keyword_job import (
    KeywordJobCreate,
    KeywordJobRead,
    KeywordJobSummary,
    KeywordJobDetail,
    KeywordResultRead,
    TrackKeywordsRequest,
    TrackKeywordsResponse,
    JobActionResponse,
)
