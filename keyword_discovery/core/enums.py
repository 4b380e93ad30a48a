"""
Shared enums and constants used across the application.
"""

from enum import Enum


class JobStatus(str, Enum):
    """Keyword search job lifecycle states"""
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"      # Reserved, nothing sets it yet


class KeywordStrategy(str, Enum):
    """How candidate keywords are sourced for each cycle"""
    RANDOM = "random"
    CATEGORY = "category"
    TRENDING = "trending"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


# Job config bounds
MIN_SEARCHES_PER_BATCH = 1
MAX_SEARCHES_PER_BATCH = 10
MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440
MIN_TOTAL_CYCLES = 1
MAX_TOTAL_CYCLES = 1000

DEFAULT_SEED_CATEGORY = "Health & Fitness"
DEFAULT_TRACKING_SESSION = "default"
