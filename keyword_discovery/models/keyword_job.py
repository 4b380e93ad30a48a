import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from keyword_discovery.core.enums import JobStatus, KeywordStrategy
from keyword_discovery.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class KeywordSearchJob(Base):
    """
    A continuous keyword discovery job.

    Config columns are fixed at creation; status, current_cycle, total_keywords,
    used_keywords and the run timestamps are rewritten by the job's own cycles.
    """

    __tablename__ = "keyword_search_jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)

    # --- Config ---
    strategy = Column(String(32), nullable=False, default=KeywordStrategy.RANDOM.value)
    seed_category = Column(String(255), nullable=True)
    country = Column(String(2), nullable=False, default="us")
    searches_per_batch = Column(Integer, nullable=False, default=1)
    interval_minutes = Column(Integer, nullable=False, default=15)
    total_cycles = Column(Integer, nullable=False, default=10)
    notes = Column(Text, nullable=True)
    session_id = Column(String(255), nullable=True, index=True)

    # --- Progress ---
    status = Column(String(32), nullable=False, default=JobStatus.PENDING.value, index=True)
    current_cycle = Column(Integer, nullable=False, default=0)
    total_keywords = Column(Integer, nullable=False, default=0)
    used_keywords = Column(JSON, nullable=False, default=list)  # lower-cased, unique

    # --- Timestamps ---
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    results = relationship(
        "KeywordSearchResult",
        back_populates="job",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (f"<KeywordSearchJob(id={self.id}, name='{self.name}', status={self.status}, "
                f"cycle={self.current_cycle}/{self.total_cycles})>")


class KeywordSearchResult(Base):
    """One keyword attempt inside a job cycle."""

    __tablename__ = "keyword_search_results"

    id = Column(String(36), primary_key=True, default=_new_id)
    job_id = Column(
        String(36),
        ForeignKey("keyword_search_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    keyword = Column(String(255), nullable=False)
    cycle_number = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False)  # success, error

    popularity = Column(Integer, nullable=True)
    difficulty = Column(Integer, nullable=True)
    competitor_count = Column(Integer, nullable=True)
    opportunity_score = Column(Integer, nullable=True, index=True)
    top_apps = Column(JSON, nullable=True)
    related_terms = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    is_tracked = Column(Boolean, nullable=False, default=False)
    searched_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    job = relationship("KeywordSearchJob", back_populates="results")

    def __repr__(self) -> str:
        return (f"<KeywordSearchResult(id={self.id}, job_id={self.job_id}, keyword='{self.keyword}', "
                f"cycle={self.cycle_number}, status={self.status})>")
