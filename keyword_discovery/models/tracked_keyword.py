from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from keyword_discovery.database import Base


class TrackedKeyword(Base):
    """
    A keyword promoted from job results for ongoing tracking.
    One row per keyword/country/session.
    """

    __tablename__ = "tracked_keywords"
    __table_args__ = (
        UniqueConstraint("keyword", "country", "session_id", name="uq_tracked_keyword_country_session"),
    )

    id = Column(Integer, primary_key=True)
    keyword = Column(String(255), nullable=False, index=True)
    country = Column(String(2), nullable=False)
    session_id = Column(String(255), nullable=False, default="default")

    popularity = Column(Integer, nullable=True)
    difficulty = Column(Integer, nullable=True)
    opportunity_score = Column(Integer, nullable=True)
    competitor_count = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<TrackedKeyword(keyword='{self.keyword}', country={self.country}, session={self.session_id})>"
