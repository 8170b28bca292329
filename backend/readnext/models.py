from sqlalchemy import Column, String, Integer, Boolean, DateTime, Float, JSON, Uuid, UniqueConstraint
import uuid
import sqlalchemy as sa
from readnext.database import Base
from readnext.utils.timing import utcnow


class Item(Base):
    """Catalog item as exposed by the content subsystem (read-only to this core)."""
    __tablename__ = "items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    genre = Column(String, nullable=True, index=True)
    creator = Column(String, nullable=True, index=True)
    publisher = Column(String, nullable=True)
    tags = Column(JSON, nullable=True)
    average_rating = Column(Float, nullable=False, default=0.0)
    total_readers = Column(Integer, nullable=False, default=0)
    page_count = Column(Integer, nullable=True)
    published_at = Column(DateTime, nullable=True, index=True)
    is_visible = Column(Boolean, nullable=False, default=True)
    is_free = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)


class LibraryEntry(Base):
    """An item held in a user's library, with the user's rating and reading progress."""
    __tablename__ = "user_library"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    item_id = Column(Uuid(as_uuid=True), sa.ForeignKey("items.id"), nullable=False, index=True)
    rating = Column(Float, nullable=True)
    progress_percent = Column(Float, nullable=False, default=0.0)
    is_completed = Column(Boolean, nullable=False, default=False)
    total_reading_seconds = Column(Float, nullable=False, default=0.0)
    last_read_at = Column(DateTime, nullable=True)
    added_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_user_library_user_item"),
    )


class UserRecommendation(Base):
    """
    Latest stored recommendation for each user-item pair.
    Re-generation overwrites the row in place; feedback marks it clicked or dismissed.
    """
    __tablename__ = "user_recommendations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    item_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    source = Column(String, nullable=False)
    score = Column(Float, nullable=False, default=0.0)
    reasons = Column(JSON, nullable=True)
    generated_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    clicked_at = Column(DateTime, nullable=True)
    dismissed = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_user_recommendation_user_item"),
        sa.Index("idx_user_recommendations_active", "user_id", "dismissed", "expires_at"),
    )


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    event_name = Column(String, nullable=False, index=True)
    properties = Column(JSON, nullable=True)
