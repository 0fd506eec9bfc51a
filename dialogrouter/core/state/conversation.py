from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String

from dialogrouter.core.state.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationRecord(Base):
    """
    Persisted routing state of one conversation: dialog stack, skill session
    context and the reference used by the proactive timeout path.

    Args:
        Base (declarative_base): The declarative base class for SQLAlchemy models.
    """

    __tablename__ = "conversations"
    id = Column(String, primary_key=True)
    channel_id = Column(String, nullable=True)
    dialog_stack = Column(JSON, nullable=False, default=list)
    skill_context = Column(JSON, nullable=False, default=dict)
    reference = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
