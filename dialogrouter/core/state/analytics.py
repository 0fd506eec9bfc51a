from sqlalchemy import JSON, Column, DateTime, Integer, String

from dialogrouter.core.state.base import Base
from dialogrouter.core.state.conversation import _utcnow


class AnalyticsRecord(Base):
    """
    One analytics event (user input, NLU snapshot, skill status or timeout).

    Args:
        Base (declarative_base): The declarative base class for SQLAlchemy models.
    """

    __tablename__ = "analytics_events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String, nullable=False, index=True)
    conversation_id = Column(String, nullable=False, index=True)
    channel_id = Column(String, nullable=True)
    user_id = Column(String, nullable=True)
    skill_instance_id = Column(String, nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=_utcnow)
