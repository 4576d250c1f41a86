"""
Usage Tracking Models
=====================
Daily usage tracking for signed-in users

Quota:
- Registered users: 50 chats/day (beta period)
"""

from sqlalchemy import Column, Integer, Date, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime, date, timezone
from ..database import Base


class UserUsage(Base):
    """Daily usage for a signed-in user - one row per (user_id, usage_date)"""
    __tablename__ = "user_usage"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Daily counters
    usage_date = Column(Date, nullable=False, default=date.today)
    chat_count = Column(Integer, nullable=False, default=0)
    tokens_used = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint('user_id', 'usage_date', name='uq_user_usage_date'),
    )

    def __repr__(self):
        return f"<UserUsage(user_id={self.user_id}, date={self.usage_date}, count={self.chat_count})>"


# Quota Constants
DAILY_CHAT_LIMIT = 50

# Quota Message (Japanese, shown to the user as-is)
QUOTA_MESSAGE = "使用制限に達しました。本日の制限: {limit}回"
