"""
Segment model - a named, reusable audience definition.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Text, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from crm_platform.lib.db import Base


class Segment(Base):
    """
    Segment entity.

    rules is the ordered rule chain as a list of
    {field, operator, value, logic?} dicts. audience_size is a snapshot
    taken when the segment was written, not a live count.
    """
    __tablename__ = "segments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    rules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    audience_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
        comment="Owner of the segment",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Segment(id={self.id}, name={self.name}, audience_size={self.audience_size})>"
