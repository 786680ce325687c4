from __future__ import annotations

import enum
from typing import Optional

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from . import Base, new_id


class ActionItemStatus(str, enum.Enum):
    open = "open"
    done = "done"


class ActionItem(Base):
    __tablename__ = "action_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    meeting_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    task: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ActionItemStatus.open.value
    )
    source_segment_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("transcript_segments.id", ondelete="SET NULL"), nullable=True
    )
