from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from models.base import Base


SECTION_STATUSES = ("OPEN", "CLOSED")
_STATUS_LIST = ", ".join(f"'{s}'" for s in SECTION_STATUSES)


class BlockSection(Base):
    __tablename__ = "block_sections"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    block_group_id = Column(
        Uuid,
        ForeignKey("block_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    section_code = Column(Text, nullable=False)
    capacity = Column(Integer, nullable=False)
    # Mutated only by the assignment service (check-and-increment) and decisions.
    current_population = Column(Integer, nullable=False, default=0)
    status = Column(String(10), nullable=False, default="OPEN")
    schedule = Column(Text, nullable=False, default="")
    class_adviser = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    group = relationship("BlockGroup", back_populates="sections")

    __table_args__ = (
        UniqueConstraint("block_group_id", "section_code", name="uq_block_sections_group_code"),
        CheckConstraint("capacity >= 1", name="ck_block_sections_capacity"),
        CheckConstraint("current_population >= 0", name="ck_block_sections_population"),
        CheckConstraint(f"status in ({_STATUS_LIST})", name="ck_block_sections_status"),
    )
