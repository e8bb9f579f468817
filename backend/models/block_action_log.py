from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class BlockActionLog(Base):
    __tablename__ = "block_action_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action_type = Column(String(30), nullable=False)
    # No FKs: log rows outlive the sections and students they mention.
    section_id = Column(Uuid, nullable=True)
    student_id = Column(Uuid, nullable=True)
    registrar_id = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_block_action_logs_section_created", "section_id", "created_at"),
        Index("ix_block_action_logs_registrar_created", "registrar_id", "created_at"),
    )
