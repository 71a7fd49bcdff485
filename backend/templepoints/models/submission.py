from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, CheckConstraint, func
from templepoints.db import Base

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"


class PointSubmission(Base):
    __tablename__ = "point_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ward_id: Mapped[int] = mapped_column(Integer, ForeignKey("wards.id", ondelete="CASCADE"), index=True, nullable=False)

    submitter_name: Mapped[str] = mapped_column(String(120), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[str] = mapped_column(Text(), nullable=False, default="", server_default="")

    # pending -> approved | rejected, exactly once
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False, default=STATUS_PENDING, server_default=STATUS_PENDING)

    # set on approval and on rejection
    approved_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("points > 0", name="ck_point_submissions_points_positive"),
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_point_submissions_status"),
    )
