"""Run history ORM models.

An UpdateRun records one update or verify session; each processed
target gets a TargetRecord in processing order.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fwupdate.db import Base


class UpdateRun(Base):
    """ORM model for one update or verify run.

    Attributes:
        id: Primary key.
        mode: install or verify.
        package_path: Firmware package the run used.
        model: Hardware model requested.
        generation: Hardware generation requested.
        started_at: When the run started.
        finished_at: When the run finished.
        success: Overall result.
        exit_status: Process exit status reported.
        error_code: Code of the error that aborted the run, if any.
        error_message: Message of the error that aborted the run, if any.
        targets: Per-target records, in processing order.
    """

    __tablename__ = "update_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mode: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    package_path: Mapped[str] = mapped_column(String(500), nullable=False)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    generation: Mapped[str | None] = mapped_column(String(50), nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    success: Mapped[bool] = mapped_column(nullable=False, default=False)
    exit_status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    targets: Mapped[list["TargetRecord"]] = relationship(
        "TargetRecord",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="TargetRecord.position",
    )

    def __repr__(self) -> str:
        """Return string representation of UpdateRun."""
        return (
            f"<UpdateRun(id={self.id}, mode='{self.mode}', "
            f"success={self.success}, exit_status={self.exit_status})>"
        )


class TargetRecord(Base):
    """ORM model for one target processed in a run."""

    __tablename__ = "target_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("update_runs.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    target: Mapped[str] = mapped_column(String(20), nullable=False)
    section: Mapped[str] = mapped_column(String(100), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    duration: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    bricking_window: Mapped[float | None] = mapped_column(Float, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    run: Mapped[UpdateRun] = relationship("UpdateRun", back_populates="targets")

    def __repr__(self) -> str:
        """Return string representation of TargetRecord."""
        return (
            f"<TargetRecord(run_id={self.run_id}, target='{self.target}', "
            f"outcome='{self.outcome}')>"
        )


__all__ = ["TargetRecord", "UpdateRun"]
