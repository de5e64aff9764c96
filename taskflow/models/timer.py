from sqlalchemy import Column, Integer, DateTime, ForeignKey, Boolean, Index, text, func
from taskflow.database import Base

class TaskTimer(Base):
    __tablename__ = "task_timers"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)       # NULL = running
    duration_minutes = Column(Integer, nullable=True)               # only set by an explicit stop
    is_rework = Column(Boolean, default=False, nullable=False)
    exceeded_notified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        # at most one running timer per task
        Index(
            "uq_task_timers_open",
            "task_id",
            unique=True,
            sqlite_where=text("end_time IS NULL"),
            postgresql_where=text("end_time IS NULL"),
        ),
    )
