from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, func
from taskflow.database import Base

class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    team_type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(String, nullable=False, default="MEDIUM")      # LOW, MEDIUM, HIGH
    status = Column(String, nullable=False, default="PENDING", index=True)

    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=False)   # Who created / assigned it
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=False)   # Who does it
    qa_assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    qa_assigned_at = Column(DateTime(timezone=True), nullable=True)         # set together with qa_assigned_to
    last_reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    last_qa_assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)  # survives the QA reset on rework

    rework_count = Column(Integer, nullable=False, default=0)   # lifetime, never reset
    estimated_minutes = Column(Integer, nullable=True)
    files = Column(JSON, nullable=True)                          # [{"url": ..., "name": ...}]

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)  # first timer start
    completed_at = Column(DateTime(timezone=True), nullable=True)
