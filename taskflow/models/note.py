from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, func
from taskflow.database import Base

class TaskNote(Base):
    __tablename__ = "task_notes"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    kind = Column(String, nullable=False)          # COMMENT, APPROVAL, REJECTION, FEEDBACK_IMAGE
    note = Column(Text, nullable=False)
    image_ref = Column(String, nullable=True)      # FEEDBACK_IMAGE only
    caption = Column(String, nullable=True)        # FEEDBACK_IMAGE only
    created_at = Column(DateTime(timezone=True), server_default=func.now())
