from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from taskflow.database import Base

class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    client_name = Column(String, nullable=True)
    status = Column(String, default="CLIENT", nullable=False)  # CLIENT, COMPLETED
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
