from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, func
from taskflow.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    username = Column(String, nullable=False, unique=True)
    role = Column(String, nullable=False, index=True)             # see core.roles.Role
    team_type = Column(String, nullable=True, index=True)         # DEVELOPER, DESIGNER, PROGRAMMER
    team_leader_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
