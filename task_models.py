from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database import Base
from encryption import EncryptedString
from models import utcnow


class TaskDB(Base):
    __tablename__ = "tasks"
    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    category = Column(String, nullable=False, default="other")
    period = Column(Date)  # due date
    point = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)
    # Free-text note, stored encrypted when a key is configured
    comment = Column(EncryptedString, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    project = relationship("ProjectDB", back_populates="tasks")
