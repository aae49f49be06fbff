"""Doctor model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from medbook.database import Base


class Doctor(Base):
    """A doctor profile attached to a user account."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    department = Column(String)

    user = relationship("User", lazy="joined")

    @property
    def display_name(self) -> str:
        if self.user is None:
            return ""
        return f"Dr. {self.user.full_name}"
