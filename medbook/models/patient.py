"""Patient model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from medbook.database import Base


class Patient(Base):
    """A patient profile attached to a user account."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    phone = Column(String)

    user = relationship("User", lazy="joined")

    @property
    def contact_email(self) -> str | None:
        if self.user is None:
            return None
        return self.user.email or None
