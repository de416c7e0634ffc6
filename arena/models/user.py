import uuid
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from arena.database import Base, GUID, utcnow


GHOST_EXTERNAL_ID = "ghost"


class User(Base):
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    external_id = Column(String(255), unique=True, nullable=False, index=True)  # Identity provider subject
    email = Column(String(255), nullable=True, index=True)
    nickname = Column(String(50), nullable=False, index=True)
    color = Column(String(7), nullable=False, default="#3B82F6")  # Hex color
    icon = Column(String(50), nullable=False, default="user")
    is_admin = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    agents = relationship("Agent", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_ghost(self) -> bool:
        return self.external_id == GHOST_EXTERNAL_ID

    def __repr__(self):
        return f"<User {self.nickname}>"
