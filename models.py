from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from database import Base


def utcnow():
    # Naive UTC; SQLite drops tzinfo on the way back anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    # Never hand a deleted user's id to a new account
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(20), unique=True, index=True, nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String(10), nullable=False, default="user")
    created_at = Column(DateTime, default=utcnow)
    last_login = Column(DateTime, nullable=True)
    todos = relationship("Todo", back_populates="owner", cascade="all, delete-orphan")

    @property
    def is_admin(self):
        return self.role == "admin"


class Todo(Base):
    __tablename__ = "todos"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    completed = Column(Boolean, nullable=False, default=False)
    due_date = Column(DateTime, nullable=True)
    reminder = Column(DateTime, nullable=True)
    priority = Column(String(10), nullable=False, default="medium")
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    owner = relationship("User", back_populates="todos")
