from sqlalchemy import CheckConstraint, Column, Integer, Text, text

from .database import Base

# UTC, millisecond resolution, e.g. 2024-05-01T09:30:00.125Z
NOW_ISO = text("(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))")


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_tasks_priority"),
        # AUTOINCREMENT: ids of deleted rows are never handed out again
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    completed = Column(Integer, nullable=False, server_default=text("0"))
    priority = Column(Text, nullable=False, server_default="medium")
    created_at = Column(Text, nullable=False, server_default=NOW_ISO)
    updated_at = Column(Text, nullable=False, server_default=NOW_ISO)
