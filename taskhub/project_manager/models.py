from __future__ import annotations

import uuid
from datetime import date
from typing import List, Optional

from sqlalchemy import Column, Date, ForeignKey, String, Table, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskhub.db.base import Base
from taskhub.project_manager.enums import Priority, ProjectStatus, TaskStatus, UserRole


def new_id() -> str:
    return uuid.uuid4().hex


project_team = Table(
    "project_team",
    Base.metadata,
    Column(
        "project_id", String(32),
        ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True,
    ),
    Column(
        "user_id", String(32),
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
    ),
)


# --- user ---
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole), default=UserRole.MEMBER, nullable=False, index=True,
    )


# --- project ---
class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    manager_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    status: Mapped[ProjectStatus] = mapped_column(
        SQLEnum(ProjectStatus), default=ProjectStatus.PLANNING, nullable=False,
    )
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)

    # relationships
    manager: Mapped[Optional[User]] = relationship(
        "User", foreign_keys=[manager_id],
    )
    team: Mapped[List[User]] = relationship("User", secondary=project_team)

    @property
    def team_ids(self) -> set[str]:
        """Ids of the team members. Requires ``team`` to be loaded."""
        return {member.id for member in self.team}


# --- task ---
class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    assigned_to_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    status: Mapped[TaskStatus] = mapped_column(
        SQLEnum(TaskStatus), default=TaskStatus.TODO, index=True, nullable=False,
    )
    priority: Mapped[Priority] = mapped_column(
        SQLEnum(Priority), default=Priority.MEDIUM, index=True, nullable=False,
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    # relationships
    project: Mapped[Project] = relationship("Project")
    assigned_to: Mapped[Optional[User]] = relationship(
        "User", foreign_keys=[assigned_to_id],
    )
    created_by: Mapped[Optional[User]] = relationship(
        "User", foreign_keys=[created_by_id],
    )
