from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from taskhub.project_manager.enums import Priority, ProjectStatus, TaskStatus


# -----------------------
# Expanded references
# -----------------------
class UserRef(BaseModel):
    id: str
    name: str
    email: str

    class Config:
        from_attributes = True


class ProjectRef(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    msg: str


# -----------------------
# Projects
# -----------------------
class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    manager: Optional[str] = None
    team: Optional[List[str]] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    manager: Optional[str] = None
    team: Optional[List[str]] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class TeamMemberIn(BaseModel):
    user_id: str = Field(..., min_length=1)


class ProjectOut(BaseModel):
    id: str
    name: str
    description: Optional[str]
    manager: Optional[UserRef]
    team: List[UserRef]
    status: ProjectStatus
    start_date: Optional[date]
    end_date: Optional[date]

    class Config:
        from_attributes = True


# -----------------------
# Tasks
# -----------------------
class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1)
    project: str = Field(..., min_length=1)
    assigned_to: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[date] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[date] = None


class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str]
    project: Optional[ProjectRef]
    assigned_to: Optional[UserRef]
    status: TaskStatus
    priority: Priority
    due_date: Optional[date]
    created_by_id: Optional[str]

    class Config:
        from_attributes = True
