from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.context import Actor
from taskhub.auth.dependencies import get_current_actor
from taskhub.db.dependencies import get_db_session
from taskhub.project_manager import services
from taskhub.project_manager.enums import Priority, TaskStatus
from taskhub.project_manager.schemas import (
    MessageOut,
    ProjectCreate,
    ProjectOut,
    ProjectUpdate,
    TaskCreate,
    TaskOut,
    TaskUpdate,
    TeamMemberIn,
)
from taskhub.utils import translate_service_errors

router = APIRouter()
tasks_router = APIRouter()


# -----------------------
# Project endpoints
# -----------------------
@router.get("", response_model=List[ProjectOut])
@translate_service_errors
async def list_projects(
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """List the projects the caller may see."""
    return await services.list_projects(session, actor)


@router.get("/{project_id}", response_model=ProjectOut)
@translate_service_errors
async def get_project(
    project_id: str,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Get project details. Admin, manager, or team member."""
    return await services.get_project(session, actor, project_id)


@router.post(
    "",
    response_model=ProjectOut,
    status_code=status.HTTP_201_CREATED,
)
@translate_service_errors
async def create_project(
    payload: ProjectCreate,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a project. Admins and managers only; the creator manages it by default."""
    return await services.create_project(session, actor, payload)


@router.put("/{project_id}", response_model=ProjectOut)
@translate_service_errors
async def update_project(
    project_id: str,
    payload: ProjectUpdate,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Update project. Admin or the project's manager."""
    return await services.update_project(session, actor, project_id, payload)


@router.delete("/{project_id}", response_model=MessageOut)
@translate_service_errors
async def delete_project(
    project_id: str,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete project and all of its tasks. Admin or the project's manager."""
    await services.delete_project(session, actor, project_id)
    return {"msg": "Project and associated tasks removed"}


@router.post("/{project_id}/team", response_model=ProjectOut)
@translate_service_errors
async def add_team_member(
    project_id: str,
    payload: TeamMemberIn,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a user to the project team. Admin or the project's manager."""
    return await services.add_team_member(session, actor, project_id, payload.user_id)


@router.delete("/{project_id}/team/{user_id}", response_model=ProjectOut)
@translate_service_errors
async def remove_team_member(
    project_id: str,
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a user from the project team. Admin or the project's manager."""
    return await services.remove_team_member(session, actor, project_id, user_id)


# -----------------------
# Task endpoints
# -----------------------
@tasks_router.get("", response_model=List[TaskOut])
@translate_service_errors
async def list_tasks(
    project: Optional[str] = None,
    assigned_to: Optional[str] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[Priority] = None,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List tasks. ``assigned_to`` accepts a user id, ``me`` or ``unassigned``.
    """
    return await services.list_tasks(
        session,
        actor,
        project=project,
        assigned_to=assigned_to,
        status=status,
        priority=priority,
    )


@tasks_router.get("/{task_id}", response_model=TaskOut)
@translate_service_errors
async def get_task(
    task_id: str,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Get task details. Project circle or assignee."""
    return await services.get_task(session, actor, task_id)


@tasks_router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
@translate_service_errors
async def create_task(
    payload: TaskCreate,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Create task. Admin, the project's manager, or a team member."""
    return await services.create_task(session, actor, payload)


@tasks_router.put("/{task_id}", response_model=TaskOut)
@translate_service_errors
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Update task. Project circle or assignee."""
    return await services.update_task(session, actor, task_id, payload)


@tasks_router.delete("/{task_id}", response_model=MessageOut)
@translate_service_errors
async def delete_task(
    task_id: str,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete task. Admin or the project's manager only."""
    await services.delete_task(session, actor, task_id)
    return {"msg": "Task removed"}
