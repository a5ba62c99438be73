"""
Resource handlers.

Each handler loads what it needs, asks the policy, mutates through a
repository and returns the entity reloaded with its relations expanded.
Handlers never commit: the request session commits on success and rolls
back on any exception, so a denied or failed call leaves nothing behind.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth import security
from taskhub.auth.context import Actor
from taskhub.auth.schemas import UserCreate, UserUpdate
from taskhub.project_manager.enums import Action, Priority, TaskStatus, UserRole
from taskhub.project_manager.filters import Exists, In
from taskhub.project_manager.models import Project, Task, User
from taskhub.project_manager.permissions import PermissionChecker, ResourceType
from taskhub.project_manager.repositories import (
    ProjectRepository,
    Repository,
    TaskRepository,
    UserRepository,
    parse_id,
)
from taskhub.project_manager.schemas import (
    ProjectCreate,
    ProjectUpdate,
    TaskCreate,
    TaskUpdate,
)
from taskhub.settings import settings
from taskhub.utils import Conflict, MalformedId, NotFound

ASSIGNED_TO_ME = "me"
UNASSIGNED = "unassigned"


# ---- Utilities ----
def merge_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Fields an update should apply: only the truthy ones.

    An explicit falsy value (empty string, empty list) counts as absent,
    so a field can never be cleared through an update.
    """
    return {k: v for k, v in payload.items() if v}


async def _get_or_404(
    repo: Repository,
    entity_id: Any,
    populate: Optional[Iterable[str]] = None,
):
    name = repo.model.__name__
    try:
        obj = await repo.find_by_id(entity_id, populate=populate)
    except MalformedId as exc:
        raise NotFound(f"{name} not found") from exc
    if obj is None:
        raise NotFound(f"{name} not found")
    return obj


async def _get_users_or_404(session: AsyncSession, user_ids: Iterable[str]) -> List[User]:
    wanted = {parse_id(uid) for uid in user_ids}
    users = await UserRepository(session).find_by_ids(list(wanted))
    if len(users) != len(wanted):
        raise NotFound("User not found")
    return users


async def _get_user_ref_or_404(session: AsyncSession, user_id: str) -> User:
    return await _get_or_404(UserRepository(session), user_id)


# ---- Authentication ----
async def register_user(session: AsyncSession, payload: UserCreate) -> User:
    """Create an account. Duplicate email is a Conflict."""
    users = UserRepository(session)
    if await users.find_by_email(str(payload.email)):
        raise Conflict("User already exists")

    role = UserRole.MEMBER
    if payload.role and settings.allow_role_on_register:
        role = payload.role

    user = await users.create(
        name=payload.name,
        email=str(payload.email),
        password_hash=security.get_password_hash(payload.password),
        role=role,
    )
    logger.info("Registered user {} with role {}", user.id, role.value)
    return user


async def authenticate_user(
    session: AsyncSession, email: str, password: str
) -> Optional[User]:
    """
    Authenticate a user by email and password.
    Returns the user object if authentication is successful, otherwise None.
    """
    user = await UserRepository(session).find_by_email(email)
    if not user or not security.verify_password(password, user.password_hash):
        return None
    return user


def issue_token(user: User) -> str:
    role = user.role.value if isinstance(user.role, UserRole) else str(user.role)
    return security.create_access_token(data={"sub": user.id, "role": role})


# ---- Users ----
async def list_users(session: AsyncSession, actor: Actor) -> List[User]:
    PermissionChecker.check(actor, Action.LIST, ResourceType.USER)
    return await UserRepository(session).find()


async def get_user(session: AsyncSession, actor: Actor, user_id: str) -> User:
    user = await _get_or_404(UserRepository(session), user_id)
    PermissionChecker.check(actor, Action.VIEW, ResourceType.USER, user)
    return user


async def update_user(
    session: AsyncSession, actor: Actor, user_id: str, payload: UserUpdate,
) -> User:
    """
    Partial update. A role change from a non-admin is silently dropped.
    """
    users = UserRepository(session)
    user = await _get_or_404(users, user_id)
    PermissionChecker.check(actor, Action.UPDATE, ResourceType.USER, user)

    fields = merge_fields(payload.model_dump())
    fields = PermissionChecker.writable_user_fields(actor, fields)
    if "email" in fields:
        fields["email"] = str(fields["email"])
        holder = await users.find_by_email(fields["email"])
        if holder is not None and holder.id != user.id:
            raise Conflict("Email already in use")

    return await users.update_by_id(user.id, fields)


async def delete_user(session: AsyncSession, actor: Actor, user_id: str) -> None:
    users = UserRepository(session)
    user = await _get_or_404(users, user_id)
    PermissionChecker.check(actor, Action.DELETE, ResourceType.USER, user)
    await users.delete_by_id(user.id)
    logger.info("User {} removed by {}", user.id, actor.id)


# ---- Projects ----
async def list_projects(session: AsyncSession, actor: Actor) -> List[Project]:
    """Admins see all projects, everyone else their own circle."""
    return await ProjectRepository(session).find(
        PermissionChecker.visible_projects(actor)
    )


async def get_project(session: AsyncSession, actor: Actor, project_id: str) -> Project:
    project = await _get_or_404(ProjectRepository(session), project_id)
    PermissionChecker.check(actor, Action.VIEW, ResourceType.PROJECT, project)
    return project


async def create_project(
    session: AsyncSession, actor: Actor, payload: ProjectCreate,
) -> Project:
    """Create a project. The creator manages it unless a manager is given."""
    PermissionChecker.check(actor, Action.CREATE, ResourceType.PROJECT)
    projects = ProjectRepository(session)

    manager_id = actor.id
    if payload.manager:
        manager_id = (await _get_user_ref_or_404(session, payload.manager)).id
    team = await _get_users_or_404(session, payload.team or [])

    project = await projects.create(
        name=payload.name,
        description=payload.description,
        manager_id=manager_id,
        team=team,
        **merge_fields(payload.model_dump(include={"status", "start_date", "end_date"})),
    )
    logger.info("Project {} created by {}", project.id, actor.id)
    return await _get_or_404(projects, project.id)


async def update_project(
    session: AsyncSession, actor: Actor, project_id: str, payload: ProjectUpdate,
) -> Project:
    projects = ProjectRepository(session)
    project = await _get_or_404(projects, project_id)
    PermissionChecker.check(actor, Action.UPDATE, ResourceType.PROJECT, project)

    fields = merge_fields(payload.model_dump())
    if "manager" in fields:
        fields["manager"] = await _get_user_ref_or_404(session, fields["manager"])
    if "team" in fields:
        fields["team"] = await _get_users_or_404(session, fields["team"])

    return await projects.update_by_id(project.id, fields)


async def delete_project(session: AsyncSession, actor: Actor, project_id: str) -> None:
    """
    Remove the project's tasks, then the project.

    Both steps share the request transaction, so a failure in the second
    rolls back the first.
    """
    projects = ProjectRepository(session)
    project = await _get_or_404(projects, project_id)
    PermissionChecker.check(actor, Action.DELETE, ResourceType.PROJECT, project)

    removed = await TaskRepository(session).delete_many({"project_id": project.id})
    await projects.delete_by_id(project.id)
    logger.info(
        "Project {} removed by {} along with {} tasks", project.id, actor.id, removed,
    )


async def add_team_member(
    session: AsyncSession, actor: Actor, project_id: str, user_id: str,
) -> Project:
    projects = ProjectRepository(session)
    project = await _get_or_404(projects, project_id)
    PermissionChecker.check(actor, Action.MANAGE_TEAM, ResourceType.PROJECT, project)

    member = await _get_user_ref_or_404(session, user_id)
    if member.id in project.team_ids:
        raise Conflict("User already in team")

    project.team.append(member)
    await session.flush()
    return await _get_or_404(projects, project.id)


async def remove_team_member(
    session: AsyncSession, actor: Actor, project_id: str, user_id: str,
) -> Project:
    projects = ProjectRepository(session)
    project = await _get_or_404(projects, project_id)
    PermissionChecker.check(actor, Action.MANAGE_TEAM, ResourceType.PROJECT, project)

    try:
        member_id = parse_id(user_id)
    except MalformedId as exc:
        raise NotFound("User not found") from exc
    if member_id not in project.team_ids:
        raise Conflict("User not in team")

    project.team = [member for member in project.team if member.id != member_id]
    await session.flush()
    return await _get_or_404(projects, project.id)


# ---- Tasks ----
async def list_tasks(
    session: AsyncSession,
    actor: Actor,
    *,
    project: Optional[str] = None,
    assigned_to: Optional[str] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[Priority] = None,
) -> List[Task]:
    """
    List tasks, narrowed by the optional filters.

    Non-admins only ever see tasks of projects they manage or belong to;
    asking for another project explicitly is Forbidden. Ids are matched
    in canonical form, whatever spelling the caller used.
    """
    scope = PermissionChecker.task_projects(actor)
    accessible_ids: List[str] = []
    if scope is not None:
        accessible = await ProjectRepository(session).find(scope, populate=())
        accessible_ids = [p.id for p in accessible]

    project_id = None
    if project:
        try:
            project_id = parse_id(project)
        except MalformedId:
            # no project can match, only the admin gets told nothing
            PermissionChecker.check_task_project_filter(actor, project, accessible_ids)
            return []

    filter: dict[str, Any] = {}
    if project_id:
        filter["project_id"] = project_id
    if status:
        filter["status"] = status
    if priority:
        filter["priority"] = priority

    if assigned_to == ASSIGNED_TO_ME:
        filter["assigned_to_id"] = actor.id
    elif assigned_to == UNASSIGNED:
        filter["assigned_to_id"] = Exists(False)
    elif assigned_to:
        try:
            filter["assigned_to_id"] = parse_id(assigned_to)
        except MalformedId:
            return []

    if scope is not None:
        PermissionChecker.check_task_project_filter(actor, project_id, accessible_ids)
        if "project_id" not in filter:
            filter["project_id"] = In(accessible_ids)

    return await TaskRepository(session).find(filter)


async def get_task(session: AsyncSession, actor: Actor, task_id: str) -> Task:
    task = await _get_or_404(TaskRepository(session), task_id)
    PermissionChecker.check(actor, Action.VIEW, ResourceType.TASK, task)
    return task


async def create_task(session: AsyncSession, actor: Actor, payload: TaskCreate) -> Task:
    """
    Create a task in an existing project. Checked against the target
    project since the task does not exist yet.
    """
    project = await _get_or_404(
        ProjectRepository(session), payload.project, populate=("team",),
    )
    PermissionChecker.check(actor, Action.CREATE, ResourceType.TASK, project)

    assigned_to_id = None
    if payload.assigned_to:
        assigned_to_id = (await _get_user_ref_or_404(session, payload.assigned_to)).id

    tasks = TaskRepository(session)
    task = await tasks.create(
        title=payload.title,
        description=payload.description,
        project_id=project.id,
        assigned_to_id=assigned_to_id,
        created_by_id=actor.id,
        **merge_fields(payload.model_dump(include={"status", "priority", "due_date"})),
    )
    logger.info("Task {} created in project {} by {}", task.id, project.id, actor.id)
    return await _get_or_404(tasks, task.id)


async def update_task(
    session: AsyncSession, actor: Actor, task_id: str, payload: TaskUpdate,
) -> Task:
    """Partial update. The project is never re-validated here."""
    tasks = TaskRepository(session)
    task = await _get_or_404(tasks, task_id)
    PermissionChecker.check(actor, Action.UPDATE, ResourceType.TASK, task)

    fields = merge_fields(payload.model_dump())
    if "assigned_to" in fields:
        fields["assigned_to"] = await _get_user_ref_or_404(session, fields["assigned_to"])

    return await tasks.update_by_id(task.id, fields)


async def delete_task(session: AsyncSession, actor: Actor, task_id: str) -> None:
    tasks = TaskRepository(session)
    task = await _get_or_404(tasks, task_id)
    PermissionChecker.check(actor, Action.DELETE, ResourceType.TASK, task)
    await tasks.delete_by_id(task.id)
    logger.info("Task {} removed by {}", task.id, actor.id)
