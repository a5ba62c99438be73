"""
Authorization policy.

Every decision is a pure function of the actor and an already-loaded
resource snapshot: no database access, no request state. Rules are an
ordered OR of predicates; the first that holds grants, nothing granted
means deny.

Resources are read by attribute only:

- user: ``id``
- project: ``manager_id`` and ``team_ids``
- task: ``assigned_to_id`` and ``project`` (a project as above)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional

from taskhub.auth.context import Actor
from taskhub.project_manager.enums import Action, UserRole
from taskhub.project_manager.filters import AnyOf, Contains, Filter
from taskhub.utils import Forbidden

Predicate = Callable[[Actor, Any], bool]


class ResourceType(str, Enum):
    USER = "user"
    PROJECT = "project"
    TASK = "task"


def same_id(left: Any, right: Any) -> bool:
    """Identifiers are opaque string keys; ``None`` never matches."""
    if left is None or right is None:
        return False
    return str(left) == str(right)


# ---- Predicates ----
def is_admin(actor: Actor, _resource: Any = None) -> bool:
    return actor.role == UserRole.ADMIN


def has_manager_role(actor: Actor, _resource: Any = None) -> bool:
    return actor.role == UserRole.MANAGER


def is_self(actor: Actor, user: Any) -> bool:
    return same_id(actor.id, user.id)


def manages_project(actor: Actor, project: Any) -> bool:
    return same_id(actor.id, project.manager_id)


def on_project_team(actor: Actor, project: Any) -> bool:
    return any(same_id(actor.id, member_id) for member_id in project.team_ids)


def manages_task_project(actor: Actor, task: Any) -> bool:
    return manages_project(actor, task.project)


def on_task_project_team(actor: Actor, task: Any) -> bool:
    return on_project_team(actor, task.project)


def is_assignee(actor: Actor, task: Any) -> bool:
    return same_id(actor.id, task.assigned_to_id)


def any_of(*predicates: Predicate) -> Predicate:
    """Combine predicates; the first one that holds wins."""

    def check(actor: Actor, resource: Any = None) -> bool:
        return any(predicate(actor, resource) for predicate in predicates)

    return check


# ---- Rules ----
_project_circle = any_of(is_admin, manages_project, on_project_team)
_project_owner = any_of(is_admin, manages_project)
_task_circle = any_of(
    is_admin, manages_task_project, on_task_project_team, is_assignee,
)

RULES: Mapping[tuple[ResourceType, Action], Predicate] = {
    (ResourceType.USER, Action.LIST): any_of(is_admin, has_manager_role),
    (ResourceType.USER, Action.VIEW): any_of(is_admin, has_manager_role, is_self),
    (ResourceType.USER, Action.UPDATE): any_of(is_admin, is_self),
    (ResourceType.USER, Action.DELETE): any_of(is_admin, is_self),
    (ResourceType.PROJECT, Action.VIEW): _project_circle,
    (ResourceType.PROJECT, Action.CREATE): any_of(is_admin, has_manager_role),
    (ResourceType.PROJECT, Action.UPDATE): _project_owner,
    (ResourceType.PROJECT, Action.DELETE): _project_owner,
    (ResourceType.PROJECT, Action.MANAGE_TEAM): _project_owner,
    # creation is checked against the target project, the task does not exist yet
    (ResourceType.TASK, Action.CREATE): _project_circle,
    (ResourceType.TASK, Action.VIEW): _task_circle,
    (ResourceType.TASK, Action.UPDATE): _task_circle,
    (ResourceType.TASK, Action.DELETE): any_of(is_admin, manages_task_project),
}

DENIAL_MESSAGES: Mapping[tuple[ResourceType, Action], str] = {
    (ResourceType.USER, Action.LIST): "Access denied: insufficient permissions",
    (ResourceType.USER, Action.VIEW): "Not authorized to view this user",
    (ResourceType.USER, Action.UPDATE): "Not authorized to update this user",
    (ResourceType.USER, Action.DELETE): "Not authorized to delete this user",
    (ResourceType.PROJECT, Action.VIEW): "Not authorized to view this project",
    (ResourceType.PROJECT, Action.CREATE): "Not authorized to create projects",
    (ResourceType.PROJECT, Action.UPDATE): "Not authorized to update this project",
    (ResourceType.PROJECT, Action.DELETE): "Not authorized to delete this project",
    (ResourceType.PROJECT, Action.MANAGE_TEAM): "Not authorized to update this project",
    (ResourceType.TASK, Action.CREATE): "Not authorized to add tasks to this project",
    (ResourceType.TASK, Action.VIEW): "Not authorized to view this task",
    (ResourceType.TASK, Action.UPDATE): "Not authorized to update this task",
    (ResourceType.TASK, Action.DELETE): "Not authorized to delete this task",
}

FOREIGN_PROJECT_TASKS = "Not authorized to access tasks from this project"


class PermissionChecker:
    """Entry points the handlers call into"""

    @staticmethod
    def can(
        actor: Actor,
        action: Action,
        resource_type: ResourceType,
        resource: Any = None,
    ) -> bool:
        """Decide whether ``actor`` may perform ``action``. Unknown pairs are denied."""
        rule = RULES.get((resource_type, action))
        if rule is None:
            return False
        return rule(actor, resource)

    @staticmethod
    def check(
        actor: Actor,
        action: Action,
        resource_type: ResourceType,
        resource: Any = None,
    ) -> None:
        """
        Same decision as ``can`` but raises Forbidden on deny.
        """
        if not PermissionChecker.can(actor, action, resource_type, resource):
            raise Forbidden(
                DENIAL_MESSAGES.get(
                    (resource_type, action), "Access denied: insufficient permissions",
                )
            )

    @staticmethod
    def visible_projects(actor: Actor) -> Optional[Filter]:
        """
        Project filter for list views. ``None`` means no restriction.

        Managers see what they manage or belong to, members only what
        they belong to.
        """
        if is_admin(actor):
            return None
        if has_manager_role(actor):
            return AnyOf({"manager_id": actor.id}, {"team": Contains(actor.id)})
        return {"team": Contains(actor.id)}

    @staticmethod
    def task_projects(actor: Actor) -> Optional[Filter]:
        """
        Filter for the projects whose tasks a non-admin may list,
        regardless of global role. ``None`` means no restriction.
        """
        if is_admin(actor):
            return None
        return AnyOf({"manager_id": actor.id}, {"team": Contains(actor.id)})

    @staticmethod
    def check_task_project_filter(
        actor: Actor,
        requested_project_id: Optional[str],
        accessible_project_ids: Iterable[str],
    ) -> None:
        """Deny an explicit project filter outside the accessible set."""
        if requested_project_id is None or is_admin(actor):
            return
        if not any(same_id(requested_project_id, pid) for pid in accessible_project_ids):
            raise Forbidden(FOREIGN_PROJECT_TASKS)

    @staticmethod
    def writable_user_fields(actor: Actor, fields: Mapping[str, Any]) -> dict[str, Any]:
        """
        Drop the ``role`` field unless the actor is admin.
        Non-admin role changes are ignored, not rejected.
        """
        allowed = dict(fields)
        if "role" in allowed and not is_admin(actor):
            allowed.pop("role")
        return allowed
