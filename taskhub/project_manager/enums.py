from enum import Enum


class UserRole(str, Enum):
    """Global user roles"""
    ADMIN = "admin"  # Full system access
    MANAGER = "manager"  # Creates projects, sees users
    MEMBER = "member"  # Works on the projects they belong to


class ProjectStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Action(str, Enum):
    """Actions the authorization policy decides on"""
    LIST = "list"
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE_TEAM = "manage_team"
