import uuid
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.context import Actor
from taskhub.auth.schemas import UserCreate, UserUpdate
from taskhub.project_manager import services
from taskhub.project_manager.enums import Priority, ProjectStatus, TaskStatus, UserRole
from taskhub.project_manager.repositories import TaskRepository
from taskhub.project_manager.schemas import (
    ProjectCreate,
    ProjectUpdate,
    TaskCreate,
    TaskUpdate,
)
from taskhub.settings import settings
from taskhub.utils import Conflict, Forbidden, NotFound

pytestmark = pytest.mark.anyio


def actor(user) -> Actor:
    return Actor(id=user.id, role=user.role)


@pytest.fixture
async def circle(make_user, make_project):
    """
    manager ``u2`` runs ``p1`` with member ``u1`` on the team;
    ``outsider`` is a member with no relation to it.
    """
    u1 = await make_user(UserRole.MEMBER, name="Una")
    u2 = await make_user(UserRole.MANAGER, name="Max")
    outsider = await make_user(UserRole.MEMBER, name="Otto")
    admin = await make_user(UserRole.ADMIN, name="Ada")
    p1 = await make_project(u2, team=(u1,))
    return {"u1": u1, "u2": u2, "outsider": outsider, "admin": admin, "p1": p1}


async def _task(session, who, project, **extra):
    payload = TaskCreate(title="Write docs", description="All of them", project=project.id, **extra)
    return await services.create_task(session, actor(who), payload)


# ---- Users ----
async def test_register_defaults_to_member(dbsession: AsyncSession):
    payload = UserCreate(name="Nia", email="nia@example.com", password="secret1", role=UserRole.ADMIN)

    user = await services.register_user(dbsession, payload)

    assert user.role == UserRole.MEMBER
    assert user.password_hash != "secret1"
    assert await services.authenticate_user(dbsession, "nia@example.com", "secret1") is not None
    assert await services.authenticate_user(dbsession, "nia@example.com", "wrong") is None


async def test_register_honors_role_when_enabled(dbsession: AsyncSession, monkeypatch):
    monkeypatch.setattr(settings, "allow_role_on_register", True)
    payload = UserCreate(name="Mo", email="mo@example.com", password="secret1", role=UserRole.MANAGER)

    user = await services.register_user(dbsession, payload)

    assert user.role == UserRole.MANAGER


async def test_register_duplicate_email(dbsession: AsyncSession, make_user):
    existing = await make_user()
    payload = UserCreate(name="Dup", email=existing.email, password="secret1")

    with pytest.raises(Conflict, match="User already exists"):
        await services.register_user(dbsession, payload)


async def test_non_admin_role_change_is_ignored(dbsession: AsyncSession, circle):
    u1 = circle["u1"]

    updated = await services.update_user(
        dbsession, actor(u1), u1.id, UserUpdate(name="Una B", role=UserRole.ADMIN),
    )

    assert updated.name == "Una B"
    assert updated.role == UserRole.MEMBER


async def test_admin_may_change_role(dbsession: AsyncSession, circle):
    updated = await services.update_user(
        dbsession, actor(circle["admin"]), circle["u1"].id, UserUpdate(role=UserRole.MANAGER),
    )

    assert updated.role == UserRole.MANAGER


async def test_update_user_rejects_taken_email(dbsession: AsyncSession, circle):
    with pytest.raises(Conflict):
        await services.update_user(
            dbsession, actor(circle["u1"]), circle["u1"].id,
            UserUpdate(email=circle["u2"].email),
        )


async def test_user_visibility(dbsession: AsyncSession, circle):
    u1, u2, outsider = circle["u1"], circle["u2"], circle["outsider"]

    assert (await services.get_user(dbsession, actor(u2), u1.id)).id == u1.id
    with pytest.raises(Forbidden):
        await services.get_user(dbsession, actor(outsider), u1.id)
    with pytest.raises(Forbidden):
        await services.list_users(dbsession, actor(u1))
    assert len(await services.list_users(dbsession, actor(u2))) == 4
    with pytest.raises(NotFound, match="User not found"):
        await services.get_user(dbsession, actor(u2), "garbage")


async def test_delete_user_self_or_admin(dbsession: AsyncSession, circle):
    with pytest.raises(Forbidden):
        await services.delete_user(dbsession, actor(circle["u2"]), circle["u1"].id)

    await services.delete_user(dbsession, actor(circle["u1"]), circle["u1"].id)

    with pytest.raises(NotFound):
        await services.get_user(dbsession, actor(circle["admin"]), circle["u1"].id)


# ---- Projects ----
async def test_create_project_defaults_manager_to_creator(dbsession: AsyncSession, circle):
    u2 = circle["u2"]

    project = await services.create_project(
        dbsession, actor(u2),
        ProjectCreate(name="Gemini", description="Two seats", team=[circle["u1"].id, circle["u1"].id]),
    )

    assert project.manager.id == u2.id
    assert project.team_ids == {circle["u1"].id}
    assert project.status == ProjectStatus.PLANNING


async def test_member_cannot_create_project(dbsession: AsyncSession, circle):
    with pytest.raises(Forbidden, match="Not authorized to create projects"):
        await services.create_project(
            dbsession, actor(circle["u1"]), ProjectCreate(name="X", description="Y"),
        )


async def test_project_listing_by_role(dbsession: AsyncSession, circle, make_project):
    u1, u2, admin = circle["u1"], circle["u2"], circle["admin"]
    # u1 manages this one but is a plain member, so it stays out of their list
    own = await make_project(u1, name="Side")
    other = await make_project(admin, team=(u2,), name="Joined")

    member_view = await services.list_projects(dbsession, actor(u1))
    manager_view = await services.list_projects(dbsession, actor(u2))
    admin_view = await services.list_projects(dbsession, actor(admin))

    assert {p.id for p in member_view} == {circle["p1"].id}
    assert {p.id for p in manager_view} == {circle["p1"].id, other.id}
    assert {p.id for p in admin_view} == {circle["p1"].id, own.id, other.id}
    assert (await services.get_project(dbsession, actor(u1), own.id)).id == own.id


async def test_get_project_denied_outside_circle(dbsession: AsyncSession, circle):
    with pytest.raises(Forbidden, match="Not authorized to view this project"):
        await services.get_project(dbsession, actor(circle["outsider"]), circle["p1"].id)
    with pytest.raises(NotFound, match="Project not found"):
        await services.get_project(dbsession, actor(circle["admin"]), uuid.uuid4().hex)


async def test_update_project_partial_merge(dbsession: AsyncSession, circle):
    u2, p1 = circle["u2"], circle["p1"]
    payload = ProjectUpdate(name="Apollo 11", description="", status=ProjectStatus.ACTIVE, team=[])

    once = await services.update_project(dbsession, actor(u2), p1.id, payload)
    snapshot = (once.name, once.description, once.status, once.team_ids)
    twice = await services.update_project(dbsession, actor(u2), p1.id, payload)

    assert once.name == "Apollo 11"
    assert once.description == "Moonshot"
    assert once.team_ids == {circle["u1"].id}
    assert (twice.name, twice.description, twice.status, twice.team_ids) == snapshot


async def test_update_project_manager_handover(dbsession: AsyncSession, circle):
    p1 = circle["p1"]

    updated = await services.update_project(
        dbsession, actor(circle["admin"]), p1.id, ProjectUpdate(manager=circle["outsider"].id),
    )

    assert updated.manager.id == circle["outsider"].id
    with pytest.raises(Forbidden):
        await services.update_project(
            dbsession, actor(circle["u2"]), p1.id, ProjectUpdate(name="Mine again"),
        )


async def test_team_member_on_team_cannot_update_project(dbsession: AsyncSession, circle):
    with pytest.raises(Forbidden, match="Not authorized to update this project"):
        await services.update_project(
            dbsession, actor(circle["u1"]), circle["p1"].id, ProjectUpdate(name="Hijack"),
        )


async def test_add_existing_member_is_conflict(dbsession: AsyncSession, circle):
    u2, p1 = circle["u2"], circle["p1"]

    with pytest.raises(Conflict, match="User already in team"):
        await services.add_team_member(dbsession, actor(u2), p1.id, circle["u1"].id)

    project = await services.get_project(dbsession, actor(u2), p1.id)
    assert [m.id for m in project.team] == [circle["u1"].id]


async def test_add_and_remove_team_member(dbsession: AsyncSession, circle):
    u2, p1, outsider = circle["u2"], circle["p1"], circle["outsider"]

    added = await services.add_team_member(dbsession, actor(u2), p1.id, outsider.id)
    assert added.team_ids == {circle["u1"].id, outsider.id}

    removed = await services.remove_team_member(dbsession, actor(u2), p1.id, outsider.id)
    assert removed.team_ids == {circle["u1"].id}

    with pytest.raises(Conflict, match="User not in team"):
        await services.remove_team_member(dbsession, actor(u2), p1.id, outsider.id)
    with pytest.raises(NotFound):
        await services.add_team_member(dbsession, actor(u2), p1.id, uuid.uuid4().hex)
    with pytest.raises(Forbidden):
        await services.add_team_member(dbsession, actor(circle["u1"]), p1.id, outsider.id)


async def test_delete_project_removes_its_tasks(dbsession: AsyncSession, circle, make_project):
    u2, p1 = circle["u2"], circle["p1"]
    kept_project = await make_project(u2, name="Other")
    await _task(dbsession, u2, p1)
    await _task(dbsession, circle["u1"], p1)
    kept = await _task(dbsession, u2, kept_project)

    await services.delete_project(dbsession, actor(u2), p1.id)

    tasks = TaskRepository(dbsession)
    assert await tasks.find({"project_id": p1.id}) == []
    assert [t.id for t in await tasks.find()] == [kept.id]
    with pytest.raises(NotFound):
        await services.get_project(dbsession, actor(circle["admin"]), p1.id)


async def test_delete_project_denied_for_team_member(dbsession: AsyncSession, circle):
    task = await _task(dbsession, circle["u2"], circle["p1"])

    with pytest.raises(Forbidden, match="Not authorized to delete this project"):
        await services.delete_project(dbsession, actor(circle["u1"]), circle["p1"].id)

    assert (await services.get_task(dbsession, actor(circle["u1"]), task.id)).id == task.id


# ---- Tasks ----
async def test_team_member_updates_unassigned_task(dbsession: AsyncSession, circle):
    u1, p1 = circle["u1"], circle["p1"]
    task = await _task(dbsession, circle["u2"], p1)
    assert task.assigned_to is None

    updated = await services.update_task(
        dbsession, actor(u1), task.id,
        TaskUpdate(status=TaskStatus.IN_PROGRESS, title="", priority=Priority.HIGH),
    )

    assert updated.status == TaskStatus.IN_PROGRESS
    assert updated.priority == Priority.HIGH
    assert updated.title == "Write docs"
    assert updated.project.name == p1.name


async def test_team_member_cannot_delete_task(dbsession: AsyncSession, circle):
    task = await _task(dbsession, circle["u2"], circle["p1"])

    with pytest.raises(Forbidden, match="Not authorized to delete this task"):
        await services.delete_task(dbsession, actor(circle["u1"]), task.id)

    await services.delete_task(dbsession, actor(circle["u2"]), task.id)
    with pytest.raises(NotFound, match="Task not found"):
        await services.get_task(dbsession, actor(circle["u2"]), task.id)


async def test_assignee_outside_team_sees_task(dbsession: AsyncSession, circle):
    outsider = circle["outsider"]
    task = await _task(dbsession, circle["u2"], circle["p1"], assigned_to=outsider.id)

    seen = await services.get_task(dbsession, actor(outsider), task.id)

    assert seen.assigned_to.email == outsider.email
    assert seen.created_by_id == circle["u2"].id
    with pytest.raises(Forbidden):
        await services.get_task(dbsession, Actor(id=uuid.uuid4().hex, role=UserRole.MANAGER), task.id)


async def test_create_task_requires_existing_project_and_circle(dbsession: AsyncSession, circle):
    with pytest.raises(NotFound, match="Project not found"):
        await services.create_task(
            dbsession, actor(circle["admin"]),
            TaskCreate(title="t", description="d", project=uuid.uuid4().hex),
        )
    with pytest.raises(NotFound, match="Project not found"):
        await services.create_task(
            dbsession, actor(circle["admin"]),
            TaskCreate(title="t", description="d", project="bogus"),
        )
    with pytest.raises(Forbidden, match="Not authorized to add tasks to this project"):
        await _task(dbsession, circle["outsider"], circle["p1"])


async def test_create_task_keeps_fields(dbsession: AsyncSession, circle):
    task = await _task(
        dbsession, circle["u1"], circle["p1"],
        priority=Priority.LOW, due_date=date(2030, 1, 1), assigned_to=circle["u1"].id,
    )

    assert task.priority == Priority.LOW
    assert task.status == TaskStatus.TODO
    assert task.due_date == date(2030, 1, 1)
    assert task.assigned_to.id == circle["u1"].id
    assert task.created_by_id == circle["u1"].id


async def test_list_tasks_scoped_to_accessible_projects(
    dbsession: AsyncSession, circle, make_project,
):
    u1, u2, admin = circle["u1"], circle["u2"], circle["admin"]
    foreign = await make_project(admin, name="Foreign")
    mine = await _task(dbsession, u2, circle["p1"], assigned_to=u1.id)
    loose = await _task(dbsession, u2, circle["p1"])
    hidden = await _task(dbsession, admin, foreign)

    visible = await services.list_tasks(dbsession, actor(u1))
    assigned = await services.list_tasks(dbsession, actor(u1), assigned_to="me")
    unassigned = await services.list_tasks(dbsession, actor(u1), assigned_to="unassigned")
    everything = await services.list_tasks(dbsession, actor(admin))
    by_project = await services.list_tasks(dbsession, actor(u1), project=circle["p1"].id)

    assert {t.id for t in visible} == {mine.id, loose.id}
    assert [t.id for t in assigned] == [mine.id]
    assert [t.id for t in unassigned] == [loose.id]
    assert {t.id for t in everything} == {mine.id, loose.id, hidden.id}
    assert {t.id for t in by_project} == {mine.id, loose.id}

    with pytest.raises(Forbidden, match="Not authorized to access tasks from this project"):
        await services.list_tasks(dbsession, actor(u1), project=foreign.id)


async def test_list_tasks_accepts_any_id_spelling(
    dbsession: AsyncSession, circle, make_project,
):
    u1, admin, p1 = circle["u1"], circle["admin"], circle["p1"]
    foreign = await make_project(admin, name="Foreign")
    task = await _task(dbsession, circle["u2"], p1, assigned_to=u1.id)
    dashed = str(uuid.UUID(p1.id))

    assert (await services.get_project(dbsession, actor(u1), dashed)).id == p1.id
    for who in (u1, admin):
        by_project = await services.list_tasks(dbsession, actor(who), project=dashed)
        assert [t.id for t in by_project] == [task.id]
    by_assignee = await services.list_tasks(
        dbsession, actor(admin), assigned_to=str(uuid.UUID(u1.id)),
    )
    assert [t.id for t in by_assignee] == [task.id]

    with pytest.raises(Forbidden):
        await services.list_tasks(dbsession, actor(u1), project=str(uuid.UUID(foreign.id)))


async def test_list_tasks_with_malformed_ids(dbsession: AsyncSession, circle):
    await _task(dbsession, circle["u2"], circle["p1"])

    assert await services.list_tasks(dbsession, actor(circle["admin"]), project="bogus") == []
    assert await services.list_tasks(dbsession, actor(circle["u2"]), assigned_to="bogus") == []
    with pytest.raises(Forbidden, match="Not authorized to access tasks from this project"):
        await services.list_tasks(dbsession, actor(circle["u1"]), project="bogus")


async def test_list_tasks_filters_status_and_priority(dbsession: AsyncSession, circle):
    u2, p1 = circle["u2"], circle["p1"]
    urgent = await _task(dbsession, u2, p1, priority=Priority.HIGH)
    await _task(dbsession, u2, p1, status=TaskStatus.DONE)

    high = await services.list_tasks(dbsession, actor(u2), priority=Priority.HIGH)
    done = await services.list_tasks(dbsession, actor(u2), status=TaskStatus.DONE)

    assert [t.id for t in high] == [urgent.id]
    assert len(done) == 1 and done[0].status == TaskStatus.DONE


def test_merge_fields_drops_falsy_values():
    assert services.merge_fields(
        {"name": "", "team": [], "status": None, "title": "Kept", "count": 0},
    ) == {"title": "Kept"}
