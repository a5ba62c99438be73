from __future__ import annotations

import uuid
from typing import Any, ClassVar, Generic, Iterable, List, Mapping, Optional, Sequence, Type, TypeVar

from sqlalchemy import and_, delete, false, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.interfaces import LoaderOption

from taskhub.db.base import Base
from taskhub.project_manager.filters import AnyOf, Contains, Exists, Filter, In
from taskhub.project_manager.models import Project, Task, User, project_team
from taskhub.utils import Conflict, MalformedId

ModelT = TypeVar("ModelT", bound=Base)


def parse_id(value: Any) -> str:
    """
    Normalize an identifier to its canonical hex form.

    Raises MalformedId when the value cannot be an identifier at all.
    """
    try:
        return uuid.UUID(str(value)).hex
    except (TypeError, ValueError) as exc:
        raise MalformedId(f"Malformed identifier: {value!r}") from exc


class Repository(Generic[ModelT]):
    """
    Async CRUD over one model, bound to a session.

    Never commits; the session owner decides the transaction boundary.
    """

    model: ClassVar[Type[Base]]
    # relation name -> loader option; what ``populate`` may ask for
    relations: ClassVar[Mapping[str, Any]] = {}
    # relations loaded when the caller does not ask for anything specific
    default_populate: ClassVar[tuple[str, ...]] = ()

    def __init__(self, session: AsyncSession):
        self.session = session

    # ---- helpers ----
    def _options(self, populate: Optional[Iterable[str]]) -> List[LoaderOption]:
        names = self.default_populate if populate is None else tuple(populate)
        return [self.relations[name]() for name in names]

    def _criterion(self, field: str, match: Any):
        attr = getattr(self.model, field)
        if isinstance(match, Contains):
            target = attr.property.mapper.class_
            return attr.any(target.id == match.id)
        if isinstance(match, In):
            values = list(match.values)
            if not values:
                return false()
            return attr.in_(values)
        if isinstance(match, Exists):
            return attr.isnot(None) if match.present else attr.is_(None)
        return attr == match

    def _where(self, filter: Optional[Filter]):
        if filter is None:
            return None
        if isinstance(filter, AnyOf):
            return or_(*(self._where(sub) for sub in filter.filters))
        clauses = [self._criterion(field, match) for field, match in filter.items()]
        if not clauses:
            return None
        return and_(*clauses)

    # ---- operations ----
    async def find_by_id(
        self,
        entity_id: Any,
        populate: Optional[Iterable[str]] = None,
    ) -> Optional[ModelT]:
        pk = parse_id(entity_id)
        q = (
            select(self.model)
            .options(*self._options(populate))
            .where(self.model.id == pk)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(q)
        return result.scalars().first()

    async def find(
        self,
        filter: Optional[Filter] = None,
        populate: Optional[Iterable[str]] = None,
    ) -> List[ModelT]:
        q = select(self.model).options(*self._options(populate))
        criterion = self._where(filter)
        if criterion is not None:
            q = q.where(criterion)
        q = q.order_by(self.model.created_at).execution_options(populate_existing=True)
        result = await self.session.execute(q)
        return list(result.scalars().unique().all())

    async def create(self, **fields: Any) -> ModelT:
        obj = self.model(**fields)
        self.session.add(obj)
        try:
            await self.session.flush()  # push so integrity errors surface
        except IntegrityError as exc:
            raise Conflict(f"{self.model.__name__} violates a uniqueness rule") from exc
        return obj

    async def update_by_id(
        self,
        entity_id: Any,
        fields: Mapping[str, Any],
        populate: Optional[Iterable[str]] = None,
    ) -> Optional[ModelT]:
        # collections are replaced wholesale, so they must be loaded first
        obj = await self.find_by_id(entity_id, populate=self.relations.keys())
        if obj is None:
            return None
        for k, v in fields.items():
            if hasattr(obj, k):
                setattr(obj, k, v)
        self.session.add(obj)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise Conflict(f"{self.model.__name__} violates a uniqueness rule") from exc
        return await self.find_by_id(obj.id, populate=populate)

    async def delete_by_id(self, entity_id: Any) -> bool:
        obj = await self.find_by_id(entity_id, populate=self.relations.keys())
        if obj is None:
            return False
        await self.session.delete(obj)
        await self.session.flush()
        return True

    async def delete_many(self, filter: Filter) -> int:
        q = delete(self.model)
        criterion = self._where(filter)
        if criterion is not None:
            q = q.where(criterion)
        result = await self.session.execute(q.execution_options(synchronize_session=False))
        return result.rowcount


class UserRepository(Repository[User]):
    model = User

    async def find_by_email(self, email: str) -> Optional[User]:
        q = select(User).where(User.email == email)
        result = await self.session.execute(q)
        return result.scalars().first()

    async def find_by_ids(self, ids: Sequence[Any]) -> List[User]:
        return await self.find({"id": In([parse_id(i) for i in ids])})

    async def delete_by_id(self, entity_id: Any) -> bool:
        pk = parse_id(entity_id)
        # drop team memberships explicitly, not every backend enforces the FK cascade
        await self.session.execute(
            project_team.delete().where(project_team.c.user_id == pk)
        )
        # the projects and tasks survive with a null reference
        for column in (Project.manager_id, Task.assigned_to_id, Task.created_by_id):
            await self.session.execute(
                update(column.class_)
                .where(column == pk)
                .values({column.key: None})
                .execution_options(synchronize_session=False)
            )
        return await super().delete_by_id(pk)


class ProjectRepository(Repository[Project]):
    model = Project
    relations = {
        "manager": lambda: selectinload(Project.manager),
        "team": lambda: selectinload(Project.team),
    }
    default_populate = ("manager", "team")


class TaskRepository(Repository[Task]):
    model = Task
    relations = {
        # the project comes with its circle so the policy can be applied
        "project": lambda: selectinload(Task.project).selectinload(Project.team),
        "assigned_to": lambda: selectinload(Task.assigned_to),
        "created_by": lambda: selectinload(Task.created_by),
    }
    default_populate = ("project", "assigned_to")
