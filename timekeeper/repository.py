"""Data access for the record tables.

One repository per record type. Every call is a single round trip that
commits on its own; there is no caching between calls, views re-read full
lists each time they render. Writes are last-write-wins unless the caller
passes ``expected_version``.
"""
import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .errors import InvalidRecord, RecordNotFound, VersionConflict
from .models import ROLES, Client, Project, Tag, Task, TimeEntry, User

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "Unknown client"


class Repository:
    model: Any = None
    kind = "record"
    fields: frozenset = frozenset()
    writable: Optional[frozenset] = None
    archivable = True

    def __init__(self, db: Session):
        self.db = db

    def _order(self):
        return self.model.name

    def _require(self, record_id: str):
        record = self.db.get(self.model, record_id)
        if record is None:
            raise RecordNotFound(self.kind, record_id)
        return record

    def _commit(self, record_id: Optional[str] = None) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Rejected write to %s %s: %s", self.kind, record_id, exc.orig)
            raise InvalidRecord(self.kind, str(exc.orig)) from exc

    def create(self, **fields) -> str:
        values = {k: v for k, v in fields.items() if k in self.fields or k == "id"}
        record = self.model(**values)
        self.db.add(record)
        self._commit(record_id=values.get("id"))
        logger.info("Created %s %s", self.kind, record.id)
        return record.id

    def get_all(self, include_archived: bool = False) -> List[Any]:
        query = select(self.model)
        if self.archivable and not include_archived:
            query = query.where(self.model.is_archived.is_(False))
        return list(self.db.execute(query.order_by(self._order())).scalars().all())

    def get_by_id(self, record_id: str):
        return self.db.get(self.model, record_id)

    def update(self, record_id: str, fields: Mapping[str, Any], expected_version: Optional[int] = None):
        record = self._require(record_id)
        if expected_version is not None and record.version != expected_version:
            raise VersionConflict(self.kind, record_id, expected_version, record.version)

        loaded_version = record.version
        allowed = self.fields if self.writable is None else self.writable
        for key, value in fields.items():
            if key in allowed:
                setattr(record, key, value)
        if hasattr(record, "updated_at"):
            record.updated_at = datetime.now()

        try:
            self._commit(record_id)
        except StaleDataError as exc:
            self.db.rollback()
            current = self._require(record_id)
            raise VersionConflict(self.kind, record_id, loaded_version, current.version) from exc
        return record

    def archive(self, record_id: str):
        if not self.archivable:
            raise TypeError(f"{self.kind} records cannot be archived")
        return self.update(record_id, {"is_archived": True})

    def delete(self, record_id: str) -> None:
        record = self._require(record_id)
        self.db.delete(record)
        self.db.commit()
        logger.info("Deleted %s %s", self.kind, record_id)


class ProjectRepository(Repository):
    model = Project
    kind = "project"
    fields = frozenset({"name", "color", "client_id", "description", "is_archived"})

    def get_by_client(self, client_id: str) -> List[Project]:
        query = (
            select(Project)
            .where(Project.client_id == client_id, Project.is_archived.is_(False))
            .order_by(Project.name)
        )
        return list(self.db.execute(query).scalars().all())

    @staticmethod
    def client_name(project: Project) -> Optional[str]:
        if project.client_id is None:
            return None
        if project.client is None:
            return UNKNOWN_CLIENT
        return project.client.name


class TaskRepository(Repository):
    model = Task
    kind = "task"
    fields = frozenset({"name", "project_id", "is_billable", "hourly_rate", "is_archived"})

    def get_by_project(self, project_id: str) -> List[Task]:
        query = (
            select(Task)
            .where(Task.project_id == project_id, Task.is_archived.is_(False))
            .order_by(Task.name)
        )
        return list(self.db.execute(query).scalars().all())


class ClientRepository(Repository):
    model = Client
    kind = "client"
    fields = frozenset({"name", "email", "phone", "address", "is_archived"})


class TagRepository(Repository):
    model = Tag
    kind = "tag"
    fields = frozenset({"name", "color"})
    writable = frozenset({"name"})
    archivable = False

    def update(self, record_id: str, fields: Mapping[str, Any], expected_version: Optional[int] = None):
        rejected = set(fields) - self.writable
        if rejected:
            raise ValueError(f"tags can only be renamed, got {sorted(rejected)}")
        return super().update(record_id, fields, expected_version)

    def rename(self, tag_id: str, name: str) -> Tag:
        return self.update(tag_id, {"name": name})


class UserRepository(Repository):
    model = User
    kind = "user"
    fields = frozenset(
        {"name", "email", "password_hash", "role", "hourly_rate", "is_active", "timezone"}
    )
    writable = frozenset({"name", "email", "role", "hourly_rate", "is_active", "timezone"})
    archivable = False

    def get_by_email(self, email: str) -> Optional[User]:
        query = select(User).where(User.email == email.strip().lower())
        return self.db.execute(query).scalar_one_or_none()

    def get_by_role(self, role: str) -> List[User]:
        return [user for user in self.get_all() if user.role == role]

    def get_active(self) -> List[User]:
        return [user for user in self.get_all() if user.is_active]

    def update_status(self, user_id: str, is_active: bool) -> User:
        return self.update(user_id, {"is_active": is_active})

    def update_role(self, user_id: str, role: str) -> User:
        if role not in ROLES:
            raise ValueError(f"unknown role {role!r}")
        return self.update(user_id, {"role": role})


class TimeEntryRepository(Repository):
    model = TimeEntry
    kind = "time entry"
    fields = frozenset(
        {
            "user_id",
            "description",
            "project_id",
            "task_id",
            "start_time",
            "end_time",
            "duration",
            "is_billable",
            "tags",
        }
    )
    writable = fields - {"user_id"}
    archivable = False

    def _order(self):
        return TimeEntry.start_time.desc()

    def _select(self, *conditions) -> List[TimeEntry]:
        query = select(TimeEntry).where(*conditions).order_by(self._order())
        return list(self.db.execute(query).scalars().all())

    def get_by_user(self, user_id: str) -> List[TimeEntry]:
        return self._select(TimeEntry.user_id == user_id)

    def get_by_project(self, project_id: str, user_id: str) -> List[TimeEntry]:
        return self._select(TimeEntry.project_id == project_id, TimeEntry.user_id == user_id)

    def get_by_date_range(self, start: datetime, end: datetime, user_id: str) -> List[TimeEntry]:
        return self._select(
            TimeEntry.user_id == user_id,
            TimeEntry.start_time >= start,
            TimeEntry.start_time <= end,
        )

    def get_by_projects(self, project_ids: Iterable[str]) -> List[TimeEntry]:
        ids = list(project_ids)
        if not ids:
            return []
        return self._select(TimeEntry.project_id.in_(ids))

    def get_by_client(self, client_id: str) -> List[TimeEntry]:
        project_ids = self.db.execute(
            select(Project.id).where(Project.client_id == client_id)
        ).scalars().all()
        return self.get_by_projects(project_ids)


def ping(db: Session) -> bool:
    """Round trip to the store; used by the health check."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Store connection test failed")
        return False
    return True
