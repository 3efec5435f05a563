"""JSON API over the record repositories."""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from .database import get_db
from .models import ROLE_ADMIN
from .periods import ALL, PERIODS, filter_period
from .repository import (
    ClientRepository,
    ProjectRepository,
    TagRepository,
    TaskRepository,
    TimeEntryRepository,
    UserRepository,
    ping,
)
from .schemas import (
    ClientIn,
    ClientOut,
    ClientUpdate,
    ProjectIn,
    ProjectOut,
    ProjectUpdate,
    SummaryOut,
    TagIn,
    TagOut,
    TagRename,
    TaskIn,
    TaskOut,
    TaskUpdate,
    TimeEntryIn,
    TimeEntryOut,
    TimeEntryUpdate,
    UserOut,
    UserUpdate,
)
from .seed import clear_sample_data, seed_database
from .session import AuthUser, require_admin, require_user
from .stats import effective_rate, summarize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _changes(payload) -> tuple:
    data = payload.model_dump(exclude_unset=True)
    version = data.pop("version", None)
    return data, version


def _project_out(project) -> ProjectOut:
    out = ProjectOut.model_validate(project)
    return out.model_copy(update={"client_name": ProjectRepository.client_name(project)})


def _owned_entry(repo: TimeEntryRepository, entry_id: str, user: AuthUser):
    entry = repo.get_by_id(entry_id)
    if entry is None or (entry.user_id != user.uid and user.role != ROLE_ADMIN):
        raise HTTPException(status_code=404, detail="Time entry not found")
    return entry


@router.get("/health")
def health(db: Session = Depends(get_db)):
    connected = ping(db)
    return {"status": "ok" if connected else "degraded", "database": connected}


# Projects
@router.get("/projects", response_model=List[ProjectOut])
def list_projects(db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return [_project_out(p) for p in ProjectRepository(db).get_all()]


@router.post("/projects", response_model=ProjectOut, status_code=201)
def create_project(payload: ProjectIn, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    repo = ProjectRepository(db)
    if payload.client_id and ClientRepository(db).get_by_id(payload.client_id) is None:
        raise HTTPException(status_code=404, detail="Client not found")
    project_id = repo.create(**payload.model_dump())
    return _project_out(repo.get_by_id(project_id))


@router.get("/projects/{project_id}", response_model=ProjectOut)
def get_project(project_id: str, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    project = ProjectRepository(db).get_by_id(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return _project_out(project)


@router.patch("/projects/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(require_admin),
):
    data, version = _changes(payload)
    return _project_out(ProjectRepository(db).update(project_id, data, expected_version=version))


@router.post("/projects/{project_id}/archive", response_model=ProjectOut)
def archive_project(project_id: str, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    return _project_out(ProjectRepository(db).archive(project_id))


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(project_id: str, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    ProjectRepository(db).delete(project_id)
    return Response(status_code=204)


@router.get("/projects/{project_id}/tasks", response_model=List[TaskOut])
def list_project_tasks(project_id: str, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return TaskRepository(db).get_by_project(project_id)


@router.get("/projects/{project_id}/time-entries", response_model=List[TimeEntryOut])
def list_project_entries(project_id: str, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return TimeEntryRepository(db).get_by_project(project_id, user.uid)


# Tasks
@router.get("/tasks", response_model=List[TaskOut])
def list_tasks(db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return TaskRepository(db).get_all()


@router.post("/tasks", response_model=TaskOut, status_code=201)
def create_task(payload: TaskIn, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    repo = TaskRepository(db)
    task_id = repo.create(**payload.model_dump())
    return repo.get_by_id(task_id)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
def update_task(task_id: str, payload: TaskUpdate, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    repo = TaskRepository(db)
    task = repo.get_by_id(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    data, version = _changes(payload)
    billable = data.get("is_billable", task.is_billable)
    rate = data.get("hourly_rate", task.hourly_rate)
    if billable and (rate is None or rate <= 0):
        raise HTTPException(status_code=422, detail="Hourly rate must be greater than 0 for billable tasks")
    return repo.update(task_id, data, expected_version=version)


@router.post("/tasks/{task_id}/archive", response_model=TaskOut)
def archive_task(task_id: str, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    return TaskRepository(db).archive(task_id)


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(task_id: str, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    TaskRepository(db).delete(task_id)
    return Response(status_code=204)


# Clients
@router.get("/clients", response_model=List[ClientOut])
def list_clients(db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return ClientRepository(db).get_all()


@router.post("/clients", response_model=ClientOut, status_code=201)
def create_client(payload: ClientIn, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    repo = ClientRepository(db)
    client_id = repo.create(**payload.model_dump())
    return repo.get_by_id(client_id)


@router.patch("/clients/{client_id}", response_model=ClientOut)
def update_client(
    client_id: str,
    payload: ClientUpdate,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(require_admin),
):
    data, version = _changes(payload)
    return ClientRepository(db).update(client_id, data, expected_version=version)


@router.post("/clients/{client_id}/archive", response_model=ClientOut)
def archive_client(client_id: str, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    return ClientRepository(db).archive(client_id)


@router.delete("/clients/{client_id}", status_code=204)
def delete_client(client_id: str, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    ClientRepository(db).delete(client_id)
    return Response(status_code=204)


@router.get("/clients/{client_id}/projects", response_model=List[ProjectOut])
def list_client_projects(client_id: str, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return [_project_out(p) for p in ProjectRepository(db).get_by_client(client_id)]


@router.get("/clients/{client_id}/time-entries", response_model=List[TimeEntryOut])
def list_client_entries(client_id: str, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    return TimeEntryRepository(db).get_by_client(client_id)


# Tags
@router.get("/tags", response_model=List[TagOut])
def list_tags(db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return TagRepository(db).get_all()


@router.post("/tags", response_model=TagOut, status_code=201)
def create_tag(payload: TagIn, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    repo = TagRepository(db)
    tag_id = repo.create(**payload.model_dump())
    return repo.get_by_id(tag_id)


@router.patch("/tags/{tag_id}", response_model=TagOut)
def rename_tag(tag_id: str, payload: TagRename, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return TagRepository(db).update(tag_id, {"name": payload.name}, expected_version=payload.version)


@router.delete("/tags/{tag_id}", status_code=204)
def delete_tag(tag_id: str, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    TagRepository(db).delete(tag_id)
    return Response(status_code=204)


# Time entries
@router.get("/time-entries", response_model=List[TimeEntryOut])
def list_time_entries(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_user),
):
    repo = TimeEntryRepository(db)
    if start is not None or end is not None:
        return repo.get_by_date_range(start or datetime.min, end or datetime.max, user.uid)
    return repo.get_by_user(user.uid)


@router.post("/time-entries", response_model=TimeEntryOut, status_code=201)
def create_time_entry(payload: TimeEntryIn, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    repo = TimeEntryRepository(db)
    entry_id = repo.create(user_id=user.uid, **payload.model_dump())
    return repo.get_by_id(entry_id)


@router.get("/time-entries/{entry_id}", response_model=TimeEntryOut)
def get_time_entry(entry_id: str, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    return _owned_entry(TimeEntryRepository(db), entry_id, user)


@router.patch("/time-entries/{entry_id}", response_model=TimeEntryOut)
def update_time_entry(
    entry_id: str,
    payload: TimeEntryUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_user),
):
    repo = TimeEntryRepository(db)
    _owned_entry(repo, entry_id, user)
    data, version = _changes(payload)
    if not data:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    return repo.update(entry_id, data, expected_version=version)


@router.delete("/time-entries/{entry_id}", status_code=204)
def delete_time_entry(entry_id: str, db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    repo = TimeEntryRepository(db)
    _owned_entry(repo, entry_id, user)
    repo.delete(entry_id)
    return Response(status_code=204)


@router.get("/stats/summary", response_model=SummaryOut)
def summary(
    period: str = Query("today"),
    project_id: Optional[str] = None,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_user),
):
    if period != ALL and period not in PERIODS:
        raise HTTPException(status_code=400, detail=f"Unknown period {period!r}")
    entries = TimeEntryRepository(db).get_by_user(user.uid)
    if project_id:
        entries = [e for e in entries if e.project_id == project_id]
    selected = filter_period(entries, period)
    profile = UserRepository(db).get_by_id(user.uid)
    totals = summarize(selected.entries, effective_rate(profile.hourly_rate if profile else None))
    return SummaryOut(
        period=period,
        total_duration=totals.total_duration,
        billable_duration=totals.billable_duration,
        billable_percentage=totals.billable_percentage,
        earnings=totals.earnings,
        entry_count=totals.entry_count,
        average_session_length=totals.average_session_length,
        invalid_entries=selected.invalid,
    )


# Users and admin
@router.get("/users/me", response_model=UserOut)
def get_me(db: Session = Depends(get_db), user: AuthUser = Depends(require_user)):
    profile = UserRepository(db).get_by_id(user.uid)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@router.get("/users", response_model=List[UserOut])
def list_users(
    role: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: AuthUser = Depends(require_admin),
):
    repo = UserRepository(db)
    return repo.get_by_role(role) if role else repo.get_all()


@router.patch("/users/{user_id}", response_model=UserOut)
def update_user(user_id: str, payload: UserUpdate, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    data, version = _changes(payload)
    return UserRepository(db).update(user_id, data, expected_version=version)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: str, db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    UserRepository(db).delete(user_id)
    return Response(status_code=204)


@router.get("/admin/time-entries", response_model=List[TimeEntryOut])
def list_all_time_entries(db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    return TimeEntryRepository(db).get_all()


@router.post("/admin/sample-data")
def seed_sample_data(db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    return {"added": seed_database(db)}


@router.delete("/admin/sample-data")
def remove_sample_data(db: Session = Depends(get_db), admin: AuthUser = Depends(require_admin)):
    return {"removed": clear_sample_data(db)}
