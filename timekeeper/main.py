import logging
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from . import config
from .api import router as api_router
from .database import Base, engine, get_db
from .errors import AuthenticationError, InvalidRecord, RecordNotFound, TimerValidationError, VersionConflict
from .export import build_report_workbook
from .formatting import (
    format_currency,
    format_date,
    format_datetime,
    format_duration,
    format_duration_short,
    format_percentage,
    format_time,
)
from .models import ROLES
from .periods import ALL, MONTH, PERIOD_LABELS, PERIODS, TODAY, WEEK, filter_period, parse_timestamp
from .repository import (
    ClientRepository,
    ProjectRepository,
    TagRepository,
    TaskRepository,
    TimeEntryRepository,
    UserRepository,
)
from .schemas import ClientIn, LoginCredentials, ProjectIn, SignupCredentials, TaskIn
from .session import SessionContext, get_session
from .stats import (
    daily_totals,
    effective_rate,
    project_label,
    project_report,
    summarize,
    team_overview,
    user_stats,
)
from .timer import TimeTracker, slot_for_user

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

app = FastAPI(title="Timekeeper")
app.add_middleware(SessionMiddleware, secret_key=config.SECRET_KEY)

Base.metadata.create_all(bind=engine)

app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.filters["duration"] = format_duration
templates.env.filters["duration_short"] = format_duration_short
templates.env.filters["currency"] = format_currency
templates.env.filters["time"] = format_time
templates.env.filters["date"] = format_date
templates.env.filters["datetime"] = format_datetime
templates.env.filters["percentage"] = format_percentage

app.include_router(api_router)

LOAD_ERROR = "Could not load data. Please try again."
SAVE_ERROR = "Could not save your changes. Please try again."
RECENT_ENTRIES = 10


@app.exception_handler(RecordNotFound)
async def not_found_handler(request: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(VersionConflict)
async def conflict_handler(request: Request, exc: VersionConflict):
    return JSONResponse(status_code=409, content={"detail": str(exc), "version": exc.actual})


@app.exception_handler(InvalidRecord)
async def invalid_record_handler(request: Request, exc: InvalidRecord):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred. Please try again."})


def render(request: Request, name: str, session: SessionContext, status_code: int = 200, **context):
    context.setdefault("user", session.current_user)
    context.setdefault("is_admin", session.is_admin)
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def to_login() -> RedirectResponse:
    return RedirectResponse(url="/login", status_code=303)


def field_errors(exc: ValidationError) -> dict:
    errors = {}
    for error in exc.errors():
        key = str(error["loc"][0]) if error["loc"] else "__all__"
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(key, message)
    return errors


def tracker_for(user_id: str) -> TimeTracker:
    tracker = TimeTracker(slot_for_user(config.TIMER_STATE_DIR, user_id))
    tracker.restore()
    return tracker


def user_rate(db: Session, user_id: str) -> float:
    profile = UserRepository(db).get_by_id(user_id)
    return effective_rate(profile.hourly_rate if profile else None)


# Authentication
@app.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, session: SessionContext = Depends(get_session)):
    if session.is_authenticated:
        return RedirectResponse(url="/", status_code=303)
    return render(request, "login.html", session)


@app.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    session: SessionContext = Depends(get_session),
):
    try:
        session.login(LoginCredentials(email=email.strip().lower(), password=password))
    except AuthenticationError as exc:
        return render(request, "login.html", session, status_code=400, error=str(exc), email=email)
    return RedirectResponse(url="/", status_code=303)


@app.get("/signup", response_class=HTMLResponse)
async def signup_page(request: Request, session: SessionContext = Depends(get_session)):
    return render(request, "signup.html", session, roles=ROLES, errors={}, form={})


@app.post("/signup")
async def signup(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
    role: str = Form("employee"),
    session: SessionContext = Depends(get_session),
):
    form = {"name": name, "email": email, "role": role}
    try:
        credentials = SignupCredentials(
            name=name, email=email, password=password, confirm_password=confirm_password, role=role
        )
        session.signup(credentials)
    except ValidationError as exc:
        return render(request, "signup.html", session, status_code=400, roles=ROLES, errors=field_errors(exc), form=form)
    except AuthenticationError as exc:
        return render(request, "signup.html", session, status_code=400, roles=ROLES, errors={"email": str(exc)}, form=form)
    return RedirectResponse(url="/", status_code=303)


@app.get("/logout")
async def logout(session: SessionContext = Depends(get_session)):
    session.logout()
    return to_login()


# Dashboard
@app.get("/", response_class=HTMLResponse)
async def dashboard(
    request: Request,
    period: str = TODAY,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    if period not in (TODAY, WEEK, MONTH):
        period = TODAY

    uid = session.current_user.uid
    error = None
    entries, projects = [], []
    try:
        entries = TimeEntryRepository(db).get_by_user(uid)
        projects = ProjectRepository(db).get_all(include_archived=True)
        rate = user_rate(db, uid)
    except SQLAlchemyError:
        logger.exception("Error loading dashboard data")
        error = LOAD_ERROR
        rate = config.DEFAULT_HOURLY_RATE

    selected = filter_period(entries, period)
    totals = summarize(selected.entries, rate)
    projects_by_id = {p.id: p for p in projects}
    recent = sorted(
        (e for e in entries if parse_timestamp(e.start_time) is not None),
        key=lambda e: parse_timestamp(e.start_time),
        reverse=True,
    )[:5]

    return render(
        request,
        "dashboard.html",
        session,
        period=period,
        periods=[(p, PERIOD_LABELS[p]) for p in (TODAY, WEEK, MONTH)],
        totals=totals,
        invalid=selected.invalid,
        recent=[(e, project_label(e.project_id, projects_by_id)) for e in recent],
        active_projects=sum(1 for p in projects if not p.is_archived),
        archived_projects=sum(1 for p in projects if p.is_archived),
        error=error,
    )


# Reports
def _report_data(db: Session, uid: str, period: str, project_id: Optional[str]):
    entries = TimeEntryRepository(db).get_by_user(uid)
    if project_id:
        entries = [e for e in entries if e.project_id == project_id]
    projects = ProjectRepository(db).get_all()
    return filter_period(entries, period), projects, user_rate(db, uid)


@app.get("/reports", response_class=HTMLResponse)
async def reports(
    request: Request,
    period: str = WEEK,
    project_id: Optional[str] = None,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    if period != ALL and period not in PERIODS:
        period = WEEK

    error = None
    try:
        selected, projects, rate = _report_data(db, session.current_user.uid, period, project_id)
    except SQLAlchemyError:
        logger.exception("Error loading report data")
        error = LOAD_ERROR
        selected, projects, rate = filter_period([], period), [], config.DEFAULT_HOURLY_RATE

    totals = summarize(selected.entries, rate)
    return render(
        request,
        "reports.html",
        session,
        period=period,
        periods=[(p, PERIOD_LABELS[p]) for p in PERIODS + (ALL,)],
        project_id=project_id or "",
        projects=projects,
        totals=totals,
        invalid=selected.invalid,
        days=daily_totals(selected.entries),
        project_rows=project_report(projects, selected.entries, rate),
        error=error,
    )


@app.get("/reports/export")
async def export_report(
    period: str = WEEK,
    project_id: Optional[str] = None,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    if period != ALL and period not in PERIODS:
        period = WEEK

    selected, projects, rate = _report_data(db, session.current_user.uid, period, project_id)
    entries = sorted(selected.entries, key=lambda e: e.start_time)
    stream = build_report_workbook(
        entries,
        {p.id: p for p in projects},
        summarize(entries, rate),
        title=PERIOD_LABELS[period],
    )

    filename = f"time_report_{period}_{date.today().isoformat()}.xlsx"
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# Time tracker
def _tracker_page(
    request: Request,
    db: Session,
    session: SessionContext,
    tracker: TimeTracker,
    project_id: Optional[str] = None,
    day: Optional[date] = None,
    error: Optional[str] = None,
    status_code: int = 200,
):
    uid = session.current_user.uid
    entries, projects, tasks, tags = [], [], [], []
    try:
        entries = TimeEntryRepository(db).get_by_user(uid)
        projects = ProjectRepository(db).get_all()
        tasks = TaskRepository(db).get_all()
        tags = TagRepository(db).get_all()
    except SQLAlchemyError:
        logger.exception("Error loading time tracker data")
        error = error or LOAD_ERROR

    if project_id:
        entries = [e for e in entries if e.project_id == project_id]
    if day:
        entries = [e for e in entries if e.start_time.date() == day]

    projects_by_id = {p.id: p for p in projects}
    return render(
        request,
        "tracker.html",
        session,
        status_code=status_code,
        tracker=tracker,
        elapsed=tracker.elapsed(),
        entries=[(e, project_label(e.project_id, projects_by_id)) for e in entries],
        projects=projects,
        tasks=[t for t in tasks if t.project_id == tracker.project_id],
        tags=tags,
        filter_project=project_id or "",
        filter_day=day.isoformat() if day else "",
        refresh_seconds=config.REFRESH_INTERVAL_SECONDS,
        error=error,
    )


@app.get("/tracker", response_class=HTMLResponse)
async def tracker_page(
    request: Request,
    project_id: Optional[str] = None,
    day: Optional[str] = None,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    # the filter form sends an empty string when no day is picked
    try:
        selected_day = date.fromisoformat(day) if day else None
    except ValueError:
        selected_day = None
    tracker = tracker_for(session.current_user.uid)
    return _tracker_page(request, db, session, tracker, project_id=project_id, day=selected_day)


def timer_fields(
    timer_form: str = Form(""),
    description: str = Form(""),
    project_id: str = Form(""),
    task_id: str = Form(""),
    tags: List[str] = Form([]),
    is_billable: Optional[str] = Form(None),
) -> Optional[dict]:
    """Fields typed into the timer form, or None when the post did not carry the form."""
    if timer_form != "1":
        return None
    return {
        "description": description,
        "project_id": project_id or None,
        "task_id": task_id or None,
        "tags": tags,
        "is_billable": is_billable is not None,
    }


def apply_timer_fields(tracker: TimeTracker, fields: Optional[dict]) -> None:
    if fields is None:
        return
    fields = dict(fields)
    # the task list on the page belongs to the previously chosen project
    if fields["project_id"] is None or fields["project_id"] != tracker.project_id:
        fields.pop("task_id")
    tracker.update(**fields)


@app.post("/tracker/start")
async def start_timer(
    fields: Optional[dict] = Depends(timer_fields),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    tracker = tracker_for(session.current_user.uid)
    apply_timer_fields(tracker, fields)
    tracker.start()
    return RedirectResponse(url="/tracker", status_code=303)


@app.post("/tracker/update")
async def update_timer(
    fields: Optional[dict] = Depends(timer_fields),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    apply_timer_fields(tracker_for(session.current_user.uid), fields)
    return RedirectResponse(url="/tracker", status_code=303)


@app.post("/tracker/stop")
async def stop_timer(
    request: Request,
    fields: Optional[dict] = Depends(timer_fields),
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    uid = session.current_user.uid
    tracker = tracker_for(uid)
    apply_timer_fields(tracker, fields)
    repo = TimeEntryRepository(db)
    try:
        tracker.stop(persist=lambda entry: repo.create(user_id=uid, **entry))
    except TimerValidationError as exc:
        return _tracker_page(request, db, session, tracker, error=str(exc), status_code=400)
    except (SQLAlchemyError, InvalidRecord):
        logger.exception("Error saving time entry")
        db.rollback()
        return _tracker_page(request, db, session, tracker, error=SAVE_ERROR, status_code=500)
    return RedirectResponse(url="/tracker", status_code=303)


@app.post("/tracker/reset")
async def reset_timer(confirm: str = Form(""), session: SessionContext = Depends(get_session)):
    if not session.is_authenticated:
        return to_login()
    tracker_for(session.current_user.uid).reset(confirmed=confirm == "yes")
    return RedirectResponse(url="/tracker", status_code=303)


@app.post("/entries/add")
async def add_entry(
    request: Request,
    date_value: date = Form(...),
    start_time_str: str = Form(...),
    end_time_str: str = Form(...),
    description: str = Form(""),
    project_id: str = Form(""),
    is_billable: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    tracker = tracker_for(session.current_user.uid)

    try:
        start_dt = datetime.combine(date_value, datetime.strptime(start_time_str, "%H:%M").time())
        end_dt = datetime.combine(date_value, datetime.strptime(end_time_str, "%H:%M").time())
    except ValueError:
        return _tracker_page(request, db, session, tracker, error="Invalid time format.", status_code=400)
    if start_dt >= end_dt:
        return _tracker_page(request, db, session, tracker, error="Start time must be before end time.", status_code=400)
    if not description.strip():
        return _tracker_page(request, db, session, tracker, error="Description is required.", status_code=400)

    try:
        TimeEntryRepository(db).create(
            user_id=session.current_user.uid,
            description=description.strip(),
            project_id=project_id or None,
            start_time=start_dt,
            end_time=end_dt,
            duration=int((end_dt - start_dt).total_seconds()),
            is_billable=is_billable is not None,
            tags=[],
        )
    except SQLAlchemyError:
        logger.exception("Error saving time entry")
        db.rollback()
        return _tracker_page(request, db, session, tracker, error=SAVE_ERROR, status_code=500)
    return RedirectResponse(url=f"/tracker?day={date_value.isoformat()}", status_code=303)


@app.post("/entries/{entry_id}/delete")
async def delete_entry(entry_id: str, db: Session = Depends(get_db), session: SessionContext = Depends(get_session)):
    if not session.is_authenticated:
        return to_login()
    repo = TimeEntryRepository(db)
    entry = repo.get_by_id(entry_id)
    if entry is not None and (entry.user_id == session.current_user.uid or session.is_admin):
        try:
            repo.delete(entry_id)
        except SQLAlchemyError:
            logger.exception("Error deleting time entry %s", entry_id)
            db.rollback()
    return RedirectResponse(url="/tracker", status_code=303)


# Projects, tasks and clients
def _projects_page(
    request: Request,
    db: Session,
    session: SessionContext,
    errors: Optional[dict] = None,
    form: Optional[dict] = None,
    status_code: int = 200,
):
    error = None
    projects, tasks, clients = [], [], []
    try:
        projects = ProjectRepository(db).get_all()
        tasks = TaskRepository(db).get_all()
        clients = ClientRepository(db).get_all()
    except SQLAlchemyError:
        logger.exception("Error loading projects")
        error = LOAD_ERROR

    project_rows = []
    for project in projects:
        project_tasks = [t for t in tasks if t.project_id == project.id]
        project_rows.append(
            {
                "project": project,
                "client_name": ProjectRepository.client_name(project),
                "total_tasks": len(project_tasks),
                "billable_tasks": sum(1 for t in project_tasks if t.is_billable),
            }
        )
    client_rows = [
        {"client": client, "total_projects": sum(1 for p in projects if p.client_id == client.id)}
        for client in clients
    ]
    projects_by_id = {p.id: p for p in projects}

    return render(
        request,
        "projects.html",
        session,
        status_code=status_code,
        project_rows=project_rows,
        client_rows=client_rows,
        task_rows=[(t, project_label(t.project_id, projects_by_id)) for t in tasks],
        projects=projects,
        clients=clients,
        errors=errors or {},
        form=form or {},
        error=error,
    )


@app.get("/projects", response_class=HTMLResponse)
async def projects_page(request: Request, db: Session = Depends(get_db), session: SessionContext = Depends(get_session)):
    if not session.is_authenticated:
        return to_login()
    return _projects_page(request, db, session)


def _admin_write(session: SessionContext):
    if not session.is_authenticated:
        return to_login()
    if not session.is_admin:
        return RedirectResponse(url="/projects", status_code=303)
    return None


@app.post("/projects/add")
async def add_project(
    request: Request,
    name: str = Form(""),
    color: str = Form("#3B82F6"),
    client_id: str = Form(""),
    description: str = Form(""),
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    denied = _admin_write(session)
    if denied:
        return denied
    try:
        payload = ProjectIn(name=name, color=color, client_id=client_id or None, description=description or None)
    except ValidationError as exc:
        errors = {f"project_{k}": v for k, v in field_errors(exc).items()}
        return _projects_page(request, db, session, errors=errors, form={"project_name": name}, status_code=400)
    ProjectRepository(db).create(**payload.model_dump())
    return RedirectResponse(url="/projects", status_code=303)


@app.post("/projects/{project_id}/archive")
async def archive_project(project_id: str, db: Session = Depends(get_db), session: SessionContext = Depends(get_session)):
    denied = _admin_write(session)
    if denied:
        return denied
    ProjectRepository(db).archive(project_id)
    return RedirectResponse(url="/projects", status_code=303)


@app.post("/projects/{project_id}/delete")
async def delete_project(project_id: str, db: Session = Depends(get_db), session: SessionContext = Depends(get_session)):
    denied = _admin_write(session)
    if denied:
        return denied
    ProjectRepository(db).delete(project_id)
    return RedirectResponse(url="/projects", status_code=303)


@app.post("/tasks/add")
async def add_task(
    request: Request,
    name: str = Form(""),
    project_id: str = Form(""),
    is_billable: Optional[str] = Form(None),
    hourly_rate: str = Form(""),
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    denied = _admin_write(session)
    if denied:
        return denied
    try:
        payload = TaskIn(
            name=name,
            project_id=project_id,
            is_billable=is_billable is not None,
            hourly_rate=hourly_rate or None,
        )
    except ValidationError as exc:
        errors = {f"task_{k}": v for k, v in field_errors(exc).items()}
        return _projects_page(request, db, session, errors=errors, form={"task_name": name}, status_code=400)
    TaskRepository(db).create(**payload.model_dump())
    return RedirectResponse(url="/projects", status_code=303)


@app.post("/tasks/{task_id}/delete")
async def delete_task(task_id: str, db: Session = Depends(get_db), session: SessionContext = Depends(get_session)):
    denied = _admin_write(session)
    if denied:
        return denied
    TaskRepository(db).delete(task_id)
    return RedirectResponse(url="/projects", status_code=303)


@app.post("/clients/add")
async def add_client(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    address: str = Form(""),
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    denied = _admin_write(session)
    if denied:
        return denied
    try:
        payload = ClientIn(name=name, email=email or None, phone=phone or None, address=address or None)
    except ValidationError as exc:
        errors = {f"client_{k}": v for k, v in field_errors(exc).items()}
        return _projects_page(request, db, session, errors=errors, form={"client_name": name}, status_code=400)
    ClientRepository(db).create(**payload.model_dump())
    return RedirectResponse(url="/projects", status_code=303)


@app.post("/clients/{client_id}/delete")
async def delete_client(client_id: str, db: Session = Depends(get_db), session: SessionContext = Depends(get_session)):
    denied = _admin_write(session)
    if denied:
        return denied
    ClientRepository(db).delete(client_id)
    return RedirectResponse(url="/projects", status_code=303)


# Admin
@app.get("/admin", response_class=HTMLResponse)
async def admin_dashboard(
    request: Request,
    role: str = "all",
    period: str = WEEK,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    if not session.is_admin:
        return RedirectResponse(url="/", status_code=303)
    if period not in (TODAY, WEEK, MONTH):
        period = WEEK

    error = None
    users, entries, projects = [], [], []
    try:
        users = UserRepository(db).get_all()
        entries = TimeEntryRepository(db).get_all()
        projects = ProjectRepository(db).get_all()
    except SQLAlchemyError:
        logger.exception("Error loading admin data")
        error = LOAD_ERROR

    now = datetime.now()
    stats = [user_stats(user, entries, now) for user in users]
    overview = team_overview(users, stats)
    shown = stats if role not in ROLES else [row for row in stats if row.user.role == role]

    return render(
        request,
        "admin.html",
        session,
        role=role,
        roles=ROLES,
        period=period,
        periods=[(p, PERIOD_LABELS[p]) for p in (TODAY, WEEK, MONTH)],
        rows=shown,
        overview=overview,
        admin_count=sum(1 for u in users if u.role == "admin"),
        employee_count=sum(1 for u in users if u.role == "employee"),
        projects_by_id={p.id: p for p in projects},
        error=error,
    )


@app.get("/admin/users/{user_id}", response_class=HTMLResponse)
async def admin_user_detail(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    if not session.is_authenticated:
        return to_login()
    if not session.is_admin:
        return RedirectResponse(url="/", status_code=303)

    profile = UserRepository(db).get_by_id(user_id)
    if profile is None:
        return RedirectResponse(url="/admin", status_code=303)

    entries = TimeEntryRepository(db).get_by_user(user_id)
    projects = {p.id: p for p in ProjectRepository(db).get_all(include_archived=True)}
    stats = user_stats(profile, entries, datetime.now())
    recent = [
        {"entry": entry, "project": project_label(entry.project_id, projects)}
        for entry in entries[:RECENT_ENTRIES]
    ]

    return render(
        request,
        "admin_user.html",
        session,
        profile=profile,
        stats=stats,
        hours=stats.totals.total_duration / 3600,
        last_entry=entries[0].start_time if entries else None,
        recent=recent,
    )


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
