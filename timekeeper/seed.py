"""Sample clients, projects, tasks and tags for trying the app out."""
import logging

from sqlalchemy.orm import Session

from .repository import ClientRepository, ProjectRepository, TagRepository, TaskRepository

logger = logging.getLogger(__name__)

SAMPLE_CLIENTS = [
    {
        "id": "client-1",
        "name": "Acme Corporation",
        "email": "contact@acme.com",
        "phone": "+1 (555) 123-4567",
        "address": "123 Business Ave, Suite 100, New York, NY 10001",
    },
    {
        "id": "client-2",
        "name": "TechStart Inc",
        "email": "hello@techstart.io",
        "phone": "+1 (555) 987-6543",
        "address": "456 Innovation Blvd, San Francisco, CA 94102",
    },
    {
        "id": "client-3",
        "name": "Global Solutions Ltd",
        "email": "info@globalsolutions.com",
        "phone": "+1 (555) 456-7890",
        "address": "789 Corporate Plaza, Chicago, IL 60601",
    },
]

SAMPLE_PROJECTS = [
    {
        "id": "project-1",
        "name": "Website Redesign",
        "color": "#3B82F6",
        "client_id": "client-1",
        "description": "Complete redesign of the company website with modern UI/UX",
    },
    {
        "id": "project-2",
        "name": "Mobile App Development",
        "color": "#10B981",
        "client_id": "client-2",
        "description": "iOS and Android mobile application for startup platform",
    },
    {
        "id": "project-3",
        "name": "E-commerce Platform",
        "color": "#F59E0B",
        "client_id": "client-3",
        "description": "Full-stack e-commerce solution with payment integration",
    },
    {
        "id": "project-4",
        "name": "Internal Dashboard",
        "color": "#8B5CF6",
        "client_id": "client-1",
        "description": "Employee management and analytics dashboard",
    },
]

SAMPLE_TASKS = [
    {"id": "task-1", "name": "Design Homepage", "project_id": "project-1", "is_billable": True, "hourly_rate": 75},
    {"id": "task-2", "name": "Implement Navigation", "project_id": "project-1", "is_billable": True, "hourly_rate": 65},
    {"id": "task-3", "name": "User Authentication", "project_id": "project-2", "is_billable": True, "hourly_rate": 80},
    {"id": "task-4", "name": "API Development", "project_id": "project-2", "is_billable": True, "hourly_rate": 85},
    {"id": "task-5", "name": "Database Schema", "project_id": "project-3", "is_billable": True, "hourly_rate": 90},
    {"id": "task-6", "name": "Payment Integration", "project_id": "project-3", "is_billable": True, "hourly_rate": 95},
    {"id": "task-7", "name": "Requirements Gathering", "project_id": "project-4", "is_billable": False},
    {"id": "task-8", "name": "UI Components", "project_id": "project-4", "is_billable": True, "hourly_rate": 70},
]

SAMPLE_TAGS = [
    {"id": "tag-1", "name": "Design", "color": "#3B82F6"},
    {"id": "tag-2", "name": "Development", "color": "#10B981"},
    {"id": "tag-3", "name": "Research", "color": "#F59E0B"},
    {"id": "tag-4", "name": "Meeting", "color": "#8B5CF6"},
    {"id": "tag-5", "name": "Bug Fix", "color": "#EF4444"},
]


def _sample_sets(db: Session):
    return [
        (ClientRepository(db), SAMPLE_CLIENTS),
        (ProjectRepository(db), SAMPLE_PROJECTS),
        (TaskRepository(db), SAMPLE_TASKS),
        (TagRepository(db), SAMPLE_TAGS),
    ]


def seed_database(db: Session) -> int:
    """Insert the sample records that are not there yet; returns how many were added."""
    added = 0
    for repo, records in _sample_sets(db):
        for record in records:
            if repo.get_by_id(record["id"]) is not None:
                continue
            repo.create(**record)
            added += 1
        logger.info("Seeded %s records", repo.kind)
    return added


def clear_sample_data(db: Session) -> int:
    removed = 0
    for repo, records in reversed(_sample_sets(db)):
        for record in records:
            if repo.get_by_id(record["id"]) is None:
                continue
            repo.delete(record["id"])
            removed += 1
    logger.info("Removed %d sample records", removed)
    return removed
