import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"
ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE)


def generate_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_EMPLOYEE, index=True)
    hourly_rate = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    timezone = Column(String(64), nullable=False, default="America/New_York")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(String(200), nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
    version = Column(Integer, nullable=False)

    projects = relationship("Project", back_populates="client", passive_deletes=True)

    __mapper_args__ = {"version_id_col": version}


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False, index=True)
    color = Column(String(20), nullable=False, default="#3B82F6")  # UI grouping only
    client_id = Column(String(32), ForeignKey("clients.id"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
    version = Column(Integer, nullable=False)

    client = relationship("Client", back_populates="projects")

    __mapper_args__ = {"version_id_col": version}


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    # plain id, deleting a project leaves its tasks behind
    project_id = Column(String(32), nullable=False, index=True)
    is_billable = Column(Boolean, nullable=False, default=False)
    hourly_rate = Column(Float, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(50), nullable=False)
    color = Column(String(20), nullable=False, default="#3B82F6")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    project_id = Column(String(32), nullable=True, index=True)
    task_id = Column(String(32), nullable=True, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=False, default=0)  # seconds
    is_billable = Column(Boolean, nullable=False, default=True)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
