"""Database models for the Flowline workflow engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.organization import Organization
from db.models.user import User
from db.models.workflow import Workflow
from db.models.workflow_step import WorkflowStep
from db.models.workflow_run import WorkflowRun, WorkflowRunStep
from db.models.audit_log import AuditLog
from db.models.company import Company
from db.models.contact import Contact
from db.models.tag import Tag
from db.models.opportunity import Opportunity
from db.models.project import Project, ProjectTemplate
from db.models.task import Task
from db.models.activity import Activity
from db.models.notification import Notification

__all__ = [
    "Organization",
    "User",
    "Workflow",
    "WorkflowStep",
    "WorkflowRun",
    "WorkflowRunStep",
    "AuditLog",
    "Company",
    "Contact",
    "Tag",
    "Opportunity",
    "Project",
    "ProjectTemplate",
    "Task",
    "Activity",
    "Notification",
]
