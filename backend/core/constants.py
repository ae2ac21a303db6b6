"""Constants and enums for the Flowline workflow engine."""

from enum import Enum


class RunStatus(str, Enum):
    """Workflow run status."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIALLY_FAILED = "partially_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.PARTIALLY_FAILED)


class StepStatus(str, Enum):
    """Outcome of a single step within a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class TriggerType(str, Enum):
    """What starts a workflow run."""

    EVENT = "event"
    SCHEDULE = "schedule"
    WEBHOOK = "webhook"
    MANUAL = "manual"


class StepType(str, Enum):
    """Kind of workflow step."""

    ACTION = "action"
    CONDITION = "condition"
    LOOP = "loop"


class ActionType(str, Enum):
    """Action performed by an action step."""

    SEND_EMAIL = "send_email"
    SEND_NOTIFICATION = "send_notification"
    SEND_PUSH = "send_push"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    BULK_UPDATE_TASKS = "bulk_update_tasks"
    CREATE_CONTACT = "create_contact"
    UPDATE_CONTACT = "update_contact"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    UPDATE_OPPORTUNITY = "update_opportunity"
    CREATE_PROJECT_FROM_OPPORTUNITY = "create_project_from_opportunity"
    CREATE_PROJECT = "create_project"
    CREATE_PROJECT_FROM_TEMPLATE = "create_project_from_template"
    AI_GENERATE = "ai_generate"
    AI_CATEGORIZE = "ai_categorize"
    AI_SUMMARIZE = "ai_summarize"
    WEBHOOK_CALL = "webhook_call"
    CREATE_ACTIVITY = "create_activity"
    SEND_SLACK = "send_slack"
    CREATE_SLACK_CHANNEL = "create_slack_channel"


class ScheduleType(str, Enum):
    """Schedule trigger recurrence."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CRON = "cron"


class UserRole(str, Enum):
    """Organization role carried in the access token."""

    ADMIN = "admin"
    PM = "pm"
    MEMBER = "member"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ARCHIVED = "archived"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditAction(str, Enum):
    """Audit action type."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    EXECUTE = "execute"


# Request headers never copied into webhook trigger data
SENSITIVE_HEADER_MARKERS = ("authorization", "cookie")

# Headers carrying the webhook HMAC signature, in lookup order
SIGNATURE_HEADERS = ("x-webhook-signature", "x-signature")

# Plans without workflow automation
PLANS_WITHOUT_WORKFLOWS = frozenset({"free"})
