"""
ORM models for tenancy, users, teams, clients, projects, tasks, time logs,
invoices, chat and notifications.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .tenancy import Tenant  # noqa: F401
from .users import Credential, User  # noqa: F401
from .teams import Team  # noqa: F401
from .clients import Client  # noqa: F401
from .projects import Project, ProjectMember, ProjectNote  # noqa: F401
from .tasks import (  # noqa: F401
    Tag,
    Task,
    TaskAssignee,
    TaskComment,
    TaskMeta,
    TaskTag,
)
from .time_logs import TimeLog, TimeLogTag  # noqa: F401
from .invoices import Invoice, InvoiceItem  # noqa: F401
from .chat import Conversation, ConversationParticipant, Message  # noqa: F401
from .notifications import Notification  # noqa: F401
