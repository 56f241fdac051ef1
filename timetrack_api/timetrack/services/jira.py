from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError, UpstreamError
from timetrack.core.settings import get_app_settings
from timetrack.db.models.projects import Project
from timetrack.db.models.tasks import Tag, Task, TaskMeta
from timetrack.db.models.users import User
from timetrack.repositories.projects import ProjectRepository
from timetrack.repositories.tasks import TagRepository, TaskRepository
from timetrack.repositories.users import CredentialRepository
from timetrack.services.base import BaseService

logger = logging.getLogger(__name__)

SOURCE = "jira"
CREDENTIALS_MISSING = "Jira credentials not found. Please set up your Jira credentials first."


# PUBLIC_INTERFACE
def map_status(name: Optional[str]) -> str:
    """Jira status name -> task status."""
    value = (name or "").lower()
    if value == "in progress":
        return "in_progress"
    if value in ("done", "closed", "resolved"):
        return "completed"
    return "pending"


# PUBLIC_INTERFACE
def map_priority(name: Optional[str]) -> str:
    """Jira priority name -> task priority."""
    value = (name or "").lower()
    if value in ("highest", "high"):
        return "high"
    if value in ("low", "lowest"):
        return "low"
    return "medium"


# PUBLIC_INTERFACE
def extract_description(description: Union[Dict[str, Any], str, None]) -> Optional[str]:
    """
    Flatten an Atlassian Document Format description to plain text.

    Plain strings are returned unchanged; empty input gives None.
    """
    if not description or description == "0":
        return None
    if isinstance(description, str):
        return description
    if "content" not in description:
        return None
    lines: List[str] = []
    for block in description.get("content") or []:
        for node in block.get("content") or []:
            if "text" in node:
                lines.append(node["text"])
    return "\n".join(lines).strip()


def browse_url(domain: str, key: str) -> str:
    return f"https://{domain}.atlassian.net/browse/{key}"


def build_extra_data(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "updated_at": fields.get("updated"),
        "created_at": fields.get("created"),
        "reporter": (fields.get("reporter") or {}).get("displayName"),
        "assignee": (fields.get("assignee") or {}).get("displayName"),
        "issue_type": (fields.get("issuetype") or {}).get("name"),
    }


def parse_due_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


class JiraClient:
    """Async wrapper around the Jira Cloud REST API using basic auth."""

    def __init__(
        self,
        domain: str,
        email: str,
        token: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_app_settings()
        self.domain = domain
        self._client = httpx.AsyncClient(
            base_url=f"https://{domain}.atlassian.net{settings.JIRA_API_PATH}",
            auth=httpx.BasicAuth(email, token),
            headers={"Accept": "application/json"},
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "JiraClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Jira %s %s failed with status %s", method, url, exc.response.status_code)
            raise UpstreamError(
                f"Jira request failed: {url}", details={"status": exc.response.status_code}
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Jira %s %s failed: %s", method, url, exc)
            raise UpstreamError(f"Jira request failed: {url}") from exc
        return response.json()

    # PUBLIC_INTERFACE
    async def verify(self) -> bool:
        """True when the credentials can read /myself."""
        try:
            await self._request("GET", "/myself")
        except UpstreamError:
            return False
        return True

    # PUBLIC_INTERFACE
    async def projects(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/project", params={"maxResults": 100})

    # PUBLIC_INTERFACE
    async def project_issues(self, key: str) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET",
            "/search",
            params={"jql": f"project = {key} ORDER BY created DESC", "maxResults": 100},
        )
        return data.get("issues") or []


ClientFactory = Callable[[str, str, str], JiraClient]


class JiraService(BaseService):
    """Jira credentials, project import and issue sync."""

    def __init__(self, session: AsyncSession, client_factory: Optional[ClientFactory] = None) -> None:
        super().__init__(session)
        self.credentials = CredentialRepository(session)
        self.projects = ProjectRepository(session)
        self.tasks = TaskRepository(session)
        self.tags = TagRepository(session)
        self.client_factory: ClientFactory = client_factory or JiraClient

    async def _keys(self, user: User) -> Dict[str, str]:
        credential = await self.credentials.get(user.id, SOURCE)
        if credential is None or not credential.keys:
            raise BadRequestError(CREDENTIALS_MISSING)
        return credential.keys

    def _client(self, keys: Dict[str, str]) -> JiraClient:
        return self.client_factory(keys["domain"], keys["email"], keys["token"])

    # PUBLIC_INTERFACE
    async def has_credentials(self, user: User) -> bool:
        return await self.credentials.get(user.id, SOURCE) is not None

    # PUBLIC_INTERFACE
    async def save_credentials(self, user: User, domain: str, email: str, token: str) -> None:
        """Validate the credentials against Jira and store them for the user."""
        async with self.client_factory(domain, email, token) as client:
            valid = await client.verify()
        if not valid:
            raise BadRequestError("Invalid Jira credentials. Please check your domain, email, and API token.")
        async with self.transaction():
            await self.credentials.upsert(user.id, SOURCE, {"domain": domain, "email": email, "token": token})
        logger.info("Saved Jira credentials for user %s", user.id)

    # PUBLIC_INTERFACE
    async def list_projects(self, user: User) -> Dict[str, Any]:
        keys = await self._keys(user)
        async with self._client(keys) as client:
            projects = await client.projects()
        imported = await self.projects.imported_repo_ids(user.id, SOURCE)
        return {"projects": projects, "imported_project_keys": imported}

    async def _label_tags(self, labels: List[str], owner_id: UUID) -> List[Tag]:
        tags: List[Tag] = []
        for name in labels:
            if not name:
                continue
            tag = await self.tags.first_or_create(owner_id, name)
            if tag not in tags:
                tags.append(tag)
        return tags

    async def _sync_issue(self, project: Project, domain: str, issue: Dict[str, Any]) -> bool:
        fields = issue.get("fields") or {}
        key = issue["key"]
        status_name = (fields.get("status") or {}).get("name")
        values = {
            "title": fields.get("summary") or key,
            "description": extract_description(fields.get("description")),
            "status": map_status(status_name),
            "priority": map_priority((fields.get("priority") or {}).get("name")),
            "due_date": parse_due_date(fields.get("duedate")),
        }
        meta_values = {
            "source_number": str(issue["id"]) if issue.get("id") is not None else None,
            "source_url": browse_url(domain, key),
            "source_state": status_name,
            "extra_data": build_extra_data(fields),
        }

        task = await self.tasks.find_by_source(SOURCE, key)
        if task is not None:
            for field, value in values.items():
                setattr(task, field, value)
            if task.created_by is None:
                task.created_by = project.user_id
            for field, value in meta_values.items():
                setattr(task.meta, field, value)
            await self.tasks.flush()
            return False

        labels = fields.get("labels")
        tags = await self._label_tags(labels if isinstance(labels, list) else [], project.user_id)
        task = Task(
            project_id=project.id,
            is_imported=True,
            created_by=project.user_id,
            assignees=[],
            tags=tags,
            meta=TaskMeta(source=SOURCE, source_id=key, **meta_values),
            **values,
        )
        await self.tasks.add(task)
        await self.tasks.flush()
        return True

    # PUBLIC_INTERFACE
    async def sync_issues(self, project: Project, domain: str, issues: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Upsert tasks for Jira issues inside the current transaction.

        Issues are matched by key; failures are logged per issue and skipped.
        Returns:
            {"new_tasks", "updated_tasks", "failed_tasks"}
        """
        stats = {"new_tasks": 0, "updated_tasks": 0, "failed_tasks": 0}
        for issue in issues:
            try:
                async with self.session.begin_nested():
                    created = await self._sync_issue(project, domain, issue)
            except Exception:
                stats["failed_tasks"] += 1
                logger.exception("Failed to sync Jira issue %s for project %s", issue.get("key"), project.id)
                continue
            stats["new_tasks" if created else "updated_tasks"] += 1
        logger.info("Jira sync for project %s: %s", project.id, stats)
        return stats

    # PUBLIC_INTERFACE
    async def import_project(self, user: User, key: str, name: str, description: Optional[str] = None) -> Project:
        """Create a project for a Jira project key and import its issues."""
        keys = await self._keys(user)
        if await self.projects.get_by_repo(user.id, SOURCE, key) is not None:
            raise BadRequestError("This Jira project has already been imported.")
        async with self._client(keys) as client:
            issues = await client.project_issues(key)
        async with self.transaction():
            project = Project(
                user_id=user.id,
                name=name,
                description=description,
                repo_id=key,
                source=SOURCE,
                members=[],
            )
            await self.projects.add(project)
            await self.projects.flush()
            await self.sync_issues(project, keys["domain"], issues)
        await self.projects.refresh(project)
        logger.info("Imported Jira project %s as project %s", key, project.id)
        return project

    # PUBLIC_INTERFACE
    async def sync_project(self, user: User, project_id: UUID) -> Dict[str, int]:
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        if project.user_id != user.id:
            raise ForbiddenError("You are not authorized to sync this project.")
        if project.source != SOURCE or not project.repo_id:
            raise BadRequestError("This project is not a Jira project.")
        keys = await self._keys(user)
        async with self._client(keys) as client:
            issues = await client.project_issues(project.repo_id)
        async with self.transaction():
            stats = await self.sync_issues(project, keys["domain"], issues)
        return stats
