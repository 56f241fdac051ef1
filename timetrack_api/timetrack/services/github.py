from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError, UnauthorizedError, UpstreamError
from timetrack.core.settings import get_app_settings
from timetrack.db.models.projects import Project
from timetrack.db.models.tasks import Tag, Task, TaskMeta
from timetrack.db.models.users import User
from timetrack.repositories.projects import ProjectRepository
from timetrack.repositories.tasks import TagRepository, TaskRepository
from timetrack.services.base import BaseService

logger = logging.getLogger(__name__)

SOURCE = "github"
TOKEN_MISSING = "GitHub token not found. Please authenticate with GitHub."


# PUBLIC_INTERFACE
def map_status(state: Optional[str]) -> str:
    """GitHub issue state -> task status."""
    return "completed" if state == "closed" else "pending"


# PUBLIC_INTERFACE
def map_priority(labels: Optional[List[Dict[str, Any]]]) -> str:
    """
    Derive a task priority from the first issue label.

    'high'/'urgent' -> high, 'medium' -> medium, any other label -> low,
    no labels -> medium.
    """
    if not labels:
        return "medium"
    name = str(labels[0].get("name") or "").lower()
    if "high" in name or "urgent" in name:
        return "high"
    if "medium" in name:
        return "medium"
    return "low"


# PUBLIC_INTERFACE
def build_extra_data(issue: Dict[str, Any]) -> Dict[str, Any]:
    """Snapshot of issue fields kept on the task meta."""
    user = issue.get("user")
    return {
        "labels": issue.get("labels") or [],
        "created_at": issue.get("created_at"),
        "updated_at": issue.get("updated_at"),
        "closed_at": issue.get("closed_at"),
        "user": {"id": user.get("id"), "login": user.get("login")} if user else None,
    }


def is_pull_request(issue: Dict[str, Any]) -> bool:
    return "pull_request" in issue


class GitHubClient:
    """Thin async wrapper around the GitHub REST API."""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_app_settings()
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.GITHUB_API_URL,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
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
            logger.warning("GitHub %s %s failed with status %s", method, url, exc.response.status_code)
            raise UpstreamError(
                f"GitHub request failed: {url}", details={"status": exc.response.status_code}
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("GitHub %s %s failed: %s", method, url, exc)
            raise UpstreamError(f"GitHub request failed: {url}") from exc
        return response.json()

    # PUBLIC_INTERFACE
    async def personal_repositories(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/user/repos", params={"per_page": 100, "sort": "updated"})

    # PUBLIC_INTERFACE
    async def organization_repositories(self) -> List[Dict[str, Any]]:
        """Repositories of every organization the user belongs to, tagged with `organization`."""
        orgs = await self._request("GET", "/user/orgs", params={"per_page": 100})
        repos: List[Dict[str, Any]] = []
        for org in orgs:
            login = org.get("login")
            try:
                org_repos = await self._request(
                    "GET", f"/orgs/{login}/repos", params={"per_page": 100, "sort": "updated"}
                )
            except UpstreamError:
                logger.warning("Skipping repositories of organization %s", login)
                continue
            for repo in org_repos:
                repos.append({**repo, "organization": login})
        return repos

    # PUBLIC_INTERFACE
    async def repository_issues(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return await self._request(
            "GET", f"/repos/{owner}/{repo}/issues", params={"state": "all", "per_page": 100}
        )

    # PUBLIC_INTERFACE
    async def close_issue(self, full_name: str, number: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/repos/{full_name}/issues/{number}", json={"state": "closed"})


ClientFactory = Callable[[str], GitHubClient]


def split_full_name(full_name: str) -> Tuple[str, str]:
    owner, _, repo = full_name.partition("/")
    if not owner or not repo:
        raise BadRequestError(f"Invalid GitHub repository name: {full_name}")
    return owner, repo


class GitHubService(BaseService):
    """Import GitHub repositories as projects and keep their issues in sync as tasks."""

    def __init__(self, session: AsyncSession, client_factory: Optional[ClientFactory] = None) -> None:
        super().__init__(session)
        self.projects = ProjectRepository(session)
        self.tasks = TaskRepository(session)
        self.tags = TagRepository(session)
        self.client_factory: ClientFactory = client_factory or GitHubClient

    def _client(self, user: User) -> GitHubClient:
        if not user.github_token:
            raise UnauthorizedError(TOKEN_MISSING)
        return self.client_factory(user.github_token)

    async def _label_tags(self, labels: List[Dict[str, Any]], owner_id, status: str, priority: str) -> List[Tag]:
        tags: List[Tag] = []
        for label in labels:
            name = label.get("name")
            if not name or name == status or name == priority:
                continue
            color = f"#{label['color']}" if label.get("color") else None
            tag = await self.tags.first_or_create(owner_id, name, color)
            if tag not in tags:
                tags.append(tag)
        return tags

    async def _sync_issue(self, project: Project, issue: Dict[str, Any]) -> bool:
        """Create or update the task for one issue. Returns True when a task was created."""
        labels = issue.get("labels") or []
        status = map_status(issue.get("state"))
        priority = map_priority(labels)
        tags = await self._label_tags(labels, project.user_id, status, priority)

        task = await self.tasks.find_by_source(SOURCE, str(issue["id"]))
        if task is not None:
            task.title = issue["title"]
            task.description = issue.get("body") or ""
            task.status = status
            task.priority = priority
            if task.created_by is None:
                task.created_by = project.user_id
            task.meta.source_state = issue.get("state")
            task.meta.source_url = issue.get("html_url")
            task.meta.extra_data = build_extra_data(issue)
            if tags:
                task.tags = tags
            await self.tasks.flush()
            return False

        task = Task(
            project_id=project.id,
            title=issue["title"],
            description=issue.get("body") or "",
            status=status,
            priority=priority,
            is_imported=True,
            created_by=project.user_id,
            assignees=[],
            tags=tags,
            meta=TaskMeta(
                source=SOURCE,
                source_id=str(issue["id"]),
                source_number=str(issue.get("number")),
                source_url=issue.get("html_url"),
                source_state=issue.get("state"),
                extra_data=build_extra_data(issue),
            ),
        )
        await self.tasks.add(task)
        await self.tasks.flush()
        return True

    # PUBLIC_INTERFACE
    async def sync_issues(self, project: Project, issues: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Upsert tasks for the given issues inside the current transaction.

        Pull requests are skipped. Each issue runs in its own savepoint so a failing
        issue is logged and skipped without aborting the batch.
        Returns:
            {"new_count", "updated_count", "failed_count"}
        """
        new_count = 0
        updated_count = 0
        failed_count = 0
        for issue in issues:
            if is_pull_request(issue):
                continue
            try:
                async with self.session.begin_nested():
                    created = await self._sync_issue(project, issue)
            except Exception:
                failed_count += 1
                logger.exception("Failed to sync GitHub issue #%s for project %s", issue.get("number"), project.id)
                continue
            if created:
                new_count += 1
            else:
                updated_count += 1
        logger.info(
            "GitHub sync for project %s: new=%d updated=%d failed=%d", project.id, new_count, updated_count, failed_count
        )
        return {"new_count": new_count, "updated_count": updated_count, "failed_count": failed_count}

    # PUBLIC_INTERFACE
    async def list_repositories(self, user: User, kind: str = "personal") -> List[Dict[str, Any]]:
        """Personal or organization repositories, each flagged with is_imported."""
        async with self._client(user) as client:
            if kind == "organization":
                repos = await client.organization_repositories()
            else:
                repos = await client.personal_repositories()
        imported = set(await self.projects.imported_repo_ids(user.id, SOURCE))
        return [{**repo, "is_imported": str(repo.get("id")) in imported} for repo in repos]

    # PUBLIC_INTERFACE
    async def import_repository(self, user: User, repository: Dict[str, Any]) -> Tuple[Project, Dict[str, int]]:
        """Create a project from a repository payload and import its issues as tasks."""
        full_name = repository["full_name"]
        if await self.projects.get_by_name(user.id, full_name) is not None:
            raise BadRequestError("Repository is already imported as a project.")
        owner, repo = split_full_name(full_name)
        async with self._client(user) as client:
            issues = await client.repository_issues(owner, repo)

        description = repository.get("description") or ""
        async with self.transaction():
            project = Project(
                user_id=user.id,
                name=full_name,
                description=f"{description}\n\nGitHub Repository: {repository.get('html_url', '')}",
                repo_id=str(repository["id"]),
                source=SOURCE,
                members=[],
            )
            await self.projects.add(project)
            await self.projects.flush()
            counts = await self.sync_issues(project, issues)
        await self.projects.refresh(project)
        logger.info("Imported GitHub repository %s as project %s", full_name, project.id)
        return project, counts

    # PUBLIC_INTERFACE
    async def sync_project(self, user: User, project_id) -> Dict[str, int]:
        """Re-fetch issues for an imported project and upsert its tasks."""
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        if project.user_id != user.id:
            raise ForbiddenError("You are not authorized to sync this project.")
        if project.source != SOURCE:
            raise BadRequestError("This project is not a GitHub repository.")
        owner, repo = split_full_name(project.name)
        async with self._client(user) as client:
            issues = await client.repository_issues(owner, repo)
        async with self.transaction():
            counts = await self.sync_issues(project, issues)
        return counts

    # PUBLIC_INTERFACE
    async def close_task_issue(self, user: User, task: Task) -> None:
        """Close the GitHub issue behind an imported task, if it is still open."""
        meta = task.meta
        if not task.is_imported or meta is None or meta.source != SOURCE or meta.source_state == "closed":
            return
        async with self._client(user) as client:
            await client.close_issue(task.project.name, meta.source_number)
        meta.source_state = "closed"
