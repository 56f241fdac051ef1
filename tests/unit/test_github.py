"""Tests for GitHub issue mapping, sync and the REST client."""

from types import SimpleNamespace
from uuid import uuid4

import httpx
import pytest

from timetrack.core.errors import BadRequestError, UnauthorizedError, UpstreamError
from timetrack.db.models.tasks import Task
from timetrack.services.github import (
    GitHubClient,
    GitHubService,
    map_priority,
    map_status,
    split_full_name,
)


def _issue(number: int, **extra) -> dict:
    issue = {
        "id": 1000 + number,
        "number": number,
        "title": f"Issue {number}",
        "body": "Steps to reproduce",
        "state": "open",
        "html_url": f"https://github.com/acme/site/issues/{number}",
        "labels": [],
        "user": {"id": 7, "login": "octocat"},
    }
    issue.update(extra)
    return issue


@pytest.mark.unit
class TestMapping:
    def test_status(self) -> None:
        assert map_status("closed") == "completed"
        assert map_status("open") == "pending"
        assert map_status(None) == "pending"

    @pytest.mark.parametrize(
        ("labels", "expected"),
        [
            ([{"name": "High priority"}], "high"),
            ([{"name": "urgent"}], "high"),
            ([{"name": "Medium"}], "medium"),
            ([{"name": "bug"}, {"name": "high"}], "low"),
            ([], "medium"),
            (None, "medium"),
        ],
    )
    def test_priority_from_first_label(self, labels, expected) -> None:
        assert map_priority(labels) == expected

    def test_split_full_name(self) -> None:
        assert split_full_name("acme/site") == ("acme", "site")
        with pytest.raises(BadRequestError):
            split_full_name("acme")


@pytest.fixture
def project(user) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), user_id=user.id, name="acme/site", source="github")


@pytest.fixture
def service(session, mocker) -> GitHubService:
    service = GitHubService(session)
    service.tasks = mocker.AsyncMock()
    service.tags = mocker.AsyncMock()
    service.projects = mocker.AsyncMock()
    return service


@pytest.mark.unit
class TestSyncIssues:
    async def test_existing_task_is_updated_not_duplicated(self, service, project) -> None:
        meta = SimpleNamespace(source_state="open", source_url=None, extra_data={})
        existing = SimpleNamespace(
            title="Old", description="", status="pending", priority="low", created_by=None, meta=meta, tags=[]
        )
        service.tasks.find_by_source.return_value = existing

        counts = await service.sync_issues(project, [_issue(1, title="Renamed", state="closed")])

        assert counts == {"new_count": 0, "updated_count": 1, "failed_count": 0}
        assert existing.title == "Renamed"
        assert existing.status == "completed"
        assert existing.priority == "medium"
        assert existing.created_by == project.user_id
        assert meta.source_state == "closed"
        service.tasks.find_by_source.assert_awaited_once_with("github", "1001")
        service.tasks.add.assert_not_awaited()

    async def test_new_issue_creates_imported_task(self, service, project) -> None:
        service.tasks.find_by_source.return_value = None

        counts = await service.sync_issues(project, [_issue(2)])

        assert counts["new_count"] == 1
        created = service.tasks.add.await_args.args[0]
        assert isinstance(created, Task)
        assert created.is_imported is True
        assert created.project_id == project.id
        assert created.meta.source == "github"
        assert created.meta.source_id == "1002"
        assert created.meta.source_number == "2"

    async def test_pull_requests_are_skipped(self, service, project) -> None:
        counts = await service.sync_issues(project, [_issue(3, pull_request={"url": "x"})])

        assert counts == {"new_count": 0, "updated_count": 0, "failed_count": 0}
        service.tasks.find_by_source.assert_not_awaited()

    async def test_failing_issue_does_not_abort_batch(self, service, project, mocker) -> None:
        service._sync_issue = mocker.AsyncMock(side_effect=[RuntimeError("boom"), True, False])

        counts = await service.sync_issues(project, [_issue(4), _issue(5), _issue(6)])

        assert counts == {"new_count": 1, "updated_count": 1, "failed_count": 1}

    async def test_label_tags_skip_status_and_priority_names(self, service, project) -> None:
        tag = SimpleNamespace(name="bug")
        service.tags.first_or_create.return_value = tag
        labels = [{"name": "bug", "color": "ff0000"}, {"name": "medium"}, {"name": "pending"}]

        tags = await service._label_tags(labels, project.user_id, "pending", "medium")

        assert tags == [tag]
        service.tags.first_or_create.assert_awaited_once_with(project.user_id, "bug", "#ff0000")


@pytest.mark.unit
class TestGitHubProjects:
    async def test_missing_token(self, service, user) -> None:
        with pytest.raises(UnauthorizedError):
            await service.list_repositories(user)

    async def test_sync_rejects_non_github_project(self, service, user, project) -> None:
        project.source = "jira"
        service.projects.get.return_value = project

        with pytest.raises(BadRequestError):
            await service.sync_project(user, project.id)

    async def test_list_repositories_flags_imported(self, session, user, mocker) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer secret"
            return httpx.Response(200, json=[{"id": 1, "full_name": "a/b"}, {"id": 2, "full_name": "a/c"}])

        transport = httpx.MockTransport(handler)
        service = GitHubService(session, client_factory=lambda token: GitHubClient(token, transport=transport))
        service.projects = mocker.AsyncMock()
        service.projects.imported_repo_ids.return_value = ["2"]
        user.github_token = "secret"

        repos = await service.list_repositories(user)

        assert [r["is_imported"] for r in repos] == [False, True]


@pytest.mark.unit
async def test_client_maps_http_errors_to_upstream_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"message": "Not Found"}))

    async with GitHubClient("token", base_url="https://api.github.test", transport=transport) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await client.repository_issues("acme", "missing")

    assert exc_info.value.details == {"status": 404}
