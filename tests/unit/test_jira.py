"""Tests for Jira field mapping, credentials and issue sync."""

from datetime import date
from types import SimpleNamespace
from uuid import uuid4

import httpx
import pytest

from timetrack.core.errors import BadRequestError
from timetrack.services.jira import (
    JiraClient,
    JiraService,
    browse_url,
    extract_description,
    map_priority,
    map_status,
    parse_due_date,
)


@pytest.mark.unit
class TestMapping:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("In Progress", "in_progress"),
            ("Done", "completed"),
            ("closed", "completed"),
            ("Resolved", "completed"),
            ("To Do", "pending"),
            (None, "pending"),
        ],
    )
    def test_status(self, name, expected) -> None:
        assert map_status(name) == expected

    @pytest.mark.parametrize(
        ("name", "expected"),
        [("Highest", "high"), ("High", "high"), ("Lowest", "low"), ("Low", "low"), ("Medium", "medium"), (None, "medium")],
    )
    def test_priority(self, name, expected) -> None:
        assert map_priority(name) == expected

    def test_browse_url_and_due_date(self) -> None:
        assert browse_url("acme", "WEB-1") == "https://acme.atlassian.net/browse/WEB-1"
        assert parse_due_date("2024-05-01") == date(2024, 5, 1)
        assert parse_due_date(None) is None


@pytest.mark.unit
class TestExtractDescription:
    def test_flattens_document_paragraphs(self) -> None:
        doc = {
            "type": "doc",
            "content": [
                {"type": "paragraph", "content": [{"type": "text", "text": "First line"}]},
                {"type": "paragraph", "content": [{"type": "text", "text": "Second line"}, {"type": "hardBreak"}]},
            ],
        }

        assert extract_description(doc) == "First line\nSecond line"

    def test_plain_string_is_returned_unchanged(self) -> None:
        assert extract_description("Just text") == "Just text"

    @pytest.mark.parametrize("value", [None, "", {}, {"type": "doc"}])
    def test_empty_values_give_none(self, value) -> None:
        assert extract_description(value) is None


def _issue(key: str, **fields) -> dict:
    base = {
        "summary": f"Summary of {key}",
        "status": {"name": "To Do"},
        "priority": {"name": "High"},
        "labels": [],
    }
    base.update(fields)
    return {"id": "10001", "key": key, "fields": base}


@pytest.fixture
def service(session, mocker) -> JiraService:
    service = JiraService(session)
    service.credentials = mocker.AsyncMock()
    service.projects = mocker.AsyncMock()
    service.tasks = mocker.AsyncMock()
    service.tags = mocker.AsyncMock()
    return service


@pytest.mark.unit
class TestJiraService:
    async def test_existing_issue_updates_task(self, service) -> None:
        project = SimpleNamespace(id=uuid4(), user_id=uuid4())
        meta = SimpleNamespace(source_state=None, source_url=None, source_number=None, extra_data=None)
        task = SimpleNamespace(created_by=None, meta=meta)
        service.tasks.find_by_source.return_value = task

        stats = await service.sync_issues(project, "acme", [_issue("WEB-1", status={"name": "In Progress"})])

        assert stats == {"new_tasks": 0, "updated_tasks": 1, "failed_tasks": 0}
        assert task.status == "in_progress"
        assert task.priority == "high"
        assert task.title == "Summary of WEB-1"
        assert meta.source_url == "https://acme.atlassian.net/browse/WEB-1"
        service.tasks.find_by_source.assert_awaited_once_with("jira", "WEB-1")

    async def test_failed_issue_is_counted(self, service, mocker) -> None:
        project = SimpleNamespace(id=uuid4(), user_id=uuid4())
        service._sync_issue = mocker.AsyncMock(side_effect=[True, ValueError("bad date")])

        stats = await service.sync_issues(project, "acme", [_issue("WEB-1"), _issue("WEB-2")])

        assert stats == {"new_tasks": 1, "updated_tasks": 0, "failed_tasks": 1}

    async def test_missing_credentials(self, service, user) -> None:
        service.credentials.get.return_value = None

        with pytest.raises(BadRequestError):
            await service.list_projects(user)

    async def test_import_rejects_duplicate_key(self, service, user) -> None:
        service.credentials.get.return_value = SimpleNamespace(keys={"domain": "acme", "email": "a@b.c", "token": "t"})
        service.projects.get_by_repo.return_value = SimpleNamespace(id=uuid4())

        with pytest.raises(BadRequestError):
            await service.import_project(user, "WEB", "Website")

    async def test_save_credentials_rejects_invalid(self, session, user, mocker) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(401))
        service = JiraService(
            session,
            client_factory=lambda domain, email, token: JiraClient(domain, email, token, transport=transport),
        )
        service.credentials = mocker.AsyncMock()

        with pytest.raises(BadRequestError):
            await service.save_credentials(user, "acme", "jane@example.com", "bad-token")
        service.credentials.upsert.assert_not_awaited()

    async def test_save_credentials_stores_valid(self, session, user, mocker) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization", "")
            return httpx.Response(200, json={"accountId": "1"})

        transport = httpx.MockTransport(handler)
        service = JiraService(
            session,
            client_factory=lambda domain, email, token: JiraClient(domain, email, token, transport=transport),
        )
        service.credentials = mocker.AsyncMock()

        await service.save_credentials(user, "acme", "jane@example.com", "token")

        assert seen["url"] == "https://acme.atlassian.net/rest/api/3/myself"
        assert seen["auth"].startswith("Basic ")
        service.credentials.upsert.assert_awaited_once_with(
            user.id, "jira", {"domain": "acme", "email": "jane@example.com", "token": "token"}
        )
