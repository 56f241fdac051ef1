"""HTTP-level tests for routing, the error envelope and service wiring."""

from uuid import uuid4

import pandas as pd
import pytest
from httpx import AsyncClient

from timetrack.core.errors import ForbiddenError, NotFoundError, UnauthorizedError


@pytest.mark.integration
class TestHealth:
    async def test_health(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["message"] == "Healthy"
        assert "X-Correlation-ID" in response.headers

    async def test_tenant_echo(self, async_client: AsyncClient, tenant_id: str) -> None:
        response = await async_client.get("/api/v1/health/tenant")

        assert response.json() == {"tenant_id": tenant_id}

    async def test_invalid_tenant_header(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/v1/health/tenant", headers={"X-Tenant-ID": "nope"})

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == 400
        assert body["error"]["type"] == "http_error"

    async def test_websocket_info_lists_endpoints(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/v1/websocket-info")

        paths = [e["path"] for e in response.json()["endpoints"]]
        assert paths == ["/ws/notifications", "/ws/chat/{conversation_id}"]


@pytest.mark.integration
class TestErrorEnvelope:
    async def test_service_error_is_mapped(self, async_client: AsyncClient, mocker) -> None:
        service = mocker.patch("timetrack.api.routes.clients.ClientService")
        service.return_value.get = mocker.AsyncMock(side_effect=NotFoundError("Client not found."))

        response = await async_client.get(
            f"/api/v1/clients/{uuid4()}", headers={"X-Correlation-ID": "corr-123"}
        )

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == {"type": "not_found", "message": "Client not found.", "details": None}
        assert body["correlation_id"] == "corr-123"
        assert body["method"] == "GET"
        assert response.headers["X-Correlation-ID"] == "corr-123"

    async def test_validation_error(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/v1/clients", json={"name": ""})

        assert response.status_code == 422
        body = response.json()
        assert body["error"]["type"] == "validation_error"
        assert body["error"]["details"]

    async def test_forbidden_reject(self, async_client: AsyncClient, mocker) -> None:
        service = mocker.patch("timetrack.api.routes.approvals.ApprovalService")
        service.return_value.reject = mocker.AsyncMock(side_effect=ForbiddenError("Paid time logs cannot be rejected."))

        response = await async_client.post(f"/api/v1/approvals/{uuid4()}/reject", json={"comment": "late"})

        assert response.status_code == 403
        assert response.json()["error"]["type"] == "forbidden"


@pytest.mark.integration
class TestAuth:
    async def test_me_returns_current_user(self, async_client: AsyncClient, user) -> None:
        response = await async_client.get("/api/v1/auth/me")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(user.id)
        assert body["email"] == user.email
        assert body["has_github_token"] is False

    async def test_login_with_bad_credentials(self, async_client: AsyncClient, mocker) -> None:
        service = mocker.patch("timetrack.api.routes.auth.UserService")
        service.return_value.authenticate = mocker.AsyncMock(side_effect=UnauthorizedError("Invalid credentials"))

        response = await async_client.post(
            "/api/v1/auth/login", data={"username": "jane@example.com", "password": "wrong"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid credentials"

    async def test_login_issues_token_pair(self, async_client: AsyncClient, user, mocker) -> None:
        service = mocker.patch("timetrack.api.routes.auth.UserService")
        service.return_value.authenticate = mocker.AsyncMock(return_value=user)

        response = await async_client.post(
            "/api/v1/auth/login", data={"username": user.email, "password": "secret-pass"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["access_token"]
        assert body["refresh_token"]

    async def test_refresh_rejects_access_token(self, async_client: AsyncClient, user, tenant_id) -> None:
        from timetrack.core.security import create_access_token

        token = create_access_token(subject=str(user.id), tenant_id=tenant_id)

        response = await async_client.post("/api/v1/auth/refresh", json={"refresh_token": token})

        assert response.status_code == 401


@pytest.mark.integration
class TestRoutesDelegateToServices:
    async def test_approve_many(self, async_client: AsyncClient, user, mocker) -> None:
        service = mocker.patch("timetrack.api.routes.approvals.ApprovalService")
        service.return_value.approve_many = mocker.AsyncMock(
            return_value={"approved_count": 2, "skipped_count": 1, "message": "2 time logs approved successfully."}
        )
        ids = [str(uuid4()) for _ in range(3)]

        response = await async_client.post("/api/v1/approvals/approve-many", json={"time_log_ids": ids})

        assert response.status_code == 200
        assert response.json()["approved_count"] == 2
        args = service.return_value.approve_many.await_args.args
        assert args[0] is user
        assert [str(i) for i in args[1]] == ids

    async def test_approve_many_requires_ids(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/v1/approvals/approve-many", json={"time_log_ids": []})

        assert response.status_code == 422

    async def test_clients_csv_export(self, async_client: AsyncClient, mocker) -> None:
        service = mocker.patch("timetrack.api.routes.clients.ClientService")
        service.return_value.export_frame = mocker.AsyncMock(
            return_value=pd.DataFrame([{"Name": "Acme", "Email": "billing@acme.test"}])
        )

        response = await async_client.get("/api/v1/clients/export", params={"format": "csv"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.text.splitlines() == ["Name,Email", "Acme,billing@acme.test"]

    async def test_export_rejects_unknown_format(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/v1/clients/export", params={"format": "docx"})

        assert response.status_code == 422

    async def test_delete_client_returns_no_content(self, async_client: AsyncClient, mocker) -> None:
        service = mocker.patch("timetrack.api.routes.clients.ClientService")
        service.return_value.delete = mocker.AsyncMock(return_value=None)

        response = await async_client.delete(f"/api/v1/clients/{uuid4()}")

        assert response.status_code == 204
