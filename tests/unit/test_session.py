"""Tests for tenant scoping of database sessions."""

from uuid import uuid4

import pytest
from sqlalchemy import event

from timetrack.db.session import (
    TENANT_INFO_KEY,
    TenantSession,
    apply_tenant_on_begin,
    get_session_maker,
    set_current_tenant,
    tenant_context,
)


@pytest.fixture
def async_session(mocker):
    fake = mocker.AsyncMock()
    fake.info = {}
    fake.in_transaction = mocker.MagicMock(return_value=True)
    return fake


@pytest.mark.unit
class TestTenantSession:
    def test_factory_builds_tenant_sessions(self) -> None:
        assert get_session_maker().kw["sync_session_class"] is TenantSession

    def test_listener_is_registered(self) -> None:
        assert event.contains(TenantSession, "after_begin", apply_tenant_on_begin)

    def test_every_transaction_gets_the_tenant(self, mocker) -> None:
        session = TenantSession()
        session.info[TENANT_INFO_KEY] = "3f1c7a52-0000-4000-8000-000000000001"
        first, second = mocker.MagicMock(), mocker.MagicMock()

        apply_tenant_on_begin(session, None, first)
        apply_tenant_on_begin(session, None, second)

        for connection in (first, second):
            statement, params = connection.execute.call_args.args
            assert "set_config('app.tenant_id', :tenant_id, true)" in str(statement)
            assert params == {"tenant_id": "3f1c7a52-0000-4000-8000-000000000001"}

    def test_no_tenant_no_statement(self, mocker) -> None:
        connection = mocker.MagicMock()

        apply_tenant_on_begin(TenantSession(), None, connection)

        connection.execute.assert_not_called()


@pytest.mark.unit
class TestTenantContext:
    async def test_set_current_tenant_remembers_and_applies(self, async_session) -> None:
        tenant_id = uuid4()

        await set_current_tenant(async_session, tenant_id)

        assert async_session.info[TENANT_INFO_KEY] == str(tenant_id)
        _, params = async_session.execute.await_args.args
        assert params == {"tenant_id": str(tenant_id)}

    async def test_context_forgets_tenant_on_exit(self, async_session) -> None:
        async with tenant_context(async_session, uuid4()):
            assert TENANT_INFO_KEY in async_session.info

        assert TENANT_INFO_KEY not in async_session.info
        reset = async_session.execute.await_args.args[0]
        assert "set_config('app.tenant_id', '', true)" in str(reset)

    async def test_context_skips_reset_outside_a_transaction(self, async_session) -> None:
        async_session.in_transaction.return_value = False

        async with tenant_context(async_session, uuid4()):
            pass

        assert async_session.execute.await_count == 1
