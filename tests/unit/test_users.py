"""Tests for registration, login, profile updates and token handling."""

from uuid import uuid4

import pytest
from jose import JWTError

from timetrack.core.errors import ConflictError, ForbiddenError, UnauthorizedError
from timetrack.core.security import ACCESS_TOKEN, REFRESH_TOKEN, create_access_token, create_refresh_token, decode_token
from timetrack.schemas.auth import ProfileUpdate, RegisterRequest
from timetrack.services.users import UserService


@pytest.fixture
def service(session, mocker) -> UserService:
    service = UserService(session)
    service.repo = mocker.AsyncMock()
    mocker.patch("timetrack.services.users.get_password_hash", side_effect=lambda p: f"hashed:{p}")
    mocker.patch("timetrack.services.users.verify_password", side_effect=lambda p, h: h == f"hashed:{p}")
    return service


@pytest.mark.unit
class TestUserService:
    async def test_register_duplicate_email(self, service, user) -> None:
        service.repo.get_user_by_email.return_value = user
        payload = RegisterRequest(email="jane@example.com", password="long-enough", name="Jane")

        with pytest.raises(ConflictError):
            await service.register(payload)

    async def test_register_uppercases_currency(self, service, user) -> None:
        service.repo.get_user_by_email.return_value = None
        service.repo.create_user.return_value = user
        payload = RegisterRequest(email="new@example.com", password="long-enough", name="New", currency="eur")

        await service.register(payload)

        kwargs = service.repo.create_user.await_args.kwargs
        assert kwargs["currency"] == "EUR"
        assert kwargs["hashed_password"] == "hashed:long-enough"

    async def test_authenticate(self, service, user_factory) -> None:
        stored = user_factory(hashed_password="hashed:secret-pass")
        service.repo.get_user_by_email.return_value = stored

        assert await service.authenticate(stored.email, "secret-pass") is stored
        with pytest.raises(UnauthorizedError):
            await service.authenticate(stored.email, "wrong")

    async def test_authenticate_inactive(self, service, user_factory) -> None:
        service.repo.get_user_by_email.return_value = user_factory(hashed_password="hashed:pw", is_active=False)

        with pytest.raises(ForbiddenError):
            await service.authenticate("jane@example.com", "pw")

    async def test_update_profile_email_taken(self, service, user, user_factory) -> None:
        service.repo.get_user_by_email.return_value = user_factory(email="taken@example.com")

        with pytest.raises(ConflictError):
            await service.update_profile(user, ProfileUpdate(email="taken@example.com"))

    async def test_update_profile_clears_empty_github_token(self, service, user) -> None:
        user.github_token = "ghp_old"

        await service.update_profile(user, ProfileUpdate(github_token="", currency="gbp"))

        assert user.github_token is None
        assert user.currency == "GBP"


@pytest.mark.unit
class TestTokens:
    def test_access_token_claims(self) -> None:
        tenant_id = str(uuid4())
        token = create_access_token(subject="user-1", tenant_id=tenant_id)

        claims = decode_token(token, expected_type=ACCESS_TOKEN)

        assert claims["sub"] == "user-1"
        assert claims["tenant_id"] == tenant_id

    def test_refresh_token_is_not_an_access_token(self) -> None:
        token = create_refresh_token(subject="user-1", tenant_id=str(uuid4()))

        assert decode_token(token, expected_type=REFRESH_TOKEN)["type"] == REFRESH_TOKEN
        with pytest.raises(JWTError):
            decode_token(token, expected_type=ACCESS_TOKEN)
