"""Project-wide fixtures: users, roles, authenticated clients."""

import secrets
import string
import typing as t

import faker
import pytest
from django.core.cache import cache
from django.test.client import Client
from ninja_jwt.tokens import RefreshToken
from pytest import MonkeyPatch
from pytest_django.fixtures import SettingsWrapper

from accounts.models import BoxOfficeUser, Role


@pytest.fixture(autouse=True)
def increase_rate_limits(monkeypatch: MonkeyPatch) -> None:
    """Raise the throttle rates so tests never hit them."""
    monkeypatch.setattr("common.throttling.PurchaseThrottle.rate", "1000/min")
    monkeypatch.setattr("common.throttling.ScanThrottle.rate", "1000/min")
    monkeypatch.setattr("common.throttling.UserDefaultThrottle.rate", "1000/min")
    monkeypatch.setattr("common.throttling.AnonDefaultThrottle.rate", "1000/min")


@pytest.fixture(autouse=True)
def clear_cache() -> t.Iterator[None]:
    """Throttle history lives in the cache; start every test from scratch."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def qr_secret(settings: SettingsWrapper) -> str:
    settings.QR_SECRET = "test-qr-secret"
    return "test-qr-secret"


class BoxOfficeUserFactory:
    """Factory for creating BoxOfficeUser instances for testing."""

    fake = faker.Faker()

    def create_user(self, **kwargs: t.Any) -> BoxOfficeUser:
        username = kwargs.pop(
            "username", "".join(secrets.choice(string.ascii_lowercase) for _ in range(8)) + "@user.test"
        )
        email = kwargs.pop("email", username if "@" in username else f"{username}@test.com")
        password = kwargs.pop("password", "password")
        first_name = kwargs.pop("first_name", self.fake.first_name())
        last_name = kwargs.pop("last_name", self.fake.last_name())
        preferred_name = kwargs.pop("preferred_name", f"{first_name} {last_name}")
        return BoxOfficeUser.objects.create_user(
            username=username,
            email=email,
            password=password,
            preferred_name=preferred_name,
            first_name=first_name,
            last_name=last_name,
            **kwargs,
        )

    def __call__(self, **kwargs: t.Any) -> BoxOfficeUser:
        return self.create_user(**kwargs)


@pytest.fixture
def user_factory() -> BoxOfficeUserFactory:
    return BoxOfficeUserFactory()


@pytest.fixture
def user(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    """A standard ticket buyer."""
    return user_factory(username="buyer@example.com", role=Role.USER)


@pytest.fixture
def other_user(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    """A second ticket buyer."""
    return user_factory(username="other@example.com", role=Role.USER)


@pytest.fixture
def scanner_user(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    """A door scanner with no venue restriction."""
    return user_factory(username="scanner@example.com", role=Role.SCANNER)


@pytest.fixture
def site_admin(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory(username="admin@example.com", role=Role.SITE_ADMIN)


def auth_client_for(user: BoxOfficeUser) -> Client:
    """An API client authenticated as ``user`` with a bearer JWT."""
    refresh = RefreshToken.for_user(user)
    return Client(HTTP_AUTHORIZATION=f"Bearer {str(refresh.access_token)}")  # type: ignore[attr-defined]


@pytest.fixture
def auth_client(user: BoxOfficeUser) -> Client:
    """An API client authenticated as the standard user."""
    return auth_client_for(user)


@pytest.fixture
def scanner_client(scanner_user: BoxOfficeUser) -> Client:
    return auth_client_for(scanner_user)
