import pytest
from fastapi.testclient import TestClient
from moto import mock_aws

from beerich.core.config import settings
from beerich.core.security import create_access_token, get_password_hash
from beerich.db import dynamo
from beerich.main import app
from beerich.models.expense import ExpenseInDB
from beerich.models.user import UserInDB

PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", settings.DYNAMO_REGION)


@pytest.fixture
def tables():
    with mock_aws():
        dynamo.create_tables()
        yield


@pytest.fixture(autouse=True)
def attachments_dir(tmp_path, monkeypatch):
    directory = tmp_path / "attachments"
    directory.mkdir()
    monkeypatch.setattr(settings, "ATTACHMENTS_DIR", str(directory))
    return directory


@pytest.fixture
def client(tables):
    with TestClient(app) as test_client:
        yield test_client


def _make_user(email: str) -> dict:
    user = UserInDB(email=email, name=email.split("@")[0].title(), password_hash=get_password_hash(PASSWORD))
    dynamo.put_user(user.model_dump())
    return user.model_dump()


@pytest.fixture
def alice(tables):
    return _make_user("alice@beerich.dev")


@pytest.fixture
def bob(tables):
    return _make_user("bob@beerich.dev")


@pytest.fixture
def auth_headers():
    """Bearer headers for a user; JSON responses unless html=True."""

    def build(user: dict, html: bool = False) -> dict:
        headers = {"Authorization": f"Bearer {create_access_token({'sub': user['user_id']})}"}
        if not html:
            headers["Accept"] = "application/json"
        return headers

    return build


@pytest.fixture
def make_expense(tables):
    def build(user: dict, title: str = "Dinner", amount: float = 42.5, **fields) -> dict:
        expense = ExpenseInDB(
            user_id=user["user_id"],
            title=title,
            amount=amount,
            currency_code=fields.pop("currency_code", "USD"),
            **fields,
        )
        dynamo.put_expense(expense.to_item())
        return expense.to_item()

    return build
