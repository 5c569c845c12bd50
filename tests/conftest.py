import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'test_store_assistant.db'}")
os.environ.setdefault("LANGFUSE_ENABLED", "false")
os.environ.setdefault("LANGFUSE_REQUIRED", "false")

from store_assistant.assistant.types import ToolContext
from store_assistant.auth.dependencies import AuthContext, get_current_user
from store_assistant.db import models  # noqa: F401
from store_assistant.db.base import Base, SessionLocal, engine
from store_assistant.db.deps import get_session
from store_assistant.db.repositories.catalog import CategoriesRepository, ProductsRepository
from store_assistant.db.repositories.stores import StoresRepository
from store_assistant.main import app
from store_assistant.routers import assistant as assistant_router


TEST_STORE_ID = "00000000-0000-0000-0000-000000000001"
TEST_USER_ID = "test-user"


class FakeCompleter:
    """Returns queued responses in order and records every prompt it was given."""

    def __init__(self, responses=None, default: str = '{"intent": "chat", "message": "OK"}') -> None:
        self.responses = list(responses or [])
        self.default = default
        self.prompts: list[str] = []

    def queue(self, *responses) -> "FakeCompleter":
        self.responses.extend(responses)
        return self

    def generate_text(self, prompt, params=None) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            return self.default
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    StoresRepository(session).create(name="Test Store", store_id=TEST_STORE_ID)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def fake_completer() -> FakeCompleter:
    return FakeCompleter()


@pytest.fixture()
def tool_context(db_session, fake_completer):
    def _build(**overrides) -> ToolContext:
        values = {
            "session": db_session,
            "store_id": TEST_STORE_ID,
            "user_id": TEST_USER_ID,
            "page_type": "product",
            "completer": fake_completer,
            "original_message": "test message",
        }
        values.update(overrides)
        return ToolContext(**values)

    return _build


@pytest.fixture()
def catalog(db_session):
    products = ProductsRepository(db_session)
    categories = CategoriesRepository(db_session)
    return {
        "tshirt": products.create(
            store_id=TEST_STORE_ID,
            sku="TSHIRT-BLK",
            name="Black T-Shirt",
            price=Decimal("19.99"),
            compare_price=Decimal("24.99"),
            stock_quantity=12,
            featured=True,
        ),
        "mug": products.create(
            store_id=TEST_STORE_ID,
            sku="MUG-01",
            name="Coffee Mug",
            price=Decimal("9.50"),
            stock_quantity=3,
        ),
        "poster": products.create(
            store_id=TEST_STORE_ID,
            sku="POSTER-XL",
            name="Mountain Poster",
            price=Decimal("35.00"),
            stock_quantity=0,
        ),
        "apparel": categories.create(store_id=TEST_STORE_ID, name="Apparel"),
    }


@pytest.fixture()
def auth_context() -> AuthContext:
    return AuthContext(user_id=TEST_USER_ID, store_id=TEST_STORE_ID)


@pytest.fixture()
def override_dependencies(db_session, auth_context, fake_completer):
    def get_session_override():
        try:
            yield db_session
        finally:
            pass

    def get_user_override():
        return auth_context

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_current_user] = get_user_override
    app.dependency_overrides[assistant_router.get_completer] = lambda: fake_completer
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api_client(override_dependencies):
    with TestClient(app) as client:
        yield client
