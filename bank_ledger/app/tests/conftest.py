from typing import Callable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from ..core import db
from ..core.db import create_engine_for_url, set_engine
from ..core.security import create_access_token
from ..main import app
from ..models import AccountCreate
from ..services import InMemoryLedgerStore, LedgerService, SqlLedgerStore


@pytest.fixture
def engine(tmp_path):
    test_engine = create_engine_for_url(f"sqlite:///{tmp_path / 'test.db'}")
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def client(engine) -> TestClient:
    original_engine = db.get_engine()
    set_engine(engine)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    set_engine(original_engine)


@pytest.fixture
def open_account(engine) -> Callable[..., tuple[dict, dict[str, str]]]:
    """Open an account straight through the service and return it with auth headers."""

    def _open(
        username: str,
        *,
        is_admin: bool = False,
        deposit: Optional[str] = None,
        account_number: Optional[str] = None,
    ) -> tuple[dict, dict[str, str]]:
        with Session(engine) as session:
            service = LedgerService(SqlLedgerStore(session))
            account = service.open_account(
                AccountCreate(
                    username=username,
                    full_name=username.replace("_", " ").title(),
                    is_admin=is_admin,
                    account_number=account_number,
                )
            )
            if deposit is not None:
                service.deposit(account.id, deposit)
                account = service.get_account(account.id)
        headers = {"Authorization": f"Bearer {create_access_token(account.id)}"}
        return account.model_dump(mode="json", by_alias=True), headers

    return _open


@pytest.fixture(params=["memory", "sql"])
def service(request, tmp_path) -> LedgerService:
    if request.param == "memory":
        yield LedgerService(InMemoryLedgerStore())
        return

    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'ledger.db'}")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield LedgerService(SqlLedgerStore(session))
    engine.dispose()


@pytest.fixture
def open_funded(service) -> Callable[..., int]:
    def _open(username: str, balance: Optional[str] = None, **kwargs) -> int:
        account = service.open_account(
            AccountCreate(username=username, full_name=username.title(), **kwargs)
        )
        if balance is not None:
            service.deposit(account.id, balance)
        return account.id

    return _open
