import uuid

from fastapi.testclient import TestClient

from ..core import dependencies
from ..core.config import get_settings
from ..core.dependencies import get_memory_store
from ..core.security import create_access_token
from ..models import AccountCreate
from ..services import LedgerService


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_requires_authenticated_principal(client: TestClient) -> None:
    for method, path in (
        ("post", "/api/deposit"),
        ("post", "/api/withdraw"),
        ("post", "/api/transfer"),
        ("get", "/api/transactions"),
        ("get", "/api/admin/users"),
        ("get", "/api/admin/transactions"),
    ):
        response = getattr(client, method)(path)
        assert response.status_code == 401, path
        assert response.json() == {"message": "Unauthorized"}


def test_rejects_invalid_token(client: TestClient) -> None:
    response = client.get(
        "/api/transactions", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


def test_principal_without_account_is_server_error(client: TestClient) -> None:
    headers = {"Authorization": f"Bearer {create_access_token(9999)}"}
    response = client.get("/api/user", headers=headers)
    assert response.status_code == 500
    assert "message" in response.json()


def test_deposit_withdraw(client: TestClient, open_account) -> None:
    account, headers = open_account("alice")
    assert account["balance"] == "0.00"

    deposit = client.post(
        "/api/deposit", json={"amount": "100.00"}, headers=headers
    )
    assert deposit.status_code == 200
    entry = deposit.json()
    assert entry["kind"] == "deposit"
    assert entry["amount"] == "100.00"
    assert entry["accountId"] == account["id"]
    assert entry["description"] == "Cash Deposit"
    assert entry["counterpartyAccountId"] is None

    withdraw = client.post(
        "/api/withdraw",
        json={"amount": 40.5, "description": "ATM"},
        headers=headers,
    )
    assert withdraw.status_code == 200
    assert withdraw.json()["kind"] == "withdraw"
    assert withdraw.json()["amount"] == "40.50"

    me = client.get("/api/user", headers=headers)
    assert me.json()["balance"] == "59.50"
    assert me.json()["accountNumber"] == account["accountNumber"]


def test_withdraw_insufficient_funds(client: TestClient, open_account) -> None:
    _, headers = open_account("bob", deposit="100.00")

    response = client.post("/api/withdraw", json={"amount": 150}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"message": "Insufficient funds"}

    assert client.get("/api/user", headers=headers).json()["balance"] == "100.00"
    assert len(client.get("/api/transactions", headers=headers).json()) == 1


def test_rejects_invalid_amounts(client: TestClient, open_account) -> None:
    _, headers = open_account("carol", deposit="10.00")

    for amount in (-5, 0, "abc", 1.005, "1e400"):
        response = client.post("/api/withdraw", json={"amount": amount}, headers=headers)
        assert response.status_code == 400, amount
        assert "message" in response.json()

    response = client.post("/api/deposit", json={"amount": 1.005}, headers=headers)
    assert response.json() == {"message": "Amount cannot have more than 2 decimal places"}

    missing = client.post("/api/deposit", json={}, headers=headers)
    assert missing.status_code == 400
    assert missing.json()["message"].startswith("amount")

    assert client.get("/api/user", headers=headers).json()["balance"] == "10.00"


def test_json_number_amounts_keep_every_digit(client: TestClient, open_account) -> None:
    _, headers = open_account("cora", deposit="10.00")
    raw = {**headers, "Content-Type": "application/json"}

    for body in ('{"amount": 0.1000000000000000001}', '{"amount": 100.0000000000000001}'):
        response = client.post("/api/deposit", content=body, headers=raw)
        assert response.status_code == 400, body
        assert response.json() == {"message": "Amount cannot have more than 2 decimal places"}

    exact = client.post("/api/deposit", content='{"amount": 123456789.01}', headers=raw)
    assert exact.status_code == 200
    assert exact.json()["amount"] == "123456789.01"

    flag = client.post("/api/deposit", json={"amount": True}, headers=headers)
    assert flag.status_code == 400

    assert client.get("/api/user", headers=headers).json()["balance"] == "123456799.01"


def test_oversized_amounts_rejected(client: TestClient, open_account) -> None:
    _, headers = open_account("cleo", deposit="10.00")
    raw = {**headers, "Content-Type": "application/json"}

    response = client.post("/api/deposit", json={"amount": "99999999999999999.99"}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"message": "Amount is out of range"}

    response = client.post(
        "/api/deposit", content='{"amount": 12345678901234567.01}', headers=raw
    )
    assert response.status_code == 400
    assert response.json() == {"message": "Amount is out of range"}

    client.post("/api/deposit", json={"amount": "999999999999989.99"}, headers=headers)
    over = client.post("/api/deposit", json={"amount": "0.01"}, headers=headers)
    assert over.status_code == 400
    assert over.json() == {"message": "Balance limit exceeded"}
    assert client.get("/api/user", headers=headers).json()["balance"] == "999999999999999.99"


def test_transfer_creates_mirrored_entries(client: TestClient, open_account) -> None:
    sender, sender_headers = open_account("dave", deposit="500.00")
    recipient, recipient_headers = open_account("erin", deposit="200.00")

    transfer = client.post(
        "/api/transfer",
        json={"amount": "300.00", "toAccountNumber": recipient["accountNumber"]},
        headers=sender_headers,
    )
    assert transfer.status_code == 200
    sent = transfer.json()
    assert sent["kind"] == "transfer"
    assert sent["direction"] == "out"
    assert sent["accountId"] == sender["id"]
    assert sent["counterpartyAccountId"] == recipient["id"]
    assert sent["description"] == "Transfer to Erin"

    assert client.get("/api/user", headers=sender_headers).json()["balance"] == "200.00"
    assert client.get("/api/user", headers=recipient_headers).json()["balance"] == "500.00"

    received = client.get("/api/transactions", headers=recipient_headers).json()[0]
    assert received["kind"] == "transfer"
    assert received["direction"] == "in"
    assert received["counterpartyAccountId"] == sender["id"]
    assert received["amount"] == "300.00"


def test_transfer_rejects_self_transfer(client: TestClient, open_account) -> None:
    account, headers = open_account("frank", deposit="50.00")

    response = client.post(
        "/api/transfer",
        json={"amount": 10, "toAccountNumber": account["accountNumber"]},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json() == {"message": "Cannot transfer to self"}
    assert client.get("/api/user", headers=headers).json()["balance"] == "50.00"


def test_transfer_unknown_recipient(client: TestClient, open_account) -> None:
    _, headers = open_account("george", deposit="50.00")

    response = client.post(
        "/api/transfer",
        json={"amount": 10, "toAccountNumber": "nonexistent-account"},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json() == {"message": "Recipient account not found"}
    assert client.get("/api/user", headers=headers).json()["balance"] == "50.00"


def test_transactions_newest_first(client: TestClient, open_account) -> None:
    _, headers = open_account("helen")

    for amount in ("1.00", "2.00", "3.00"):
        client.post("/api/deposit", json={"amount": amount}, headers=headers)

    items = client.get("/api/transactions", headers=headers).json()
    assert [entry["amount"] for entry in items] == ["3.00", "2.00", "1.00"]
    assert [entry["id"] for entry in items] == sorted(
        (entry["id"] for entry in items), reverse=True
    )


def test_deposit_idempotency(client: TestClient, open_account) -> None:
    _, headers = open_account("ivan")
    keyed = {**headers, "Idempotency-Key": str(uuid.uuid4())}

    first = client.post("/api/deposit", json={"amount": "5.00"}, headers=keyed)
    second = client.post("/api/deposit", json={"amount": "5.00"}, headers=keyed)
    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json() == second.json()
    assert client.get("/api/user", headers=headers).json()["balance"] == "5.00"

    mismatch = client.post("/api/deposit", json={"amount": "6.00"}, headers=keyed)
    assert mismatch.status_code == 409


def test_admin_routes_require_admin(client: TestClient, open_account) -> None:
    _, headers = open_account("judy")

    assert client.get("/api/admin/users", headers=headers).status_code == 403
    assert client.get("/api/admin/transactions", headers=headers).status_code == 403
    response = client.post(
        "/api/admin/transactions/query", json={}, headers=headers
    )
    assert response.status_code == 403
    assert response.json() == {"message": "Forbidden"}


def test_admin_overview(client: TestClient, open_account) -> None:
    admin, admin_headers = open_account("admin", is_admin=True, account_number="ADM001")
    user, user_headers = open_account("kate", deposit="25.00")

    users = client.get("/api/admin/users", headers=admin_headers).json()
    assert [item["id"] for item in users] == [admin["id"], user["id"]]
    assert users[0]["isAdmin"] is True

    transactions = client.get("/api/admin/transactions", headers=admin_headers).json()
    assert len(transactions) == 1
    assert transactions[0]["kind"] == "deposit"
    assert transactions[0]["user"]["username"] == "kate"
    assert transactions[0]["user"]["balance"] == "25.00"


def test_admin_opens_account(client: TestClient, open_account) -> None:
    _, admin_headers = open_account("admin", is_admin=True)

    response = client.post(
        "/api/admin/users",
        json={"username": "liam", "fullName": "Liam Smith"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    account = response.json()
    assert account["balance"] == "0.00"
    assert account["accountNumber"].startswith("ACC")
    assert account["isAdmin"] is False

    duplicate = client.post(
        "/api/admin/users",
        json={"username": "liam", "fullName": "Liam Again"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 400
    assert duplicate.json() == {"message": "Username already exists"}


def test_admin_query_console(client: TestClient, open_account) -> None:
    _, admin_headers = open_account("admin", is_admin=True)
    _, headers = open_account("mona", deposit="100.00")
    client.post("/api/withdraw", json={"amount": "30.00"}, headers=headers)
    client.post("/api/withdraw", json={"amount": "5.00"}, headers=headers)

    response = client.post(
        "/api/admin/transactions/query",
        json={
            "filters": [
                {"field": "kind", "op": "eq", "value": "withdraw"},
                {"field": "amount", "op": "gte", "value": "10"},
            ],
        },
        headers=admin_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["data"][0]["amount"] == "30.00"

    invalid = client.post(
        "/api/admin/transactions/query",
        json={"filters": [{"field": "kind", "op": "eq", "value": "delete()"}]},
        headers=admin_headers,
    )
    assert invalid.status_code == 400

    unknown_field = client.post(
        "/api/admin/transactions/query",
        json={"filters": [{"field": "__class__", "op": "eq", "value": 1}]},
        headers=admin_headers,
    )
    assert unknown_field.status_code == 400


def test_memory_backend_does_not_open_sessions(client: TestClient, monkeypatch) -> None:
    def _no_engine():
        raise AssertionError("memory backend asked for a database engine")

    monkeypatch.setattr(get_settings(), "storage_backend", "memory")
    monkeypatch.setattr(dependencies, "get_engine", _no_engine)
    get_memory_store.cache_clear()
    try:
        account = LedgerService(get_memory_store()).open_account(
            AccountCreate(username="mona", full_name="Mona")
        )
        headers = {"Authorization": f"Bearer {create_access_token(account.id)}"}

        deposit = client.post("/api/deposit", json={"amount": "7.00"}, headers=headers)
        assert deposit.status_code == 200
        assert client.get("/api/user", headers=headers).json()["balance"] == "7.00"
    finally:
        get_memory_store.cache_clear()
