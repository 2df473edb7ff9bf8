import pytest
from fastapi.testclient import TestClient

from pulsetrade.app_config import AppConfig
from pulsetrade.main import build_components
from pulsetrade.memory_storage import MemoryStorage


@pytest.fixture
def components(oracle):
    config = AppConfig(overrides={
        "security": {"jwt_secret": "test-secret-with-enough-length-for-hs256"},
    })
    components = build_components(config, storage=MemoryStorage(), oracle=oracle)
    components["auth"].ensure_admin_user("admin", "admin@example.com", "admin-pass", "0")
    return components


@pytest.fixture
def client(components):
    return TestClient(components["api"].app)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def login(client, username, password):
    response = client.post("/api/login", json={"username": username, "password": password})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def admin_token(client):
    return login(client, "admin", "admin-pass")


@pytest.fixture
def trader(client, admin_token):
    response = client.post("/api/register", json={
        "username": "trader", "email": "trader@example.com", "password": "secret1", "fullName": "Tim Trader"
    })
    assert response.status_code == 201
    body = response.json()
    user_id = body["user"]["id"]

    funded = client.patch(f"/api/admin/users/{user_id}", json={"balance": 1000}, headers=bearer(admin_token))
    assert funded.json()["balance"] == "1000.00"
    return {"id": user_id, "token": body["token"]}


def open_trade(client, token, **overrides):
    body = {"cryptoId": "bitcoin", "amount": 100, "direction": "up", "duration": 60}
    body.update(overrides)
    return client.post("/api/trades", json=body, headers=bearer(token))


def test_health_is_public(client):
    assert client.get("/health").json()["status"] == "ok"


def test_register_returns_user_without_secrets(client):
    response = client.post("/api/register", json={
        "username": "newbie", "email": "newbie@example.com", "password": "secret1"
    })

    user = response.json()["user"]
    assert response.status_code == 201
    assert user["balance"] == "0"
    assert user["role"] == "user"
    assert "passwordHash" not in user and "password_hash" not in user


def test_login_token_works_for_current_user(client, trader):
    token = login(client, "trader", "secret1")

    me = client.get("/api/user", headers=bearer(token)).json()

    assert me["id"] == trader["id"]
    assert me["fullName"] == "Tim Trader"


def test_authentication_errors(client, trader):
    assert client.post("/api/login", json={"username": "trader", "password": "nope"}).status_code == 401
    assert client.get("/api/trades").status_code == 401
    assert client.get("/api/trades", headers=bearer("garbage")).status_code == 401


def test_forced_trade_settled_by_admin(client, trader, admin_token):
    opened = open_trade(client, trader["token"])
    trade = opened.json()
    assert opened.status_code == 201
    assert trade["entryPrice"] == "50000"
    assert trade["profitPercentage"] == "30"
    assert "predeterminedResult" not in trade

    forced = client.patch(f"/api/admin/trades/{trade['id']}/predetermined", json={"result": "win"},
                          headers=bearer(admin_token))
    assert forced.json()["predeterminedResult"] == "win"
    own_view = client.get("/api/trades", headers=bearer(trader["token"])).json()
    assert "predeterminedResult" not in own_view[0]

    early = client.patch(f"/api/trades/{trade['id']}", json={"status": "completed"}, headers=bearer(trader["token"]))
    assert early.status_code == 400

    settled = client.patch(f"/api/trades/{trade['id']}", json={"status": "completed"}, headers=bearer(admin_token))
    assert settled.status_code == 200
    assert settled.json()["result"] == "win"

    assert client.get("/api/user", headers=bearer(trader["token"])).json()["balance"] == "1030.00"


def test_trade_errors_map_to_status_codes(client, trader, oracle):
    headers = bearer(trader["token"])

    assert open_trade(client, trader["token"], amount=5000).status_code == 400
    assert open_trade(client, trader["token"], duration=45).status_code == 400
    assert client.patch("/api/trades/999", json={"status": "completed"}, headers=headers).status_code == 404

    missing = client.post("/api/trades", json={"cryptoId": "bitcoin"}, headers=headers)
    assert missing.status_code == 400
    assert "amount" in missing.json()["message"]

    oracle.unavailable = True
    unavailable = open_trade(client, trader["token"])
    assert unavailable.status_code == 503
    assert unavailable.json()["message"]


def test_staff_routes_require_capabilities(client, trader):
    headers = bearer(trader["token"])

    assert client.get("/api/admin/trades", headers=headers).status_code == 403
    assert client.get("/api/admin/users", headers=headers).status_code == 403
    assert client.get("/api/admin/settings", headers=headers).status_code == 403
    assert client.post("/api/admin/settings", json={"allowTrading": False}, headers=headers).status_code == 403


def test_withdrawal_review_flow(client, trader, admin_token):
    headers = bearer(trader["token"])
    requested = client.post("/api/wallet/withdraw", json={"amount": 500, "method": "bank", "bankName": "SCB",
                                                           "bankAccount": "123-456-789"}, headers=headers)
    transaction = requested.json()["transaction"]
    assert requested.json()["success"] is True
    assert transaction["status"] == "pending"
    assert client.get("/api/user", headers=headers).json()["balance"] == "500.00"

    rejected = client.patch(f"/api/admin/transactions/{transaction['id']}", json={"status": "rejected"},
                            headers=bearer(admin_token))
    assert rejected.json()["status"] == "rejected"
    assert client.get("/api/user", headers=headers).json()["balance"] == "1000.00"

    again = client.patch(f"/api/admin/transactions/{transaction['id']}", json={"status": "approved"},
                         headers=bearer(admin_token))
    assert again.status_code == 409


def test_bank_accounts_and_saved_withdrawal(client, trader):
    headers = bearer(trader["token"])
    created = client.post("/api/bank-accounts", json={"bankName": "KBank", "accountNumber": "123-4-56789-0",
                                                      "accountName": "Tim Trader"}, headers=headers)
    account = created.json()
    assert created.status_code == 201
    assert account["isDefault"] is True

    withdrawal = client.post("/api/wallet/withdraw-with-saved-account",
                             json={"amount": 100, "bankAccountId": account["id"]}, headers=headers)
    assert withdrawal.json()["transaction"]["fee"] == "3.00"

    assert client.delete(f"/api/bank-accounts/{account['id']}", headers=headers).json() == {"success": True}
    assert client.get("/api/bank-accounts", headers=headers).json() == []


def test_settings_update_disables_trading(client, trader, admin_token):
    updated = client.post("/api/admin/settings", json={"allowTrading": False}, headers=bearer(admin_token))
    assert updated.json()["allowTrading"] is False

    assert open_trade(client, trader["token"]).status_code == 400


def test_websocket_receives_room_events(client, components, trader):
    notifications = components["notifications"]

    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "join-user-room", "token": "garbage"})
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"event": "join-user-room", "token": trader["token"]})
        assert websocket.receive_json() == {"event": "joined-user-room", "data": {"userId": trader["id"]}}

        notifications.notify_balance_update(trader["id"], "42.00")
        notifications.flush()

        assert websocket.receive_json() == {"event": "balance-update", "data": {"balance": "42.00"}}
