# _test/test_api.py
from core.ledger import WalletLedger


async def _top_up(app_store, clock, user_id, amount):
    await WalletLedger(app_store, clock).credit(user_id, amount, "Top up")


async def test_health_and_root(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"

    response = await client.get("/")
    assert response.status_code == 200


async def test_requests_need_a_token(client):
    response = await client.get("/api/wallet")
    assert response.status_code == 401

    response = await client.get("/api/wallet", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


async def test_wallet_starts_empty(client, auth):
    response = await client.get("/api/wallet", headers=auth("u1"))
    assert response.status_code == 200
    assert response.json()["balance"] == 0


async def test_daily_login_twice(client, auth):
    headers = auth("u1")
    first = await client.post("/api/earnings/daily-login", headers=headers)
    assert first.status_code == 200
    assert first.json()["reward"]["total"] == 5

    second = await client.post("/api/earnings/daily-login", headers=headers)
    assert second.status_code == 409
    body = second.json()
    assert body["error"] == "AlreadyClaimedToday"
    assert body["status_code"] == 409

    wallet = await client.get("/api/wallet", headers=headers)
    assert wallet.json()["balance"] == 5


async def test_investment_flow(client, auth, app_store, clock):
    headers = auth("u1")
    plans = await client.get("/api/investments/plans")
    assert plans.status_code == 200
    assert plans.json()[0]["id"] == "bass"

    broke = await client.post("/api/investments/purchase", json={"plan_id": "bass"}, headers=headers)
    assert broke.status_code == 400
    assert broke.json()["error"] == "InsufficientBalance"

    await _top_up(app_store, clock, "u1", 1500)
    bought = await client.post("/api/investments/purchase", json={"plan_id": "bass"}, headers=headers)
    assert bought.status_code == 201
    investment_id = bought.json()["investment"]["id"]

    again = await client.post("/api/investments/purchase", json={"plan_id": "bass"}, headers=headers)
    assert again.status_code == 409

    too_soon = await client.post(f"/api/investments/{investment_id}/claim", headers=headers)
    assert too_soon.status_code == 409

    clock.advance(days=1)
    claimed = await client.post(f"/api/investments/{investment_id}/claim", headers=headers)
    assert claimed.status_code == 200
    assert claimed.json()["wallet"]["balance"] == 26

    active = await client.get("/api/investments/active", headers=headers)
    assert active.json()["hasActiveInvestment"] is True

    stranger = await client.post(f"/api/investments/{investment_id}/claim", headers=auth("u2"))
    assert stranger.status_code == 403


async def test_admin_creates_label_and_user_claims_it(client, auth):
    label = {
        "name": "Welcome",
        "description": "Say hi",
        "reward": 20,
        "unlockConditions": [{"type": "level", "value": 1, "operator": "gte"}],
    }
    forbidden = await client.post("/admin/api/labels", json=label, headers=auth("u1"))
    assert forbidden.status_code == 403

    created = await client.post("/admin/api/labels", json=label, headers=auth("boss", admin=True))
    assert created.status_code == 201
    label_id = created.json()["id"]

    headers = auth("u1")
    listed = await client.get("/api/labels", headers=headers)
    assert [item["id"] for item in listed.json()] == [label_id]

    claimed = await client.post(f"/api/labels/{label_id}/claim", headers=headers)
    assert claimed.status_code == 200
    assert claimed.json()["wallet"]["balance"] == 20

    again = await client.post(f"/api/labels/{label_id}/claim", headers=headers)
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyClaimed"


async def test_withdrawal_approved_by_admin(client, auth, app_store, clock):
    await _top_up(app_store, clock, "u1", 100)
    headers = auth("u1")

    requested = await client.post(
        "/api/wallet/withdrawals", json={"amount": 40, "payment_method": "upi"}, headers=headers
    )
    assert requested.status_code == 201
    withdrawal_id = requested.json()["withdrawal"]["id"]

    admin = auth("boss", admin=True)
    pending = await client.get("/admin/api/withdrawals", headers=admin)
    assert [w["id"] for w in pending.json()["items"]] == [withdrawal_id]

    approved = await client.post(
        f"/admin/api/withdrawals/{withdrawal_id}/process", json={"status": "approved"}, headers=admin
    )
    assert approved.status_code == 200

    wallet = await client.get("/api/wallet", headers=headers)
    assert wallet.json()["balance"] == 60
    assert wallet.json()["totalWithdrawals"] == 40

    reprocess = await client.post(
        f"/admin/api/withdrawals/{withdrawal_id}/process", json={"status": "rejected"}, headers=admin
    )
    assert reprocess.status_code == 400


async def test_notifications_endpoints(client, auth):
    headers = auth("u1")
    await client.post("/api/earnings/daily-login", headers=headers)

    count = await client.get("/api/notifications/unread-count", headers=headers)
    assert count.json() == {"unreadCount": 1}

    listing = await client.get("/api/notifications", headers=headers)
    notification_id = listing.json()["items"][0]["id"]

    read = await client.put(f"/api/notifications/{notification_id}/read", headers=headers)
    assert read.json()["isRead"] is True

    deleted = await client.delete(f"/api/notifications/{notification_id}", headers=auth("u2"))
    assert deleted.status_code == 403
    deleted = await client.delete(f"/api/notifications/{notification_id}", headers=headers)
    assert deleted.status_code == 204


async def test_dashboard(client, auth):
    headers = auth("u1")
    await client.post("/api/earnings/daily-login", headers=headers)

    response = await client.get("/api/dashboard", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["wallet"]["balance"] == 5
    assert body["todayEarnings"] == 5
    assert body["dailyLoginClaimed"] is True
    assert body["currentPlan"] is None
    assert body["unreadNotifications"] == 1
