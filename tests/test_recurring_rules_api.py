from __future__ import annotations

from balanceapp import models


def _create(client, headers, account_id: int, **overrides):
    body = {
        "account_id": account_id,
        "description": "Netflix",
        "amount": 12.99,
        "type": "EXPENSE",
        "start_date": "2025-01-15",
        "frequency": "MONTHLY",
    }
    body.update(overrides)
    return client.post("/api/recurring-rules", json=body, headers=headers)


def test_requires_known_user(client, account):
    assert client.get("/api/recurring-rules").status_code == 401
    assert client.get("/api/recurring-rules", headers={"X-User-Id": "999"}).status_code == 401


def test_create_list_get(client, auth_headers, account):
    res = _create(client, auth_headers, account.id)
    assert res.status_code == 201
    rule = res.json()
    # 시작일이 과거이므로 첫 거래가 즉시 생성됨
    assert rule["occurrences_generated"] == 1
    assert rule["is_first_occurrence_generated"] is True
    assert rule["next_due_date"] == "2025-01-15"
    assert rule["day_of_month"] == 15

    listed = client.get("/api/recurring-rules", headers=auth_headers).json()
    assert [r["id"] for r in listed] == [rule["id"]]
    assert client.get("/api/recurring-rules", params={"is_installment": True}, headers=auth_headers).json() == []

    got = client.get(f"/api/recurring-rules/{rule['id']}", headers=auth_headers)
    assert got.status_code == 200
    assert got.json()["description"] == "Netflix"


def test_create_validation(client, auth_headers, account):
    assert _create(client, auth_headers, account.id, frequency=None).status_code == 422
    assert _create(client, auth_headers, account.id, amount=-5).status_code == 422
    assert _create(client, auth_headers, account.id, is_installment=True).status_code == 422
    assert _create(client, auth_headers, account.id, day_of_week=9, frequency="WEEKLY").status_code == 422


def test_unknown_account_maps_to_404(client, auth_headers):
    res = _create(client, auth_headers, 4242)
    assert res.status_code == 404
    assert res.json() == {"detail": "Account not found", "code": "NOT_FOUND"}


def test_update_toggle_preview(client, auth_headers, account):
    rule = _create(client, auth_headers, account.id, start_date="2099-01-31").json()
    rid = rule["id"]

    res = client.patch(f"/api/recurring-rules/{rid}", json={"amount": 15.5, "notes": "4K"}, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["amount"] == 15.5
    assert res.json()["notes"] == "4K"

    toggled = client.post(f"/api/recurring-rules/{rid}/toggle", headers=auth_headers).json()
    assert toggled["is_active"] is False

    preview = client.get(f"/api/recurring-rules/{rid}/preview", params={"count": 3}, headers=auth_headers)
    assert preview.status_code == 200
    assert preview.json() == {"rule_id": rid, "dates": ["2099-01-31", "2099-02-28", "2099-03-31"]}


def test_start_date_locked_maps_to_400(client, auth_headers, account):
    rid = _create(client, auth_headers, account.id).json()["id"]
    res = client.patch(f"/api/recurring-rules/{rid}", json={"start_date": "2025-02-01"}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["code"] == "BAD_REQUEST"


def test_delete_needs_cascade_when_transactions_exist(client, auth_headers, account, db_session):
    rid = _create(client, auth_headers, account.id).json()["id"]

    assert client.delete(f"/api/recurring-rules/{rid}", headers=auth_headers).status_code == 400
    res = client.delete(f"/api/recurring-rules/{rid}", params={"cascade": True}, headers=auth_headers)
    assert res.status_code == 204
    assert client.get(f"/api/recurring-rules/{rid}", headers=auth_headers).status_code == 404
    assert db_session.query(models.Transaction).filter_by(recurring_rule_id=rid).count() == 0


def test_other_users_rule_is_hidden(client, auth_headers, account, db_session):
    rid = _create(client, auth_headers, account.id).json()["id"]
    other = models.User(email="other@example.com", is_active=True)
    db_session.add(other)
    db_session.commit()
    res = client.get(f"/api/recurring-rules/{rid}", headers={"X-User-Id": str(other.id)})
    assert res.status_code == 404


def test_convert_frequency(client):
    res = client.post("/api/recurring-rules/convert-frequency", json={"frequency_days": 45})
    assert res.json() == {"frequency": "DAILY", "frequency_interval": 45}
    res = client.post("/api/recurring-rules/convert-frequency", json={"frequency_days": 14})
    assert res.json() == {"frequency": "WEEKLY", "frequency_interval": 2}
    assert client.post("/api/recurring-rules/convert-frequency", json={"frequency_days": 0}).status_code == 422


def test_create_with_legacy_frequency_days(client, auth_headers, account):
    res = _create(client, auth_headers, account.id, frequency=None, frequency_days=90, start_date="2099-03-01")
    assert res.status_code == 201
    assert res.json()["frequency"] == "MONTHLY"
    assert res.json()["frequency_interval"] == 3


def test_clear_badge(client, auth_headers, user, db_session, notifier):
    res = client.post("/api/notifications/clear-badge", headers=auth_headers)
    assert res.json() == {"success": False}
    notifier.clear_badge.assert_not_called()

    profile = db_session.query(models.UserProfile).filter_by(user_id=user.id).one()
    profile.notification_token = "ExpoPushToken[zzz]"
    db_session.commit()

    res = client.post("/api/notifications/clear-badge", headers=auth_headers)
    assert res.json() == {"success": True}
    notifier.clear_badge.assert_called_once_with("ExpoPushToken[zzz]")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
