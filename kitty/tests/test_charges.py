"""
Tests for charge, batch edit and void endpoints.
"""
from datetime import datetime

import pytest
from kitty.models import Transaction, TransactionKind


@pytest.fixture
def court(client):
    """Split-cost activity with three members."""
    activity = client.post("/api/activities", json={"name": "Court", "type": "split"}).json()
    members = {}
    for name in ("Ann", "Ben", "Cat"):
        members[name] = client.post(f"/api/activities/{activity['id']}/members", json={"name": name}).json()
    return activity, members


def _balances(client, activity_id):
    return {m["name"]: m["balance"] for m in client.get(f"/api/activities/{activity_id}/members").json()}


def _charge(client, activity_id, total, participants):
    response = client.post(
        f"/api/activities/{activity_id}/charges",
        json={"total_cost": total, "participants": participants}
    )
    assert response.status_code == 200
    return response.json()


def test_record_charge(client, court):
    activity, members = court

    body = _charge(client, activity["id"], "90", [
        {"member_id": members["Ann"]["id"], "count": 0},
        {"member_id": members["Ben"]["id"], "count": 1},
    ])

    assert body["applied"] is True
    assert body["total"] == 90
    assert len(body["transactions"]) == 2
    assert len({t["timestamp"] for t in body["transactions"]}) == 1
    assert body["balance_deltas"] == {
        str(members["Ann"]["id"]): pytest.approx(-30),
        str(members["Ben"]["id"]): pytest.approx(-60),
    }
    assert _balances(client, activity["id"]) == {
        "Ann": pytest.approx(-30), "Ben": pytest.approx(-60), "Cat": 0
    }


def test_invalid_charge_is_reported_not_failed(client, court):
    activity, members = court

    body = _charge(client, activity["id"], "free", [{"member_id": members["Ann"]["id"]}])

    assert body["applied"] is False
    assert body["reason"]
    assert body["transactions"] == []
    assert _balances(client, activity["id"])["Ann"] == 0


def test_charge_for_unknown_member_returns_404(client, court):
    activity, _ = court
    response = client.post(
        f"/api/activities/{activity['id']}/charges",
        json={"total_cost": 10, "participants": [{"member_id": 4242}]}
    )
    assert response.status_code == 404


def test_edit_batch_total(client, court):
    activity, members = court
    charge = _charge(client, activity["id"], 90, [
        {"member_id": members["Ann"]["id"], "count": 0},
        {"member_id": members["Ben"]["id"], "count": 1},
    ])

    response = client.put(
        f"/api/activities/{activity['id']}/batches/{charge['batch_id']}",
        json={"new_total": 120}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["batch_id"] == charge["batch_id"]
    assert body["timestamp"] == charge["timestamp"]
    assert _balances(client, activity["id"]) == {
        "Ann": pytest.approx(-40), "Ben": pytest.approx(-80), "Cat": 0
    }


def test_edit_batch_participants_with_cash_payer(client, court):
    activity, members = court
    charge = _charge(client, activity["id"], 90, [
        {"member_id": members["Ann"]["id"]},
        {"member_id": members["Ben"]["id"]},
    ])

    client.put(
        f"/api/activities/{activity['id']}/batches/{charge['batch_id']}",
        json={"participants": [
            {"member_id": members["Ann"]["id"]},
            {"member_id": members["Ben"]["id"]},
            {"member_id": members["Cat"]["id"], "use_pool": False},
        ]}
    )

    assert _balances(client, activity["id"]) == {
        "Ann": pytest.approx(-30), "Ben": pytest.approx(-30), "Cat": 0
    }
    history = client.get(f"/api/activities/{activity['id']}/history").json()
    records = {r["member_name"]: r for r in history[0]["records"]}
    assert records["Cat"]["paid_cash"] is True
    assert records["Cat"]["description"].endswith("(cash $30)")
    assert history[0]["total"] == pytest.approx(90)


def test_edit_with_foreign_member_returns_422(client, court):
    activity, members = court
    charge = _charge(client, activity["id"], 60, [{"member_id": members["Ann"]["id"]}])

    response = client.put(
        f"/api/activities/{activity['id']}/batches/{charge['batch_id']}",
        json={"participants": [{"member_id": 4242}]}
    )

    assert response.status_code == 422
    assert _balances(client, activity["id"])["Ann"] == pytest.approx(-60)


def test_edit_missing_batch_returns_404(client, court):
    activity, _ = court
    response = client.put(f"/api/activities/{activity['id']}/batches/nope", json={"new_total": 10})
    assert response.status_code == 404


def test_edit_legacy_batch_by_timestamp(client, db, court):
    activity, members = court
    stamp = datetime(2024, 3, 14, 18, 0)
    for name, amount, description in (
        ("Ann", -20.0, "shared cost (total $60)"),
        ("Ben", -40.0, "shared cost (total $60) [1 guest]"),
    ):
        db.add(Transaction(
            activity_id=activity["id"],
            member_id=members[name]["id"],
            kind=TransactionKind.EXPENSE,
            amount=amount,
            description=description,
            timestamp=stamp
        ))
    db.commit()
    client.post(f"/api/activities/{activity['id']}/recalculate-balances")

    response = client.put(
        f"/api/activities/{activity['id']}/batches/by-timestamp",
        json={"timestamp": stamp.isoformat(), "new_total": 90}
    )

    assert response.status_code == 200
    assert response.json()["batch_id"]
    assert _balances(client, activity["id"]) == {
        "Ann": pytest.approx(-30), "Ben": pytest.approx(-60), "Cat": 0
    }


def test_void_and_remove(client, court):
    activity, members = court
    charge = _charge(client, activity["id"], 99, [
        {"member_id": members["Ann"]["id"]},
        {"member_id": members["Ben"]["id"]},
        {"member_id": members["Cat"]["id"]},
    ])
    rows = {t["member_name"]: t for t in charge["transactions"]}

    voided = client.post(f"/api/activities/{activity['id']}/transactions/{rows['Cat']['id']}/void")
    assert voided.status_code == 200
    assert _balances(client, activity["id"]) == {
        "Ann": pytest.approx(-49.5), "Ben": pytest.approx(-49.5), "Cat": pytest.approx(0)
    }

    removed = client.delete(f"/api/activities/{activity['id']}/transactions/{rows['Ben']['id']}")
    assert removed.status_code == 200
    assert _balances(client, activity["id"]) == {
        "Ann": pytest.approx(-99), "Ben": pytest.approx(0), "Cat": pytest.approx(0)
    }

    history = client.get(f"/api/activities/{activity['id']}/history").json()
    kinds = sorted(r["kind"] for r in history[0]["records"])
    assert kinds == ["expense", "void"]

    audit = client.get(f"/api/activities/{activity['id']}/audit").json()
    assert all(item["drift"] == pytest.approx(0) for item in audit)


def test_void_missing_transaction_returns_404(client, court):
    activity, _ = court
    assert client.post(f"/api/activities/{activity['id']}/transactions/555/void").status_code == 404


def _legacy_rows(db, activity_id, members, entries, stamp):
    for name, amount, description in entries:
        db.add(Transaction(
            activity_id=activity_id,
            member_id=members[name]["id"],
            kind=TransactionKind.EXPENSE,
            amount=amount,
            description=description,
            timestamp=stamp
        ))
    db.commit()


def test_edit_legacy_batch_by_timestamp_and_description(client, db, court):
    activity, members = court
    stamp = datetime(2024, 3, 15, 18, 0)
    _legacy_rows(db, activity["id"], members, [
        ("Ann", -30.0, "court (total $60)"),
        ("Ben", -30.0, "court (total $60)"),
        ("Cat", -20.0, "balls (total $20)"),
    ], stamp)
    client.post(f"/api/activities/{activity['id']}/recalculate-balances")

    response = client.put(
        f"/api/activities/{activity['id']}/batches/by-timestamp",
        json={"timestamp": stamp.isoformat(), "description": "court (total $60)", "new_total": 90}
    )

    assert response.status_code == 200
    assert {t["member_name"] for t in response.json()["transactions"]} == {"Ann", "Ben"}
    assert _balances(client, activity["id"]) == {
        "Ann": pytest.approx(-45), "Ben": pytest.approx(-45), "Cat": pytest.approx(-20)
    }


def test_charges_in_the_same_second_are_not_merged(client, db, court):
    activity, members = court
    first = _charge(client, activity["id"], 90, [
        {"member_id": members["Ann"]["id"]},
        {"member_id": members["Ben"]["id"]},
    ])
    second = _charge(client, activity["id"], 30, [{"member_id": members["Cat"]["id"]}])
    stamp = datetime(2024, 3, 16, 18, 0)
    db.query(Transaction).filter(
        Transaction.batch_id.in_([first["batch_id"], second["batch_id"]])
    ).update({"timestamp": stamp}, synchronize_session=False)
    db.commit()

    response = client.put(
        f"/api/activities/{activity['id']}/batches/by-timestamp",
        json={"timestamp": stamp.isoformat(), "new_total": 120}
    )

    assert response.status_code == 404
    assert _balances(client, activity["id"]) == {
        "Ann": pytest.approx(-45), "Ben": pytest.approx(-45), "Cat": pytest.approx(-30)
    }
    history = client.get(f"/api/activities/{activity['id']}/history").json()
    assert {g["batch_id"] for g in history} == {first["batch_id"], second["batch_id"]}
