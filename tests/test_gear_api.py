"""HTTP-level tests for the gear routes."""

import uuid
from datetime import datetime, timedelta, timezone

from tripgear.models.models import AuditLog, GearAssignment, GearItem
from tripgear.services.audit import verify_audit_log


def _create_item(client, headers, trip_id, name="Tent", quantity_needed=5):
    resp = client.post(
        "/gear",
        json={"trip_id": str(trip_id), "name": name, "quantity_needed": quantity_needed},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"
    assert client.get("/health").headers.get("X-Request-ID")


def test_requires_authentication(client, world):
    assert client.get(f"/gear/trip/{world.trip.id}").status_code == 401
    resp = client.get(f"/gear/trip/{world.trip.id}", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_admin_creates_and_lists_items(client, world, auth_headers):
    admin = auth_headers(world.admin)
    created = _create_item(client, admin, world.trip.id, "Tent", 4)
    _create_item(client, admin, world.trip.id, "Cooler", 1)

    assert created["name"] == "Tent"
    assert created["quantity_needed"] == 4
    assert created["assignments"] == []

    resp = client.get(f"/gear/trip/{world.trip.id}", headers=auth_headers(world.user_a))
    assert resp.status_code == 200
    assert [i["name"] for i in resp.json()] == ["Cooler", "Tent"]


def test_family_cannot_create_items(client, world, auth_headers):
    resp = client.post(
        "/gear",
        json={"trip_id": str(world.trip.id), "name": "Tent", "quantity_needed": 2},
        headers=auth_headers(world.user_a),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"


def test_request_validation(client, world, auth_headers):
    admin = auth_headers(world.admin)
    bad_quantity = client.post(
        "/gear",
        json={"trip_id": str(world.trip.id), "name": "Tent", "quantity_needed": 0},
        headers=admin,
    )
    blank_name = client.post(
        "/gear",
        json={"trip_id": str(world.trip.id), "name": "  ", "quantity_needed": 1},
        headers=admin,
    )
    assert bad_quantity.status_code == 422
    assert blank_name.status_code == 422


def test_unknown_trip_is_not_found(client, world, auth_headers):
    resp = client.get(f"/gear/trip/{uuid.uuid4()}", headers=auth_headers(world.root))
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Trip not found"


def test_over_allocation_returns_conflict_with_available(client, world, auth_headers):
    item = _create_item(client, auth_headers(world.admin), world.trip.id, "Tent", 5)

    first = client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_a.id), "quantity_assigned": 3},
        headers=auth_headers(world.user_a),
    )
    assert first.status_code == 201
    assert first.json()["family"]["name"] == "Alvarez"

    second = client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_b.id), "quantity_assigned": 3},
        headers=auth_headers(world.user_b),
    )
    assert second.status_code == 409
    body = second.json()
    assert body["code"] == "conflict"
    assert body["available"] == 2
    assert body["requested"] == 3
    assert "Available: 2" in body["detail"]


def test_assign_for_other_family_forbidden(client, world, auth_headers):
    item = _create_item(client, auth_headers(world.admin), world.trip.id)
    resp = client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_b.id), "quantity_assigned": 1},
        headers=auth_headers(world.user_a),
    )
    assert resp.status_code == 403


def test_assign_after_start_is_rejected(client, world, auth_headers, db):
    item = _create_item(client, auth_headers(world.admin), world.trip.id)
    world.trip.start_date = datetime.now(timezone.utc) - timedelta(hours=1)
    db.commit()

    resp = client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_a.id), "quantity_assigned": 1},
        headers=auth_headers(world.admin),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "trip_started"


def test_update_shrink_conflict(client, world, auth_headers):
    admin = auth_headers(world.admin)
    item = _create_item(client, admin, world.trip.id, "Tent", 10)
    client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_a.id), "quantity_assigned": 6},
        headers=admin,
    )

    resp = client.put(f"/gear/{item['id']}", json={"quantity_needed": 5}, headers=admin)
    assert resp.status_code == 409
    assert resp.json()["total_assigned"] == 6

    resp = client.put(f"/gear/{item['id']}", json={"quantity_needed": 6}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["quantity_needed"] == 6


def test_summary_and_family_view(client, world, auth_headers):
    admin = auth_headers(world.admin)
    item = _create_item(client, admin, world.trip.id, "Stove", 3)
    client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_b.id), "quantity_assigned": 2},
        headers=auth_headers(world.user_b),
    )

    summary = client.get(f"/gear/trip/{world.trip.id}/summary", headers=admin).json()
    assert summary == [
        {
            "gear_item_id": item["id"],
            "name": "Stove",
            "quantity_needed": 3,
            "total_assigned": 2,
            "remaining": 1,
            "assignments": [
                {"family_id": str(world.family_b.id), "family_name": "Brooks", "quantity_assigned": 2}
            ],
        }
    ]

    single = client.get(f"/gear/{item['id']}/summary", headers=admin).json()
    assert single["remaining"] == 1

    own = client.get(
        f"/gear/trip/{world.trip.id}/family/{world.family_b.id}", headers=auth_headers(world.user_b)
    )
    assert own.status_code == 200
    assert [row["gear_item"]["name"] for row in own.json()] == ["Stove"]

    other = client.get(
        f"/gear/trip/{world.trip.id}/family/{world.family_b.id}", headers=auth_headers(world.user_a)
    )
    assert other.status_code == 403


def test_remove_assignment_and_delete_item(client, world, auth_headers, db):
    admin = auth_headers(world.admin)
    item = _create_item(client, admin, world.trip.id)
    client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_a.id), "quantity_assigned": 2},
        headers=auth_headers(world.user_a),
    )

    resp = client.delete(f"/gear/{item['id']}/assign/{world.family_a.id}", headers=auth_headers(world.user_a))
    assert resp.status_code == 200
    assert resp.json() == {"message": "Gear assignment removed successfully"}

    missing = client.delete(f"/gear/{item['id']}/assign/{world.family_a.id}", headers=auth_headers(world.user_a))
    assert missing.status_code == 404

    resp = client.delete(f"/gear/{item['id']}", headers=admin)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Gear item deleted successfully"}

    db.expire_all()
    assert db.query(GearItem).count() == 0
    assert db.query(GearAssignment).count() == 0


def test_mutations_write_verifiable_audit_entries(client, world, auth_headers, db):
    admin = auth_headers(world.admin)
    item = _create_item(client, admin, world.trip.id, "Tent", 4)
    client.put(f"/gear/{item['id']}", json={"name": "Big tent"}, headers=admin)
    client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_a.id), "quantity_assigned": 1},
        headers=admin,
    )
    client.post(
        f"/gear/{item['id']}/assign",
        json={"family_id": str(world.family_a.id), "quantity_assigned": 2},
        headers=admin,
    )

    db.expire_all()
    entries = db.query(AuditLog).order_by(AuditLog.timestamp_utc.asc()).all()

    assert [(e.entity_type, e.action) for e in entries] == [
        ("gear_item", "CREATE"),
        ("gear_item", "UPDATE"),
        ("gear_assignment", "CREATE"),
        ("gear_assignment", "UPDATE"),
    ]
    assert entries[1].changes_json == {"name": {"before": "Tent", "after": "Big tent"}}
    assert all(e.actor_id == world.admin.id for e in entries)
    assert all(verify_audit_log(e) for e in entries)


def test_rejected_mutation_writes_no_audit_entry(client, world, auth_headers, db):
    resp = client.post(
        "/gear",
        json={"trip_id": str(world.trip.id), "name": "Tent", "quantity_needed": 2},
        headers=auth_headers(world.user_a),
    )
    assert resp.status_code == 403

    db.expire_all()
    assert db.query(AuditLog).count() == 0
