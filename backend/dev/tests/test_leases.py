"""
Tests des baux : création sous plafond légal, double signature, fin de bail
"""
from datetime import date, timedelta

import pytest

from enums import DepositStatus, LeaseStatus, NotificationType, UserRole
import models


@pytest.fixture
def landlord(make_user):
    return make_user(UserRole.LANDLORD)


@pytest.fixture
def tenant(make_user):
    return make_user(UserRole.TENANT)


def lease_payload(prop, tenant, **overrides):
    start = date.today()
    payload = {
        "property_id": prop.id,
        "tenant_id": tenant.id,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=365)).isoformat(),
        "monthly_rent": "1000.00",
        "deposit_amount": "1500.00",
    }
    payload.update(overrides)
    return payload


def test_create_lease_pending_signatures(client, landlord, tenant, make_property, auth_headers):
    prop = make_property(landlord, state="CA")

    response = client.post("/api/v1/leases", json=lease_payload(prop, tenant), headers=auth_headers(landlord))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "PENDING_SIGNATURES"
    assert data["landlord_id"] == landlord.id
    assert data["deposit_amount"] == "1500.00"


def test_create_lease_over_state_limit(client, db, landlord, tenant, make_property, auth_headers):
    prop = make_property(landlord, state="CA")

    response = client.post("/api/v1/leases", json=lease_payload(prop, tenant, deposit_amount="2500.00"),
                           headers=auth_headers(landlord))

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "DEPOSIT_EXCEEDS_STATE_LIMIT"
    assert error["details"]["max_allowed"] == "2000.00"
    assert db.query(models.Lease).count() == 0


def test_create_lease_without_state_limit(client, landlord, tenant, make_property, auth_headers):
    prop = make_property(landlord, state="TX")

    response = client.post("/api/v1/leases", json=lease_payload(prop, tenant, deposit_amount="5000.00"),
                           headers=auth_headers(landlord))

    assert response.status_code == 201


def test_lease_tenant_must_have_tenant_role(client, landlord, make_user, make_property, auth_headers):
    prop = make_property(landlord)
    other_landlord = make_user(UserRole.LANDLORD)

    response = client.post("/api/v1/leases", json=lease_payload(prop, other_landlord),
                           headers=auth_headers(landlord))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_landlord_cannot_lease_foreign_property(client, landlord, tenant, make_user, make_property, auth_headers):
    prop = make_property(make_user(UserRole.LANDLORD))

    response = client.post("/api/v1/leases", json=lease_payload(prop, tenant), headers=auth_headers(landlord))

    assert response.status_code == 403


def test_tenant_cannot_create_lease(client, landlord, tenant, make_property, auth_headers):
    prop = make_property(landlord)

    response = client.post("/api/v1/leases", json=lease_payload(prop, tenant), headers=auth_headers(tenant))

    assert response.status_code == 403


def test_one_active_lease_per_property(client, landlord, tenant, make_user, make_property, auth_headers):
    prop = make_property(landlord)
    headers = auth_headers(landlord)
    assert client.post("/api/v1/leases", json=lease_payload(prop, tenant), headers=headers).status_code == 201

    response = client.post("/api/v1/leases", json=lease_payload(prop, make_user(UserRole.TENANT)), headers=headers)

    assert response.status_code == 409


def test_end_date_must_follow_start_date(client, landlord, tenant, make_property, auth_headers):
    prop = make_property(landlord)
    payload = lease_payload(prop, tenant, end_date=date.today().isoformat())

    response = client.post("/api/v1/leases", json=payload, headers=auth_headers(landlord))

    assert response.status_code == 400


def test_double_signature_activates_and_creates_deposit(client, db, landlord, tenant, make_property, auth_headers):
    prop = make_property(landlord)
    lease_id = client.post("/api/v1/leases", json=lease_payload(prop, tenant),
                           headers=auth_headers(landlord)).json()["data"]["id"]

    first = client.post(f"/api/v1/leases/{lease_id}/sign", headers=auth_headers(tenant))
    assert first.json()["data"]["status"] == "PENDING_SIGNATURES"
    assert db.query(models.Deposit).count() == 0

    second = client.post(f"/api/v1/leases/{lease_id}/sign", headers=auth_headers(landlord))

    assert second.status_code == 200
    assert second.json()["data"]["status"] == "ACTIVE"
    db.expire_all()
    [deposit] = db.query(models.Deposit).filter_by(lease_id=lease_id).all()
    assert deposit.status == DepositStatus.PENDING_PAYMENT
    assert str(deposit.amount) == "1500.00"
    assert db.query(models.Notification).filter_by(
        user_id=tenant.id, type=NotificationType.LEASE_SIGNED
    ).count() == 1


def test_sign_twice_conflicts(client, landlord, tenant, make_property, auth_headers):
    prop = make_property(landlord)
    lease_id = client.post("/api/v1/leases", json=lease_payload(prop, tenant),
                           headers=auth_headers(landlord)).json()["data"]["id"]
    headers = auth_headers(tenant)
    client.post(f"/api/v1/leases/{lease_id}/sign", headers=headers)

    response = client.post(f"/api/v1/leases/{lease_id}/sign", headers=headers)

    assert response.status_code == 409


def test_outsider_cannot_sign(client, landlord, tenant, make_user, make_property, auth_headers):
    prop = make_property(landlord)
    lease_id = client.post("/api/v1/leases", json=lease_payload(prop, tenant),
                           headers=auth_headers(landlord)).json()["data"]["id"]

    response = client.post(f"/api/v1/leases/{lease_id}/sign", headers=auth_headers(make_user(UserRole.TENANT)))

    assert response.status_code == 403


def test_terminate_active_lease(client, db, landlord, tenant, make_active_lease, auth_headers):
    lease = make_active_lease(landlord, tenant)

    response = client.post(f"/api/v1/leases/{lease.id}/terminate", json={"reason": "Moving abroad"},
                           headers=auth_headers(tenant))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "TERMINATED"
    assert "Moving abroad" in data["terms"]


def test_terminate_blocked_during_dispute(client, db, landlord, tenant, make_active_lease, auth_headers, set_status):
    lease = make_active_lease(landlord, tenant)
    set_status(lease.deposit, DepositStatus.DISPUTED)

    response = client.post(f"/api/v1/leases/{lease.id}/terminate", headers=auth_headers(landlord))

    assert response.status_code == 409
    db.expire_all()
    assert db.get(models.Lease, lease.id).status == LeaseStatus.ACTIVE


def test_terminate_requires_active_lease(client, landlord, tenant, make_active_lease, auth_headers):
    lease = make_active_lease(landlord, tenant, status=LeaseStatus.EXPIRED)

    response = client.post(f"/api/v1/leases/{lease.id}/terminate", headers=auth_headers(landlord))

    assert response.status_code == 409


def test_expire_after_end_date(client, landlord, tenant, make_active_lease, auth_headers):
    lease = make_active_lease(landlord, tenant, start_date=date.today() - timedelta(days=400))

    response = client.post(f"/api/v1/leases/{lease.id}/expire", headers=auth_headers(landlord))

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "EXPIRED"


def test_expire_before_end_date_conflicts(client, landlord, tenant, make_active_lease, auth_headers):
    lease = make_active_lease(landlord, tenant)

    response = client.post(f"/api/v1/leases/{lease.id}/expire", headers=auth_headers(landlord))

    assert response.status_code == 409


def test_list_leases_scoped_to_parties(client, landlord, tenant, make_user, make_active_lease, auth_headers):
    make_active_lease(landlord, tenant)
    other = make_user(UserRole.TENANT)
    manager = make_user(UserRole.PROPERTY_MANAGER)

    assert client.get("/api/v1/leases", headers=auth_headers(tenant)).json()["meta"]["total"] == 1
    assert client.get("/api/v1/leases", headers=auth_headers(other)).json()["meta"]["total"] == 0
    assert client.get("/api/v1/leases", headers=auth_headers(manager)).json()["meta"]["total"] == 1
