"""
Tests des ressources simples : biens, utilisateurs, documents, transactions,
notifications, santé, création de comptes du personnel
"""
import pytest

from create_admin import create_or_promote
from enums import NotificationType, TransactionType, UserRole
from services.deposit_lifecycle import DepositService
from services.user_notification_service import UserNotificationService
import models

from conftest import PASSWORD

PROPERTY = {
    "address_line1": "12 Ocean Avenue",
    "city": "Los Angeles",
    "state": "ca",
    "zip_code": "90001",
    "property_type": "APARTMENT",
    "bedrooms": 2,
    "monthly_rent": "1800.00",
}


# ==================== BIENS ====================

def test_landlord_creates_property(client, make_user, auth_headers):
    landlord = make_user(UserRole.LANDLORD)

    response = client.post("/api/v1/properties", json=PROPERTY, headers=auth_headers(landlord))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["landlord_id"] == landlord.id
    assert data["state"] == "CA"
    assert data["monthly_rent"] == "1800.00"


def test_invalid_zip_code(client, make_user, auth_headers):
    response = client.post("/api/v1/properties", json={**PROPERTY, "zip_code": "ABCDE"},
                           headers=auth_headers(make_user(UserRole.LANDLORD)))

    assert response.status_code == 400
    assert response.json()["error"]["details"]["errors"][0]["field"] == "zip_code"


def test_tenant_cannot_create_property(client, make_user, auth_headers):
    response = client.post("/api/v1/properties", json=PROPERTY, headers=auth_headers(make_user(UserRole.TENANT)))

    assert response.status_code == 403


def test_manager_creates_property_for_landlord(client, make_user, auth_headers):
    landlord = make_user(UserRole.LANDLORD)
    manager = make_user(UserRole.PROPERTY_MANAGER)
    headers = auth_headers(manager)

    missing = client.post("/api/v1/properties", json=PROPERTY, headers=headers)
    created = client.post("/api/v1/properties", json={**PROPERTY, "landlord_id": landlord.id}, headers=headers)

    assert missing.status_code == 400
    assert created.status_code == 201
    assert created.json()["data"]["landlord_id"] == landlord.id


def test_property_visibility(client, make_user, make_property, make_active_lease, auth_headers):
    landlord = make_user(UserRole.LANDLORD)
    tenant = make_user(UserRole.TENANT)
    other_landlord = make_user(UserRole.LANDLORD)
    leased = make_active_lease(landlord, tenant).property
    vacant = make_property(landlord)

    assert client.get(f"/api/v1/properties/{leased.id}", headers=auth_headers(tenant)).status_code == 200
    assert client.get(f"/api/v1/properties/{vacant.id}", headers=auth_headers(tenant)).status_code == 403
    assert client.get(f"/api/v1/properties/{vacant.id}", headers=auth_headers(other_landlord)).status_code == 403
    assert client.get("/api/v1/properties", headers=auth_headers(landlord)).json()["meta"]["total"] == 2
    assert client.get("/api/v1/properties", headers=auth_headers(tenant)).json()["meta"]["total"] == 1


def test_update_property(client, make_user, make_property, auth_headers):
    landlord = make_user(UserRole.LANDLORD)
    prop = make_property(landlord)

    response = client.patch(f"/api/v1/properties/{prop.id}", json={"bedrooms": 3},
                            headers=auth_headers(landlord))

    assert response.status_code == 200
    assert response.json()["data"]["bedrooms"] == 3


def test_property_with_leases_cannot_be_deleted(client, db, make_user, make_property, make_active_lease,
                                                auth_headers):
    landlord = make_user(UserRole.LANDLORD)
    leased = make_active_lease(landlord, make_user(UserRole.TENANT)).property
    vacant_id = make_property(landlord).id
    headers = auth_headers(landlord)

    assert client.delete(f"/api/v1/properties/{leased.id}", headers=headers).status_code == 409
    assert client.delete(f"/api/v1/properties/{vacant_id}", headers=headers).status_code == 200
    db.expire_all()
    assert db.query(models.Property).filter(models.Property.id == vacant_id).first() is None


def test_missing_property(client, make_user, auth_headers):
    response = client.get("/api/v1/properties/999", headers=auth_headers(make_user(UserRole.ADMIN)))

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


# ==================== UTILISATEURS ====================

def test_admin_lists_users_by_role(client, make_user, auth_headers):
    admin = make_user(UserRole.ADMIN)
    make_user(UserRole.TENANT)
    make_user(UserRole.TENANT)
    make_user(UserRole.LANDLORD)

    response = client.get("/api/v1/users", params={"role": "TENANT", "limit": 1}, headers=auth_headers(admin))

    body = response.json()
    assert len(body["data"]) == 1
    assert body["meta"] == {"page": 1, "limit": 1, "total": 2, "total_pages": 2}


def test_other_profiles_are_hidden(client, make_user, auth_headers):
    tenant = make_user(UserRole.TENANT)
    other = make_user(UserRole.TENANT)
    headers = auth_headers(tenant)

    assert client.get(f"/api/v1/users/{tenant.id}", headers=headers).status_code == 200
    assert client.get(f"/api/v1/users/{other.id}", headers=headers).status_code == 404
    assert client.patch(f"/api/v1/users/{other.id}", json={"first_name": "Eve"}, headers=headers).status_code == 403


def test_update_own_profile(client, make_user, auth_headers):
    tenant = make_user(UserRole.TENANT)

    response = client.patch(f"/api/v1/users/{tenant.id}", json={"first_name": "Bob", "phone": "+1 555 0100"},
                            headers=auth_headers(tenant))

    assert response.status_code == 200
    assert response.json()["data"]["first_name"] == "Bob"


def test_delete_user(client, db, make_user, make_active_lease, auth_headers):
    admin = make_user(UserRole.ADMIN)
    headers = auth_headers(admin)
    idle_id = make_user(UserRole.TENANT).id
    busy = make_user(UserRole.TENANT)
    make_active_lease(make_user(UserRole.LANDLORD), busy)

    assert client.delete(f"/api/v1/users/{admin.id}", headers=headers).status_code == 409
    assert client.delete(f"/api/v1/users/{busy.id}", headers=headers).status_code == 409
    assert client.delete(f"/api/v1/users/{idle_id}", headers=headers).status_code == 200
    db.expire_all()
    assert db.query(models.User).filter(models.User.id == idle_id).first() is None


# ==================== DOCUMENTS ====================

def test_document_upload_notifies_other_party(client, db, make_user, make_active_lease, auth_headers):
    landlord = make_user(UserRole.LANDLORD)
    tenant = make_user(UserRole.TENANT)
    lease = make_active_lease(landlord, tenant)

    response = client.post("/api/v1/documents", json={
        "lease_id": lease.id, "type": "INVENTORY", "name": "Move-in inventory.pdf",
        "url": "https://files.deposife-test.com/inventory.pdf", "mime_type": "application/pdf",
    }, headers=auth_headers(landlord))

    assert response.status_code == 201
    assert response.json()["data"]["uploaded_by"] == landlord.id
    assert db.query(models.Notification).filter_by(
        user_id=tenant.id, type=NotificationType.DOCUMENT_UPLOADED
    ).count() == 1
    listed = client.get("/api/v1/documents", params={"lease_id": lease.id}, headers=auth_headers(tenant))
    assert listed.json()["meta"]["total"] == 1


def test_document_access_and_deletion(client, make_user, make_active_lease, auth_headers):
    landlord = make_user(UserRole.LANDLORD)
    tenant = make_user(UserRole.TENANT)
    lease = make_active_lease(landlord, tenant)
    document_id = client.post("/api/v1/documents", json={
        "lease_id": lease.id, "type": "IDENTITY", "name": "id.png", "url": "https://files.deposife-test.com/id.png",
    }, headers=auth_headers(tenant)).json()["data"]["id"]
    outsider = make_user(UserRole.TENANT)

    assert client.get(f"/api/v1/documents/{document_id}", headers=auth_headers(outsider)).status_code == 403
    assert client.delete(f"/api/v1/documents/{document_id}", headers=auth_headers(landlord)).status_code == 403
    assert client.delete(f"/api/v1/documents/{document_id}", headers=auth_headers(tenant)).status_code == 200


# ==================== TRANSACTIONS ====================

def test_transactions_are_scoped(client, db, make_user, make_active_lease, auth_headers):
    landlord = make_user(UserRole.LANDLORD)
    tenant = make_user(UserRole.TENANT)
    deposit = make_active_lease(landlord, tenant).deposit
    tx = DepositService.record_transaction(db, deposit, TransactionType.DEPOSIT, deposit.amount, reference="ref-1")
    db.commit()

    mine = client.get("/api/v1/transactions", params={"type": "DEPOSIT"}, headers=auth_headers(tenant)).json()
    others = client.get("/api/v1/transactions", headers=auth_headers(make_user(UserRole.TENANT))).json()

    assert [t["reference"] for t in mine["data"]] == ["ref-1"]
    assert mine["data"][0]["amount"] == "1000.00"
    assert others["meta"]["total"] == 0
    assert client.get(f"/api/v1/transactions/{tx.id}", headers=auth_headers(landlord)).status_code == 200


# ==================== NOTIFICATIONS ====================

@pytest.fixture
def notified_user(db, make_user):
    user = make_user(UserRole.TENANT)
    for index in range(3):
        UserNotificationService.create_notification(
            db, user.id, NotificationType.PAYMENT_DUE, f"Notice {index}", "Rent payment is due",
        )
    db.commit()
    return user


def test_list_notifications_with_unread_count(client, db, notified_user, auth_headers):
    headers = auth_headers(notified_user)
    first = db.query(models.Notification).filter_by(user_id=notified_user.id).first()

    client.patch(f"/api/v1/notifications/{first.id}/read", headers=headers)
    body = client.get("/api/v1/notifications", headers=headers).json()
    unread = client.get("/api/v1/notifications", params={"unread_only": True}, headers=headers).json()

    assert body["meta"]["total"] == 3
    assert body["meta"]["unread_count"] == 2
    assert unread["meta"]["total"] == 2


def test_mark_read_is_silent_for_foreign_notifications(client, db, notified_user, make_user, auth_headers):
    other = make_user(UserRole.LANDLORD)
    notification = db.query(models.Notification).filter_by(user_id=notified_user.id).first()

    response = client.patch(f"/api/v1/notifications/{notification.id}/read", headers=auth_headers(other))
    missing = client.patch("/api/v1/notifications/9999/read", headers=auth_headers(other))

    assert response.status_code == missing.status_code == 200
    db.expire_all()
    assert db.get(models.Notification, notification.id).read is False


def test_mark_all_read_and_delete(client, db, notified_user, auth_headers):
    headers = auth_headers(notified_user)

    updated = client.patch("/api/v1/notifications/read-all", headers=headers)
    notification = db.query(models.Notification).filter_by(user_id=notified_user.id).first()
    deleted = client.delete(f"/api/v1/notifications/{notification.id}", headers=headers)

    assert updated.json()["data"] == {"updated": 3}
    assert deleted.status_code == 200
    body = client.get("/api/v1/notifications", headers=headers).json()
    assert body["meta"]["total"] == 2
    assert body["meta"]["unread_count"] == 0


# ==================== SANTÉ ====================

def test_health(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "healthy"
    assert data["database"] == "ok"
    assert data["environment"] == "test"
    assert response.headers["x-content-type-options"] == "nosniff"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/v1/nowhere")

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"]["code"] == "NOT_FOUND"


# ==================== COMPTES DU PERSONNEL ====================

def test_create_admin_account(db):
    user, created = create_or_promote(db, "Root@Deposife-Test.com", UserRole.ADMIN, PASSWORD, "Root", "Admin")

    assert created is True
    assert user.email == "root@deposife-test.com"
    assert user.role == UserRole.ADMIN
    assert user.email_verified is True


def test_promote_existing_account(db, make_user):
    landlord = make_user(UserRole.LANDLORD)

    user, created = create_or_promote(db, landlord.email, UserRole.DISPUTE_RESOLVER)

    assert created is False
    assert user.id == landlord.id
    assert user.role == UserRole.DISPUTE_RESOLVER


@pytest.mark.parametrize("role, password", [
    (UserRole.TENANT, PASSWORD),
    (UserRole.ADMIN, None),
    (UserRole.ADMIN, "weakpassword"),
])
def test_create_admin_rejects_bad_input(db, role, password):
    with pytest.raises(ValueError):
        create_or_promote(db, "staff@deposife-test.com", role, password)
