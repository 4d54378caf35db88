"""
Tests du cycle de vie des dépôts : paiement, protection, restitution
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from enums import (
    DepositStatus, LeaseStatus, NotificationType, TransactionType, UserRole
)
from errors import AuthorizationError, ConflictError, StaleStateError
from services.deposit_lifecycle import DEPOSIT_TRANSITIONS, compute_final_amount
from services.status_guard import compare_and_set_status
import models


@pytest.fixture
def parties(make_user):
    return make_user(UserRole.LANDLORD), make_user(UserRole.TENANT)


def deposit_of(db, lease):
    db.expire_all()
    return db.query(models.Deposit).filter_by(lease_id=lease.id).one()


def test_tenant_pays_deposit(client, db, parties, make_active_lease, auth_headers, email_service):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)
    deposit = deposit_of(db, lease)

    response = client.post(f"/api/v1/deposits/{deposit.id}/pay", json={"payment_reference": "ref-001"},
                           headers=auth_headers(tenant))

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "HELD"
    deposit = deposit_of(db, lease)
    assert deposit.status == DepositStatus.HELD
    [tx] = deposit.transactions
    assert tx.type == TransactionType.DEPOSIT
    assert tx.amount == Decimal("1000.00")
    assert tx.reference == "ref-001"
    assert db.query(models.Notification).filter_by(
        user_id=landlord.id, type=NotificationType.DEPOSIT_RECEIVED
    ).count() == 1
    assert email_service.sent[-1]["to"] == [tenant.email]


def test_landlord_cannot_pay(client, db, parties, make_active_lease, auth_headers):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)
    deposit = deposit_of(db, lease)

    response = client.post(f"/api/v1/deposits/{deposit.id}/pay", headers=auth_headers(landlord))

    assert response.status_code == 403
    assert deposit_of(db, lease).status == DepositStatus.PENDING_PAYMENT


def test_paying_twice_conflicts(client, db, parties, make_active_lease, auth_headers):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)
    deposit = deposit_of(db, lease)
    headers = auth_headers(tenant)
    client.post(f"/api/v1/deposits/{deposit.id}/pay", headers=headers)

    response = client.post(f"/api/v1/deposits/{deposit.id}/pay", headers=headers)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"
    assert len(deposit_of(db, lease).transactions) == 1


def test_protect_without_state_requirement(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant, state="CA")
    deposit = set_status(deposit_of(db, lease), DepositStatus.HELD)

    response = client.post(f"/api/v1/deposits/{deposit.id}/protect",
                           json={"scheme": "TDS", "reference": "TDS-42"}, headers=auth_headers(landlord))

    assert response.status_code == 200
    deposit = deposit_of(db, lease)
    assert deposit.status == DepositStatus.PROTECTED
    assert deposit.protection_reference == "TDS-42"
    assert deposit.protected_at is not None
    assert deposit.transactions == []


def test_protect_charges_fee_where_required(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant, state="NC")
    deposit = set_status(deposit_of(db, lease), DepositStatus.HELD)

    response = client.post(f"/api/v1/deposits/{deposit.id}/protect",
                           json={"scheme": "DPS", "reference": "DPS-7"}, headers=auth_headers(landlord))

    assert response.status_code == 200
    [fee] = deposit_of(db, lease).transactions
    assert fee.type == TransactionType.PROTECTION_FEE
    assert fee.amount == Decimal("25.00")


def test_protect_after_deadline_is_rejected(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant, state="NC", start_date=date.today() - timedelta(days=40))
    deposit = set_status(deposit_of(db, lease), DepositStatus.HELD)

    response = client.post(f"/api/v1/deposits/{deposit.id}/protect",
                           json={"scheme": "DPS", "reference": "DPS-8"}, headers=auth_headers(landlord))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PROTECTION_DEADLINE_PASSED"
    assert deposit_of(db, lease).status == DepositStatus.HELD


def test_return_requires_ended_lease(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)
    deposit = set_status(deposit_of(db, lease), DepositStatus.HELD)

    response = client.post(f"/api/v1/deposits/{deposit.id}/return-request",
                           json={"requested_amount": "1000.00"}, headers=auth_headers(tenant))

    assert response.status_code == 409
    assert deposit_of(db, lease).status == DepositStatus.HELD


def test_return_with_approved_deduction(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant, deposit_amount="1000.00")
    set_status(lease, LeaseStatus.TERMINATED)
    deposit = set_status(deposit_of(db, lease), DepositStatus.PROTECTED)
    headers = auth_headers(landlord)

    requested = client.post(f"/api/v1/deposits/{deposit.id}/return-request", json={
        "requested_amount": "850.00",
        "deductions": [{"reason": "Carpet cleaning", "amount": "150.00"}],
    }, headers=headers)
    assert requested.status_code == 200
    assert requested.json()["data"]["status"] == "PENDING_RETURN"

    response = client.post(f"/api/v1/deposits/{deposit.id}/approve-return", headers=headers)

    assert response.status_code == 200
    deposit = deposit_of(db, lease)
    assert deposit.status == DepositStatus.RETURNED
    assert deposit.final_amount == Decimal("850.00")
    returns = [tx for tx in deposit.transactions if tx.type == TransactionType.RETURN]
    assert [tx.amount for tx in returns] == [Decimal("850.00")]
    assert response.json()["data"]["final_amount"] == "850.00"


def test_tenant_deductions_need_approval(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)
    set_status(lease, LeaseStatus.EXPIRED)
    deposit = set_status(deposit_of(db, lease), DepositStatus.HELD)

    client.post(f"/api/v1/deposits/{deposit.id}/return-request", json={
        "requested_amount": "900.00",
        "deductions": [{"reason": "Broken window", "amount": "100.00"}],
    }, headers=auth_headers(tenant))
    [deduction] = deposit_of(db, lease).deductions
    assert deduction.approved is False

    approved = client.post(f"/api/v1/deposits/deductions/{deduction.id}/approve", headers=auth_headers(landlord))
    assert approved.status_code == 200
    assert approved.json()["data"]["approved"] is True

    client.post(f"/api/v1/deposits/{deposit.id}/approve-return", headers=auth_headers(landlord))
    assert deposit_of(db, lease).final_amount == Decimal("900.00")


def test_tenant_cannot_approve_deduction(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)
    deposit = set_status(deposit_of(db, lease), DepositStatus.PENDING_RETURN)
    deduction = models.Deduction(deposit_id=deposit.id, reason="Paint", amount=Decimal("50.00"), approved=False)
    db.add(deduction)
    db.commit()

    response = client.post(f"/api/v1/deposits/deductions/{deduction.id}/approve", headers=auth_headers(tenant))

    assert response.status_code == 403


def test_excessive_deductions_rejected(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)
    set_status(lease, LeaseStatus.TERMINATED)
    deposit = set_status(deposit_of(db, lease), DepositStatus.HELD)

    response = client.post(f"/api/v1/deposits/{deposit.id}/return-request", json={
        "requested_amount": "0",
        "deductions": [{"reason": "Damage", "amount": "700.00"}, {"reason": "Rent", "amount": "400.00"}],
    }, headers=auth_headers(landlord))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "EXCESSIVE_DEDUCTIONS"
    assert deposit_of(db, lease).status == DepositStatus.HELD
    assert deposit_of(db, lease).deductions == []


def test_invalid_edge_leaves_state_unchanged(client, db, parties, make_active_lease, auth_headers, set_status):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)
    deposit = set_status(deposit_of(db, lease), DepositStatus.HELD)

    response = client.post(f"/api/v1/deposits/{deposit.id}/approve-return", headers=auth_headers(landlord))

    assert response.status_code == 409
    assert response.json()["error"]["details"]["current_status"] == "HELD"
    assert deposit_of(db, lease).status == DepositStatus.HELD


def test_deposit_visibility(client, db, parties, make_user, make_active_lease, auth_headers):
    landlord, tenant = parties
    outsider = make_user(UserRole.TENANT)
    resolver = make_user(UserRole.DISPUTE_RESOLVER)
    deposit = deposit_of(db, make_active_lease(landlord, tenant))

    assert client.get(f"/api/v1/deposits/{deposit.id}", headers=auth_headers(outsider)).status_code == 403
    assert client.get(f"/api/v1/deposits/{deposit.id}", headers=auth_headers(resolver)).status_code == 200
    listed = client.get("/api/v1/deposits", headers=auth_headers(outsider)).json()
    assert listed["data"] == []
    assert listed["meta"]["total"] == 0


# ==================== GARDES (sans HTTP) ====================

def test_guard_checks_actor_before_status(db, parties, make_active_lease):
    landlord, tenant = parties
    lease = make_active_lease(landlord, tenant)

    with pytest.raises(AuthorizationError):
        DEPOSIT_TRANSITIONS["pay"].check(DepositStatus.HELD, landlord, lease)
    with pytest.raises(ConflictError):
        DEPOSIT_TRANSITIONS["pay"].check(DepositStatus.HELD, tenant, lease)
    DEPOSIT_TRANSITIONS["pay"].check(DepositStatus.PENDING_PAYMENT, tenant, lease)


def test_system_actor_bypasses_capabilities():
    DEPOSIT_TRANSITIONS["collect"].check(DepositStatus.PENDING_PAYMENT, None, None)


def test_stale_compare_and_swap(db, parties, make_active_lease):
    landlord, tenant = parties
    deposit = deposit_of(db, make_active_lease(landlord, tenant))
    # Une autre requête a déjà encaissé le dépôt
    db.query(models.Deposit).filter_by(id=deposit.id).update({"status": DepositStatus.HELD},
                                                             synchronize_session=False)

    with pytest.raises(StaleStateError) as excinfo:
        compare_and_set_status(db, deposit, {DepositStatus.PENDING_PAYMENT}, {"status": DepositStatus.HELD})

    assert excinfo.value.code == "STALE_STATE"
    assert excinfo.value.status_code == 409
    db.rollback()


@pytest.mark.parametrize("amount, deductions, expected", [
    ("1000.00", [("150.00", True)], "850.00"),
    ("1000.00", [("150.00", True), ("200.00", False)], "850.00"),
    ("500.00", [("400.00", True), ("300.00", True)], "0.00"),
    ("500.00", [], "500.00"),
])
def test_compute_final_amount(amount, deductions, expected):
    items = [models.Deduction(amount=Decimal(value), approved=approved) for value, approved in deductions]

    assert compute_final_amount(Decimal(amount), items) == Decimal(expected)
