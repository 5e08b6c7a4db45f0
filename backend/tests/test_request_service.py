"""
Request lifecycle tests: creation, the transition table, receipt side
effects, item edits, reads, access checks, concurrency and sink behaviour.
"""

from decimal import Decimal

import pytest
import sqlalchemy as sa

from fulfillment.errors import (
    AccessDeniedError,
    ConcurrencyConflictError,
    InvalidOperationError,
    InvalidTransitionError,
    NotFoundError,
    OperationCancelledError,
    ValidationError,
)
from fulfillment.extensions import db
from fulfillment.models import (
    AuditLog,
    InventoryTransaction,
    Notification,
    Request,
    RequestHistory,
    RequestStatus,
    TransactionType,
)
from fulfillment.services import request_service
from fulfillment.services.request_service import REQUEST_TRANSITIONS, TRANSITION_OPERATIONS


S = RequestStatus

PATHS = {
    S.DRAFT: [],
    S.SUBMITTED: [S.SUBMITTED],
    S.APPROVED: [S.SUBMITTED, S.APPROVED],
    S.ITEMS_RECEIVED: [S.SUBMITTED, S.APPROVED, S.ITEMS_RECEIVED],
    S.ITEMS_INSTALLED: [S.SUBMITTED, S.APPROVED, S.ITEMS_RECEIVED, S.ITEMS_INSTALLED],
    S.COMPLETED: [S.SUBMITTED, S.APPROVED, S.ITEMS_RECEIVED, S.ITEMS_INSTALLED, S.COMPLETED],
    S.CANCELLED: [S.CANCELLED],
    S.REJECTED: [S.SUBMITTED, S.REJECTED],
}


def _item(product_id=1, warehouse_id=1, quantity=1, **extra):
    return {"product_id": product_id, "warehouse_id": warehouse_id, "quantity": quantity, **extra}


def _create(actor="creator", items=None, title="Test Request", description=None):
    return request_service.create_request(title, description, items if items is not None else [_item()], actor)


def _advance(request_id, status, actor="creator"):
    for step in PATHS[status]:
        TRANSITION_OPERATIONS[step](request_id, actor)


def _reload(request_id):
    db.session.expire_all()
    return db.session.get(Request, request_id)


# =============================================================================
# Scenarios
# =============================================================================

def test_create_request_starts_in_draft_with_one_history_entry(directory):
    created = _create()

    assert created.status == S.DRAFT
    assert created.created_by_user_id == "creator"
    assert [(i.product_id, i.warehouse_id, i.quantity) for i in created.items] == [(1, 1, 1)]
    assert len(created.history) == 1
    assert created.history[0].previous_status is None
    assert created.history[0].new_status == S.DRAFT
    assert created.history[0].comment == "Request created"


def test_submit_then_approve(directory):
    created = _create()

    request_service.submit_request(created.id, "creator")
    approved = request_service.approve_request(created.id, "manager", comment="ok")

    assert approved.status == S.APPROVED
    assert approved.approved_by_user_id == "manager"
    pairs = [(h.previous_status, h.new_status) for h in approved.history]
    assert pairs == [(None, S.DRAFT), (S.DRAFT, S.SUBMITTED), (S.SUBMITTED, S.APPROVED)]
    assert approved.history[-1].actor_user_id == "manager"
    assert approved.history[-1].comment == "ok"


def test_receipt_creates_one_income_transaction_per_item(directory):
    created = _create()
    _advance(created.id, S.APPROVED)

    received = request_service.mark_items_received(created.id, "creator")

    assert received.status == S.ITEMS_RECEIVED
    txns = db.session.query(InventoryTransaction).all()
    assert len(txns) == 1
    txn = txns[0]
    assert txn.type == TransactionType.INCOME
    assert (txn.quantity, txn.product_id, txn.warehouse_id) == (1, 1, 1)
    assert txn.request_id == created.id
    assert txn.user_id == "creator"
    assert txn.description == f"Request #{created.id}: Test Request"
    assert received.history[-1].comment == "Items received"


def test_receipt_by_another_user_books_income_to_the_creator(directory, sinks):
    created = _create(items=[_item(), _item(product_id=2)])
    request_service.submit_request(created.id, "creator")
    request_service.approve_request(created.id, "manager")

    received = request_service.mark_items_received(created.id, "manager")

    txns = request_service.list_request_transactions(created.id, "creator")
    assert [txn.user_id for txn in txns] == ["creator", "creator"]
    assert received.history[-1].actor_user_id == "manager"
    assert sinks.notification.recipients("transaction") == ["creator", "creator"]


def test_approve_from_draft_is_rejected_without_side_effects(directory):
    created = _create()

    with pytest.raises(InvalidTransitionError) as exc:
        request_service.approve_request(created.id, "creator")

    assert exc.value.current_status == S.DRAFT
    assert exc.value.target_status == S.APPROVED
    assert str(exc.value) == "Invalid status transition from Draft to Approved"
    reloaded = _reload(created.id)
    assert reloaded.status == S.DRAFT
    assert len(reloaded.history) == 1


# =============================================================================
# Transition table
# =============================================================================

def test_transition_table_covers_every_status():
    assert set(REQUEST_TRANSITIONS) == set(S.ALL)
    for status in S.TERMINAL:
        assert REQUEST_TRANSITIONS[status] == frozenset()
    for targets in REQUEST_TRANSITIONS.values():
        assert S.DRAFT not in targets
        assert targets <= set(S.ALL)


@pytest.mark.parametrize("source", S.ALL)
@pytest.mark.parametrize("target", sorted(TRANSITION_OPERATIONS))
def test_every_status_pair_is_either_allowed_or_rejected(directory, source, target):
    created = _create()
    _advance(created.id, source)
    history_before = len(_reload(created.id).history)

    if target in REQUEST_TRANSITIONS[source]:
        updated = TRANSITION_OPERATIONS[target](created.id, "creator")
        assert updated.status == target
        assert len(updated.history) == history_before + 1
    else:
        with pytest.raises(InvalidTransitionError):
            TRANSITION_OPERATIONS[target](created.id, "creator")
        reloaded = _reload(created.id)
        assert reloaded.status == source
        assert len(reloaded.history) == history_before


def test_history_chains_through_the_full_lifecycle(directory):
    created = _create()
    _advance(created.id, S.COMPLETED)

    history = request_service.get_request_history(created.id, "creator")

    assert len(history) == len(PATHS[S.COMPLETED]) + 1
    for earlier, later in zip(history, history[1:]):
        assert later.previous_status == earlier.new_status
    assert history[-1].new_status == S.COMPLETED
    assert history[-2].comment == "Items installed"


def test_cancel_from_items_installed(directory):
    created = _create()
    _advance(created.id, S.ITEMS_INSTALLED)

    cancelled = request_service.cancel_request(created.id, "creator", comment="no longer needed")

    assert cancelled.status == S.CANCELLED
    assert cancelled.history[-1].comment == "no longer needed"


# =============================================================================
# Receipt side effects
# =============================================================================

def test_receipt_copies_prices_and_locations(directory):
    created = _create(items=[
        _item(quantity=4, unit_price="2.50", location_id=7),
        _item(product_id=2, quantity=3),
    ])
    _advance(created.id, S.ITEMS_RECEIVED)

    txns = request_service.list_request_transactions(created.id, "creator")

    assert len(txns) == 2
    priced, unpriced = txns
    assert priced.unit_price == Decimal("2.50")
    assert priced.total_price == Decimal("10.00")
    assert priced.location_id == 7
    assert unpriced.product_id == 2
    assert unpriced.unit_price is None
    assert unpriced.total_price is None


def test_receipt_is_all_or_nothing(directory):
    created = _create(items=[_item(), _item(product_id=2)])
    _advance(created.id, S.APPROVED)
    directory.bracket.is_active = False
    db.session.commit()

    with pytest.raises(ValidationError):
        request_service.mark_items_received(created.id, "creator")

    reloaded = _reload(created.id)
    assert reloaded.status == S.APPROVED
    assert len(reloaded.history) == 3
    assert db.session.query(InventoryTransaction).count() == 0


def test_only_receipt_produces_transactions(directory):
    created = _create()
    _advance(created.id, S.COMPLETED)

    assert db.session.query(InventoryTransaction).filter_by(request_id=created.id).count() == 1


# =============================================================================
# Validation
# =============================================================================

@pytest.mark.parametrize("title, items", [
    ("Test Request", []),
    ("Test Request", [_item(quantity=0)]),
    ("Test Request", [_item(quantity=-2)]),
    ("Test Request", [_item(quantity=True)]),
    ("Test Request", [_item(product_id=99)]),
    ("Test Request", [_item(product_id=3)]),
    ("Test Request", [_item(warehouse_id=3)]),
    ("Test Request", [_item(warehouse_id=42)]),
    ("Test Request", [_item(unit_price="-1")]),
    ("ab", [_item()]),
    ("x" * 201, [_item()]),
    ("   ", [_item()]),
])
def test_create_rejects_invalid_input(directory, title, items):
    with pytest.raises(ValidationError):
        request_service.create_request(title, None, items, "creator")

    assert db.session.query(Request).count() == 0
    assert db.session.query(RequestHistory).count() == 0


def test_create_rejects_long_description(directory):
    with pytest.raises(ValidationError):
        _create(description="d" * 1001)


# =============================================================================
# Access
# =============================================================================

def test_create_requires_full_access_to_every_item_warehouse(directory):
    with pytest.raises(AccessDeniedError):
        _create(actor="u1")
    with pytest.raises(AccessDeniedError):
        _create(actor="reader")
    with pytest.raises(AccessDeniedError):
        _create(items=[_item(), _item(warehouse_id=2)])

    assert db.session.query(Request).count() == 0


def test_unknown_actor_is_denied(directory):
    with pytest.raises(AccessDeniedError):
        _create(actor="ghost")


def test_admin_bypasses_assignments(directory):
    created = _create(actor="admin", items=[_item(warehouse_id=2)])
    updated = request_service.submit_request(created.id, "admin")

    assert updated.status == S.SUBMITTED


def test_read_only_user_can_read_but_not_transition(directory):
    created = _create()

    assert request_service.get_request(created.id, "reader").id == created.id
    with pytest.raises(AccessDeniedError):
        request_service.submit_request(created.id, "reader")
    assert _reload(created.id).status == S.DRAFT


def test_unassigned_user_cannot_read(directory):
    created = _create()

    with pytest.raises(AccessDeniedError):
        request_service.get_request(created.id, "u1")


def test_unknown_request_is_not_found(directory):
    with pytest.raises(NotFoundError):
        request_service.get_request(404, "creator")
    with pytest.raises(NotFoundError):
        request_service.submit_request(404, "creator")


# =============================================================================
# Item edits
# =============================================================================

def test_add_item_in_draft_and_submitted(directory):
    created = _create()

    request_service.add_request_item(created.id, _item(product_id=2, quantity=5), "creator")
    request_service.submit_request(created.id, "creator")
    request_service.add_request_item(created.id, _item(quantity=2), "creator")

    reloaded = _reload(created.id)
    assert [i.quantity for i in reloaded.items] == [1, 5, 2]
    assert len(reloaded.history) == 2


def test_items_locked_after_submit_when_configured(app, directory, monkeypatch):
    monkeypatch.setitem(app.config, "REQUEST_ITEMS_EDITABLE_WHEN_SUBMITTED", False)
    created = _create()
    request_service.submit_request(created.id, "creator")

    with pytest.raises(InvalidOperationError):
        request_service.add_request_item(created.id, _item(), "creator")


def test_items_locked_after_approval(directory):
    created = _create(items=[_item(), _item(product_id=2)])
    _advance(created.id, S.APPROVED)
    item_id = _reload(created.id).items[0].id

    with pytest.raises(InvalidOperationError):
        request_service.add_request_item(created.id, _item(), "creator")
    with pytest.raises(InvalidOperationError):
        request_service.remove_request_item(created.id, item_id, "creator")


def test_remove_item(directory):
    created = _create(items=[_item(), _item(product_id=2)])
    first_id = created.items[0].id

    request_service.remove_request_item(created.id, first_id, "creator")

    reloaded = _reload(created.id)
    assert [i.product_id for i in reloaded.items] == [2]


def test_cannot_remove_last_item(directory):
    created = _create()
    item_id = created.items[0].id

    with pytest.raises(InvalidOperationError):
        request_service.remove_request_item(created.id, item_id, "creator")
    assert len(_reload(created.id).items) == 1


def test_remove_unknown_item_is_not_found(directory):
    created = _create(items=[_item(), _item(product_id=2)])

    with pytest.raises(NotFoundError):
        request_service.remove_request_item(created.id, 999, "creator")


def test_added_item_needs_full_access_to_its_warehouse(directory):
    created = _create()

    with pytest.raises(AccessDeniedError):
        request_service.add_request_item(created.id, _item(warehouse_id=2), "creator")
    assert len(_reload(created.id).items) == 1


@pytest.mark.parametrize("actor", ["u1", "reader"])
def test_item_edits_check_access_before_status(directory, actor):
    created = _create(items=[_item(), _item(product_id=2)])
    _advance(created.id, S.APPROVED)
    item_id = _reload(created.id).items[0].id

    with pytest.raises(AccessDeniedError):
        request_service.add_request_item(created.id, _item(), actor)
    with pytest.raises(AccessDeniedError):
        request_service.remove_request_item(created.id, item_id, actor)
    assert len(_reload(created.id).items) == 2


# =============================================================================
# Listing
# =============================================================================

def test_list_requests_filters_by_accessible_warehouses(directory):
    mine = _create()
    annex_only = _create(actor="manager", items=[_item(warehouse_id=2)])
    mixed = _create(actor="manager", items=[_item(), _item(warehouse_id=2)])

    creator_page = request_service.list_requests("creator")
    manager_page = request_service.list_requests("manager")
    admin_page = request_service.list_requests("admin")

    assert [r.id for r in creator_page.items] == [mine.id]
    assert creator_page.total == 1
    assert [r.id for r in manager_page.items] == [mixed.id, annex_only.id, mine.id]
    assert admin_page.total == 3
    assert request_service.list_requests("u1").total == 0


def test_list_requests_status_filter_and_paging(directory):
    first = _create()
    second = _create()
    _create()
    request_service.submit_request(first.id, "creator")

    submitted = request_service.list_requests("creator", status=S.SUBMITTED)
    assert [r.id for r in submitted.items] == [first.id]

    page = request_service.list_requests("creator", page=2, page_size=1)
    assert page.total == 3
    assert [r.id for r in page.items] == [second.id]


def test_list_requests_rejects_bad_arguments(directory):
    with pytest.raises(ValidationError):
        request_service.list_requests("creator", status="Shipped")
    with pytest.raises(ValidationError):
        request_service.list_requests("creator", page=0)
    with pytest.raises(ValidationError):
        request_service.list_requests("creator", page_size=1000)


# =============================================================================
# Concurrency and cancellation
# =============================================================================

def test_stale_version_reports_retryable_conflict(directory, sinks, monkeypatch):
    created = _create()
    original_load = request_service._load_request

    def racing_load(request_id, *, lock=False):
        loaded = original_load(request_id, lock=lock)
        # Another writer commits a transition between our read and our write.
        db.session.execute(
            sa.text("UPDATE requests SET version_id = version_id + 1 WHERE id = :id"),
            {"id": request_id},
        )
        return loaded

    monkeypatch.setattr(request_service, "_load_request", racing_load)

    with pytest.raises(ConcurrencyConflictError) as exc:
        request_service.submit_request(created.id, "creator")

    assert exc.value.retryable is True
    assert exc.value.to_dict()["retryable"] is True
    monkeypatch.undo()
    reloaded = _reload(created.id)
    assert reloaded.status == S.DRAFT
    assert len(reloaded.history) == 1
    assert sinks.audit.actions()[-1] == ("REQUEST_SUBMIT", False)


def test_cancelled_transition_commits_nothing(directory):
    created = _create()

    with pytest.raises(OperationCancelledError):
        request_service.submit_request(created.id, "creator", is_cancelled=lambda: True)

    reloaded = _reload(created.id)
    assert reloaded.status == S.DRAFT
    assert len(reloaded.history) == 1


def test_cancelled_create_commits_nothing(directory):
    with pytest.raises(OperationCancelledError):
        request_service.create_request("Test Request", None, [_item()], "creator", is_cancelled=lambda: True)

    assert db.session.query(Request).count() == 0


# =============================================================================
# Sinks
# =============================================================================

def test_every_attempt_is_audited(directory, sinks):
    created = _create()
    with pytest.raises(InvalidTransitionError):
        request_service.approve_request(created.id, "creator")
    request_service.submit_request(created.id, "creator")

    assert sinks.audit.actions() == [
        ("REQUEST_CREATE", True),
        ("REQUEST_APPROVE", False),
        ("REQUEST_SUBMIT", True),
    ]
    failed = sinks.audit.entries[1]
    assert failed["entity_type"] == "Request"
    assert failed["entity_id"] == created.id
    assert failed["details"] == {"previous_status": S.DRAFT, "new_status": S.DRAFT}
    assert "Invalid status transition" in failed["error_message"]
    assert sinks.audit.entries[2]["details"] == {"previous_status": S.DRAFT, "new_status": S.SUBMITTED}


def test_failed_receipt_audits_unchanged_status(directory, sinks):
    created = _create(items=[_item(), _item(product_id=2)])
    _advance(created.id, S.APPROVED)
    directory.bracket.is_active = False
    db.session.commit()

    with pytest.raises(ValidationError):
        request_service.mark_items_received(created.id, "creator")

    failed = sinks.audit.entries[-1]
    assert failed["action"] == "REQUEST_RECEIVE"
    assert failed["success"] is False
    assert failed["details"] == {"previous_status": S.APPROVED, "new_status": S.APPROVED}


def test_submit_notifies_creator_and_approvers(directory, sinks):
    created = _create()
    request_service.submit_request(created.id, "creator")

    assert sorted(sinks.notification.recipients("request")) == ["admin", "creator", "manager"]


def test_receipt_notifies_per_transaction(directory, sinks):
    created = _create(items=[_item(), _item(product_id=2)])
    _advance(created.id, S.ITEMS_RECEIVED)

    assert sinks.notification.recipients("transaction") == ["creator", "creator"]


def test_sink_failures_do_not_affect_the_outcome(directory, failing_sinks):
    created = _create()
    request_service.submit_request(created.id, "creator")

    assert _reload(created.id).status == S.SUBMITTED


def test_database_sinks_store_audit_and_notifications(directory):
    created = _create()
    request_service.submit_request(created.id, "creator")

    logs = db.session.query(AuditLog).filter_by(entity_type="Request").order_by(AuditLog.id).all()
    assert [log.action for log in logs] == ["REQUEST_CREATE", "REQUEST_SUBMIT"]
    assert all(log.is_success for log in logs)
    assert logs[0].entity_id == str(created.id)

    notes = db.session.query(Notification).filter_by(user_id="creator", category="REQUEST").all()
    assert len(notes) == 1
    assert notes[0].request_id == created.id
