# Overview: Pytest coverage for the multi-signature approval engine.

"""
Approval Workflow Tests

Covers:
- per-kind payload rules (weekly check notes, receiving notes, costing)
- stage roles and the unique-signer rule (on and off)
- stale advance after another verifier already signed
- accepted side effects: stock in for goods receiving, cost/price for costing
- append-only audit log ordering
"""

import random
from datetime import date

import pytest

from fintab.models import ApprovalRecord, Notification, Product, SecurityEvent, StockAdjustment
from fintab.services import approval_service, workflow_role_service
from fintab.services.approval_kinds import costing_figures
from fintab.services.approval_service import (
    ApprovalAuthorizationError,
    ApprovalConflictError,
    ApprovalValidationError,
)


def _assign(business, role_key, user, owner):
    workflow_role_service.assign_workflow_role(
        business=business,
        role_key=role_key,
        user_id=user.id,
        assigned_by_user_id=owner.id,
    )


@pytest.fixture
def counted_product(db_session, business):
    product = Product(business_id=business.id, name="Counted Cable", sku="CAB-1", price_cents=500, stock=10)
    db_session.add(product)
    db_session.commit()
    return product


class TestWeeklyInventoryCheck:

    def test_variance_without_note_is_rejected(self, business, owner, owner_membership, counted_product):
        with pytest.raises(ApprovalValidationError, match="Justification note required for Counted Cable"):
            approval_service.submit(
                business=business, actor=owner, membership=owner_membership,
                kind="weekly_inventory_check",
                payload={"items": [{"product_id": counted_product.id, "counted_quantity": 8}]},
            )

    def test_missing_count_is_rejected(self, business, owner, owner_membership, counted_product):
        with pytest.raises(ApprovalValidationError, match="Physical count missing"):
            approval_service.submit(
                business=business, actor=owner, membership=owner_membership,
                kind="weekly_inventory_check",
                payload={"items": [{"product_id": counted_product.id}]},
            )

    def test_variance_with_note_is_recorded(self, business, owner, owner_membership, counted_product):
        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership,
            kind="weekly_inventory_check",
            payload={"items": [{"product_id": counted_product.id, "counted_quantity": 8, "note": "Two damaged"}]},
        )

        assert record.status == "checked"
        assert record.document_number == "WIC-000001"
        line = record.lines[0]
        assert (line.expected_quantity, line.counted_quantity, line.difference) == (10, 8, -2)
        assert record.signature_for("manager").user_id == owner.id

    def test_duplicate_products_are_rejected(self, business, owner, owner_membership, counted_product):
        item = {"product_id": counted_product.id, "counted_quantity": 10}
        with pytest.raises(ApprovalValidationError):
            approval_service.submit(
                business=business, actor=owner, membership=owner_membership,
                kind="weekly_inventory_check", payload={"items": [item, dict(item)]},
            )

    def test_outcome_flagged(self, business, owner, owner_membership, manager, manager_membership, counted_product):
        _assign(business, "stock_verifier", manager, owner)
        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership,
            kind="weekly_inventory_check",
            payload={"items": [{"product_id": counted_product.id, "counted_quantity": 10}]},
        )
        approval_service.advance(
            business=business, record_id=record.id, actor=manager, membership=manager_membership, from_stage="manager",
        )
        record = approval_service.finalize(
            business=business, record_id=record.id, actor=owner, membership=owner_membership, outcome="flagged",
        )
        assert record.status == "flagged"
        assert record.audit_entries[-1].note == "Audit concluded as flagged."

    def test_weekly_check_cannot_be_rejected(self, business, owner, owner_membership, manager, manager_membership, counted_product):
        _assign(business, "stock_verifier", manager, owner)
        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership,
            kind="weekly_inventory_check",
            payload={"items": [{"product_id": counted_product.id, "counted_quantity": 10}]},
        )
        approval_service.advance(
            business=business, record_id=record.id, actor=manager, membership=manager_membership, from_stage="manager",
        )
        with pytest.raises(ApprovalValidationError):
            approval_service.finalize(
                business=business, record_id=record.id, actor=owner, membership=owner_membership, outcome="rejected",
            )


class TestSignerRules:

    def test_missing_role_is_denied_and_logged(self, db_session, business, staff, staff_membership):
        with pytest.raises(ApprovalAuthorizationError):
            approval_service.submit(
                business=business, actor=staff, membership=staff_membership,
                kind="cash_count", payload={"counted_amount_cents": 1000},
            )
        events = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED", user_id=staff.id).all()
        assert len(events) == 1
        assert events[0].resource == "approvals.cash_count"

    def test_self_verification_rejected_when_enforced(self, business, owner, owner_membership):
        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership,
            kind="cash_count", payload={"counted_amount_cents": 0},
        )
        with pytest.raises(ApprovalAuthorizationError, match="Self-verification"):
            approval_service.advance(
                business=business, record_id=record.id, actor=owner, membership=owner_membership, from_stage="first",
            )

    def test_self_verification_allowed_when_disabled(self, db_session, business, owner, owner_membership):
        business.enforce_unique_signers = False
        db_session.commit()

        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership,
            kind="cash_count", payload={"counted_amount_cents": 0},
        )
        record = approval_service.advance(
            business=business, record_id=record.id, actor=owner, membership=owner_membership, from_stage="first",
        )
        assert record.status == "second_signed"

    def test_stale_advance_is_a_conflict(self, business, owner, owner_membership, staff, staff_membership, manager, manager_membership):
        _assign(business, "cash_counter", staff, owner)
        _assign(business, "cash_verifier", manager, owner)
        record = approval_service.submit(
            business=business, actor=staff, membership=staff_membership,
            kind="cash_count", payload={"counted_amount_cents": 2500},
        )
        approval_service.advance(
            business=business, record_id=record.id, actor=owner, membership=owner_membership, from_stage="first",
        )

        with pytest.raises(ApprovalConflictError, match="moved on"):
            approval_service.advance(
                business=business, record_id=record.id, actor=manager, membership=manager_membership, from_stage="first",
            )

    def test_finalize_before_all_stages_is_a_conflict(self, business, owner, owner_membership):
        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership,
            kind="cash_count", payload={"counted_amount_cents": 0},
        )
        with pytest.raises(ApprovalConflictError):
            approval_service.finalize(
                business=business, record_id=record.id, actor=owner, membership=owner_membership, outcome="accepted",
            )

    def test_submit_notifies_next_role(self, db_session, business, owner, owner_membership, staff, staff_membership, manager, manager_membership):
        _assign(business, "cash_counter", staff, owner)
        _assign(business, "cash_verifier", manager, owner)
        approval_service.submit(
            business=business, actor=staff, membership=staff_membership,
            kind="cash_count", payload={"counted_amount_cents": 100},
        )
        recipients = {n.user_id for n in db_session.query(Notification).all()}
        assert recipients == {manager.id, owner.id}


class TestCashCount:

    def test_expected_is_todays_cash_sales(self, business, owner, owner_membership):
        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership,
            kind="cash_count", payload={"counted_amount_cents": 1500},
        )
        assert record.expected_amount_cents == 0
        assert record.difference_cents == 1500

    def test_counted_amount_required(self, business, owner, owner_membership):
        with pytest.raises(ApprovalValidationError, match="counted_amount_cents is required"):
            approval_service.submit(
                business=business, actor=owner, membership=owner_membership,
                kind="cash_count", payload={"date": date.today().isoformat()},
            )


class TestGoodsReceiving:

    def _full_cycle(self, business, owner, owner_membership, staff, staff_membership, product, payload):
        _assign(business, "receiving_clerk", staff, owner)
        record = approval_service.submit(
            business=business, actor=staff, membership=staff_membership,
            kind="goods_receiving", payload=payload,
        )
        approval_service.advance(
            business=business, record_id=record.id, actor=owner, membership=owner_membership, from_stage="first",
        )
        return approval_service.finalize(
            business=business, record_id=record.id, actor=owner, membership=owner_membership, outcome="accepted",
        )

    def test_accepted_record_adds_received_quantity_once(self, db_session, business, owner, owner_membership, staff, staff_membership, product):
        record = self._full_cycle(business, owner, owner_membership, staff, staff_membership, product, {
            "reference": "PO-1",
            "product_id": product.id,
            "expected_quantity": 10,
            "received_quantity": 10,
        })

        assert record.status == "accepted"
        db_session.refresh(product)
        assert product.stock == 30

        history = db_session.query(StockAdjustment).filter_by(approval_record_id=record.id).all()
        assert len(history) == 1
        assert history[0].quantity == 10
        assert history[0].reason == "Verified Goods Receiving (Ref: PO-1)"

    def test_short_delivery_needs_note(self, business, owner, owner_membership, product):
        with pytest.raises(ApprovalValidationError, match="note is required"):
            approval_service.submit(
                business=business, actor=owner, membership=owner_membership,
                kind="goods_receiving",
                payload={"reference": "PO-2", "product_id": product.id, "expected_quantity": 10, "received_quantity": 7},
            )

    def test_rejected_record_moves_no_stock(self, db_session, business, owner, owner_membership, staff, staff_membership, product):
        _assign(business, "receiving_clerk", staff, owner)
        record = approval_service.submit(
            business=business, actor=staff, membership=staff_membership,
            kind="goods_receiving",
            payload={"reference": "PO-3", "product_id": product.id, "expected_quantity": 4, "received_quantity": 4},
        )
        approval_service.advance(
            business=business, record_id=record.id, actor=owner, membership=owner_membership, from_stage="first",
        )
        approval_service.finalize(
            business=business, record_id=record.id, actor=owner, membership=owner_membership, outcome="rejected",
        )

        db_session.refresh(product)
        assert product.stock == 20
        assert db_session.query(StockAdjustment).count() == 0

        with pytest.raises(ApprovalConflictError):
            approval_service.finalize(
                business=business, record_id=record.id, actor=owner, membership=owner_membership, outcome="accepted",
            )

    def test_audit_log_is_ordered(self, business, owner, owner_membership, staff, staff_membership, product):
        record = self._full_cycle(business, owner, owner_membership, staff, staff_membership, product, {
            "reference": "PO-4",
            "product_id": product.id,
            "expected_quantity": 1,
            "received_quantity": 1,
        })
        entries = record.audit_entries
        assert [e.sequence for e in entries] == [1, 2, 3]
        assert [e.status for e in entries] == ["first_signed", "second_signed", "accepted"]
        assert [e.actor_id for e in entries] == [staff.id, owner.id, owner.id]
        assert set(record.to_dict()["signatures"]) == {"first", "second", "approver"}


class TestGoodsCosting:

    def test_costing_figures(self):
        figures = costing_figures(10, 500, {"taxes": 200, "shipping": 300}, "20")
        assert figures["total_buying_cents"] == 5000
        assert figures["total_additional_cents"] == 500
        assert figures["total_landed_cents"] == 5500
        assert figures["unit_cost_cents"] == 550
        assert figures["suggested_price_cents"] == 660

    def test_suggested_price_rounds_from_exact_unit_cost(self):
        figures = costing_figures(3, 0, {"transport": 1000}, "10")
        assert figures["unit_cost_cents"] == 333
        assert figures["suggested_price_cents"] == 367

    def test_zero_quantity_has_zero_unit_cost(self):
        figures = costing_figures(0, 500, {"labor": 100}, "50")
        assert figures["unit_cost_cents"] == 0
        assert figures["suggested_price_cents"] == 0

    def test_other_costs_need_a_note(self, business, owner, owner_membership):
        with pytest.raises(ApprovalValidationError, match="other_note"):
            approval_service.submit(
                business=business, actor=owner, membership=owner_membership, kind="goods_costing",
                payload={
                    "product_name": "Imported lamp",
                    "quantity": 2,
                    "buying_unit_price_cents": 1000,
                    "additional_costs": {"other": 50},
                },
            )

    def test_accepted_costing_updates_product(self, db_session, business, owner, owner_membership, manager, manager_membership, product):
        _assign(business, "costing_approver", manager, owner)
        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership, kind="goods_costing",
            payload={
                "linked_product_id": product.id,
                "quantity": 10,
                "buying_unit_price_cents": 500,
                "additional_costs": {"taxes": 200, "shipping": 300},
                "margin_percentage": 20,
            },
        )
        approval_service.advance(
            business=business, record_id=record.id, actor=manager, membership=manager_membership, from_stage="first",
        )
        approval_service.finalize(
            business=business, record_id=record.id, actor=manager, membership=manager_membership, outcome="accepted",
        )

        db_session.refresh(product)
        assert product.cost_price_cents == 550
        assert product.price_cents == 660

    def test_first_signer_cannot_accept(self, business, owner, owner_membership, manager, manager_membership, product):
        _assign(business, "costing_approver", manager, owner)
        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership, kind="goods_costing",
            payload={"linked_product_id": product.id, "quantity": 1, "buying_unit_price_cents": 100},
        )
        approval_service.advance(
            business=business, record_id=record.id, actor=manager, membership=manager_membership, from_stage="first",
        )

        with pytest.raises(ApprovalAuthorizationError, match="first signer"):
            approval_service.finalize(
                business=business, record_id=record.id, actor=owner, membership=owner_membership, outcome="accepted",
            )

        record = approval_service.finalize(
            business=business, record_id=record.id, actor=owner, membership=owner_membership, outcome="rejected",
        )
        assert record.status == "rejected"


def test_select_audit_items(db_session, business):
    for i, (price, stock) in enumerate([(100, 1), (5000, 10), (200, 2), (3000, 1), (50, 50), (10, 1)]):
        db_session.add(Product(business_id=business.id, name=f"Item {i}", price_cents=price, stock=stock))
    db_session.commit()

    chosen = approval_service.select_audit_items(business, count=4, rng=random.Random(7))

    assert len(chosen) == 4
    assert len({p.id for p in chosen}) == 4
    assert chosen[0].name == "Item 1"
    assert chosen[1].name == "Item 3"


def test_records_are_business_scoped(db_session, business, owner, owner_membership):
    record = approval_service.submit(
        business=business, actor=owner, membership=owner_membership,
        kind="cash_count", payload={"counted_amount_cents": 10},
    )
    assert approval_service.get_record(business.id, record.id).id == record.id
    with pytest.raises(LookupError):
        approval_service.get_record(business.id + 1, record.id)
    assert db_session.query(ApprovalRecord).count() == 1
