# Overview: Declarative stage ladders and payload rules for each audit record kind.

"""
Approval kinds

Each WorkflowDefinition tells the generic engine (approval_service):
- the ordered signature stages and which workflow role may sign each one
- the workflow role that records the final outcome, and which outcomes exist
- how to validate a submission payload and copy it onto the record
- what to do to the rest of the system when the record is accepted

Validators receive the business and the raw payload and return a cleaned
dict; builders apply that dict to a new ApprovalRecord. Neither commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from ..extensions import db
from ..models import ApprovalRecord, ApprovalRecordLine, Product
from ..validation import ValidationError
from fintab.time_utils import parse_iso_date, utcnow
from . import pricing
from .concurrency import lock_for_update
from .products_service import apply_stock_change


class ApprovalValidationError(ValidationError):
    pass


@dataclass(frozen=True)
class Stage:
    name: str
    status: str
    role_key: str
    note: str


@dataclass(frozen=True)
class WorkflowDefinition:
    kind: str
    label: str
    document_type: str
    stages: tuple[Stage, ...]
    final_role: str
    outcomes: frozenset[str]
    final_note: str
    validate: Callable
    build: Callable
    on_accepted: Callable | None = None
    # Stage whose signer may not record an "accepted" outcome when unique signers are enforced
    final_excludes_stage: str | None = None

    def stage_named(self, name: str) -> Stage | None:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def next_stage(self, name: str) -> Stage | None:
        names = [stage.name for stage in self.stages]
        index = names.index(name)
        return self.stages[index + 1] if index + 1 < len(self.stages) else None


def variance(expected: int, counted: int) -> int:
    """counted - expected: over is positive, short is negative."""
    return counted - expected


def _int_field(payload: dict, key: str, *, required: bool = True, minimum: int | None = 0) -> int | None:
    value = payload.get(key)
    if value is None or value == "":
        if required:
            raise ApprovalValidationError(f"{key} is required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            value = int(value.strip())
        else:
            raise ApprovalValidationError(f"{key} must be an integer")
    if minimum is not None and value < minimum:
        raise ApprovalValidationError(f"{key} must be >= {minimum}")
    return value


def _record_date(payload: dict):
    try:
        return parse_iso_date(payload.get("date")) or utcnow().date()
    except ValueError:
        raise ApprovalValidationError("date must be YYYY-MM-DD")


def _text(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _business_product(business_id: int, product_id) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, business_id=business_id).first()
    if product is None:
        raise ApprovalValidationError(f"Product {product_id} not found")
    return product


# --- cash count ---

def _validate_cash_count(business, payload: dict) -> dict:
    from .sales_service import cash_sales_total

    record_date = _record_date(payload)
    counted = _int_field(payload, "counted_amount_cents")
    expected = cash_sales_total(business.id, record_date)
    return {
        "record_date": record_date,
        "expected": expected,
        "counted": counted,
        "notes": _text(payload, "notes"),
    }


def _build_cash_count(record: ApprovalRecord, data: dict) -> None:
    record.record_date = data["record_date"]
    record.expected_amount_cents = data["expected"]
    record.counted_amount_cents = data["counted"]
    record.difference_cents = variance(data["expected"], data["counted"])
    record.notes = data["notes"]


# --- goods receiving ---

def _validate_goods_receiving(business, payload: dict) -> dict:
    reference = _text(payload, "reference")
    if not reference:
        raise ApprovalValidationError("reference is required")
    product_id = _int_field(payload, "product_id", minimum=1)
    product = _business_product(business.id, product_id)
    if product.variants:
        raise ApprovalValidationError("Goods receiving applies to products without variants")

    expected = _int_field(payload, "expected_quantity")
    received = _int_field(payload, "received_quantity")
    notes = _text(payload, "notes")
    if variance(expected, received) != 0 and not notes:
        raise ApprovalValidationError("A note is required when the received quantity differs from the expected quantity")

    return {
        "record_date": _record_date(payload),
        "reference": reference,
        "product": product,
        "expected": expected,
        "received": received,
        "notes": notes,
    }


def _build_goods_receiving(record: ApprovalRecord, data: dict) -> None:
    product = data["product"]
    record.record_date = data["record_date"]
    record.reference = data["reference"]
    record.notes = data["notes"]
    record.linked_product_id = product.id
    record.lines.append(ApprovalRecordLine(
        product_id=product.id,
        product_name=product.name,
        product_number=product.sku,
        expected_quantity=data["expected"],
        counted_quantity=data["received"],
        difference=variance(data["expected"], data["received"]),
        note=data["notes"],
    ))


def _receive_goods(record: ApprovalRecord, actor_id: int) -> None:
    line = record.lines[0]
    product = lock_for_update(
        db.session.query(Product).filter_by(id=record.linked_product_id, business_id=record.business_id)
    ).first()
    if product is None:
        raise ApprovalValidationError("Linked product no longer exists")
    apply_stock_change(
        product,
        line.counted_quantity,
        reason=f"Verified Goods Receiving (Ref: {record.reference})",
        user_id=actor_id,
        approval_record_id=record.id,
    )


# --- weekly inventory check ---

def _validate_weekly_check(business, payload: dict) -> dict:
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ApprovalValidationError("items must be a non-empty list")

    items = []
    seen = set()
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ApprovalValidationError("each item must be an object")
        product_id = _int_field(raw, "product_id", minimum=1)
        if product_id in seen:
            raise ApprovalValidationError(f"Product {product_id} is listed twice")
        seen.add(product_id)
        product = _business_product(business.id, product_id)

        if raw.get("counted_quantity") is None or raw.get("counted_quantity") == "":
            raise ApprovalValidationError(f"Physical count missing for {product.name}")
        counted = _int_field(raw, "counted_quantity")

        # Expected is the system stock at submission time
        expected = product.stock
        note = _text(raw, "note")
        if variance(expected, counted) != 0 and not note:
            raise ApprovalValidationError(f"Justification note required for {product.name}")
        items.append((product, expected, counted, note))

    return {"record_date": _record_date(payload), "items": items, "notes": _text(payload, "notes")}


def _build_weekly_check(record: ApprovalRecord, data: dict) -> None:
    record.record_date = data["record_date"]
    record.notes = data["notes"]
    for product, expected, counted, note in data["items"]:
        record.lines.append(ApprovalRecordLine(
            product_id=product.id,
            product_name=product.name,
            product_number=product.sku,
            expected_quantity=expected,
            counted_quantity=counted,
            difference=variance(expected, counted),
            note=note,
        ))


# --- goods costing ---

ADDITIONAL_COST_KEYS = ("taxes", "shipping", "transport", "labor", "transfer_fees", "other")


def costing_figures(quantity: int, buying_unit_price_cents: int, additional_costs: dict, margin_percentage) -> dict:
    """
    Landed cost breakdown.

    landed = quantity * buying unit price + additional costs
    unit cost = landed / quantity (0 when quantity is 0)
    suggested price = unit cost * (1 + margin / 100)
    """
    total_buying = quantity * buying_unit_price_cents
    total_additional = sum(int(additional_costs.get(key) or 0) for key in ADDITIONAL_COST_KEYS)
    landed = total_buying + total_additional
    margin = pricing.to_decimal(margin_percentage)

    exact_unit = Decimal(landed) / Decimal(quantity) if quantity else Decimal("0")
    suggested = exact_unit * (Decimal("1") + margin / Decimal("100"))

    return {
        "total_buying_cents": total_buying,
        "total_additional_cents": total_additional,
        "total_landed_cents": landed,
        "unit_cost_cents": pricing.round_cents(exact_unit),
        "margin_percentage": str(margin),
        "suggested_price_cents": pricing.round_cents(suggested),
    }


def _validate_goods_costing(business, payload: dict) -> dict:
    product_name = _text(payload, "product_name")
    linked_product = None
    linked_id = _int_field(payload, "linked_product_id", required=False, minimum=1)
    if linked_id is not None:
        linked_product = _business_product(business.id, linked_id)
        product_name = product_name or linked_product.name
    if not product_name:
        raise ApprovalValidationError("product_name is required")

    quantity = _int_field(payload, "quantity")
    buying = _int_field(payload, "buying_unit_price_cents")

    raw_costs = payload.get("additional_costs") or {}
    if not isinstance(raw_costs, dict):
        raise ApprovalValidationError("additional_costs must be an object")
    costs = {key: _int_field(raw_costs, key, required=False) or 0 for key in ADDITIONAL_COST_KEYS}
    other_note = _text(raw_costs, "other_note")
    if costs["other"] and not other_note:
        raise ApprovalValidationError("other_note is required when other costs are entered")

    try:
        margin = pricing.to_decimal(payload.get("margin_percentage", 0))
    except ArithmeticError:
        raise ApprovalValidationError("margin_percentage must be a number")
    if margin < 0:
        raise ApprovalValidationError("margin_percentage must be >= 0")

    details = {
        "product_name": product_name,
        "product_number": _text(payload, "product_number") or (linked_product.sku if linked_product else None),
        "quantity": quantity,
        "buying_unit_price_cents": buying,
        "additional_costs": {**costs, "other_note": other_note},
    }
    details.update(costing_figures(quantity, buying, costs, margin))

    return {
        "record_date": _record_date(payload),
        "details": details,
        "linked_product": linked_product,
        "notes": _text(payload, "notes"),
    }


def _build_goods_costing(record: ApprovalRecord, data: dict) -> None:
    record.record_date = data["record_date"]
    record.details = data["details"]
    record.notes = data["notes"]
    record.linked_product_id = data["linked_product"].id if data["linked_product"] else None


def _apply_costing(record: ApprovalRecord, actor_id: int) -> None:
    if not record.linked_product_id:
        return
    product = lock_for_update(
        db.session.query(Product).filter_by(id=record.linked_product_id, business_id=record.business_id)
    ).first()
    if product is None:
        raise ApprovalValidationError("Linked product no longer exists")
    product.cost_price_cents = record.details["unit_cost_cents"]
    product.price_cents = record.details["suggested_price_cents"]


ACCEPT_REJECT = frozenset({"accepted", "rejected"})

WORKFLOWS: dict[str, WorkflowDefinition] = {
    "cash_count": WorkflowDefinition(
        kind="cash_count",
        label="Cash Count",
        document_type="CASH_COUNT",
        stages=(
            Stage("first", "first_signed", "cash_counter", "Initial count submitted."),
            Stage("second", "second_signed", "cash_verifier", "Second signature verified."),
        ),
        final_role="cash_approver",
        outcomes=ACCEPT_REJECT,
        final_note="Approver finalized as {status}.",
        validate=_validate_cash_count,
        build=_build_cash_count,
    ),
    "goods_receiving": WorkflowDefinition(
        kind="goods_receiving",
        label="Goods Receiving",
        document_type="GOODS_RECEIVING",
        stages=(
            Stage("first", "first_signed", "receiving_clerk", "Initial quantity verification submitted."),
            Stage("second", "second_signed", "receiving_verifier", "Second signature verified."),
        ),
        final_role="receiving_approver",
        outcomes=ACCEPT_REJECT,
        final_note="Approver finalized as {status}.",
        validate=_validate_goods_receiving,
        build=_build_goods_receiving,
        on_accepted=_receive_goods,
    ),
    "weekly_inventory_check": WorkflowDefinition(
        kind="weekly_inventory_check",
        label="Weekly Inventory Check",
        document_type="WEEKLY_INVENTORY_CHECK",
        stages=(
            Stage("manager", "checked", "stock_manager", "Physical verification submitted."),
            Stage("verifier", "verified", "stock_verifier", "Secondary signature applied."),
        ),
        final_role="stock_approver",
        outcomes=frozenset({"accepted", "flagged"}),
        final_note="Audit concluded as {status}.",
        validate=_validate_weekly_check,
        build=_build_weekly_check,
    ),
    "goods_costing": WorkflowDefinition(
        kind="goods_costing",
        label="Goods Costing",
        document_type="GOODS_COSTING",
        stages=(
            Stage("first", "first_signed", "costing_manager", "Initial costing derivation submitted."),
            Stage("second", "second_signed", "costing_approver", "Second verification signature confirmed."),
        ),
        final_role="costing_approver",
        outcomes=ACCEPT_REJECT,
        final_note="Approver finalized as {status}.",
        validate=_validate_goods_costing,
        build=_build_goods_costing,
        on_accepted=_apply_costing,
        final_excludes_stage="first",
    ),
}

TERMINAL_STATUSES = frozenset({"accepted", "rejected", "flagged"})


def get_workflow(kind: str) -> WorkflowDefinition:
    workflow = WORKFLOWS.get(kind)
    if workflow is None:
        raise ApprovalValidationError(f"Unknown approval kind: {kind}")
    return workflow
