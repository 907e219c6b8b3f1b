# Overview: Server-side checkout session: cart, selections and the sale state machine.

"""
Checkout Service

One CheckoutSession per (business, operator). States:

    idle -> [pending_bank_details ->] pending_confirmation -> processing -> completed
                                                                 +-> error -> idle (reset)

- begin_checkout validates the selection and freezes a snapshot of priced
  lines and totals. Later cart edits change the live cart only.
- confirm_checkout claims the session (status processing, committed) before
  building the sale, so a second confirm while the first runs is ignored.
- Building the sale is all-or-nothing: on any failure the transaction is
  rolled back, the session moves to error and the exception propagates.
"""

from __future__ import annotations

from ..extensions import db
from ..models import (
    BankAccount,
    Business,
    CartLine,
    CheckoutSession,
    Customer,
    Membership,
    Product,
    Sale,
    SaleLine,
    User,
)
from ..validation import ValidationError, ConflictError
from fintab.time_utils import utcnow
from . import pricing
from .concurrency import lock_for_update, lock_many_in_order, run_with_retry
from .document_service import next_document_number
from .notification_service import notify_workflow_role
from .permission_service import PermissionDeniedError, has_access, log_security_event
from .products_service import apply_stock_change, get_product, get_variant


IDLE = "idle"
PENDING_BANK_DETAILS = "pending_bank_details"
PENDING_CONFIRMATION = "pending_confirmation"
PROCESSING = "processing"
COMPLETED = "completed"
ERROR = "error"

CASH_PAYMENT_METHOD = "Cash"
BANK_PAYMENT_METHOD = "Bank Receipt"

SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_PENDING_BANK = "pending_bank_verification"

# Selection keys omitted from an update_selection call are left unchanged
_UNSET = object()


class CheckoutValidationError(ValidationError):
    """Missing or invalid checkout input; session stays idle."""


class CheckoutAuthorizationError(PermissionDeniedError):
    """Operator lacks the capability the checkout step needs."""


class CheckoutStateError(ConflictError):
    """Operation not allowed in the session's current state."""


def get_session(business: Business, operator_user_id: int) -> CheckoutSession:
    session = db.session.query(CheckoutSession).filter_by(
        business_id=business.id,
        operator_user_id=operator_user_id,
    ).first()
    if session is None:
        session = CheckoutSession(
            business_id=business.id,
            operator_user_id=operator_user_id,
            status=IDLE,
            tax_rate=business.default_tax_rate,
            discount_cents=0,
        )
        db.session.add(session)
        db.session.commit()
    return session


def _require_capability(session: CheckoutSession, actor: User, membership, code: str, message: str) -> None:
    if has_access(actor, membership, code):
        return
    log_security_event(
        user_id=actor.id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource="checkout",
        action=code,
        reason=f"Missing permission: {code}",
        business_id=session.business_id,
    )
    raise CheckoutAuthorizationError(message)


def live_lines(session: CheckoutSession) -> list[pricing.PricedLine]:
    return [
        pricing.price_line(line.product, line.quantity, line.variant)
        for line in session.cart_lines
    ]


# =============================================================================
# Cart and selection
# =============================================================================

def update_cart_item(
    session: CheckoutSession,
    *,
    product_id: int,
    quantity: int,
    variant_id: int | None = None,
) -> CheckoutSession:
    """
    Set the quantity of one cart line.

    Quantity is clamped to available stock; zero or less removes the line.
    """
    if session.status == PROCESSING:
        raise CheckoutStateError("Checkout is processing")
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise CheckoutValidationError("quantity must be an integer")

    product = get_product(session.business_id, product_id)
    variant = get_variant(product, variant_id)
    line = next(
        (l for l in session.cart_lines if l.product_id == product.id and l.variant_id == (variant.id if variant else None)),
        None,
    )

    # Removal skips the availability checks below
    if quantity <= 0:
        if line is not None:
            session.cart_lines.remove(line)
            db.session.commit()
        return session

    if variant is None and product.variants:
        raise CheckoutValidationError("Choose a variant for this product")
    if not product.is_active:
        raise CheckoutValidationError("Product is not available for sale")

    available = variant.stock if variant is not None else product.stock
    quantity = min(quantity, available)

    if quantity <= 0:
        if line is not None:
            session.cart_lines.remove(line)
    elif line is None:
        session.cart_lines.append(CartLine(
            product_id=product.id,
            variant_id=variant.id if variant else None,
            quantity=quantity,
        ))
    else:
        line.quantity = quantity

    db.session.commit()
    return session


def clear_cart(session: CheckoutSession) -> CheckoutSession:
    if session.status == PROCESSING:
        raise CheckoutStateError("Checkout is processing")
    session.cart_lines = []
    db.session.commit()
    return session


def update_selection(
    session: CheckoutSession,
    business: Business,
    actor: User,
    membership,
    *,
    customer_id=_UNSET,
    staff_user_id=_UNSET,
    payment_method=_UNSET,
    discount_cents=_UNSET,
    tax_rate=_UNSET,
) -> CheckoutSession:
    """Change customer / staff / payment method / discount / tax rate."""
    if session.status == PROCESSING:
        raise CheckoutStateError("Checkout is processing")

    if customer_id is not _UNSET:
        if customer_id is not None and not _customer_in_business(business.id, customer_id):
            raise CheckoutValidationError("Customer not found")
        session.customer_id = customer_id

    if staff_user_id is not _UNSET:
        if staff_user_id is not None and not _staff_in_business(business.id, staff_user_id):
            raise CheckoutValidationError("Staff member not found")
        session.staff_user_id = staff_user_id

    if payment_method is not _UNSET:
        if payment_method is not None and payment_method not in (business.payment_methods or []):
            raise CheckoutValidationError(f"Unsupported payment method: {payment_method}")
        session.payment_method = payment_method

    if discount_cents is not _UNSET:
        if not isinstance(discount_cents, int) or isinstance(discount_cents, bool):
            raise CheckoutValidationError("discount_cents must be an integer")
        session.discount_cents = max(0, discount_cents)

    if tax_rate is not _UNSET:
        rate = max(pricing.ZERO, pricing.to_decimal(tax_rate))
        if rate != pricing.to_decimal(session.tax_rate):
            _require_capability(session, actor, membership, "ADD_TAX", "You do not have permission to change the tax rate")
        session.tax_rate = rate

    db.session.commit()
    return session


def _customer_in_business(business_id: int, customer_id) -> bool:
    return db.session.query(Customer.id).filter_by(id=customer_id, business_id=business_id, is_active=True).first() is not None


def _unavailable_product_name(product_ids) -> str | None:
    """Name of the first deactivated (or deleted) product among product_ids."""
    ids = set(product_ids)
    if not ids:
        return None
    inactive = (
        db.session.query(Product.name)
        .filter(Product.id.in_(ids), Product.is_active.is_(False))
        .order_by(Product.id)
        .first()
    )
    if inactive is not None:
        return inactive[0]
    found = db.session.query(Product.id).filter(Product.id.in_(ids)).count()
    if found < len(ids):
        return "A product"
    return None


def _staff_in_business(business_id: int, user_id) -> bool:
    return db.session.query(Membership.id).filter_by(business_id=business_id, user_id=user_id, status="Active").first() is not None


def quote(session: CheckoutSession, actor: User, membership) -> dict:
    """Live totals for the current cart. Discount counts only with APPLY_DISCOUNT."""
    lines = live_lines(session)
    subtotal = pricing.cart_subtotal_cents(lines)
    totals = pricing.compute_totals(
        subtotal,
        session.discount_cents,
        session.tax_rate,
        can_discount=has_access(actor, membership, "APPLY_DISCOUNT"),
    )
    return {
        "lines": [line.to_dict() for line in lines],
        "totals": totals.to_dict(),
        "commission_cents": pricing.total_commission_cents(lines, subtotal, totals.discount_cents),
    }


# =============================================================================
# State machine
# =============================================================================

def _back_to_idle(session: CheckoutSession) -> None:
    session.status = IDLE
    session.snapshot = None
    db.session.commit()


def begin_checkout(session: CheckoutSession, business: Business, actor: User, membership) -> CheckoutSession | None:
    """
    Validate and freeze the checkout snapshot.

    Returns None (no-op) while the session is processing. Checks run in a
    fixed order and the first failure aborts with its own message.
    """
    if session.status == PROCESSING:
        return None
    if session.status == ERROR:
        raise CheckoutStateError("Checkout needs recovery before a new attempt")

    try:
        _require_capability(session, actor, membership, "CREATE_SALE", "You do not have permission to create sales")

        if not session.cart_lines:
            raise CheckoutValidationError("Cart is empty")
        unavailable = _unavailable_product_name([line.product_id for line in session.cart_lines])
        if unavailable:
            raise CheckoutValidationError(f"{unavailable} is no longer available for sale")
        if session.customer_id is None or not _customer_in_business(business.id, session.customer_id):
            raise CheckoutValidationError("Select a customer")
        if session.staff_user_id is None or not _staff_in_business(business.id, session.staff_user_id):
            raise CheckoutValidationError("Select a staff member")
        if not session.payment_method:
            raise CheckoutValidationError("Select a payment method")
        if session.payment_method not in (business.payment_methods or []):
            raise CheckoutValidationError(f"Unsupported payment method: {session.payment_method}")

        if session.discount_cents > 0:
            _require_capability(session, actor, membership, "APPLY_DISCOUNT", "You do not have permission to apply discounts")
        if session.payment_method == BANK_PAYMENT_METHOD:
            _require_capability(session, actor, membership, "BANK_TRANSFER", "You do not have permission to accept bank transfers")
        if session.payment_method == CASH_PAYMENT_METHOD:
            _require_capability(session, actor, membership, "CASH_SALE", "You do not have permission to process cash sales")
    except (CheckoutValidationError, CheckoutAuthorizationError):
        db.session.rollback()
        _back_to_idle(session)
        raise

    lines = live_lines(session)
    subtotal = pricing.cart_subtotal_cents(lines)
    totals = pricing.compute_totals(subtotal, session.discount_cents, session.tax_rate)

    session.snapshot = {
        "lines": [line.to_dict() for line in lines],
        "totals": totals.to_dict(),
        "commission_cents": pricing.total_commission_cents(lines, subtotal, totals.discount_cents),
        "customer_id": session.customer_id,
        "staff_user_id": session.staff_user_id,
        "payment_method": session.payment_method,
        "frozen_at": utcnow().isoformat(),
    }
    session.bank_account_id = None
    session.bank_receipt_number = None
    session.last_error = None
    session.status = PENDING_BANK_DETAILS if session.payment_method == BANK_PAYMENT_METHOD else PENDING_CONFIRMATION
    db.session.commit()
    return session


def provide_bank_details(session: CheckoutSession, *, bank_account_id: int, receipt_number: str) -> CheckoutSession:
    """Destination account and external receipt number for a bank payment."""
    if session.status != PENDING_BANK_DETAILS:
        raise CheckoutStateError("Bank details are not expected in this state")

    receipt_number = (receipt_number or "").strip()
    if not receipt_number:
        raise CheckoutValidationError("Receipt number is required")

    account = db.session.query(BankAccount).filter_by(
        id=bank_account_id,
        business_id=session.business_id,
        status="Active",
    ).first()
    if not account:
        raise CheckoutValidationError("Select an active bank account")

    session.bank_account_id = account.id
    session.bank_receipt_number = receipt_number
    session.status = PENDING_CONFIRMATION
    db.session.commit()
    return session


def _claim(session_id: int) -> bool:
    """Move pending_confirmation -> processing. False if already processing."""
    def _op():
        session = lock_for_update(db.session.query(CheckoutSession).filter_by(id=session_id)).first()
        if session.status == PROCESSING:
            return False
        if session.status != PENDING_CONFIRMATION:
            raise CheckoutStateError(f"Cannot confirm checkout in state {session.status}")
        session.status = PROCESSING
        db.session.commit()
        return True

    return run_with_retry(_op)


def _build_sale(session: CheckoutSession, business: Business, actor: User, cash_received_cents: int | None) -> Sale:
    snapshot = session.snapshot or {}
    lines = [pricing.PricedLine.from_dict(data) for data in snapshot.get("lines", [])]
    totals = snapshot["totals"]
    payment_method = snapshot["payment_method"]
    is_bank = payment_method == BANK_PAYMENT_METHOD

    unavailable = _unavailable_product_name([line.product_id for line in lines])
    if unavailable:
        raise CheckoutValidationError(f"{unavailable} is no longer available for sale")

    bank_account = None
    if is_bank:
        bank_account = db.session.query(BankAccount).filter_by(
            id=session.bank_account_id,
            business_id=business.id,
        ).first()
        if bank_account is None or not session.bank_receipt_number:
            raise CheckoutValidationError("Bank details are missing")

    sale = Sale(
        business_id=business.id,
        document_number=next_document_number(business_id=business.id, document_type="SALE"),
        status=SALE_STATUS_PENDING_BANK if is_bank else SALE_STATUS_COMPLETED,
        customer_id=snapshot.get("customer_id"),
        user_id=snapshot["staff_user_id"],
        created_by_user_id=actor.id,
        subtotal_cents=totals["subtotal_cents"],
        discount_cents=totals["discount_cents"],
        tax_rate=pricing.to_decimal(totals["tax_rate"]),
        tax_cents=totals["tax_cents"],
        total_cents=totals["total_cents"],
        commission_cents=snapshot.get("commission_cents", 0),
        payment_method=payment_method,
        cash_received_cents=cash_received_cents if payment_method == CASH_PAYMENT_METHOD else None,
        change_cents=pricing.change_due_cents(cash_received_cents, totals["total_cents"]) if payment_method == CASH_PAYMENT_METHOD else 0,
        bank_account_id=bank_account.id if bank_account else None,
        bank_name=bank_account.bank_name if bank_account else None,
        bank_receipt_number=session.bank_receipt_number if is_bank else None,
    )
    db.session.add(sale)
    db.session.flush()

    for line in lines:
        db.session.add(SaleLine(
            sale_id=sale.id,
            product_id=line.product_id,
            variant_id=line.variant_id,
            product_name=line.product_name,
            variant_label=line.variant_label,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line.line_total_cents,
            commission_percentage=line.commission_percentage,
        ))

    if sale.status == SALE_STATUS_COMPLETED:
        deduct_sale_stock(sale, lines, user_id=actor.id)
    else:
        notify_workflow_role(
            business.id,
            "bank_verifier",
            title="Bank payment awaiting verification",
            message=f"Sale {sale.document_number} was paid by bank receipt {sale.bank_receipt_number}.",
            link=f"/sales/{sale.id}",
            exclude_user_id=actor.id,
        )

    return sale


def deduct_sale_stock(sale: Sale, lines, *, user_id: int | None) -> None:
    """Take sold quantities out of stock. Locks products in id order."""
    products = lock_many_in_order(Product, [line.product_id for line in lines])
    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            raise CheckoutValidationError(f"Product {line.product_name} no longer exists")
        variant = get_variant(product, line.variant_id)
        apply_stock_change(
            product,
            -line.quantity,
            reason=f"Sale {sale.document_number}",
            user_id=user_id,
            variant=variant,
            sale_id=sale.id,
        )


def _reset_selection(session: CheckoutSession, business: Business) -> None:
    session.customer_id = None
    session.staff_user_id = None
    session.payment_method = None
    session.discount_cents = 0
    session.tax_rate = business.default_tax_rate
    session.bank_account_id = None
    session.bank_receipt_number = None
    session.snapshot = None


def confirm_checkout(
    session: CheckoutSession,
    business: Business,
    actor: User,
    *,
    cash_received_cents: int | None = None,
) -> Sale | None:
    """
    Emit the sale from the frozen snapshot.

    Returns None when another confirm is already processing this session.
    """
    if cash_received_cents is not None and (not isinstance(cash_received_cents, int) or cash_received_cents < 0):
        raise CheckoutValidationError("cash_received_cents must be a non-negative integer")

    session_id = session.id
    if not _claim(session_id):
        return None

    def _op():
        locked = lock_for_update(db.session.query(CheckoutSession).filter_by(id=session_id)).first()
        sale = _build_sale(locked, business, actor, cash_received_cents)
        locked.cart_lines = []
        _reset_selection(locked, business)
        locked.last_sale_id = sale.id
        locked.last_error = None
        locked.status = COMPLETED
        db.session.commit()
        return sale

    try:
        return run_with_retry(_op)
    except Exception as exc:
        db.session.rollback()
        _mark_error(session_id, str(exc) or exc.__class__.__name__)
        raise


def _mark_error(session_id: int, message: str) -> None:
    session = db.session.get(CheckoutSession, session_id)
    session.status = ERROR
    session.last_error = message[:1000]
    db.session.commit()


def reset_session(session: CheckoutSession, business: Business, *, clear_cart: bool = True) -> CheckoutSession:
    """
    Recover to idle.

    clear_cart=True is the full restart (cart and selections cleared);
    False is the soft resume that keeps the cart and selections.
    """
    if clear_cart:
        session.cart_lines = []
        _reset_selection(session, business)
    session.snapshot = None
    session.status = IDLE
    session.last_error = None
    db.session.commit()
    return session
