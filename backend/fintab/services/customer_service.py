# Overview: Customer registry and purchase history.

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Sale
from ..validation import CUSTOMER_POLICY, validate_payload


class CustomerNotFoundError(LookupError):
    pass


SORT_KEYS = {
    "name": Customer.name,
    "joined": Customer.joined_at,
}


def get_customer(business_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, business_id=business_id).first()
    if not customer:
        raise CustomerNotFoundError("Customer not found")
    return customer


def list_customers(business_id: int, *, search: str | None = None, sort: str = "name", descending: bool = False) -> list[Customer]:
    query = db.session.query(Customer).filter(Customer.business_id == business_id, Customer.is_active.is_(True))
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Customer.name).like(like),
            func.lower(Customer.email).like(like),
            Customer.phone.like(like),
        ))
    column = SORT_KEYS.get(sort, Customer.name)
    return query.order_by(column.desc() if descending else column.asc(), Customer.id.asc()).all()


def create_customer(*, business_id: int, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    customer = Customer(business_id=business_id, **patch)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(*, business_id: int, customer_id: int, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    customer = get_customer(business_id, customer_id)
    for key, value in patch.items():
        setattr(customer, key, value)
    db.session.commit()
    return customer


def purchase_history(business_id: int, customer_id: int) -> list[Sale]:
    get_customer(business_id, customer_id)
    return (
        db.session.query(Sale)
        .filter_by(business_id=business_id, customer_id=customer_id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )
