"""
Payroll period lifecycle.

    draft -> processing -> pending_approval -> approved -> locked (-> paid)
                 ^               |
                 +---------------+   (re-run before approval)

Only the functions in this module change PayrollPeriod.status.
"""
from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional
import logging

from payroll_api.extensions import db
from payroll_api.common.errors import (
    InvalidState, NotFound, OverlappingPeriod, PeriodLocked, ValidationError,
)
from payroll_api.models.payroll.period import PayrollPeriod
from payroll_api.models.payroll.payroll import Payroll
from payroll_api.services import compensation
from payroll_api.services.payroll_common import money

log = logging.getLogger(__name__)

RUNNABLE = ("draft", "pending_approval")
FROZEN = ("locked", "paid")
# periods in these states never block a new overlapping period
OVERLAP_EXEMPT = ("locked", "paid")
PERIOD_TYPES = ("monthly", "bi_weekly", "weekly")


def get_period(period_id: int, tenant_id: Optional[int] = None) -> PayrollPeriod:
    p = db.session.get(PayrollPeriod, period_id)
    if p is None or (tenant_id is not None and p.tenant_id != tenant_id):
        raise NotFound("Payroll period", period_id)
    return p


def _ensure_status(p: PayrollPeriod, allowed: Iterable[str], action: str):
    allowed = tuple(allowed)
    if p.status not in allowed:
        raise InvalidState(
            f"Cannot {action} a period in status '{p.status}' (allowed: {', '.join(allowed)})",
            current=p.status, allowed=allowed,
        )


def ensure_mutable(p: PayrollPeriod):
    if p.status in FROZEN:
        raise PeriodLocked(p.id, p.status)


def find_overlap(tenant_id: int, start: date, end: date, exclude_id: Optional[int] = None) -> Optional[PayrollPeriod]:
    q = (PayrollPeriod.query
         .filter(PayrollPeriod.tenant_id == tenant_id,
                 PayrollPeriod.status.notin_(OVERLAP_EXEMPT),
                 PayrollPeriod.start_date <= end,
                 PayrollPeriod.end_date >= start))
    if exclude_id is not None:
        q = q.filter(PayrollPeriod.id != exclude_id)
    return q.order_by(PayrollPeriod.start_date.asc()).first()


def _check_dates(start: date, end: date, pay_date: Optional[date]):
    if start >= end:
        raise ValidationError("start_date must be before end_date")
    if pay_date is not None and pay_date < start:
        raise ValidationError("pay_date cannot be before start_date")


def create_period(tenant_id: int, *, name: str, start_date: date, end_date: date,
                  pay_date: date, period_type: str = "monthly",
                  actor_id: Optional[int] = None) -> PayrollPeriod:
    if not (name or "").strip():
        raise ValidationError("name is required")
    if period_type not in PERIOD_TYPES:
        raise ValidationError(f"period_type must be one of {', '.join(PERIOD_TYPES)}")
    _check_dates(start_date, end_date, pay_date)

    other = find_overlap(tenant_id, start_date, end_date)
    if other is not None:
        raise OverlappingPeriod(other.id)

    p = PayrollPeriod(
        tenant_id=tenant_id,
        name=name.strip(),
        period_type=period_type,
        start_date=start_date,
        end_date=end_date,
        pay_date=pay_date,
        status="draft",
        total_employees=compensation.period_preview(tenant_id, start_date, end_date),
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.session.add(p)
    db.session.commit()
    log.info("period %s created for tenant %s (%s..%s)", p.id, tenant_id, start_date, end_date)
    return p


def update_period(p: PayrollPeriod, changes: Dict[str, Any], actor_id: Optional[int] = None) -> PayrollPeriod:
    """Partial update of name / period_type / dates. Status is never changed here."""
    ensure_mutable(p)

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("name cannot be empty")
        p.name = name
    if "period_type" in changes:
        if changes["period_type"] not in PERIOD_TYPES:
            raise ValidationError(f"period_type must be one of {', '.join(PERIOD_TYPES)}")
        p.period_type = changes["period_type"]

    start = changes.get("start_date", p.start_date)
    end = changes.get("end_date", p.end_date)
    pay = changes.get("pay_date", p.pay_date)
    if start != p.start_date or end != p.end_date or pay != p.pay_date:
        _check_dates(start, end, pay)
        if start != p.start_date or end != p.end_date:
            other = find_overlap(p.tenant_id, start, end, exclude_id=p.id)
            if other is not None:
                raise OverlappingPeriod(other.id)
        p.start_date, p.end_date, p.pay_date = start, end, pay

    p.updated_by = actor_id
    db.session.commit()
    return p


def delete_period(p: PayrollPeriod):
    if p.status in FROZEN:
        raise PeriodLocked(p.id, p.status)
    _ensure_status(p, ("draft",), "delete")
    db.session.delete(p)
    db.session.commit()
    log.info("period %s deleted", p.id)


# ---------- transitions ----------

def begin_processing(p: PayrollPeriod, actor_id: Optional[int]) -> PayrollPeriod:
    """draft | pending_approval -> processing. Does not commit; the run owns the transaction."""
    if actor_id is None:
        raise ValidationError("An authenticated actor is required to process a period")
    _ensure_status(p, RUNNABLE, "process")
    p.status = "processing"
    p.processed_by = actor_id
    p.updated_by = actor_id
    db.session.flush()
    return p


def complete_processing(p: PayrollPeriod, *, employees: int, gross: Decimal,
                        deductions: Decimal, net: Decimal) -> PayrollPeriod:
    """processing -> pending_approval with the run's aggregates."""
    _ensure_status(p, ("processing",), "complete processing of")
    p.status = "pending_approval"
    p.total_employees = employees
    p.total_gross = money(gross)
    p.total_deductions = money(deductions)
    p.total_net = money(net)
    p.processed_at = datetime.utcnow()
    db.session.flush()
    return p


def approve(period_id: int, actor_id: Optional[int], tenant_id: Optional[int] = None) -> PayrollPeriod:
    if actor_id is None:
        raise ValidationError("An authenticated actor is required to approve a period")
    p = get_period(period_id, tenant_id)
    _ensure_status(p, ("pending_approval",), "approve")
    p.status = "approved"
    p.approved_at = datetime.utcnow()
    p.approved_by = actor_id
    p.updated_by = actor_id
    db.session.commit()
    log.info("period %s approved by %s", p.id, actor_id)
    return p


def lock(period_id: int, actor_id: Optional[int], tenant_id: Optional[int] = None) -> PayrollPeriod:
    if actor_id is None:
        raise ValidationError("An authenticated actor is required to lock a period")
    p = get_period(period_id, tenant_id)
    _ensure_status(p, ("approved",), "lock")
    p.status = "locked"
    p.locked_at = datetime.utcnow()
    p.locked_by = actor_id
    p.updated_by = actor_id
    db.session.commit()
    log.info("period %s locked by %s", p.id, actor_id)
    return p


# ---------- payroll rows ----------

PAYMENT_METHODS = ("bank", "mpesa", "cash", "cheque")


def get_payroll(payroll_id: int, tenant_id: Optional[int] = None) -> Payroll:
    row = db.session.get(Payroll, payroll_id)
    if row is None or (tenant_id is not None and row.period.tenant_id != tenant_id):
        raise NotFound("Payroll", payroll_id)
    return row


def update_payroll_payment_details(row: Payroll, changes: Dict[str, Any]) -> Payroll:
    ensure_mutable(row.period)
    if "payment_method" in changes:
        method = changes["payment_method"]
        if method is not None and method not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
        row.payment_method = method
    for f in ("bank_account", "mpesa_phone"):
        if f in changes:
            v = changes[f]
            row_value = (str(v).strip() or None) if v is not None else None
            setattr(row, f, row_value)
    db.session.commit()
    return row
