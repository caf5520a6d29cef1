from __future__ import annotations
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from flask import current_app, has_app_context
from sqlalchemy import func

from payroll_api.extensions import db
from payroll_api.common.errors import AlreadyRemitted, InvalidState, NotFound, ValidationError
from payroll_api.models.payroll.payroll import Payroll
from payroll_api.models.payroll.remittance import TaxRemittance, TAX_TYPES
from payroll_api.services.payroll_common import first_day_of_next_month, money, ZERO
from payroll_api.services.period_state import get_period

log = logging.getLogger(__name__)

DEFAULT_REMITTANCE_DAYS = 9

# payroll column holding each tax type's withheld amount
TAX_COLUMNS = {
    "PAYE": Payroll.paye_amount,
    "NSSF": Payroll.nssf_amount,
    "NHIF": Payroll.nhif_amount,
}

# remittances are derived from a finished run only
SCHEDULABLE = ("pending_approval", "approved", "locked", "paid")


def remittance_days(tax_type: str) -> int:
    """PAYROLL_REMITTANCE_DAYS_<TYPE>, then PAYROLL_REMITTANCE_DAYS, then 9."""
    if not has_app_context():
        return DEFAULT_REMITTANCE_DAYS
    cfg = current_app.config
    raw = cfg.get(f"PAYROLL_REMITTANCE_DAYS_{tax_type.upper()}") or cfg.get("PAYROLL_REMITTANCE_DAYS")
    return int(raw) if raw else DEFAULT_REMITTANCE_DAYS


def remittance_due_date(period_end: date, tax_type: str = "PAYE", days: Optional[int] = None) -> date:
    """
    First day of the month after `period_end`, plus (days - 1).
    Period ending 2025-01-31 with 9 days -> 2025-02-09.
    """
    if days is None:
        days = remittance_days(tax_type)
    if days < 1:
        raise ValidationError("remittance days must be at least 1")
    return first_day_of_next_month(period_end) + timedelta(days=days - 1)


def period_tax_totals(period_id: int) -> Dict[str, Decimal]:
    """Withheld statutory totals over the period's calculated payroll rows."""
    row = (db.session.query(*[func.coalesce(func.sum(col), 0) for col in TAX_COLUMNS.values()])
           .filter(Payroll.payroll_period_id == period_id, Payroll.status == "calculated")
           .one())
    return {tax: money(v) for tax, v in zip(TAX_COLUMNS, row)}


def schedule_remittances(period_id: int, tenant_id: Optional[int] = None,
                         days: Optional[Dict[str, int]] = None) -> List[TaxRemittance]:
    """
    Create one pending TaxRemittance per tax type with a non-zero total.
    Existing (period, tax_type) pairs are left untouched. Returns the rows created.
    """
    p = get_period(period_id, tenant_id)
    if p.status not in SCHEDULABLE:
        raise InvalidState(
            f"Remittances can only be generated after processing (status '{p.status}')",
            current=p.status, allowed=SCHEDULABLE,
        )
    days_for = days or {}
    existing = {r.tax_type for r in TaxRemittance.query.filter_by(payroll_period_id=p.id).all()}

    created = []
    for tax_type, amount in period_tax_totals(p.id).items():
        if tax_type in existing or amount <= 0:
            continue
        rem = TaxRemittance(
            tenant_id=p.tenant_id,
            payroll_period_id=p.id,
            tax_type=tax_type,
            amount=amount,
            due_date=remittance_due_date(p.end_date, tax_type, days_for.get(tax_type)),
            status="pending",
        )
        db.session.add(rem)
        created.append(rem)
    db.session.commit()
    log.info("period %s: %s remittance(s) scheduled", p.id, len(created))
    return created


def get_remittance(remittance_id: int, tenant_id: Optional[int] = None) -> TaxRemittance:
    rem = db.session.get(TaxRemittance, remittance_id)
    if rem is None or (tenant_id is not None and rem.tenant_id != tenant_id):
        raise NotFound("Tax remittance", remittance_id)
    return rem


def mark_as_remitted(remittance_id: int, actor_id: Optional[int], reference: Optional[str] = None,
                     notes: Optional[str] = None, tenant_id: Optional[int] = None) -> TaxRemittance:
    rem = get_remittance(remittance_id, tenant_id)
    if rem.status == "remitted":
        raise AlreadyRemitted(rem.id)
    rem.status = "remitted"
    rem.remitted_at = datetime.utcnow()
    rem.remitted_by = actor_id
    rem.remittance_reference = (reference or "").strip() or None
    if notes:
        rem.notes = notes
    db.session.commit()
    log.info("remittance %s (%s, period %s) marked remitted", rem.id, rem.tax_type, rem.payroll_period_id)
    return rem


def pending_remittances(tenant_id: int, overdue_only: bool = False,
                        as_of: Optional[date] = None) -> List[TaxRemittance]:
    q = TaxRemittance.query.filter(TaxRemittance.tenant_id == tenant_id, TaxRemittance.status == "pending")
    if overdue_only:
        q = q.filter(TaxRemittance.due_date < (as_of or date.today()))
    return q.order_by(TaxRemittance.due_date.asc(), TaxRemittance.id.asc()).all()


def remittance_history(tenant_id: int, tax_type: Optional[str] = None,
                       start: Optional[date] = None, end: Optional[date] = None):
    """Remitted rows as a query (callers paginate), filtered on due date."""
    if tax_type is not None and tax_type not in TAX_TYPES:
        raise ValidationError(f"tax_type must be one of {', '.join(TAX_TYPES)}")
    q = TaxRemittance.query.filter(TaxRemittance.tenant_id == tenant_id, TaxRemittance.status == "remitted")
    if tax_type:
        q = q.filter(TaxRemittance.tax_type == tax_type)
    if start:
        q = q.filter(TaxRemittance.due_date >= start)
    if end:
        q = q.filter(TaxRemittance.due_date <= end)
    return q


def remittance_totals(tenant_id: int) -> Dict[str, Dict[str, Decimal]]:
    out = {t: {"pending": ZERO, "remitted": ZERO} for t in TAX_TYPES}
    rows = (db.session.query(TaxRemittance.tax_type, TaxRemittance.status, func.sum(TaxRemittance.amount))
            .filter(TaxRemittance.tenant_id == tenant_id)
            .group_by(TaxRemittance.tax_type, TaxRemittance.status)
            .all())
    for tax_type, status, total in rows:
        out[tax_type][status] = money(total or 0)
    return out
