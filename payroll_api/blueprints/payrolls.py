from __future__ import annotations
from typing import Any, Dict

from flask import Blueprint, request

from payroll_api.common.auth import requires_perms, current_tenant_id
from payroll_api.common.errors import ValidationError
from payroll_api.common.http import ok, iso, money
from payroll_api.common.paging import paginate
from payroll_api.models.payroll.payroll import Payroll, PayrollItem
from payroll_api.services import period_state
from payroll_api.services.payroll_calc import calculate_preview

bp = Blueprint("payrolls", __name__, url_prefix="/api/v1/payrolls")


def _int_arg(name: str, required: bool = False):
    raw = (request.args.get(name) or "").strip()
    if not raw:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be integer")


def _row_item(x: PayrollItem) -> Dict[str, Any]:
    return {
        "id": x.id,
        "salary_component_id": x.salary_component_id,
        "name": x.name,
        "type": x.type,
        "category": x.category,
        "amount": money(x.amount),
        "calculation_details": x.calculation_details,
    }


def _row_payroll(r: Payroll, with_items: bool = False) -> Dict[str, Any]:
    out = {
        "id": r.id,
        "payroll_period_id": r.payroll_period_id,
        "employee_id": r.employee_id,
        "employee_name": r.employee.full_name if r.employee else None,
        "payment_method": r.payment_method,
        "bank_account": r.bank_account,
        "mpesa_phone": r.mpesa_phone,
        "gross_pay": money(r.gross_pay),
        "taxable_income": money(r.taxable_income),
        "total_earnings": money(r.total_earnings),
        "total_deductions": money(r.total_deductions),
        "net_pay": money(r.net_pay),
        "paye_amount": money(r.paye_amount),
        "nssf_amount": money(r.nssf_amount),
        "nhif_amount": money(r.nhif_amount),
        "internal_deductions": money(r.internal_deductions),
        "status": r.status,
        "error_code": r.error_code,
        "error_message": r.error_message,
        "updated_at": iso(r.updated_at),
    }
    if with_items:
        out["items"] = [_row_item(x) for x in r.items]
    return out


@bp.get("")
@requires_perms("payroll.read")
def list_payrolls():
    period = period_state.get_period(_int_arg("period_id", required=True), current_tenant_id())
    q = Payroll.query.filter(Payroll.payroll_period_id == period.id)
    status = (request.args.get("status") or "").strip()
    if status:
        q = q.filter(Payroll.status == status)
    rows, meta = paginate(q, (Payroll.employee_id.asc(),))
    return ok([_row_payroll(r) for r in rows], **meta)


@bp.get("/preview")
@requires_perms("payroll.read")
def preview():
    """Calculation only; nothing is written and loan balances are untouched."""
    outcome = calculate_preview(
        _int_arg("employee_id", required=True),
        _int_arg("period_id", required=True),
        tenant_id=current_tenant_id(),
    )
    return ok(outcome.as_dict())


@bp.get("/<int:payroll_id>")
@requires_perms("payroll.read")
def get_payroll(payroll_id: int):
    r = period_state.get_payroll(payroll_id, current_tenant_id())
    return ok(_row_payroll(r, with_items=True))


@bp.put("/<int:payroll_id>")
@requires_perms("payroll.write")
def update_payroll(payroll_id: int):
    r = period_state.get_payroll(payroll_id, current_tenant_id())
    j = request.get_json(silent=True) or {}
    changes = {k: j[k] for k in ("payment_method", "bank_account", "mpesa_phone") if k in j}
    if not changes:
        raise ValidationError("Nothing to update (payment_method, bank_account, mpesa_phone)")
    r = period_state.update_payroll_payment_details(r, changes)
    return ok(_row_payroll(r, with_items=True))
