from __future__ import annotations
from datetime import date
from typing import Any, Dict, Optional

from flask import Blueprint, request, current_app

from payroll_api.extensions import db
from payroll_api.common.auth import requires_perms, current_actor_id, current_tenant_id
from payroll_api.common.errors import ValidationError
from payroll_api.common.http import ok, iso, money
from payroll_api.common.paging import paginate
from payroll_api.models.payroll.period import PayrollPeriod, PERIOD_STATUSES
from payroll_api.models.payroll.payroll import Payroll
from payroll_api.services import period_state
from payroll_api.services.payroll_run import process_period

bp = Blueprint("payroll_periods", __name__, url_prefix="/api/v1/payroll-periods")


# ---------- helpers ----------
def _d(j: Dict[str, Any], key: str, required: bool = False) -> Optional[date]:
    raw = j.get(key)
    if raw in (None, ""):
        if required:
            raise ValidationError(f"{key} is required")
        return None
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise ValidationError(f"{key} must be YYYY-MM-DD")


def _row_period(p: PayrollPeriod) -> Dict[str, Any]:
    return {
        "id": p.id,
        "tenant_id": p.tenant_id,
        "name": p.name,
        "period_type": p.period_type,
        "start_date": iso(p.start_date),
        "end_date": iso(p.end_date),
        "pay_date": iso(p.pay_date),
        "status": p.status,
        "totals": {
            "employees": p.total_employees,
            "gross": money(p.total_gross),
            "deductions": money(p.total_deductions),
            "net": money(p.total_net),
        },
        "processed_at": iso(p.processed_at),
        "processed_by": p.processed_by,
        "approved_at": iso(p.approved_at),
        "approved_by": p.approved_by,
        "locked_at": iso(p.locked_at),
        "locked_by": p.locked_by,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def _row_payroll_brief(r: Payroll) -> Dict[str, Any]:
    return {
        "id": r.id,
        "employee_id": r.employee_id,
        "employee_number": r.employee.employee_number if r.employee else None,
        "employee_name": r.employee.full_name if r.employee else None,
        "gross_pay": money(r.gross_pay),
        "total_deductions": money(r.total_deductions),
        "net_pay": money(r.net_pay),
        "status": r.status,
        "error_code": r.error_code,
        "error_message": r.error_message,
    }


# ---------- routes ----------
@bp.get("")
@requires_perms("payroll.read")
def list_periods():
    q = PayrollPeriod.query.filter(PayrollPeriod.tenant_id == current_tenant_id())
    status = (request.args.get("status") or "").strip()
    if status:
        if status not in PERIOD_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(PERIOD_STATUSES)}")
        q = q.filter(PayrollPeriod.status == status)
    if request.args.get("period_type"):
        q = q.filter(PayrollPeriod.period_type == request.args["period_type"])
    rows, meta = paginate(q, (PayrollPeriod.start_date.desc(), PayrollPeriod.id.desc()))
    return ok([_row_period(p) for p in rows], **meta)


@bp.post("")
@requires_perms("payroll.write")
def create_period():
    j = request.get_json(silent=True) or {}
    p = period_state.create_period(
        current_tenant_id(),
        name=j.get("name") or "",
        period_type=j.get("period_type") or "monthly",
        start_date=_d(j, "start_date", required=True),
        end_date=_d(j, "end_date", required=True),
        pay_date=_d(j, "pay_date", required=True),
        actor_id=current_actor_id(),
    )
    return ok(_row_period(p), 201)


@bp.get("/<int:period_id>")
@requires_perms("payroll.read")
def get_period(period_id: int):
    return ok(_row_period(period_state.get_period(period_id, current_tenant_id())))


@bp.put("/<int:period_id>")
@requires_perms("payroll.write")
def update_period(period_id: int):
    p = period_state.get_period(period_id, current_tenant_id())
    j = request.get_json(silent=True) or {}
    changes: Dict[str, Any] = {}
    for k in ("name", "period_type"):
        if k in j:
            changes[k] = j[k]
    for k in ("start_date", "end_date", "pay_date"):
        if k in j:
            changes[k] = _d(j, k, required=True)
    p = period_state.update_period(p, changes, actor_id=current_actor_id())
    return ok(_row_period(p))


@bp.delete("/<int:period_id>")
@requires_perms("payroll.write")
def delete_period(period_id: int):
    p = period_state.get_period(period_id, current_tenant_id())
    period_state.delete_period(p)
    return ok({"deleted": period_id})


@bp.get("/<int:period_id>/summary")
@requires_perms("payroll.read")
def period_summary(period_id: int):
    p = period_state.get_period(period_id, current_tenant_id())
    rows = (Payroll.query
            .filter(Payroll.payroll_period_id == p.id)
            .order_by(Payroll.employee_id.asc())
            .all())
    errors = sum(1 for r in rows if r.status == "error")
    return ok({
        "period": _row_period(p),
        "payrolls": [_row_payroll_brief(r) for r in rows],
        "counts": {"total": len(rows), "calculated": len(rows) - errors, "error": errors},
    })


@bp.post("/<int:period_id>/process")
@requires_perms("payroll.process")
def process(period_id: int):
    summary = process_period(period_id, current_actor_id(), tenant_id=current_tenant_id())
    current_app.logger.info("period %s processed via API", period_id)
    p = db.session.get(PayrollPeriod, period_id)
    return ok({"period": _row_period(p), "summary": summary.as_dict()})


@bp.post("/<int:period_id>/approve")
@requires_perms("payroll.approve")
def approve(period_id: int):
    p = period_state.approve(period_id, current_actor_id(), tenant_id=current_tenant_id())
    return ok(_row_period(p))


@bp.post("/<int:period_id>/lock")
@requires_perms("payroll.approve")
def lock(period_id: int):
    p = period_state.lock(period_id, current_actor_id(), tenant_id=current_tenant_id())
    return ok(_row_period(p))
