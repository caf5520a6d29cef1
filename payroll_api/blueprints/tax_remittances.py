from __future__ import annotations
from typing import Any, Dict

from flask import Blueprint, request

from payroll_api.common.auth import requires_perms, current_actor_id, current_tenant_id
from payroll_api.common.errors import ValidationError
from payroll_api.common.http import ok, iso, money
from payroll_api.common.paging import paginate, arg_date
from payroll_api.models.payroll.remittance import TaxRemittance
from payroll_api.services import remittance as rem_svc

bp = Blueprint("tax_remittances", __name__, url_prefix="/api/v1/tax-remittances")


def _row_remittance(r: TaxRemittance) -> Dict[str, Any]:
    return {
        "id": r.id,
        "payroll_period_id": r.payroll_period_id,
        "period_name": r.period.name if r.period else None,
        "tax_type": r.tax_type,
        "amount": money(r.amount),
        "due_date": iso(r.due_date),
        "status": r.status,
        "remitted_at": iso(r.remitted_at),
        "remitted_by": r.remitted_by,
        "remittance_reference": r.remittance_reference,
        "notes": r.notes,
    }


def _dates(*names):
    try:
        return [arg_date(n) for n in names]
    except ValueError:
        raise ValidationError(f"{'/'.join(names)} must be YYYY-MM-DD")


@bp.get("")
@requires_perms("remittance.read")
def history():
    start, end = _dates("from", "to")
    tax_type = (request.args.get("tax_type") or "").strip().upper() or None
    q = rem_svc.remittance_history(current_tenant_id(), tax_type=tax_type, start=start, end=end)
    rows, meta = paginate(q, (TaxRemittance.due_date.desc(), TaxRemittance.id.desc()))
    return ok([_row_remittance(r) for r in rows], **meta)


@bp.get("/pending")
@requires_perms("remittance.read")
def pending():
    overdue = (request.args.get("overdue") or "").lower() in ("1", "true", "yes")
    (as_of,) = _dates("as_of")
    rows = rem_svc.pending_remittances(current_tenant_id(), overdue_only=overdue, as_of=as_of)
    return ok([_row_remittance(r) for r in rows], total=len(rows))


@bp.get("/totals")
@requires_perms("remittance.read")
def totals():
    data = rem_svc.remittance_totals(current_tenant_id())
    return ok({t: {k: money(v) for k, v in sums.items()} for t, sums in data.items()})


@bp.post("/generate/<int:period_id>")
@requires_perms("remittance.write")
def generate(period_id: int):
    created = rem_svc.schedule_remittances(period_id, tenant_id=current_tenant_id())
    return ok([_row_remittance(r) for r in created], 201, created=len(created))


@bp.post("/<int:remittance_id>/remit")
@requires_perms("remittance.write")
def remit(remittance_id: int):
    j = request.get_json(silent=True) or {}
    r = rem_svc.mark_as_remitted(
        remittance_id,
        current_actor_id(),
        reference=j.get("remittance_reference") or j.get("reference"),
        notes=j.get("notes"),
        tenant_id=current_tenant_id(),
    )
    return ok(_row_remittance(r))
