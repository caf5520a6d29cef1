from __future__ import annotations
from datetime import date
from typing import Any, Dict

from flask import Blueprint, request

from payroll_api.common.auth import requires_perms, current_actor_id, current_tenant_id
from payroll_api.common.errors import ValidationError
from payroll_api.common.http import ok, iso, money
from payroll_api.models.payroll.loans import EmployeeLoan, LoanRepayment
from payroll_api.services import loans as loan_svc

bp = Blueprint("loans", __name__, url_prefix="/api/v1/loans")


def _row_loan(l: EmployeeLoan) -> Dict[str, Any]:
    return {
        "id": l.id,
        "employee_id": l.employee_id,
        "loan_number": l.loan_number,
        "loan_type": l.loan_type,
        "principal_amount": money(l.principal_amount),
        "total_amount": money(l.total_amount),
        "monthly_deduction": money(l.monthly_deduction),
        "remaining_balance": money(l.remaining_balance),
        "total_paid": money(l.total_paid),
        "status": l.status,
    }


def _row_repayment(r: LoanRepayment) -> Dict[str, Any]:
    return {
        "id": r.id,
        "loan_id": r.loan_id,
        "payroll_id": r.payroll_id,
        "amount": money(r.amount),
        "repayment_date": iso(r.repayment_date),
        "payment_type": r.payment_type,
        "balance_after": money(r.balance_after),
        "notes": r.notes,
        "created_by": r.created_by,
    }


@bp.get("/<int:loan_id>/repayments")
@requires_perms("loans.read")
def list_repayments(loan_id: int):
    rows = loan_svc.repayment_history(loan_id, tenant_id=current_tenant_id())
    return ok([_row_repayment(r) for r in rows], total=len(rows))


@bp.post("/<int:loan_id>/repayments")
@requires_perms("loans.write")
def create_repayment(loan_id: int):
    j = request.get_json(silent=True) or {}
    if j.get("amount") in (None, ""):
        raise ValidationError("amount is required")
    rdate = None
    if j.get("repayment_date"):
        try:
            rdate = date.fromisoformat(str(j["repayment_date"]))
        except ValueError:
            raise ValidationError("repayment_date must be YYYY-MM-DD")
    rep = loan_svc.record_manual_repayment(
        loan_id,
        j["amount"],
        tenant_id=current_tenant_id(),
        repayment_date=rdate,
        actor_id=current_actor_id(),
        notes=(j.get("notes") or "").strip() or None,
    )
    return ok({"repayment": _row_repayment(rep), "loan": _row_loan(rep.loan)}, 201)
