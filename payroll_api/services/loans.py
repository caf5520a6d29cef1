from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging

from payroll_api.extensions import db
from payroll_api.common.errors import InvalidState, NotFound, ValidationError, CalculationError
from payroll_api.models.payroll.loans import EmployeeLoan, LoanRepayment
from payroll_api.services.payroll_common import dec, money, ZERO

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoanDeduction:
    """A planned repayment; nothing is written until `commit_loan_deductions`."""
    loan_id: int
    loan_number: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    # set when this payroll row already carries the repayment (period re-run)
    repayment_id: Optional[int] = None

    @property
    def committed(self) -> bool:
        return self.repayment_id is not None


def plan_loan_deductions(employee_id: int, period_end: date, payroll_id: Optional[int] = None) -> List[LoanDeduction]:
    """
    Repayments due this period: active loans whose repayment has started by
    `period_end` and that still carry a balance. deduction = min(monthly, balance).

    With `payroll_id`, repayments already recorded against that payroll row are
    returned as committed instead of planning a second deduction.
    """
    plan: List[LoanDeduction] = []
    seen = set()

    if payroll_id is not None:
        prior = (LoanRepayment.query
                 .filter(LoanRepayment.payroll_id == payroll_id,
                         LoanRepayment.payment_type == "payroll")
                 .order_by(LoanRepayment.id.asc())
                 .all())
        for r in prior:
            seen.add(r.loan_id)
            plan.append(LoanDeduction(
                loan_id=r.loan_id,
                loan_number=r.loan.loan_number,
                amount=money(r.amount),
                balance_before=money(dec(r.balance_after) + dec(r.amount)),
                balance_after=money(r.balance_after),
                repayment_id=r.id,
            ))

    loans = (EmployeeLoan.query
             .filter(EmployeeLoan.employee_id == employee_id,
                     EmployeeLoan.status == "active",
                     EmployeeLoan.repayment_start_date <= period_end,
                     EmployeeLoan.remaining_balance > 0)
             .order_by(EmployeeLoan.repayment_start_date.asc(), EmployeeLoan.id.asc())
             .all())
    for loan in loans:
        if loan.id in seen:
            continue
        monthly = money(loan.monthly_deduction)
        balance = money(loan.remaining_balance)
        if monthly <= 0:
            raise CalculationError(
                f"Loan {loan.loan_number} has a non-positive monthly deduction",
                employee_id=employee_id, payload={"loan_id": loan.id},
            )
        amount = min(monthly, balance)
        plan.append(LoanDeduction(
            loan_id=loan.id,
            loan_number=loan.loan_number,
            amount=amount,
            balance_before=balance,
            balance_after=balance - amount,
        ))
    return plan


def _apply(loan: EmployeeLoan, amount: Decimal, *, repayment_date: date, payment_type: str,
           payroll_id=None, actor_id=None, notes=None) -> LoanRepayment:
    balance = money(loan.remaining_balance)
    amount = money(amount)
    if amount <= 0:
        raise ValidationError("Repayment amount must be greater than zero")
    if amount > balance:
        raise ValidationError("Repayment amount cannot exceed remaining balance",
                              payload={"remaining_balance": float(balance)})
    new_balance = balance - amount
    rep = LoanRepayment(
        loan_id=loan.id,
        payroll_id=payroll_id,
        amount=amount,
        repayment_date=repayment_date,
        payment_type=payment_type,
        balance_after=new_balance,
        notes=notes,
        created_by=actor_id,
    )
    loan.remaining_balance = new_balance
    loan.total_paid = money(dec(loan.total_paid) + amount)
    if new_balance <= 0:
        loan.status = "completed"
    loan.updated_by = actor_id
    db.session.add(rep)
    return rep


def commit_loan_deductions(plan: List[LoanDeduction], *, payroll_id: int, repayment_date: date,
                           period_name: str, actor_id: Optional[int]) -> List[LoanRepayment]:
    """Write the planned repayments against the live loan rows. Already-committed entries are skipped."""
    out = []
    for item in plan:
        if item.committed:
            continue
        loan = db.session.get(EmployeeLoan, item.loan_id)
        if loan is None:
            raise NotFound("Loan", item.loan_id)
        out.append(_apply(
            loan, item.amount,
            repayment_date=repayment_date,
            payment_type="payroll",
            payroll_id=payroll_id,
            actor_id=actor_id,
            notes=f"Automatic deduction from payroll period {period_name}",
        ))
    if out:
        db.session.flush()
    return out


def reverse_loan_deductions(payroll_id: int, *, reversal_date: date, actor_id: Optional[int],
                            reason: str) -> List[LoanRepayment]:
    """
    Withdraw the automatic repayments recorded against a payroll row.

    Each one gets a compensating `reversal` row that restores the loan balance,
    and is detached from the payroll row so a later run plans it afresh.
    Returns the reversal rows.
    """
    prior = (LoanRepayment.query
             .filter(LoanRepayment.payroll_id == payroll_id,
                     LoanRepayment.payment_type == "payroll")
             .order_by(LoanRepayment.id.asc())
             .all())
    out = []
    for rep in prior:
        loan = rep.loan
        amount = money(rep.amount)
        new_balance = money(dec(loan.remaining_balance) + amount)
        out.append(LoanRepayment(
            loan_id=loan.id,
            payroll_id=None,
            amount=amount,
            repayment_date=reversal_date,
            payment_type="reversal",
            balance_after=new_balance,
            notes=f"Reversal of repayment {rep.id}: {reason}",
            created_by=actor_id,
        ))
        loan.remaining_balance = new_balance
        loan.total_paid = money(max(ZERO, dec(loan.total_paid) - amount))
        if loan.status == "completed" and new_balance > 0:
            loan.status = "active"
        loan.updated_by = actor_id
        rep.payroll_id = None
        log.info("loan %s: repayment %s reversed (%s), balance %s", loan.id, rep.id, amount, new_balance)
    if out:
        db.session.add_all(out)
        db.session.flush()
    return out


def record_manual_repayment(loan_id: int, amount, *, tenant_id: Optional[int] = None,
                            repayment_date: Optional[date] = None, actor_id: Optional[int] = None,
                            notes: Optional[str] = None) -> LoanRepayment:
    loan = db.session.get(EmployeeLoan, loan_id)
    if loan is None or (tenant_id is not None and loan.tenant_id != tenant_id):
        raise NotFound("Loan", loan_id)
    if loan.status != "active":
        raise InvalidState("Can only record repayments for active loans",
                           current=loan.status, allowed=("active",))
    try:
        amount = dec(amount)
    except ValueError:
        raise ValidationError("amount must be a number")
    rep = _apply(loan, amount,
                 repayment_date=repayment_date or date.today(),
                 payment_type="manual",
                 actor_id=actor_id,
                 notes=notes)
    db.session.commit()
    log.info("manual repayment %s on loan %s: %s (balance %s)", rep.id, loan.id, rep.amount, rep.balance_after)
    return rep


def repayment_history(loan_id: int, tenant_id: Optional[int] = None) -> List[LoanRepayment]:
    loan = db.session.get(EmployeeLoan, loan_id)
    if loan is None or (tenant_id is not None and loan.tenant_id != tenant_id):
        raise NotFound("Loan", loan_id)
    return (LoanRepayment.query
            .filter(LoanRepayment.loan_id == loan_id)
            .order_by(LoanRepayment.repayment_date.asc(), LoanRepayment.id.asc())
            .all())


def total_planned(plan: List[LoanDeduction]) -> Decimal:
    return money(sum((p.amount for p in plan), ZERO))
