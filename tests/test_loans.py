from datetime import date
from decimal import Decimal

import pytest

from payroll_api.common.errors import InvalidState, ValidationError, NotFound
from payroll_api.models.payroll.loans import LoanRepayment
from payroll_api.models.payroll.payroll import Payroll
from payroll_api.services import loans, period_state


END = date(2025, 1, 31)


def test_plan_caps_at_remaining_balance(session, make_employee, make_loan):
    e = make_employee()
    a = make_loan(e, monthly=5000, balance=20000)
    b = make_loan(e, monthly=5000, balance=3000)
    plan = loans.plan_loan_deductions(e.id, END)
    assert [(p.loan_id, p.amount, p.balance_after) for p in plan] == [
        (a.id, Decimal("5000.00"), Decimal("15000.00")),
        (b.id, Decimal("3000.00"), Decimal("0.00")),
    ]
    assert loans.total_planned(plan) == Decimal("8000.00")


def test_plan_skips_inactive_unstarted_and_settled(session, make_employee, make_loan):
    e = make_employee()
    make_loan(e, monthly=1000, balance=5000, status="pending")
    make_loan(e, monthly=1000, balance=5000, start=date(2025, 2, 1))
    make_loan(e, monthly=1000, balance=0, status="completed")
    assert loans.plan_loan_deductions(e.id, END) == []


def test_planning_does_not_touch_balances(session, make_employee, make_loan):
    e = make_employee()
    loan = make_loan(e, monthly=1000, balance=5000)
    loans.plan_loan_deductions(e.id, END)
    session.refresh(loan)
    assert loan.remaining_balance == Decimal("5000.00")
    assert LoanRepayment.query.count() == 0


def test_manual_repayment_ledger(session, make_employee, make_loan):
    e = make_employee()
    loan = make_loan(e, monthly=1000, balance=5000)
    rep = loans.record_manual_repayment(loan.id, "1500", actor_id=7, repayment_date=date(2025, 1, 10))
    assert rep.payment_type == "manual"
    assert rep.payroll_id is None
    assert rep.balance_after == Decimal("3500.00")
    assert loan.remaining_balance == Decimal("3500.00")
    assert loan.total_paid == Decimal("1500.00")
    assert loan.status == "active"


def test_manual_repayment_completes_loan(session, make_employee, make_loan):
    e = make_employee()
    loan = make_loan(e, monthly=1000, balance=800)
    loans.record_manual_repayment(loan.id, 800)
    assert loan.status == "completed"
    assert loan.remaining_balance == Decimal("0.00")
    with pytest.raises(InvalidState):
        loans.record_manual_repayment(loan.id, 1)


@pytest.mark.parametrize("amount", [0, -5, 5000.01])
def test_manual_repayment_amount_bounds(session, make_employee, make_loan, amount):
    e = make_employee()
    loan = make_loan(e, monthly=1000, balance=5000)
    with pytest.raises(ValidationError):
        loans.record_manual_repayment(loan.id, amount)


def test_manual_repayment_wrong_tenant(session, make_employee, make_loan):
    e = make_employee()
    loan = make_loan(e, monthly=1000, balance=5000)
    with pytest.raises(NotFound):
        loans.record_manual_repayment(loan.id, 100, tenant_id=99)


def test_history_in_date_order(session, make_employee, make_loan):
    e = make_employee()
    loan = make_loan(e, monthly=1000, balance=5000)
    first = loans.record_manual_repayment(loan.id, 100, repayment_date=date(2025, 2, 1))
    second = loans.record_manual_repayment(loan.id, 200, repayment_date=date(2025, 1, 1))
    hist = loans.repayment_history(loan.id)
    assert [r.id for r in hist] == [second.id, first.id]
    # balance_after = previous balance - amount, in recording order
    assert first.balance_after == Decimal("4900.00")
    assert second.balance_after == Decimal("4700.00")


def test_reversal_reopens_completed_loan(session, make_employee, make_loan):
    e = make_employee()
    loan = make_loan(e, monthly=5000, balance=3000)
    period = period_state.create_period(1, name="January 2025", start_date=date(2025, 1, 1),
                                        end_date=END, pay_date=END)
    row = Payroll(payroll_period_id=period.id, employee_id=e.id)
    session.add(row)
    session.flush()

    plan = loans.plan_loan_deductions(e.id, END, payroll_id=row.id)
    loans.commit_loan_deductions(plan, payroll_id=row.id, repayment_date=END,
                                 period_name=period.name, actor_id=7)
    assert loan.status == "completed"

    out = loans.reverse_loan_deductions(row.id, reversal_date=END, actor_id=7, reason="recalculated")
    session.commit()

    assert [(r.payment_type, r.amount, r.balance_after) for r in out] == [
        ("reversal", Decimal("3000.00"), Decimal("3000.00")),
    ]
    session.refresh(loan)
    assert loan.status == "active"
    assert loan.remaining_balance == Decimal("3000.00")
    assert loan.total_paid == Decimal("0.00")
    # detached, so the row plans the deduction again
    again = loans.plan_loan_deductions(e.id, END, payroll_id=row.id)
    assert [(p.amount, p.committed) for p in again] == [(Decimal("3000.00"), False)]
