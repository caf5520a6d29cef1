from datetime import date
from decimal import Decimal

import pytest

from payroll_api.common.errors import CalculationError, NoActiveRateTable
from payroll_api.models.payroll.loans import LoanRepayment
from payroll_api.models.payroll.period import PayrollPeriod
from payroll_api.services.payroll_calc import calculate, calculate_preview, net_pay


START, END = date(2025, 1, 1), date(2025, 1, 31)


@pytest.fixture
def staffed(session, seed_rates, make_employee, make_component, give):
    seed_rates()
    e = make_employee()
    give(e, make_component("BASIC", display_order=1), 45000)
    give(e, make_component("MEAL", is_taxable=False, display_order=2), 5000)
    give(e, make_component("SACCO", type="deduction", category="sacco"), 1500)
    return e


def test_full_calculation(staffed, make_loan):
    make_loan(staffed, monthly=2000, balance=10000)
    out = calculate(staffed, START, END)

    assert out.gross_pay == Decimal("50000.00")
    assert out.taxable_income == Decimal("45000.00")
    # (2400 + 21000 * 25%) - 2400
    assert out.paye == Decimal("5250.00")
    assert out.nssf == Decimal("2160.00")
    assert out.nhif == Decimal("1200.00")
    assert out.internal_deductions == Decimal("3500.00")
    assert out.total_deductions == Decimal("12110.00")
    assert out.net_pay == out.gross_pay - out.total_deductions


def test_earning_lines_sum_to_gross(staffed):
    out = calculate(staffed, START, END)
    earnings = [li for li in out.line_items if li.type == "earning"]
    assert sum(li.amount for li in earnings) == out.gross_pay
    cats = {li.name: li.category for li in out.line_items if li.type == "deduction"}
    assert cats["PAYE"] == cats["NSSF"] == cats["NHIF"] == "statutory"
    assert cats["Sacco"] == "sacco"


def test_net_pay_never_negative(session, seed_rates, make_employee, make_component, give):
    seed_rates()
    e = make_employee()
    give(e, make_component("BASIC"), 3000)
    give(e, make_component("FINE", type="deduction"), 10000)
    out = calculate(e, START, END)
    assert out.net_pay == Decimal("0.00")
    assert out.total_deductions > out.gross_pay
    assert net_pay(Decimal("10"), Decimal("5"), Decimal("20")) == Decimal("0.00")


def test_missing_rate_table_propagates(session, make_employee, make_component, give):
    e = make_employee()
    give(e, make_component("BASIC"), 1000)
    with pytest.raises(NoActiveRateTable) as ei:
        calculate(e, START, END)
    assert ei.value.employee_id == e.id


def test_bad_loan_is_calculation_error(staffed, make_loan):
    make_loan(staffed, monthly=0, balance=1000)
    with pytest.raises(CalculationError):
        calculate(staffed, START, END)


def test_preview_writes_nothing(session, staffed, make_loan):
    loan = make_loan(staffed, monthly=2000, balance=10000)
    p = PayrollPeriod(tenant_id=1, name="Jan", start_date=START, end_date=END, pay_date=END)
    session.add(p)
    session.commit()

    out = calculate_preview(staffed.id, p.id)
    assert out.loan_plan[0].amount == Decimal("2000.00")
    session.refresh(loan)
    assert loan.remaining_balance == Decimal("10000.00")
    assert LoanRepayment.query.count() == 0
    assert out.as_dict()["net_pay"] == float(out.net_pay)
