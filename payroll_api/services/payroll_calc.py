"""
Per-employee payroll calculation.

Composes the compensation resolver, the statutory calculator and the loan
amortization plan into one PayrollOutcome. Nothing here writes to the
database: loan repayments are planned, and the run orchestrator commits them.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from payroll_api.common.errors import CalculationError, NotFound
from payroll_api.extensions import db
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.period import PayrollPeriod
from payroll_api.models.payroll.payroll import Payroll
from payroll_api.services import compensation, statutory
from payroll_api.services.loans import LoanDeduction, plan_loan_deductions, total_planned
from payroll_api.services.payroll_common import money, ZERO
from payroll_api.services.rate_tables import describe_config

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineItem:
    name: str
    type: str          # earning / deduction
    category: str
    amount: Decimal
    component_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PayrollOutcome:
    employee_id: int
    gross_pay: Decimal
    taxable_income: Decimal
    statutory: statutory.StatutoryDeductions
    internal_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    line_items: tuple
    loan_plan: tuple = ()

    @property
    def paye(self) -> Decimal:
        return self.statutory.paye

    @property
    def nssf(self) -> Decimal:
        return self.statutory.nssf

    @property
    def nhif(self) -> Decimal:
        return self.statutory.nhif

    def as_dict(self) -> Dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "gross_pay": float(self.gross_pay),
            "taxable_income": float(self.taxable_income),
            "statutory": {"paye": float(self.paye), "nssf": float(self.nssf), "nhif": float(self.nhif)},
            "internal_deductions": float(self.internal_deductions),
            "total_deductions": float(self.total_deductions),
            "net_pay": float(self.net_pay),
            "line_items": [
                {"name": li.name, "type": li.type, "category": li.category,
                 "amount": float(li.amount), "component_id": li.component_id}
                for li in self.line_items
            ],
            "loans": [
                {"loan_id": p.loan_id, "loan_number": p.loan_number, "amount": float(p.amount),
                 "balance_before": float(p.balance_before),
                 "balance_after": float(p.balance_after), "committed": p.committed}
                for p in self.loan_plan
            ],
        }


def net_pay(gross: Decimal, statutory_total: Decimal, internal: Decimal) -> Decimal:
    """Never negative; a shortfall is absorbed."""
    return money(max(ZERO, gross - (statutory_total + internal)))


def _line_items(earnings, deductions, stat: statutory.StatutoryDeductions,
                loan_plan: List[LoanDeduction]) -> List[LineItem]:
    items: List[LineItem] = []
    for c in earnings:
        items.append(LineItem(c.name, "earning", c.category, c.amount, c.component_id,
                              {"code": c.code, **c.detail}))
    tables = stat.tables or (None, None, None)
    for label, amount, table in zip(("PAYE", "NSSF", "NHIF"), (stat.paye, stat.nssf, stat.nhif), tables):
        details = {"code": label}
        if table is not None:
            details.update({"rate_id": table.rate_id, "effective_from": table.effective_from.isoformat(),
                            "config": describe_config(table.config)})
        items.append(LineItem(label, "deduction", "statutory", amount, None, details))
    for c in deductions:
        items.append(LineItem(c.name, "deduction", c.category, c.amount, c.component_id,
                              {"code": c.code, **c.detail}))
    for p in loan_plan:
        items.append(LineItem(f"Loan repayment {p.loan_number}", "deduction", "loan", p.amount, None,
                              {"loan_id": p.loan_id, "balance_after": float(p.balance_after)}))
    return items


def calculate(employee: Employee, period_start: date, period_end: date,
              payroll_id: Optional[int] = None) -> PayrollOutcome:
    """
    Full payroll for one employee over [period_start, period_end].
    Raises CalculationError (incl. NoActiveRateTable) on any lookup / config failure.
    """
    try:
        earnings = compensation.earning_components(employee.id, period_start, period_end)
        gross = statutory.compute_gross(employee.id, period_start, period_end, earnings=earnings)
        taxable = statutory.compute_taxable_income(gross, employee.id, period_start, period_end)
        stat = statutory.compute_statutory(gross, taxable, employee, period_end)

        deductions = compensation.non_statutory_deductions(employee.id, period_start, period_end)
        loan_plan = plan_loan_deductions(employee.id, period_end, payroll_id=payroll_id)
    except CalculationError as e:
        if e.employee_id is None:
            e.employee_id = employee.id
        raise
    except (ValueError, ArithmeticError) as e:
        raise CalculationError(f"Invalid payroll data: {e}", employee_id=employee.id)

    internal = money(sum((c.amount for c in deductions), ZERO) + total_planned(loan_plan))
    total_deductions = money(stat.total + internal)

    outcome = PayrollOutcome(
        employee_id=employee.id,
        gross_pay=gross,
        taxable_income=taxable,
        statutory=stat,
        internal_deductions=internal,
        total_deductions=total_deductions,
        net_pay=net_pay(gross, stat.total, internal),
        line_items=tuple(_line_items(earnings, deductions, stat, loan_plan)),
        loan_plan=tuple(loan_plan),
    )
    log.debug("employee %s: gross=%s deductions=%s net=%s",
              employee.id, outcome.gross_pay, outcome.total_deductions, outcome.net_pay)
    return outcome


def calculate_preview(employee_id: int, period_id: int, tenant_id: Optional[int] = None) -> PayrollOutcome:
    """Calculation-only run for one employee; loan balances are not touched."""
    period = db.session.get(PayrollPeriod, period_id)
    if period is None or (tenant_id is not None and period.tenant_id != tenant_id):
        raise NotFound("Payroll period", period_id)
    emp = db.session.get(Employee, employee_id)
    if emp is None or emp.tenant_id != period.tenant_id:
        raise NotFound("Employee", employee_id)
    existing = Payroll.query.filter_by(payroll_period_id=period.id, employee_id=emp.id).first()
    return calculate(emp, period.start_date, period.end_date,
                     payroll_id=existing.id if existing else None)
