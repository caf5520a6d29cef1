"""
Period run orchestrator.

    process_period(period_id, actor_id) -> RunSummary

One database transaction per run. Each active employee is calculated
independently; a CalculationError degrades that employee to an `error`
payroll row and the run carries on. Anything else rolls the whole run back
and leaves the period as it was.

On a re-run, rows of employees who are no longer active are removed, and a
row that turns into an error gives back the loan repayments it carried.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from decimal import Decimal
from functools import reduce
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from payroll_api.extensions import db
from payroll_api.common.errors import CalculationError, InfrastructureError
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.period import PayrollPeriod
from payroll_api.models.payroll.payroll import Payroll, PayrollItem
from payroll_api.services import period_state
from payroll_api.services.loans import commit_loan_deductions, reverse_loan_deductions
from payroll_api.services.payroll_calc import PayrollOutcome, calculate
from payroll_api.services.payroll_common import money, ZERO

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmployeeResult:
    """Either an outcome or the error that replaced it."""
    employee_id: int
    payroll_id: int
    outcome: Optional[PayrollOutcome] = None
    error: Optional[CalculationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RunSummary:
    period_id: int
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net: Decimal = ZERO
    processed_count: int = 0
    skipped_count: int = 0
    errors: tuple = field(default_factory=tuple)

    @property
    def total_employees(self) -> int:
        # only successfully processed employees count
        return self.processed_count

    def add(self, r: EmployeeResult) -> "RunSummary":
        if not r.ok:
            return replace(
                self,
                skipped_count=self.skipped_count + 1,
                errors=self.errors + ({"employee_id": r.employee_id, "code": r.error.code,
                                       "message": r.error.message},),
            )
        o = r.outcome
        return replace(
            self,
            total_gross=money(self.total_gross + o.gross_pay),
            total_deductions=money(self.total_deductions + o.total_deductions),
            total_net=money(self.total_net + o.net_pay),
            processed_count=self.processed_count + 1,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "period_id": self.period_id,
            "total_employees": self.total_employees,
            "total_gross": float(self.total_gross),
            "total_deductions": float(self.total_deductions),
            "total_net": float(self.total_net),
            "processed_count": self.processed_count,
            "skipped_count": self.skipped_count,
            "errors": list(self.errors),
        }


def active_employees(tenant_id: int) -> List[Employee]:
    return (Employee.query
            .filter(Employee.tenant_id == tenant_id, Employee.status == "active")
            .order_by(Employee.id.asc())
            .all())


def _payroll_row(period: PayrollPeriod, emp: Employee) -> Payroll:
    row = Payroll.query.filter_by(payroll_period_id=period.id, employee_id=emp.id).first()
    if row is None:
        row = Payroll(payroll_period_id=period.id, employee_id=emp.id)
        db.session.add(row)
    return row


def _write_outcome(row: Payroll, o: PayrollOutcome):
    row.gross_pay = o.gross_pay
    row.taxable_income = o.taxable_income
    row.total_earnings = o.gross_pay
    row.total_deductions = o.total_deductions
    row.net_pay = o.net_pay
    row.paye_amount = o.paye
    row.nssf_amount = o.nssf
    row.nhif_amount = o.nhif
    row.internal_deductions = o.internal_deductions
    row.status = "calculated"
    row.error_code = None
    row.error_message = None
    row.items = [
        PayrollItem(
            salary_component_id=li.component_id,
            name=li.name,
            type=li.type,
            category=li.category,
            amount=li.amount,
            calculation_details=li.details or None,
        )
        for li in o.line_items
    ]


def _write_error(row: Payroll, e: CalculationError):
    for f in ("gross_pay", "taxable_income", "total_earnings", "total_deductions", "net_pay",
              "paye_amount", "nssf_amount", "nhif_amount", "internal_deductions"):
        setattr(row, f, ZERO)
    row.status = "error"
    row.error_code = e.code
    row.error_message = (e.message or "")[:255]
    row.items = []


def _drop_stale_rows(period: PayrollPeriod, employees: List[Employee], actor_id: Optional[int]) -> int:
    """Remove rows left by an earlier run for employees no longer active; their loan deductions are reversed."""
    active_ids = [e.id for e in employees]
    q = Payroll.query.filter(Payroll.payroll_period_id == period.id)
    if active_ids:
        q = q.filter(Payroll.employee_id.notin_(active_ids))
    stale = q.all()
    for row in stale:
        reverse_loan_deductions(row.id, reversal_date=period.end_date, actor_id=actor_id,
                                reason=f"employee {row.employee_id} no longer active")
        db.session.delete(row)
    if stale:
        db.session.flush()
        log.info("period %s: dropped %s payroll rows of inactive employees", period.id, len(stale))
    return len(stale)


def _process_employee(period: PayrollPeriod, emp: Employee, actor_id: Optional[int]) -> EmployeeResult:
    row = _payroll_row(period, emp)
    db.session.flush()
    try:
        outcome = calculate(emp, period.start_date, period.end_date, payroll_id=row.id)
    except CalculationError as e:
        log.warning("period %s: employee %s skipped (%s: %s)", period.id, emp.id, e.code, e.message)
        _write_error(row, e)
        reverse_loan_deductions(row.id, reversal_date=period.end_date, actor_id=actor_id,
                                reason=f"payroll {row.id} recalculated with error {e.code}")
        db.session.flush()
        return EmployeeResult(employee_id=emp.id, payroll_id=row.id, error=e)

    _write_outcome(row, outcome)
    db.session.flush()
    commit_loan_deductions(
        list(outcome.loan_plan),
        payroll_id=row.id,
        repayment_date=period.end_date,
        period_name=period.name,
        actor_id=actor_id,
    )
    return EmployeeResult(employee_id=emp.id, payroll_id=row.id, outcome=outcome)


def process_period(period_id: int, actor_id: Optional[int], tenant_id: Optional[int] = None) -> RunSummary:
    period = period_state.get_period(period_id, tenant_id)
    try:
        period_state.begin_processing(period, actor_id)
        employees = active_employees(period.tenant_id)
        log.info("period %s: processing %s active employees (actor %s)", period.id, len(employees), actor_id)

        _drop_stale_rows(period, employees, actor_id)
        results = [_process_employee(period, emp, actor_id) for emp in employees]
        summary = reduce(RunSummary.add, results, RunSummary(period_id=period.id))

        period_state.complete_processing(
            period,
            employees=summary.total_employees,
            gross=summary.total_gross,
            deductions=summary.total_deductions,
            net=summary.total_net,
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("period %s: run rolled back", period_id)
        raise InfrastructureError(detail={"period_id": period_id, "error": e.__class__.__name__})
    except Exception:
        db.session.rollback()
        raise

    log.info("period %s: processed=%s skipped=%s gross=%s deductions=%s net=%s",
             period_id, summary.processed_count, summary.skipped_count,
             summary.total_gross, summary.total_deductions, summary.total_net)
    return summary
