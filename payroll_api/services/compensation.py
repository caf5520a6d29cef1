from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy import func

from payroll_api.extensions import db
from payroll_api.common.errors import CalculationError, ValidationError, NotFound
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.components import SalaryComponent, EmployeeSalaryComponent
from payroll_api.services.payroll_common import dec, money, overlaps_window

log = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ResolvedComponent:
    """An assignment joined to its active catalog entry, with the amount it contributes."""
    assignment_id: int
    component_id: int
    code: str
    name: str
    type: str
    category: str
    calculation_type: str
    is_taxable: bool
    is_statutory: bool
    amount: Decimal
    detail: dict


def _assignments(employee_id: int, start: date, end: date, **component_filters) -> List[EmployeeSalaryComponent]:
    q = (
        db.session.query(EmployeeSalaryComponent)
        .join(SalaryComponent, SalaryComponent.id == EmployeeSalaryComponent.salary_component_id)
        .filter(EmployeeSalaryComponent.employee_id == employee_id)
        .filter(overlaps_window(EmployeeSalaryComponent.effective_from,
                                EmployeeSalaryComponent.effective_to, start, end))
        .filter(SalaryComponent.is_active.is_(True))
    )
    for col, value in component_filters.items():
        q = q.filter(getattr(SalaryComponent, col) == value)
    return q.order_by(SalaryComponent.display_order.asc(), SalaryComponent.id.asc(),
                      EmployeeSalaryComponent.effective_from.asc()).all()


def component_amount(esc: EmployeeSalaryComponent) -> tuple[Decimal, dict]:
    """
    Amount an assignment contributes for the period.

    fixed       → the assignment amount
    percentage  → percentage_value% of the component's default_amount
                  (falls back to the assignment amount when no default is set).
                  `percentage_of` is not followed.
    """
    comp = esc.component
    if comp.calculation_type == "fixed":
        return money(esc.amount), {"calculation": "fixed"}
    if comp.calculation_type == "percentage":
        if comp.percentage_value is None:
            raise CalculationError(
                f"Percentage component {comp.code} has no percentage_value",
                employee_id=esc.employee_id, payload={"component_id": comp.id},
            )
        base = dec(comp.default_amount) if comp.default_amount is not None else dec(esc.amount)
        amount = money(base * dec(comp.percentage_value) / HUNDRED)
        return amount, {"calculation": "percentage", "percentage": float(comp.percentage_value),
                        "base": float(base)}
    raise CalculationError(
        f"Component {comp.code} has unknown calculation_type {comp.calculation_type!r}",
        employee_id=esc.employee_id, payload={"component_id": comp.id},
    )


def _resolve(rows: List[EmployeeSalaryComponent]) -> List[ResolvedComponent]:
    out = []
    for esc in rows:
        comp = esc.component
        amount, detail = component_amount(esc)
        out.append(ResolvedComponent(
            assignment_id=esc.id,
            component_id=comp.id,
            code=comp.code,
            name=comp.name,
            type=comp.type,
            category=comp.category or "general",
            calculation_type=comp.calculation_type,
            is_taxable=bool(comp.is_taxable),
            is_statutory=bool(comp.is_statutory),
            amount=amount,
            detail=detail,
        ))
    return out


def earning_components(employee_id: int, start: date, end: date) -> List[ResolvedComponent]:
    return _resolve(_assignments(employee_id, start, end, type="earning"))


def non_taxable_earnings(employee_id: int, start: date, end: date) -> List[ResolvedComponent]:
    return _resolve(_assignments(employee_id, start, end, type="earning", is_taxable=False))


def non_statutory_deductions(employee_id: int, start: date, end: date) -> List[ResolvedComponent]:
    return _resolve(_assignments(employee_id, start, end, type="deduction", is_statutory=False))


def active_components(employee_id: int, start: date, end: date) -> List[ResolvedComponent]:
    return _resolve(_assignments(employee_id, start, end))


def has_active_components(employee_id: int, start: date, end: date) -> bool:
    q = (
        db.session.query(EmployeeSalaryComponent.id)
        .join(SalaryComponent, SalaryComponent.id == EmployeeSalaryComponent.salary_component_id)
        .filter(EmployeeSalaryComponent.employee_id == employee_id)
        .filter(overlaps_window(EmployeeSalaryComponent.effective_from,
                                EmployeeSalaryComponent.effective_to, start, end))
        .filter(SalaryComponent.is_active.is_(True))
    )
    return db.session.query(q.exists()).scalar()


def period_preview(tenant_id: int, start: date, end: date) -> int:
    """Active employees with at least one active component overlapping the window."""
    has_components = (
        db.session.query(EmployeeSalaryComponent.id)
        .join(SalaryComponent, SalaryComponent.id == EmployeeSalaryComponent.salary_component_id)
        .filter(EmployeeSalaryComponent.employee_id == Employee.id)
        .filter(overlaps_window(EmployeeSalaryComponent.effective_from,
                                EmployeeSalaryComponent.effective_to, start, end))
        .filter(SalaryComponent.is_active.is_(True))
        .exists()
    )
    count = (db.session.query(func.count(Employee.id))
             .filter(Employee.tenant_id == tenant_id, Employee.status == "active")
             .filter(has_components)
             .scalar())
    log.debug("period preview: %s active employees have components for %s..%s", count, start, end)
    return count or 0


def assign_component(employee_id: int, component_id: int, amount, effective_from: date,
                     effective_to: Optional[date] = None, created_by: Optional[int] = None) -> EmployeeSalaryComponent:
    """Create an assignment; intervals for the same (employee, component) must not overlap."""
    if effective_to is not None and effective_to < effective_from:
        raise ValidationError("effective_to must be >= effective_from")
    if db.session.get(SalaryComponent, component_id) is None:
        raise NotFound("Salary component", component_id)
    clash = (
        EmployeeSalaryComponent.query
        .filter(EmployeeSalaryComponent.employee_id == employee_id,
                EmployeeSalaryComponent.salary_component_id == component_id)
        .filter(overlaps_window(EmployeeSalaryComponent.effective_from, EmployeeSalaryComponent.effective_to,
                                effective_from, effective_to or date.max))
        .first()
    )
    if clash is not None:
        raise ValidationError(
            "Component assignment overlaps an existing assignment",
            payload={"assignment_id": clash.id},
        )
    esc = EmployeeSalaryComponent(
        employee_id=employee_id,
        salary_component_id=component_id,
        amount=money(amount),
        effective_from=effective_from,
        effective_to=effective_to,
        created_by=created_by,
    )
    db.session.add(esc)
    db.session.flush()
    return esc
