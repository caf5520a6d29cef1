from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging

from flask import current_app, has_app_context

from payroll_api.common.errors import NoActiveRateTable
from payroll_api.models.employee import Employee
from payroll_api.services import compensation
from payroll_api.services.payroll_common import money, ZERO
from payroll_api.services.rate_tables import ResolvedRate, resolve_rate_table

log = logging.getLogger(__name__)

DEFAULT_COUNTRY = "Kenya"


@dataclass(frozen=True)
class StatutoryDeductions:
    paye: Decimal
    nssf: Decimal
    nhif: Decimal
    # rate tables used, for line-item provenance
    tables: tuple = ()

    @property
    def total(self) -> Decimal:
        return self.paye + self.nssf + self.nhif


def employee_country(employee: Employee) -> str:
    if employee.country:
        return employee.country
    if has_app_context():
        return current_app.config.get("PAYROLL_DEFAULT_COUNTRY", DEFAULT_COUNTRY)
    return DEFAULT_COUNTRY


def compute_gross(employee_id: int, start: date, end: date,
                  earnings: Optional[List[compensation.ResolvedComponent]] = None) -> Decimal:
    """Sum of active earning components overlapping the period."""
    if earnings is None:
        earnings = compensation.earning_components(employee_id, start, end)
    gross = sum((c.amount for c in earnings), ZERO)
    log.debug("employee %s gross %s from %s earning components", employee_id, gross, len(earnings))
    return money(gross)


def compute_taxable_income(gross: Decimal, employee_id: int, start: date, end: date) -> Decimal:
    """Gross minus active earning components flagged is_taxable=False, floored at 0."""
    exempt = sum((c.amount for c in compensation.non_taxable_earnings(employee_id, start, end)), ZERO)
    return money(max(ZERO, money(gross) - exempt))


def _resolve(country: str, rate_type: str, on_date: date, employee_id) -> ResolvedRate:
    try:
        return resolve_rate_table(country, rate_type, on_date)
    except NoActiveRateTable as e:
        e.employee_id = employee_id
        raise


def compute_statutory(gross_pay: Decimal, taxable_income: Decimal, employee: Employee,
                      on_date: date) -> StatutoryDeductions:
    """
    PAYE on taxable income, NSSF and NHIF on gross pay, each from the rate table
    effective on `on_date` (the period end date).
    Raises NoActiveRateTable when any of the three is missing.
    """
    country = employee_country(employee)
    paye_t = _resolve(country, "paye", on_date, employee.id)
    nssf_t = _resolve(country, "nssf", on_date, employee.id)
    nhif_t = _resolve(country, "nhif", on_date, employee.id)

    return StatutoryDeductions(
        paye=paye_t.compute(taxable_income),
        nssf=nssf_t.compute(gross_pay),
        nhif=nhif_t.compute(gross_pay),
        tables=(paye_t, nssf_t, nhif_t),
    )
