# payroll_api/models/payroll/__init__.py
# Import order matters: components and periods first, then payroll rows,
# then loans (repayments reference payrolls) and remittances.
from payroll_api.extensions import db  # noqa

from .components import SalaryComponent, EmployeeSalaryComponent
from .period import PayrollPeriod
from .payroll import Payroll, PayrollItem
from .loans import EmployeeLoan, LoanRepayment
from .stat_config import StatutoryRate
from .remittance import TaxRemittance

__all__ = [
    "SalaryComponent", "EmployeeSalaryComponent",
    "PayrollPeriod", "Payroll", "PayrollItem",
    "EmployeeLoan", "LoanRepayment",
    "StatutoryRate", "TaxRemittance",
]
