from datetime import date
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.models.employee import Employee
from payroll_api.models.payroll import SalaryComponent, EmployeeLoan
from payroll_api.models.payroll.stat_config import StatutoryRate
from payroll_api.services.compensation import assign_component


PAYE_SAMPLE = {"kind": "brackets",
               "brackets": [{"upto": 24000, "rate": 10}, {"upto": None, "rate": 25}],
               "relief": 2400}
NSSF_SAMPLE = {"kind": "flat", "rate": 6, "base_cap": 36000, "cap": 2160}
NHIF_SAMPLE = {"kind": "banded",
               "bands": [{"min": 0, "max": 5999, "amount": 150},
                         {"min": 6000, "max": 49999, "amount": 1000},
                         {"min": 50000, "max": None, "amount": 1200}]}


@pytest.fixture(scope="function")
def app(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    app = create_app({"TESTING": True, "JWT_SECRET_KEY": "test-secret", "LOG_LEVEL": "DEBUG"})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def session(app):
    yield db.session


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    """auth_headers('payroll.read', ...) -> Authorization header for user 7 of tenant 1."""
    def _make(*perms, tenant_id=1, identity="7", roles=()):
        token = create_access_token(
            identity=identity,
            additional_claims={"perms": list(perms), "roles": list(roles), "tenant_id": tenant_id},
        )
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture
def seed_rates(session):
    def _seed(country="Kenya", effective_from=date(2025, 1, 1), effective_to=None,
              paye=PAYE_SAMPLE, nssf=NSSF_SAMPLE, nhif=NHIF_SAMPLE):
        rows = []
        for rate_type, cfg in (("paye", paye), ("nssf", nssf), ("nhif", nhif)):
            if cfg is None:
                continue
            r = StatutoryRate(country=country, rate_type=rate_type, effective_from=effective_from,
                              effective_to=effective_to, config=cfg, is_active=True)
            session.add(r)
            rows.append(r)
        session.commit()
        return rows
    return _seed


@pytest.fixture
def make_employee(session):
    counter = {"n": 0}

    def _mk(tenant_id=1, country="Kenya", status="active", **kw):
        counter["n"] += 1
        e = Employee(tenant_id=tenant_id, employee_number=kw.pop("employee_number", f"E{counter['n']:03d}"),
                     first_name=kw.pop("first_name", "Test"), last_name=kw.pop("last_name", f"Emp{counter['n']}"),
                     status=status, country=country, **kw)
        session.add(e)
        session.commit()
        return e
    return _mk


@pytest.fixture
def make_component(session):
    def _mk(code, type="earning", tenant_id=1, **kw):
        c = SalaryComponent(tenant_id=tenant_id, code=code, name=kw.pop("name", code.title()),
                            type=type, **kw)
        session.add(c)
        session.commit()
        return c
    return _mk


@pytest.fixture
def give(session):
    """give(employee, component, amount, effective_from=..., effective_to=None)"""
    def _give(employee, component, amount, effective_from=date(2025, 1, 1), effective_to=None):
        esc = assign_component(employee.id, component.id, amount, effective_from, effective_to)
        session.commit()
        return esc
    return _give


@pytest.fixture
def make_loan(session):
    counter = {"n": 0}

    def _mk(employee, monthly, balance, status="active", start=date(2025, 1, 1), **kw):
        counter["n"] += 1
        loan = EmployeeLoan(
            tenant_id=employee.tenant_id,
            employee_id=employee.id,
            loan_number=kw.pop("loan_number", f"LN-{counter['n']:04d}"),
            principal_amount=Decimal(str(balance)),
            total_amount=Decimal(str(balance)),
            repayment_start_date=start,
            monthly_deduction=Decimal(str(monthly)),
            remaining_balance=Decimal(str(balance)),
            total_paid=Decimal("0"),
            status=status,
            **kw,
        )
        session.add(loan)
        session.commit()
        return loan
    return _mk
