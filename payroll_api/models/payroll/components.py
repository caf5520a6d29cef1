from datetime import datetime, date
from payroll_api.extensions import db

class SalaryComponent(db.Model):
    __tablename__ = "salary_components"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    code = db.Column(db.String(50), nullable=False)      # BASIC, HOUSE, SACCO, ...
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.Enum("earning", "deduction", name="component_type_enum"), nullable=False)
    category = db.Column(db.String(50), nullable=False, default="general")

    calculation_type = db.Column(db.Enum("fixed", "percentage", name="component_calc_enum"),
                                 nullable=False, default="fixed")
    default_amount = db.Column(db.Numeric(15, 2))
    percentage_of = db.Column(db.Integer, db.ForeignKey("salary_components.id"))  # not resolved, see calculator
    percentage_value = db.Column(db.Numeric(5, 2))

    is_taxable = db.Column(db.Boolean, nullable=False, default=True)
    is_statutory = db.Column(db.Boolean, nullable=False, default=False)
    statutory_type = db.Column(db.String(20))   # PAYE / NSSF / NHIF
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_component_tenant_code"),
    )


class EmployeeSalaryComponent(db.Model):
    __tablename__ = "employee_salary_components"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    salary_component_id = db.Column(db.Integer, db.ForeignKey("salary_components.id"), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)

    effective_from = db.Column(db.Date, nullable=False, default=date.today)
    effective_to = db.Column(db.Date)   # NULL = open-ended / current

    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")
    component = db.relationship("SalaryComponent", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("employee_id", "salary_component_id", "effective_from", name="uq_emp_comp_from"),
        db.Index("ix_esc_emp_window", "employee_id", "effective_from", "effective_to"),
    )
