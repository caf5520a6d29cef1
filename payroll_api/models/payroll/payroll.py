from datetime import datetime
from payroll_api.extensions import db


class Payroll(db.Model):
    """One row per (period, employee); a re-run updates it in place."""
    __tablename__ = "payrolls"

    id = db.Column(db.Integer, primary_key=True)
    payroll_period_id = db.Column(db.Integer, db.ForeignKey("payroll_periods.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    payment_method = db.Column(db.String(20))
    bank_account = db.Column(db.String(50))
    mpesa_phone = db.Column(db.String(20))

    gross_pay = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    taxable_income = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_earnings = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_deductions = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    net_pay = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    paye_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    nssf_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    nhif_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    internal_deductions = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    status = db.Column(db.Enum("calculated", "error", name="payroll_status_enum"),
                       nullable=False, default="calculated")
    error_code = db.Column(db.String(40))
    error_message = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    period = db.relationship("PayrollPeriod", back_populates="payrolls")
    employee = db.relationship("Employee", lazy="joined")
    items = db.relationship("PayrollItem", back_populates="payroll", lazy="select",
                            cascade="all, delete-orphan", order_by="PayrollItem.id")

    __table_args__ = (
        db.UniqueConstraint("payroll_period_id", "employee_id", name="uq_payroll_period_employee"),
    )


class PayrollItem(db.Model):
    """Line item snapshot; decoupled from the salary catalog on purpose."""
    __tablename__ = "payroll_items"

    id = db.Column(db.Integer, primary_key=True)
    payroll_id = db.Column(db.Integer, db.ForeignKey("payrolls.id"), nullable=False, index=True)
    salary_component_id = db.Column(db.Integer)   # provenance only, no FK

    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(20), nullable=False)        # earning / deduction
    category = db.Column(db.String(50), nullable=False)    # general / statutory / loan / ...
    amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    calculation_details = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    payroll = db.relationship("Payroll", back_populates="items")
