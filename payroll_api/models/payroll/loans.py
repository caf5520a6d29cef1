from datetime import datetime
from payroll_api.extensions import db


class EmployeeLoan(db.Model):
    __tablename__ = "employee_loans"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    loan_type = db.Column(db.String(50), nullable=False, default="salary_advance")
    loan_number = db.Column(db.String(50), nullable=False)

    principal_amount = db.Column(db.Numeric(15, 2), nullable=False)
    interest_rate = db.Column(db.Numeric(5, 2), default=0)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False)
    repayment_start_date = db.Column(db.Date, nullable=False)
    monthly_deduction = db.Column(db.Numeric(15, 2), nullable=False)
    remaining_balance = db.Column(db.Numeric(15, 2), nullable=False)
    total_paid = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    status = db.Column(db.Enum("pending", "active", "completed", "written_off", name="loan_status_enum"),
                       nullable=False, default="pending")

    updated_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "loan_number", name="uq_loan_tenant_number"),
    )


class LoanRepayment(db.Model):
    """
    Append-only ledger row. balance_after = previous balance - amount, except for
    `reversal` rows, which put a withdrawn payroll deduction back on the loan.
    """
    __tablename__ = "loan_repayments"

    id = db.Column(db.Integer, primary_key=True)
    loan_id = db.Column(db.Integer, db.ForeignKey("employee_loans.id"), nullable=False, index=True)
    payroll_id = db.Column(db.Integer, db.ForeignKey("payrolls.id"), nullable=True, index=True)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    repayment_date = db.Column(db.Date, nullable=False)
    payment_type = db.Column(db.Enum("manual", "payroll", "reversal", name="repayment_type_enum"), nullable=False)
    balance_after = db.Column(db.Numeric(15, 2), nullable=False)
    notes = db.Column(db.Text)

    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    loan = db.relationship("EmployeeLoan", lazy="joined")

    __table_args__ = (
        # one automatic deduction per loan per payroll row; manual and reversal rows carry NULL payroll_id
        db.UniqueConstraint("loan_id", "payroll_id", name="uq_repayment_loan_payroll"),
        db.CheckConstraint("amount > 0", name="ck_repayment_amount_positive"),
        db.CheckConstraint("balance_after >= 0", name="ck_repayment_balance_non_negative"),
    )
