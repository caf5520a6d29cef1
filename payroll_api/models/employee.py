from datetime import datetime
from payroll_api.extensions import db

class Employee(db.Model):
    """Read-only snapshot of the employee directory, as the payroll engine sees it."""
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id     = db.Column(db.Integer, nullable=False, index=True)
    department_id = db.Column(db.Integer, nullable=True)

    employee_number = db.Column(db.String(32), nullable=False)
    first_name = db.Column(db.String(80), nullable=False)
    last_name  = db.Column(db.String(80), nullable=True)

    hire_date        = db.Column(db.Date, nullable=True)
    termination_date = db.Column(db.Date, nullable=True)
    status  = db.Column(db.String(16), default="active", nullable=False)   # active/inactive/terminated
    country = db.Column(db.String(50), nullable=True)                      # statutory jurisdiction

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "employee_number", name="uq_employee_tenant_number"),
        db.Index("ix_emp_tenant_status", "tenant_id", "status"),
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)
