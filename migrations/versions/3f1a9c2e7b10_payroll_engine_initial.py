"""payroll engine initial schema

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2025-01-15 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(name, nullable=False, default=True):
    kw = {"server_default": "0"} if default else {}
    return sa.Column(name, sa.Numeric(15, 2), nullable=nullable, **kw)


def upgrade() -> None:
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('employee_number', sa.String(length=32), nullable=False),
        sa.Column('first_name', sa.String(length=80), nullable=False),
        sa.Column('last_name', sa.String(length=80), nullable=True),
        sa.Column('hire_date', sa.Date(), nullable=True),
        sa.Column('termination_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('country', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'employee_number', name='uq_employee_tenant_number'),
    )
    op.create_index('ix_employees_tenant_id', 'employees', ['tenant_id'])
    op.create_index('ix_emp_tenant_status', 'employees', ['tenant_id', 'status'])

    op.create_table(
        'salary_components',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', sa.Enum('earning', 'deduction', name='component_type_enum'), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False, server_default='general'),
        sa.Column('calculation_type', sa.Enum('fixed', 'percentage', name='component_calc_enum'),
                  nullable=False, server_default='fixed'),
        sa.Column('default_amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('percentage_of', sa.Integer(), sa.ForeignKey('salary_components.id'), nullable=True),
        sa.Column('percentage_value', sa.Numeric(5, 2), nullable=True),
        sa.Column('is_taxable', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_statutory', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('statutory_type', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('display_order', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_component_tenant_code'),
    )
    op.create_index('ix_salary_components_tenant_id', 'salary_components', ['tenant_id'])

    op.create_table(
        'employee_salary_components',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('salary_component_id', sa.Integer(), sa.ForeignKey('salary_components.id'), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employee_id', 'salary_component_id', 'effective_from', name='uq_emp_comp_from'),
    )
    op.create_index('ix_employee_salary_components_employee_id', 'employee_salary_components', ['employee_id'])
    op.create_index('ix_esc_emp_window', 'employee_salary_components',
                    ['employee_id', 'effective_from', 'effective_to'])

    op.create_table(
        'payroll_periods',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('period_type', sa.String(length=20), nullable=False, server_default='monthly'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('pay_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Enum('draft', 'processing', 'pending_approval', 'approved', 'locked', 'paid',
                                    name='payroll_period_status_enum'),
                  nullable=False, server_default='draft'),
        sa.Column('total_employees', sa.Integer(), nullable=False, server_default='0'),
        _money('total_gross'),
        _money('total_deductions'),
        _money('total_net'),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('locked_by', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('start_date < end_date', name='ck_payroll_period_dates'),
    )
    op.create_index('ix_payroll_periods_tenant_id', 'payroll_periods', ['tenant_id'])
    op.create_index('ix_payroll_periods_window', 'payroll_periods',
                    ['tenant_id', 'start_date', 'end_date', 'status'])

    op.create_table(
        'payrolls',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payroll_period_id', sa.Integer(), sa.ForeignKey('payroll_periods.id'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=True),
        sa.Column('bank_account', sa.String(length=50), nullable=True),
        sa.Column('mpesa_phone', sa.String(length=20), nullable=True),
        _money('gross_pay'),
        _money('taxable_income'),
        _money('total_earnings'),
        _money('total_deductions'),
        _money('net_pay'),
        _money('paye_amount'),
        _money('nssf_amount'),
        _money('nhif_amount'),
        _money('internal_deductions'),
        sa.Column('status', sa.Enum('calculated', 'error', name='payroll_status_enum'),
                  nullable=False, server_default='calculated'),
        sa.Column('error_code', sa.String(length=40), nullable=True),
        sa.Column('error_message', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('payroll_period_id', 'employee_id', name='uq_payroll_period_employee'),
    )
    op.create_index('ix_payrolls_payroll_period_id', 'payrolls', ['payroll_period_id'])
    op.create_index('ix_payrolls_employee_id', 'payrolls', ['employee_id'])

    op.create_table(
        'payroll_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payroll_id', sa.Integer(), sa.ForeignKey('payrolls.id'), nullable=False),
        sa.Column('salary_component_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        _money('amount'),
        sa.Column('calculation_details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_payroll_items_payroll_id', 'payroll_items', ['payroll_id'])

    op.create_table(
        'employee_loans',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('loan_type', sa.String(length=50), nullable=False, server_default='salary_advance'),
        sa.Column('loan_number', sa.String(length=50), nullable=False),
        _money('principal_amount', default=False),
        sa.Column('interest_rate', sa.Numeric(5, 2), nullable=True, server_default='0'),
        _money('total_amount', default=False),
        sa.Column('repayment_start_date', sa.Date(), nullable=False),
        _money('monthly_deduction', default=False),
        _money('remaining_balance', default=False),
        _money('total_paid'),
        sa.Column('status', sa.Enum('pending', 'active', 'completed', 'written_off', name='loan_status_enum'),
                  nullable=False, server_default='pending'),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('tenant_id', 'loan_number', name='uq_loan_tenant_number'),
    )
    op.create_index('ix_employee_loans_tenant_id', 'employee_loans', ['tenant_id'])
    op.create_index('ix_employee_loans_employee_id', 'employee_loans', ['employee_id'])

    op.create_table(
        'loan_repayments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('loan_id', sa.Integer(), sa.ForeignKey('employee_loans.id'), nullable=False),
        sa.Column('payroll_id', sa.Integer(), sa.ForeignKey('payrolls.id'), nullable=True),
        _money('amount', default=False),
        sa.Column('repayment_date', sa.Date(), nullable=False),
        sa.Column('payment_type', sa.Enum('manual', 'payroll', 'reversal', name='repayment_type_enum'), nullable=False),
        _money('balance_after', default=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('loan_id', 'payroll_id', name='uq_repayment_loan_payroll'),
        sa.CheckConstraint('amount > 0', name='ck_repayment_amount_positive'),
        sa.CheckConstraint('balance_after >= 0', name='ck_repayment_balance_non_negative'),
    )
    op.create_index('ix_loan_repayments_loan_id', 'loan_repayments', ['loan_id'])
    op.create_index('ix_loan_repayments_payroll_id', 'loan_repayments', ['payroll_id'])

    op.create_table(
        'statutory_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('country', sa.String(length=50), nullable=False),
        sa.Column('rate_type', sa.Enum('paye', 'nssf', 'nhif', name='statutory_rate_type_enum'), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('country', 'rate_type', 'effective_from', name='uq_rate_period'),
    )
    op.create_index('ix_statutory_rates_resolve', 'statutory_rates',
                    ['country', 'rate_type', 'is_active', 'effective_from', 'effective_to'])

    op.create_table(
        'tax_remittances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('payroll_period_id', sa.Integer(), sa.ForeignKey('payroll_periods.id'), nullable=False),
        sa.Column('tax_type', sa.Enum('PAYE', 'NSSF', 'NHIF', name='tax_type_enum'), nullable=False),
        _money('amount', default=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Enum('pending', 'remitted', name='remittance_status_enum'),
                  nullable=False, server_default='pending'),
        sa.Column('remitted_at', sa.DateTime(), nullable=True),
        sa.Column('remitted_by', sa.Integer(), nullable=True),
        sa.Column('remittance_reference', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('payroll_period_id', 'tax_type', name='uq_remittance_period_tax_type'),
    )
    op.create_index('ix_tax_remittances_tenant_id', 'tax_remittances', ['tenant_id'])
    op.create_index('ix_tax_remittances_payroll_period_id', 'tax_remittances', ['payroll_period_id'])
    op.create_index('ix_tax_remittances_due_date', 'tax_remittances', ['due_date'])
    op.create_index('ix_tax_remittances_status', 'tax_remittances', ['status'])


def downgrade() -> None:
    for table in ('tax_remittances', 'statutory_rates', 'loan_repayments', 'employee_loans',
                  'payroll_items', 'payrolls', 'payroll_periods', 'employee_salary_components',
                  'salary_components', 'employees'):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in ('remittance_status_enum', 'tax_type_enum', 'statutory_rate_type_enum',
                      'repayment_type_enum', 'loan_status_enum', 'payroll_status_enum',
                      'payroll_period_status_enum', 'component_calc_enum', 'component_type_enum'):
        try:
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
        except Exception:
            # sqlite has no named enum types
            pass
