from datetime import date

import pytest

from payroll_api.common.errors import (
    InvalidState, OverlappingPeriod, PeriodLocked, ValidationError, NotFound,
)
from payroll_api.models.payroll.period import PayrollPeriod
from payroll_api.services import period_state


def _jan(tenant_id=1, **kw):
    return period_state.create_period(
        tenant_id, name=kw.pop("name", "January 2025"),
        start_date=kw.pop("start_date", date(2025, 1, 1)),
        end_date=kw.pop("end_date", date(2025, 1, 31)),
        pay_date=kw.pop("pay_date", date(2025, 1, 31)),
        actor_id=7, **kw,
    )


def test_create_draft_with_preview_count(session, make_employee, make_component, give):
    e = make_employee()
    make_employee()
    give(e, make_component("BASIC"), 1000)
    p = _jan()
    assert p.status == "draft"
    assert p.total_employees == 1
    assert p.created_by == 7


def test_dates_validated(session):
    with pytest.raises(ValidationError):
        _jan(start_date=date(2025, 1, 31), end_date=date(2025, 1, 1))
    with pytest.raises(ValidationError):
        _jan(start_date=date(2025, 1, 1), end_date=date(2025, 1, 1))


def test_overlap_rejected_unless_locked(session):
    first = _jan()
    with pytest.raises(OverlappingPeriod) as ei:
        _jan(name="Dup", start_date=date(2025, 1, 15), end_date=date(2025, 2, 14), pay_date=date(2025, 2, 14))
    assert ei.value.payload == {"overlaps_period_id": first.id}

    # other tenants are independent
    _jan(tenant_id=2)

    first.status = "locked"
    session.commit()
    _jan(name="Correction", start_date=date(2025, 1, 15), end_date=date(2025, 2, 14),
         pay_date=date(2025, 2, 14))


def test_full_lifecycle(session):
    p = _jan()
    period_state.begin_processing(p, 7)
    assert p.status == "processing"
    period_state.complete_processing(p, employees=0, gross=0, deductions=0, net=0)
    assert p.status == "pending_approval"
    assert p.processed_at is not None

    p = period_state.approve(p.id, 8)
    assert (p.status, p.approved_by) == ("approved", 8)
    p = period_state.lock(p.id, 9)
    assert (p.status, p.locked_by) == ("locked", 9)


@pytest.mark.parametrize("status", ["processing", "approved", "locked", "paid"])
def test_begin_processing_guard(session, status):
    p = _jan()
    p.status = status
    session.commit()
    with pytest.raises(InvalidState) as ei:
        period_state.begin_processing(p, 7)
    assert ei.value.payload["current"] == status


def test_begin_processing_needs_actor(session):
    p = _jan()
    with pytest.raises(ValidationError):
        period_state.begin_processing(p, None)


def test_approve_and_lock_guards(session):
    p = _jan()
    with pytest.raises(InvalidState):
        period_state.approve(p.id, 7)
    with pytest.raises(InvalidState):
        period_state.lock(p.id, 7)
    with pytest.raises(NotFound):
        period_state.approve(p.id, 7, tenant_id=2)


def test_update_period(session):
    p = _jan()
    _jan(name="Feb", start_date=date(2025, 2, 1), end_date=date(2025, 2, 28), pay_date=date(2025, 2, 28))
    period_state.update_period(p, {"name": "Jan (edited)"}, actor_id=8)
    assert p.name == "Jan (edited)"
    with pytest.raises(OverlappingPeriod):
        period_state.update_period(p, {"end_date": date(2025, 2, 10)})


@pytest.mark.parametrize("status", ["locked", "paid"])
def test_frozen_period_rejects_changes(session, status):
    p = _jan()
    p.status = status
    session.commit()
    with pytest.raises(PeriodLocked):
        period_state.update_period(p, {"name": "x"})
    with pytest.raises(PeriodLocked):
        period_state.delete_period(p)


def test_delete_only_draft(session):
    p = _jan()
    p.status = "pending_approval"
    session.commit()
    with pytest.raises(InvalidState):
        period_state.delete_period(p)
    p.status = "draft"
    session.commit()
    period_state.delete_period(p)
    assert PayrollPeriod.query.count() == 0
