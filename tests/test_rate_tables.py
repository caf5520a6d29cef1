from datetime import date
from decimal import Decimal

import pytest

from payroll_api.common.errors import RateConfigError, NoActiveRateTable, CalculationError
from payroll_api.models.payroll.stat_config import StatutoryRate
from payroll_api.services.rate_tables import (
    BracketTable, FlatRate, BandedRate,
    parse_rate_config, resolve_rate_table, create_rate_table, update_rate_table, deactivate_rate_table,
)

from conftest import PAYE_SAMPLE, NHIF_SAMPLE


def test_bracket_table_sample_paye():
    cfg = parse_rate_config(PAYE_SAMPLE)
    assert isinstance(cfg, BracketTable)
    # (24000 * 10% + 26000 * 25%) - 2400
    assert cfg.compute(Decimal("50000")) == Decimal("6500.00")


def test_bracket_table_relief_floors_at_zero():
    cfg = parse_rate_config(PAYE_SAMPLE)
    assert cfg.compute(Decimal("20000")) == Decimal("0.00")
    assert cfg.compute(Decimal("0")) == Decimal("0.00")


def test_bracket_max_alias_and_inferred_kind():
    cfg = parse_rate_config({"brackets": [{"min": 0, "max": 10000, "rate": 10},
                                          {"max": None, "rate": 20}]})
    assert isinstance(cfg, BracketTable)
    assert cfg.compute(Decimal("15000")) == Decimal("2000.00")


def test_flat_rate_base_cap_and_cap():
    cfg = parse_rate_config({"kind": "flat", "rate": 6, "base_cap": 36000, "cap": 2000})
    assert isinstance(cfg, FlatRate)
    assert cfg.compute(Decimal("10000")) == Decimal("600.00")
    # 6% of capped 36000 = 2160, capped again at 2000
    assert cfg.compute(Decimal("80000")) == Decimal("2000.00")


def test_flat_fixed_amount():
    cfg = parse_rate_config({"amount": 200})
    assert cfg.compute(Decimal("999999")) == Decimal("200.00")


def test_banded_rate_lookup():
    cfg = parse_rate_config(NHIF_SAMPLE)
    assert isinstance(cfg, BandedRate)
    assert cfg.compute(Decimal("5000")) == Decimal("150.00")
    assert cfg.compute(Decimal("6000")) == Decimal("1000.00")
    assert cfg.compute(Decimal("5999.50")) == Decimal("150.00")
    assert cfg.compute(Decimal("1000000")) == Decimal("1200.00")


def test_banded_above_every_band_uses_highest():
    cfg = parse_rate_config({"tiers": [{"min": 0, "max": 100, "amount": 1},
                                       {"min": 101, "max": 200, "amount": 2}]})
    assert cfg.compute(Decimal("5000")) == Decimal("2.00")


@pytest.mark.parametrize("raw", [
    None,
    {},
    {"kind": "unknown", "rate": 1},
    {"kind": "brackets", "brackets": []},
    {"kind": "brackets", "brackets": [{"upto": None, "rate": 10}, {"upto": 100, "rate": 20}]},
    {"kind": "brackets", "brackets": [{"upto": 100, "rate": 10}, {"upto": 50, "rate": 20}]},
    {"kind": "flat"},
    {"kind": "flat", "rate": "abc"},
    {"kind": "banded", "bands": [{"min": 10, "max": 5, "amount": 1}]},
    {"kind": "banded", "bands": [{"min": 0, "max": 5}]},
])
def test_malformed_configs_rejected(raw):
    with pytest.raises(RateConfigError):
        parse_rate_config(raw)


def test_resolve_picks_latest_effective(session, seed_rates):
    seed_rates(effective_from=date(2024, 1, 1), effective_to=date(2024, 12, 31))
    newer = seed_rates(effective_from=date(2025, 1, 1))
    got = resolve_rate_table("Kenya", "paye", date(2025, 3, 31))
    assert got.rate_id == newer[0].id
    old = resolve_rate_table("Kenya", "paye", date(2024, 6, 30))
    assert old.effective_from == date(2024, 1, 1)


def test_resolve_missing_raises(session, seed_rates):
    seed_rates(effective_from=date(2025, 1, 1))
    with pytest.raises(NoActiveRateTable) as ei:
        resolve_rate_table("Kenya", "paye", date(2024, 12, 31))
    assert ei.value.code == "NO_ACTIVE_RATE_TABLE"
    with pytest.raises(NoActiveRateTable):
        resolve_rate_table("Uganda", "nssf", date(2025, 6, 30))


def test_resolve_ignores_inactive(session, seed_rates):
    rows = seed_rates()
    deactivate_rate_table(rows[0])
    session.commit()
    with pytest.raises(NoActiveRateTable):
        resolve_rate_table("Kenya", "paye", date(2025, 1, 31))


def test_resolve_malformed_stored_config(session):
    session.add(StatutoryRate(country="Kenya", rate_type="nssf", effective_from=date(2025, 1, 1),
                              config={"kind": "flat"}, is_active=True))
    session.commit()
    with pytest.raises(CalculationError) as ei:
        resolve_rate_table("Kenya", "nssf", date(2025, 1, 31))
    assert not isinstance(ei.value, NoActiveRateTable)


def test_create_rejects_overlapping_window(session):
    create_rate_table("Kenya", "paye", date(2025, 1, 1), PAYE_SAMPLE)
    session.commit()
    with pytest.raises(RateConfigError):
        create_rate_table("Kenya", "paye", date(2025, 6, 1), PAYE_SAMPLE)


def test_close_window_then_create_successor(session):
    first = create_rate_table("Kenya", "paye", date(2025, 1, 1), PAYE_SAMPLE)
    session.commit()
    update_rate_table(first, effective_to=date(2025, 5, 31))
    second = create_rate_table("Kenya", "paye", date(2025, 6, 1), PAYE_SAMPLE)
    session.commit()
    assert resolve_rate_table("Kenya", "paye", date(2025, 6, 30)).rate_id == second.id
    assert resolve_rate_table("Kenya", "paye", date(2025, 5, 31)).rate_id == first.id


def test_create_validates_config_and_type(session):
    with pytest.raises(RateConfigError):
        create_rate_table("Kenya", "paye", date(2025, 1, 1), {"kind": "brackets"})
    with pytest.raises(RateConfigError):
        create_rate_table("Kenya", "sha", date(2025, 1, 1), PAYE_SAMPLE)
