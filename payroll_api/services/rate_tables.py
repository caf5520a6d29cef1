"""
Statutory rate tables.

A StatutoryRate row stores its config as JSON. On load it is parsed into one of
three closed variants and only those are used by the calculator:

- BracketTable: graduated brackets over income, minus a flat relief
    {"kind": "brackets", "brackets": [{"upto": 24000, "rate": 10}, {"upto": null, "rate": 25}], "relief": 2400}
- FlatRate: percentage of a (optionally capped) base, or a fixed amount
    {"kind": "flat", "rate": 6, "base_cap": 36000, "cap": 2160}   |   {"kind": "flat", "amount": 200}
- BandedRate: fixed amount for the band the base falls into
    {"kind": "banded", "bands": [{"min": 0, "max": 5999, "amount": 150}, ...]}

Every variant floors its result at 0 and honours an optional `cap`.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union
import logging

from payroll_api.extensions import db
from payroll_api.common.errors import RateConfigError, NoActiveRateTable, CalculationError
from payroll_api.models.payroll.stat_config import StatutoryRate, RATE_TYPES
from payroll_api.services.payroll_common import dec, money, effective_on, overlaps_window

log = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def _cap(amount: Decimal, cap: Optional[Decimal]) -> Decimal:
    if amount < 0:
        amount = Decimal("0")
    if cap is not None and amount > cap:
        amount = cap
    return money(amount)


@dataclass(frozen=True)
class Bracket:
    lower: Decimal
    upper: Optional[Decimal]   # None = open-ended
    rate: Decimal              # percent


@dataclass(frozen=True)
class BracketTable:
    brackets: Tuple[Bracket, ...]
    relief: Decimal = Decimal("0")
    cap: Optional[Decimal] = None
    kind: str = "brackets"

    def gross_tax(self, income: Decimal) -> Decimal:
        tax = Decimal("0")
        for b in self.brackets:
            if income <= b.lower:
                break
            top = income if b.upper is None else min(b.upper, income)
            tax += (top - b.lower) * b.rate / HUNDRED
        return tax

    def compute(self, base: Decimal) -> Decimal:
        return _cap(self.gross_tax(dec(base)) - self.relief, self.cap)


@dataclass(frozen=True)
class FlatRate:
    rate: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    base_cap: Optional[Decimal] = None
    cap: Optional[Decimal] = None
    kind: str = "flat"

    def compute(self, base: Decimal) -> Decimal:
        if self.amount is not None:
            return _cap(self.amount, self.cap)
        base = dec(base)
        if self.base_cap is not None and base > self.base_cap:
            base = self.base_cap
        return _cap(base * self.rate / HUNDRED, self.cap)


@dataclass(frozen=True)
class Band:
    lower: Decimal
    upper: Optional[Decimal]
    amount: Decimal


@dataclass(frozen=True)
class BandedRate:
    bands: Tuple[Band, ...]
    cap: Optional[Decimal] = None
    kind: str = "banded"

    def compute(self, base: Decimal) -> Decimal:
        base = dec(base)
        # last band starting at or below base: a gap (5999.50) stays in the
        # lower band, anything above every band gets the highest one
        chosen = self.bands[0]
        for b in self.bands:
            if base >= b.lower:
                chosen = b
        return _cap(chosen.amount, self.cap)


RateConfig = Union[BracketTable, FlatRate, BandedRate]


# ---------- parsing ----------

def _num(raw: Dict[str, Any], key: str, *, required=False, allow_negative=False) -> Optional[Decimal]:
    v = raw.get(key)
    if v is None or v == "":
        if required:
            raise RateConfigError(f"'{key}' is required")
        return None
    try:
        d = dec(v)
    except ValueError:
        raise RateConfigError(f"'{key}' must be a number")
    if d < 0 and not allow_negative:
        raise RateConfigError(f"'{key}' must not be negative")
    return d


def _infer_kind(raw: Dict[str, Any]) -> Optional[str]:
    if "brackets" in raw:
        return "brackets"
    if "bands" in raw or "tiers" in raw:
        return "banded"
    if "rate" in raw or "amount" in raw:
        return "flat"
    return None


def _parse_brackets(raw: Dict[str, Any]) -> BracketTable:
    rows = raw.get("brackets")
    if not isinstance(rows, list) or not rows:
        raise RateConfigError("'brackets' must be a non-empty list")
    out = []
    lower = Decimal("0")
    for i, b in enumerate(rows):
        if not isinstance(b, dict):
            raise RateConfigError(f"bracket {i} must be an object")
        upper = _num(b, "upto") if "upto" in b else _num(b, "max")
        rate = _num(b, "rate", required=True)
        if i == 0 and b.get("min") not in (None, ""):
            lower = _num(b, "min")
        if upper is not None and upper <= lower:
            raise RateConfigError(f"bracket {i} upper bound must be above {lower}")
        if upper is None and i != len(rows) - 1:
            raise RateConfigError("only the last bracket may be open-ended")
        out.append(Bracket(lower=lower, upper=upper, rate=rate))
        if upper is not None:
            lower = upper
    return BracketTable(
        brackets=tuple(out),
        relief=_num(raw, "relief") or Decimal("0"),
        cap=_num(raw, "cap"),
    )


def _parse_flat(raw: Dict[str, Any]) -> FlatRate:
    rate = _num(raw, "rate")
    amount = _num(raw, "amount")
    if rate is None and amount is None:
        raise RateConfigError("flat config needs 'rate' or 'amount'")
    return FlatRate(
        rate=rate,
        amount=amount,
        base_cap=_num(raw, "base_cap") if "base_cap" in raw else _num(raw, "maxAmount"),
        cap=_num(raw, "cap"),
    )


def _parse_banded(raw: Dict[str, Any]) -> BandedRate:
    rows = raw.get("bands", raw.get("tiers"))
    if not isinstance(rows, list) or not rows:
        raise RateConfigError("'bands' must be a non-empty list")
    out = []
    for i, b in enumerate(rows):
        if not isinstance(b, dict):
            raise RateConfigError(f"band {i} must be an object")
        lower = _num(b, "min") or Decimal("0")
        upper = _num(b, "max")
        if upper is not None and upper < lower:
            raise RateConfigError(f"band {i} has max below min")
        out.append(Band(lower=lower, upper=upper, amount=_num(b, "amount", required=True)))
    out.sort(key=lambda x: x.lower)
    return BandedRate(bands=tuple(out), cap=_num(raw, "cap"))


_PARSERS = {
    "brackets": _parse_brackets,
    "flat": _parse_flat,
    "banded": _parse_banded,
}


def parse_rate_config(raw: Any) -> RateConfig:
    """Validate a JSON config into BracketTable | FlatRate | BandedRate. Raises RateConfigError."""
    if not isinstance(raw, dict):
        raise RateConfigError("config must be an object")
    kind = raw.get("kind") or _infer_kind(raw)
    parser = _PARSERS.get(kind)
    if parser is None:
        raise RateConfigError(f"unknown config kind {kind!r} (expected one of: {', '.join(_PARSERS)})")
    return parser(raw)


# ---------- resolution ----------

@dataclass(frozen=True)
class ResolvedRate:
    rate_id: int
    country: str
    rate_type: str
    effective_from: date
    config: RateConfig

    def compute(self, base) -> Decimal:
        return self.config.compute(base)


def resolve_rate_table(country: str, rate_type: str, on_date: date) -> ResolvedRate:
    """
    Active rate table for (country, rate_type) effective on `on_date`.
    Latest effective_from wins. Raises NoActiveRateTable when nothing covers the date,
    CalculationError when the stored config is malformed.
    """
    row = (
        StatutoryRate.query
        .filter(StatutoryRate.country == country,
                StatutoryRate.rate_type == rate_type,
                StatutoryRate.is_active.is_(True))
        .filter(effective_on(StatutoryRate.effective_from, StatutoryRate.effective_to, on_date))
        .order_by(StatutoryRate.effective_from.desc(), StatutoryRate.id.desc())
        .first()
    )
    if row is None:
        raise NoActiveRateTable(country, rate_type, on_date)
    try:
        cfg = parse_rate_config(row.config)
    except RateConfigError as e:
        log.error("statutory rate %s has malformed config: %s", row.id, e.message)
        raise CalculationError(f"Malformed {rate_type.upper()} rate table {row.id}: {e.message}",
                               payload={"rate_id": row.id})
    return ResolvedRate(row.id, row.country, row.rate_type, row.effective_from, cfg)


# ---------- admin ----------

def _check_window(country: str, rate_type: str, eff_from: date, eff_to: Optional[date], exclude_id=None):
    if eff_to is not None and eff_to < eff_from:
        raise RateConfigError("effective_to must be >= effective_from")
    end = eff_to or date.max
    q = (StatutoryRate.query
         .filter(StatutoryRate.country == country,
                 StatutoryRate.rate_type == rate_type,
                 StatutoryRate.is_active.is_(True))
         .filter(overlaps_window(StatutoryRate.effective_from, StatutoryRate.effective_to, eff_from, end)))
    if exclude_id is not None:
        q = q.filter(StatutoryRate.id != exclude_id)
    clash = q.first()
    if clash is not None:
        raise RateConfigError(
            f"{rate_type.upper()} table for {country} overlaps active table {clash.id}",
            payload={"overlaps_rate_id": clash.id},
        )


def create_rate_table(country: str, rate_type: str, effective_from: date, config: Dict[str, Any],
                      effective_to: Optional[date] = None, created_by: Optional[int] = None) -> StatutoryRate:
    if rate_type not in RATE_TYPES:
        raise RateConfigError(f"rate_type must be one of: {', '.join(RATE_TYPES)}")
    parse_rate_config(config)
    _check_window(country, rate_type, effective_from, effective_to)
    row = StatutoryRate(country=country, rate_type=rate_type, effective_from=effective_from,
                        effective_to=effective_to, config=config, is_active=True, created_by=created_by)
    db.session.add(row)
    db.session.flush()
    log.info("created %s rate table %s for %s from %s", rate_type, row.id, country, effective_from)
    return row


def update_rate_table(row: StatutoryRate, *, config=None, effective_to=None, clear_effective_to=False) -> StatutoryRate:
    if config is not None:
        parse_rate_config(config)
        row.config = config
    if effective_to is not None or clear_effective_to:
        new_to = None if clear_effective_to else effective_to
        _check_window(row.country, row.rate_type, row.effective_from, new_to, exclude_id=row.id)
        row.effective_to = new_to
    db.session.flush()
    return row


def deactivate_rate_table(row: StatutoryRate) -> StatutoryRate:
    row.is_active = False
    db.session.flush()
    return row


def describe_config(cfg: RateConfig) -> Dict[str, Any]:
    """Normalised view of a parsed config, used in line-item calculation details."""
    if isinstance(cfg, BracketTable):
        return {"kind": cfg.kind, "relief": float(cfg.relief),
                "brackets": [{"from": float(b.lower), "upto": float(b.upper) if b.upper is not None else None,
                              "rate": float(b.rate)} for b in cfg.brackets]}
    if isinstance(cfg, FlatRate):
        return {"kind": cfg.kind, "rate": float(cfg.rate) if cfg.rate is not None else None,
                "amount": float(cfg.amount) if cfg.amount is not None else None,
                "cap": float(cfg.cap) if cfg.cap is not None else None}
    return {"kind": cfg.kind, "bands": len(cfg.bands)}


__all__ = [
    "BracketTable", "FlatRate", "BandedRate", "RateConfig", "ResolvedRate",
    "parse_rate_config", "resolve_rate_table",
    "create_rate_table", "update_rate_table", "deactivate_rate_table", "describe_config",
]
