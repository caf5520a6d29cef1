from __future__ import annotations
from datetime import date
from typing import Any, Dict, Optional

from flask import Blueprint, request

from payroll_api.extensions import db
from payroll_api.common.auth import requires_perms, current_actor_id
from payroll_api.common.errors import NotFound, ValidationError
from payroll_api.common.http import ok, iso
from payroll_api.common.paging import paginate
from payroll_api.models.payroll.stat_config import StatutoryRate
from payroll_api.services import rate_tables

bp = Blueprint("statutory_rates", __name__, url_prefix="/api/v1/statutory-rates")


def _d(raw, key: str) -> Optional[date]:
    if raw in (None, ""):
        return None
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise ValidationError(f"{key} must be YYYY-MM-DD")


def _row_rate(r: StatutoryRate) -> Dict[str, Any]:
    return {
        "id": r.id,
        "country": r.country,
        "rate_type": r.rate_type,
        "effective_from": iso(r.effective_from),
        "effective_to": iso(r.effective_to),
        "config": r.config,
        "is_active": bool(r.is_active),
        "created_by": r.created_by,
    }


def _get_rate(rate_id: int) -> StatutoryRate:
    r = db.session.get(StatutoryRate, rate_id)
    if r is None:
        raise NotFound("Statutory rate", rate_id)
    return r


@bp.get("")
@requires_perms("payroll.read")
def list_rates():
    q = StatutoryRate.query
    if request.args.get("country"):
        q = q.filter(StatutoryRate.country == request.args["country"])
    if request.args.get("rate_type"):
        q = q.filter(StatutoryRate.rate_type == request.args["rate_type"].lower())
    if (request.args.get("active") or "").lower() in ("1", "true", "yes"):
        q = q.filter(StatutoryRate.is_active.is_(True))
    rows, meta = paginate(q, (StatutoryRate.country.asc(), StatutoryRate.rate_type.asc(),
                              StatutoryRate.effective_from.desc()))
    return ok([_row_rate(r) for r in rows], **meta)


@bp.post("")
@requires_perms("settings.write")
def create_rate():
    j = request.get_json(silent=True) or {}
    country = (j.get("country") or "").strip()
    rate_type = (j.get("rate_type") or "").strip().lower()
    eff_from = _d(j.get("effective_from"), "effective_from")
    if not (country and rate_type and eff_from):
        raise ValidationError("country, rate_type, effective_from are required")
    r = rate_tables.create_rate_table(
        country, rate_type, eff_from, j.get("config"),
        effective_to=_d(j.get("effective_to"), "effective_to"),
        created_by=current_actor_id(),
    )
    db.session.commit()
    return ok(_row_rate(r), 201)


@bp.put("/<int:rate_id>")
@requires_perms("settings.write")
def update_rate(rate_id: int):
    r = _get_rate(rate_id)
    j = request.get_json(silent=True) or {}
    r = rate_tables.update_rate_table(
        r,
        config=j.get("config"),
        effective_to=_d(j.get("effective_to"), "effective_to"),
        clear_effective_to=("effective_to" in j and j["effective_to"] is None),
    )
    db.session.commit()
    return ok(_row_rate(r))


@bp.delete("/<int:rate_id>")
@requires_perms("settings.write")
def deactivate_rate(rate_id: int):
    r = rate_tables.deactivate_rate_table(_get_rate(rate_id))
    db.session.commit()
    return ok(_row_rate(r))
