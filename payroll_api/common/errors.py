# payroll_api/common/errors.py
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from payroll_api.common.http import fail


class APIError(Exception):
    """Custom API Error class."""
    def __init__(self, code, message, status_code=400, payload=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.payload = payload


# ---------- payroll engine taxonomy ----------

class ValidationError(APIError):
    def __init__(self, message, payload=None):
        super().__init__("VALIDATION_ERROR", message, 422, payload)


class RateConfigError(ValidationError):
    """Statutory rate config does not parse into brackets / flat / banded."""


class NotFound(APIError):
    def __init__(self, what, ident=None):
        msg = f"{what} not found" if ident is None else f"{what} {ident} not found"
        super().__init__("NOT_FOUND", msg, 404)


class InvalidState(APIError):
    def __init__(self, message, current=None, allowed=None):
        payload = None
        if current is not None:
            payload = {"current": current, "allowed": list(allowed or [])}
        super().__init__("INVALID_STATE", message, 409, payload)


class OverlappingPeriod(APIError):
    def __init__(self, other_id=None):
        super().__init__(
            "OVERLAPPING_PERIOD",
            "Period overlaps with existing period",
            409,
            {"overlaps_period_id": other_id} if other_id is not None else None,
        )


class PeriodLocked(APIError):
    def __init__(self, period_id=None, status="locked"):
        super().__init__(
            "PERIOD_LOCKED",
            f"Payroll period is {status}; it can no longer be changed",
            409,
            {"period_id": period_id} if period_id is not None else None,
        )


class CalculationError(APIError):
    """Per-employee calculation failure. The run orchestrator recovers from it."""
    code_name = "CALCULATION_ERROR"

    def __init__(self, message, employee_id=None, payload=None):
        super().__init__(self.code_name, message, 422, payload)
        self.employee_id = employee_id


class NoActiveRateTable(CalculationError):
    code_name = "NO_ACTIVE_RATE_TABLE"

    def __init__(self, country, rate_type, on_date, employee_id=None):
        super().__init__(
            f"No active {rate_type.upper()} rate table for {country} on {on_date.isoformat()}",
            employee_id=employee_id,
            payload={"country": country, "rate_type": rate_type, "on_date": on_date.isoformat()},
        )
        self.country = country
        self.rate_type = rate_type
        self.on_date = on_date


class AlreadyRemitted(APIError):
    def __init__(self, remittance_id):
        super().__init__("ALREADY_REMITTED", f"Remittance {remittance_id} is already marked as remitted", 409)


class InfrastructureError(APIError):
    def __init__(self, message="Database operation failed", detail=None):
        super().__init__("INFRASTRUCTURE_ERROR", message, 503, detail)


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _dup(e: IntegrityError):
        return fail("Duplicate or FK constraint failed", status=409, code="CONSTRAINT_ERROR",
                    detail=str(e.orig) if getattr(e, "orig", None) else None)

    @app.errorhandler(Exception)
    def _500(e: Exception):
        app.logger.exception(e)
        return fail("Internal server error", status=500)
