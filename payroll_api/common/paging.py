# payroll_api/common/paging.py
from datetime import date

from flask import request

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100

def page_limit():
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    try:
        size = int(request.args.get("size", DEFAULT_SIZE))
        size = max(1, min(size, MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size

def paginate(query, order_by):
    """Apply page/size from the query string. Returns (rows, meta)."""
    page, size = page_limit()
    total = query.count()
    rows = query.order_by(*order_by).offset((page - 1) * size).limit(size).all()
    return rows, {"page": page, "size": size, "total": total}

def arg_date(name: str):
    """?name=YYYY-MM-DD → date; missing → None; malformed → ValueError."""
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    return date.fromisoformat(raw)
