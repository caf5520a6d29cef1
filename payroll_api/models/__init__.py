# payroll_api/models/__init__.py
import importlib
import pkgutil

_SKIP = {"__pycache__"}


def load_all():
    """
    Import every model module under this package (payroll/ included) so that
    db.metadata is complete before create_all / Alembic autogenerate.
    Returns the imported module names.
    """
    loaded = []
    for info in pkgutil.walk_packages(__path__, prefix=f"{__name__}."):
        if info.name.rsplit(".", 1)[-1] in _SKIP:
            continue
        importlib.import_module(info.name)
        loaded.append(info.name)
    return loaded
