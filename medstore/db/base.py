# FILE: medstore/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All owner-scoped tables (batches, ledger, sales, returns) inherit from this."""
    pass


# Import all models so metadata is complete for create_all()
from medstore.models import (  # noqa: F401,E402
    catalog,
    inventory,
    sales,
)
