# clinic_ledger/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All ledger tables (invoices, payments, claims, sequences, catalog) inherit from this."""
    pass
