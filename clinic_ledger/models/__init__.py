# clinic_ledger/models/__init__.py
from .catalog import ProcedureCode, DiagnosisCode
from .sequence import DocumentSequence
from .billing import Invoice, InvoiceItem, Payment, InvoiceStatus, PaymentMethod
from .claims import InsuranceClaim, ClaimStatus

__all__ = [
    "ProcedureCode",
    "DiagnosisCode",
    "DocumentSequence",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "InvoiceStatus",
    "PaymentMethod",
    "InsuranceClaim",
    "ClaimStatus",
]
