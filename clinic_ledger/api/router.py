# clinic_ledger/api/router.py
from fastapi import APIRouter
from clinic_ledger.api import (
    routes_billing,
    routes_billing_payments,
    routes_billing_insurance,
)

api_router = APIRouter()

api_router.include_router(routes_billing.router)
api_router.include_router(routes_billing_payments.router)
api_router.include_router(routes_billing_insurance.router)
