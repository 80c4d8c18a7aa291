# clinic_ledger/db/init_db.py
from __future__ import annotations

import argparse
import logging
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_ledger.db.session import engine
from clinic_ledger.db.base import Base

# Import all models so metadata is complete
from clinic_ledger.models import DiagnosisCode, ProcedureCode

logger = logging.getLogger(__name__)

# (code, description, category, unit_price)
PROCEDURE_CODES = [
    ("99202", "Office visit, new patient, 15-29 min", "E&M", "75.00"),
    ("99203", "Office visit, new patient, 30-44 min", "E&M", "110.00"),
    ("99212", "Office visit, established patient, 10-19 min", "E&M", "50.00"),
    ("99213", "Office visit, established patient, 20-29 min", "E&M", "85.00"),
    ("99214", "Office visit, established patient, 30-39 min", "E&M", "125.00"),
    ("36415", "Routine venipuncture", "Lab", "12.00"),
    ("85025", "Complete blood count with differential", "Lab", "25.00"),
    ("80053", "Comprehensive metabolic panel", "Lab", "40.00"),
    ("71046", "Chest X-ray, 2 views", "Radiology", "95.00"),
    ("93000", "Electrocardiogram, complete", "Cardiology", "60.00"),
]

# (code, description, category)
DIAGNOSIS_CODES = [
    ("J06.9", "Acute upper respiratory infection, unspecified", "Respiratory"),
    ("I10", "Essential (primary) hypertension", "Circulatory"),
    ("E11.9", "Type 2 diabetes mellitus without complications", "Endocrine"),
    ("M54.5", "Low back pain", "Musculoskeletal"),
    ("R05.9", "Cough, unspecified", "Symptoms"),
    ("Z00.00", "General adult medical examination without abnormal findings", "Factors"),
]


def seed_catalog(db: Session) -> int:
    """
    Seed ONLY missing codes; safe to run multiple times.
    Returns how many rows were inserted.
    """
    added = 0
    for code, desc, category, price in PROCEDURE_CODES:
        if not db.query(ProcedureCode).filter(ProcedureCode.code == code).first():
            db.add(ProcedureCode(code=code,
                                 description=desc,
                                 category=category,
                                 unit_price=Decimal(price)))
            added += 1
    for code, desc, category in DIAGNOSIS_CODES:
        if not db.query(DiagnosisCode).filter(DiagnosisCode.code == code).first():
            db.add(DiagnosisCode(code=code, description=desc, category=category))
            added += 1
    return added


def run(fresh: bool = False) -> None:
    if fresh:
        logger.warning("Dropping ALL tables (dev only)")
        Base.metadata.drop_all(bind=engine)

    logger.info("Creating all missing tables")
    Base.metadata.create_all(bind=engine)

    try:
        with Session(engine) as db:
            added = seed_catalog(db)
            db.commit()
            logger.info("Catalog seeded (%s missing codes inserted)", added)
    except SQLAlchemyError:
        logger.exception("Seeding failed")
        raise


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(
        description="Initialize DB (create tables, seed catalog codes).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args()
    run(fresh=args.fresh)
