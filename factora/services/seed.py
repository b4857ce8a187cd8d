"""
seed.py
───────
Baseline scoring model ("FactorA Base Model"): 15 behavioural factors and
risk bands A-D over the 0-1000 range.

Writes go through the registry upserts, so re-running the seed is safe and
every row it touches lands in audit_log like any other change.

Usage:
  python -m factora.services.seed
"""
from __future__ import annotations

import sys
import uuid

import structlog
from sqlalchemy.orm import Session

from factora.core.errors import UnknownModel
from factora.scoring.bands import Defects, check_overlaps
from factora.services import model_registry
from factora.services.unit_of_work import UnitOfWork

logger = structlog.get_logger()

BASELINE_MODEL_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
BASELINE_MODEL_NAME = "FactorA Base Model"
BASELINE_MODEL_VERSION = "1.0"
BASELINE_MODEL_DESCRIPTION = "Baseline credit scoring model for financial inclusion"

# (factor_key, weight, description); negative weight = adverse signal
BASELINE_FACTORS = [
    ("tx_6m_count",              0.05, "Transaction frequency in last 6 months"),
    ("tx_6m_avg_amount",         0.15, "Average transaction amount in last 6 months"),
    ("tx_6m_sum",                0.20, "Total transaction volume in last 6 months"),
    ("days_since_last_tx",      -0.10, "Days since last transaction (negative impact)"),
    ("remesa_12m_count",         0.08, "Remittance frequency in last 12 months"),
    ("remesa_12m_sum",           0.12, "Total remittance volume in last 12 months"),
    ("bills_paid_ratio",         0.18, "Ratio of utility bills paid on time"),
    ("avg_bill_amount",          0.07, "Average utility bill amount"),
    ("micro_active",             0.09, "Has active microcredit (binary indicator)"),
    ("micro_active_sum",         0.06, "Sum of active microcredit amounts"),
    # Behavioural and stability factors
    ("payment_consistency",      0.14, "Consistency in payment behavior"),
    ("account_age_days",         0.11, "Length of relationship (account age)"),
    ("transaction_velocity",     0.08, "Normalized transaction activity level"),
    ("remittance_stability",     0.10, "Stability of remittance patterns"),
    ("credit_utilization_ratio", -0.13, "Credit utilization ratio (negative impact if high)"),
]

# (band, min_score, max_score, recommendation)
BASELINE_BANDS = [
    ("A", 800, 1000, "Eligible for premium credit products with lowest interest rates and highest limits"),
    ("B", 650, 799, "Eligible for standard credit products with competitive rates and moderate limits"),
    ("C", 450, 649, "Eligible for basic credit products with standard rates and lower limits"),
    ("D", 0, 449, "Limited eligibility - consider secured credit options, financial education, or alternative products"),
]


def seed_baseline_model(session: Session) -> dict:
    """Idempotent; returns a summary of what the model now holds."""
    try:
        model_registry.update_model(
            session, BASELINE_MODEL_ID,
            name=BASELINE_MODEL_NAME,
            version=BASELINE_MODEL_VERSION,
            description=BASELINE_MODEL_DESCRIPTION,
        )
    except UnknownModel:
        model_registry.create_model(
            session,
            name=BASELINE_MODEL_NAME,
            version=BASELINE_MODEL_VERSION,
            description=BASELINE_MODEL_DESCRIPTION,
            model_id=BASELINE_MODEL_ID,
        )

    for factor_key, weight, description in BASELINE_FACTORS:
        model_registry.upsert_factor(session, BASELINE_MODEL_ID, factor_key, weight, description)
    for band, min_score, max_score, recommendation in BASELINE_BANDS:
        model_registry.upsert_band(session, BASELINE_MODEL_ID, band, min_score, max_score, recommendation)

    factors = model_registry.get_factors(session, BASELINE_MODEL_ID)
    bands = model_registry.get_bands(session, BASELINE_MODEL_ID)
    overlaps = check_overlaps(bands)
    summary = {
        "model_id": str(BASELINE_MODEL_ID),
        "factor_count": len(factors),
        "weight_sum": round(sum(f.weight for f in factors), 6),
        "band_count": len(bands),
        "overlap_count": len(overlaps) if isinstance(overlaps, Defects) else 0,
    }
    if summary["overlap_count"]:
        logger.warning("seed_band_overlaps", **summary)
    logger.info("baseline_model_seeded", **summary)
    return summary


if __name__ == "__main__":
    try:
        with UnitOfWork(changed_by="factora-seed", client_info="cli") as uow:
            result = seed_baseline_model(uow.session)
        print(f"✓ Seeded {BASELINE_MODEL_NAME}: {result['factor_count']} factors "
              f"(weight sum {result['weight_sum']}), {result['band_count']} bands")
    except Exception as e:
        print(f"✗ Seed failed: {e}", file=sys.stderr)
        sys.exit(1)
