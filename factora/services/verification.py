"""
verification.py
───────────────
Advisory health report over the audit trail and the scoring registry.

Checks (each isolated: an exception inside one is reported as that check's
failure and the remaining checks still run):
  audit_schema               audit_log exists with exactly the required columns
  tracked_tables             every audited table exists
  registry_models            the registry is readable
  band_overlap:<model_id>    every overlapping band pair        → fail
  band_coverage:<model_id>   observed range vs canonical range  → warning
  factor_summary:<model_id>  factor count / weight sum          → always pass
  audit_canary               record_change round trip, rolled back by default

The three per-model checks judge one registry snapshot of that model.

Nothing here blocks writes. An expired deadline fails the whole run with
OperationTimeout; a partial report is never returned.

Usage:
  python -m factora.services.verification
  OR via the API: GET /v1/verification
"""
from __future__ import annotations

import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy import inspect
from sqlalchemy.orm import Session, sessionmaker

from factora.core.config import Settings, get_settings
from factora.core.deadline import Deadline
from factora.core.errors import OperationTimeout
from factora.core.metrics import VERIFICATION_CHECKS
from factora.models.audit_log import AUDIT_COLUMNS, AuditLog
from factora.models.auditing import Audited
from factora.models.database import Base, get_session_factory
from factora.models import persona as _persona_tables  # noqa: F401  (registers tracked tables)
from factora.models import registry as _registry_tables  # noqa: F401
from factora.schemas.registry import RegistrySnapshot, ScoringModelOut
from factora.schemas.verification import CheckResult, CheckStatus, VerificationReport
from factora.scoring.bands import Defects, check_overlaps, measure_coverage
from factora.services import audit_log, model_registry

logger = structlog.get_logger()

CANARY_TABLE = "verification_canary"
CANARY_ACTOR = "factora-verification"


def tracked_table_names() -> list[str]:
    return sorted(
        m.local_table.name for m in Base.registry.mappers if issubclass(m.class_, Audited)
    )


# ═══════════════════════════════════════════════════════════════
# Checks
# ═══════════════════════════════════════════════════════════════

def check_audit_schema(session: Session) -> CheckResult:
    inspector = inspect(session.connection())
    table = AuditLog.__tablename__
    if not inspector.has_table(table):
        return CheckResult(name="audit_schema", status=CheckStatus.FAIL, message=f"{table} does not exist")

    present = {c["name"] for c in inspector.get_columns(table)}
    missing = [c for c in AUDIT_COLUMNS if c not in present]
    extra = sorted(present - set(AUDIT_COLUMNS))
    details = {"missing": missing, "extra": extra}
    if missing:
        return CheckResult(
            name="audit_schema", status=CheckStatus.FAIL,
            message=f"{table} is missing columns: {', '.join(missing)}", details=details,
        )
    if extra:
        return CheckResult(
            name="audit_schema", status=CheckStatus.WARNING,
            message=f"{table} has unexpected columns: {', '.join(extra)}", details=details,
        )
    return CheckResult(name="audit_schema", status=CheckStatus.PASS, message=f"{table} has the required columns")


def check_tracked_tables(session: Session) -> CheckResult:
    inspector = inspect(session.connection())
    expected = tracked_table_names()
    missing = [t for t in expected if not inspector.has_table(t)]
    details = {"expected": expected, "missing": missing}
    if missing:
        return CheckResult(
            name="tracked_tables", status=CheckStatus.FAIL,
            message=f"Tracked tables missing: {', '.join(missing)}", details=details,
        )
    return CheckResult(
        name="tracked_tables", status=CheckStatus.PASS,
        message=f"All {len(expected)} tracked tables exist", details=details,
    )


def _model_check_name(check: str, model: ScoringModelOut) -> str:
    # model names repeat across versions; the id does not
    return f"{check}:{model.id}"


def _model_details(model: ScoringModelOut) -> dict:
    return {"model_id": str(model.id), "model_name": model.name, "model_version": model.version}


def check_band_overlap(snap: RegistrySnapshot) -> CheckResult:
    model = snap.model
    name = _model_check_name("band_overlap", model)
    result = check_overlaps(snap.bands)
    if isinstance(result, Defects):
        pairs = [
            {"first": o.first, "second": o.second, "overlap_min": o.overlap_min, "overlap_max": o.overlap_max}
            for o in result.items
        ]
        return CheckResult(
            name=name, status=CheckStatus.FAIL,
            message=f"{len(pairs)} overlapping band pair(s) in {model.name} v{model.version}",
            details={**_model_details(model), "overlaps": pairs},
        )
    return CheckResult(
        name=name, status=CheckStatus.PASS,
        message=f"No overlapping bands in {model.name} v{model.version}", details=_model_details(model),
    )


def check_band_coverage(snap: RegistrySnapshot, settings: Settings) -> CheckResult:
    model = snap.model
    name = _model_check_name("band_coverage", model)
    coverage = measure_coverage(
        snap.bands, settings.score_range_min, settings.score_range_max, settings.band_adjacency_tolerance,
    )
    details = {
        **_model_details(model),
        "band_count": len(snap.bands),
        "observed_min": coverage.observed_min,
        "observed_max": coverage.observed_max,
        "expected_min": coverage.expected_min,
        "expected_max": coverage.expected_max,
        "gaps": [{"lower": g.lower, "upper": g.upper} for g in coverage.gaps],
    }
    if not snap.bands:
        return CheckResult(
            name=name, status=CheckStatus.WARNING,
            message=f"{model.name} v{model.version} has no risk bands", details=details,
        )
    observed = f"Bands of {model.name} v{model.version} cover [{coverage.observed_min}, {coverage.observed_max}]"
    if not coverage.complete:
        return CheckResult(
            name=name, status=CheckStatus.WARNING,
            message=(
                f"{observed} with {len(coverage.gaps)} gap(s); "
                f"expected [{coverage.expected_min}, {coverage.expected_max}]"
            ),
            details=details,
        )
    return CheckResult(name=name, status=CheckStatus.PASS, message=observed, details=details)


def check_factor_summary(snap: RegistrySnapshot) -> CheckResult:
    model = snap.model
    weights = [f.weight for f in snap.factors]
    details = {
        **_model_details(model),
        "factor_count": len(weights),
        "weight_sum": round(sum(weights), 6),
        "positive": sum(1 for w in weights if w > 0),
        "negative": sum(1 for w in weights if w < 0),
    }
    return CheckResult(
        name=_model_check_name("factor_summary", model), status=CheckStatus.PASS,
        message=f"{model.name} v{model.version}: {details['factor_count']} factors, weight sum {details['weight_sum']}",
        details=details,
    )


def check_audit_canary(session_factory: sessionmaker[Session], commit: bool = False) -> CheckResult:
    marker = str(uuid.uuid4())
    with session_factory() as session:
        connection = session.connection()
        entry = audit_log.record_change(
            connection,
            table_name=CANARY_TABLE,
            operation="INSERT",
            old_data=None,
            new_data={"canary": marker},
            changed_by=CANARY_ACTOR,
        )
        read_back = audit_log.get_entry(session, entry.id)
        if commit:
            session.commit()
        else:
            session.rollback()

    details = {"entry_id": entry.id, "committed": commit}
    if read_back is None or (read_back.new_data or {}).get("canary") != marker:
        return CheckResult(
            name="audit_canary", status=CheckStatus.FAIL,
            message="Canary entry could not be read back", details=details,
        )
    return CheckResult(
        name="audit_canary", status=CheckStatus.PASS,
        message="Canary entry written and read back" + ("" if commit else " (rolled back)"), details=details,
    )


# ═══════════════════════════════════════════════════════════════
# Runner
# ═══════════════════════════════════════════════════════════════

MODEL_CHECKS = ("band_overlap", "band_coverage", "factor_summary")


def _failed(name: str, e: Exception) -> CheckResult:
    return CheckResult(
        name=name, status=CheckStatus.FAIL,
        message=f"Check raised {type(e).__name__}: {e}", details={"error": str(e)},
    )


def _isolated(name: str, check: Callable[[], CheckResult], session: Optional[Session] = None) -> CheckResult:
    try:
        result = check()
    except Exception as e:
        logger.error("verification_check_failed", check=name, error=str(e))
        if session is not None:
            session.rollback()
        result = _failed(name, e)
    VERIFICATION_CHECKS.labels(status=result.status.value).inc()
    return result


def verify_infrastructure(
    timeout_ms: Optional[int] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
    settings: Optional[Settings] = None,
    deadline: Optional[Deadline] = None,
) -> VerificationReport:
    settings = settings or get_settings()
    factory = session_factory or get_session_factory()
    deadline = deadline or Deadline(
        timeout_ms if timeout_ms is not None else settings.verification_timeout_ms, "verification",
    )
    t0 = time.perf_counter()
    checks: list[CheckResult] = []

    with factory() as session:
        # ── Step 1: Audit table + tracked tables ──
        deadline.check("audit_schema")
        checks.append(_isolated("audit_schema", lambda: check_audit_schema(session), session))
        deadline.check("tracked_tables")
        checks.append(_isolated("tracked_tables", lambda: check_tracked_tables(session), session))

        # ── Step 2: Per-model band and factor checks ──
        deadline.check("registry_models")
        models: list[ScoringModelOut] = []

        def _list_models() -> CheckResult:
            models.extend(model_registry.list_models(session))
            return CheckResult(
                name="registry_models", status=CheckStatus.PASS,
                message=f"{len(models)} scoring model(s) registered",
                details={"models": [str(m.id) for m in models]},
            )

        checks.append(_isolated("registry_models", _list_models, session))

        for model in models:
            names = {check: _model_check_name(check, model) for check in MODEL_CHECKS}
            deadline.check(f"snapshot:{model.id}")
            try:
                snap = model_registry.snapshot(session, model.id, deadline)
            except OperationTimeout:
                raise
            except Exception as e:
                logger.error("verification_snapshot_failed", model_id=str(model.id), error=str(e))
                session.rollback()
                for name in names.values():
                    VERIFICATION_CHECKS.labels(status=CheckStatus.FAIL.value).inc()
                    checks.append(_failed(name, e))
                continue

            deadline.check(names["band_overlap"])
            checks.append(_isolated(names["band_overlap"], lambda: check_band_overlap(snap), session))
            deadline.check(names["band_coverage"])
            checks.append(_isolated(names["band_coverage"], lambda: check_band_coverage(snap, settings), session))
            deadline.check(names["factor_summary"])
            checks.append(_isolated(names["factor_summary"], lambda: check_factor_summary(snap), session))
            # release the share lock on this model before reading the next one
            session.rollback()

    # ── Step 3: Audit write path ──
    deadline.check("audit_canary")
    checks.append(_isolated(
        "audit_canary", lambda: check_audit_canary(factory, commit=settings.verification_canary_commit),
    ))
    deadline.check("report")

    elapsed_ms = int((time.perf_counter() - t0) * 1000)
    report = VerificationReport.from_checks(checks, datetime.now(timezone.utc), elapsed_ms)
    logger.info(
        "verification_complete",
        status=report.status.value,
        checks=len(checks),
        failed=sum(1 for c in checks if c.status is CheckStatus.FAIL),
        warnings=sum(1 for c in checks if c.status is CheckStatus.WARNING),
        elapsed_ms=elapsed_ms,
    )
    return report


if __name__ == "__main__":
    try:
        report = verify_infrastructure()
    except Exception as e:
        print(f"✗ Verification failed: {e}", file=sys.stderr)
        sys.exit(1)

    marks = {CheckStatus.PASS: "✓", CheckStatus.WARNING: "!", CheckStatus.FAIL: "✗"}
    for check in report.checks:
        print(f"{marks[check.status]} {check.name}: {check.message}")
    print(f"Overall: {report.status.value} ({report.elapsed_ms}ms)")
    if report.status is CheckStatus.FAIL:
        sys.exit(1)
