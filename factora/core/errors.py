"""
Error taxonomy for the scoring and audit core.

Each error carries a stable ``code`` (what API callers switch on) and a
``retryable`` flag. Tolerated invariant violations (overlapping bands,
incomplete coverage, undeclared factor values) are NOT errors; they travel as
warnings inside results and verification reports.
"""
from __future__ import annotations


class FactoraError(Exception):
    code = "FactoraError"
    retryable = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class UnknownModel(FactoraError):
    code = "UnknownModel"

    def __init__(self, model_id):
        super().__init__(f"Scoring model {model_id} does not exist", model_id=str(model_id))


class UnknownPersona(FactoraError):
    code = "UnknownPersona"

    def __init__(self, persona_id):
        super().__init__(f"Persona {persona_id} does not exist", persona_id=str(persona_id))


class InvalidRange(FactoraError):
    code = "InvalidRange"

    def __init__(self, band: str, min_score: float, max_score: float):
        super().__init__(
            f"Risk band {band!r}: min_score ({min_score}) must be <= max_score ({max_score})",
            band=band, min_score=min_score, max_score=max_score,
        )


class OperationTimeout(FactoraError):
    code = "Timeout"
    retryable = True

    def __init__(self, operation: str, timeout_ms: int, stage: str):
        super().__init__(
            f"{operation} exceeded its {timeout_ms}ms deadline during {stage}",
            operation=operation, timeout_ms=timeout_ms, stage=stage,
        )


class AuditWriteFailure(FactoraError):
    """The mutation + audit pair could not commit; the unit of work was rolled back."""
    code = "AuditWriteFailure"
    retryable = True


class InvalidAuditOperation(FactoraError):
    code = "InvalidOperation"


class AuditImmutable(FactoraError):
    code = "AuditImmutable"
