"""
Verification report payloads. Advisory only: a failing report blocks nothing.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class CheckStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"


class CheckResult(BaseModel):
    name: str                       # audit_schema, band_overlap:<model>, ...
    status: CheckStatus
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class VerificationReport(BaseModel):
    status: CheckStatus = Field(description="fail if any check failed, else warning if any warned, else pass")
    checks: list[CheckResult]
    generated_at: datetime
    elapsed_ms: int

    @classmethod
    def from_checks(cls, checks: list[CheckResult], generated_at: datetime, elapsed_ms: int) -> "VerificationReport":
        statuses = {c.status for c in checks}
        if CheckStatus.FAIL in statuses:
            status = CheckStatus.FAIL
        elif CheckStatus.WARNING in statuses:
            status = CheckStatus.WARNING
        else:
            status = CheckStatus.PASS
        return cls(status=status, checks=checks, generated_at=generated_at, elapsed_ms=elapsed_ms)

    def by_name(self, name: str) -> CheckResult:
        return next(c for c in self.checks if c.name == name)
