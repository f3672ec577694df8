"""
Result Models

Defines Pydantic models for seeding, validation and suite outcomes.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SeedResult(BaseModel):
    """
    Outcome of one seeding pass.

    Never partially successful: any non-duplicate error marks the whole
    pass as failed, even if some rows were committed.
    """

    target_size: int = Field(..., description="Requested tier size")
    ok: bool = Field(..., description="Whether the tier is fully seeded")
    reason: Optional[str] = Field(None, description="Failure reason")
    already_seeded: bool = Field(False, description="Boundary record present; no writes done")
    created: int = Field(0, description="Aggregates created in this pass")
    duplicates: int = Field(0, description="Creations absorbed as duplicates")
    timed_out: bool = Field(False, description="Failure was a driver timeout")

    @classmethod
    def success(cls, target_size: int, **kwargs) -> "SeedResult":
        return cls(target_size=target_size, ok=True, **kwargs)

    @classmethod
    def failure(cls, target_size: int, reason: str, **kwargs) -> "SeedResult":
        return cls(target_size=target_size, ok=False, reason=reason, **kwargs)


class ValidationStatus(str, Enum):
    PASSED = "passed"
    SKIPPED = "skipped"
    FAILED = "failed"


class TaskValidation(BaseModel):
    """Validation verdict for one task."""

    name: str
    status: ValidationStatus
    sample_count: int = 0
    message: Optional[str] = None


class ValidationReport(BaseModel):
    """Validation verdicts for every task of a bench, in registration order."""

    bench_name: str = ""
    tasks: List[TaskValidation] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def passed(self) -> List[TaskValidation]:
        return [t for t in self.tasks if t.status == ValidationStatus.PASSED]

    @property
    def skipped(self) -> List[TaskValidation]:
        return [t for t in self.tasks if t.status == ValidationStatus.SKIPPED]

    @property
    def failures(self) -> List[TaskValidation]:
        return [t for t in self.tasks if t.status == ValidationStatus.FAILED]

    def raise_for_failures(self) -> None:
        if self.failures:
            from crudbench.core.errors import BenchValidationError

            raise BenchValidationError(
                [f"{t.name}: {t.message}" for t in self.failures]
            )


class TierStatus(str, Enum):
    COMPLETED = "completed"
    SEED_FAILED = "seed_failed"
    NO_OPERATIONS = "no_operations"


class TierReport(BaseModel):
    """Outcome of one seed-then-measure cycle."""

    label: str
    dataset_size: int
    status: TierStatus
    seed: Optional[SeedResult] = None
    operations: List[str] = Field(default_factory=list)
    validation: Optional[ValidationReport] = None
    summary: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.validation is None or self.validation.ok


class SuiteReport(BaseModel):
    """Outcome of a full backend suite across all tiers."""

    backend: str
    run_mode: str
    skipped: bool = False
    reason: Optional[str] = None
    tiers: List[TierReport] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(tier.ok for tier in self.tiers)

    @property
    def summaries(self) -> List[str]:
        return [tier.summary for tier in self.tiers if tier.summary]
