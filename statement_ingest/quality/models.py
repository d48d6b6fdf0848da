from dataclasses import asdict, dataclass, field
from typing import Any

HARD = "hard"
SOFT = "soft"


@dataclass(frozen=True)
class RuleResult:
    """Outcome of one validation rule."""

    name: str
    severity: str
    passed: bool
    message: str
    expected: float | str | None = None
    actual: float | str | None = None


@dataclass(frozen=True)
class CheckReport:
    """Per-rule results plus the overall verdict. Soft rules never fail a check."""

    rules: list[RuleResult] = field(default_factory=list)

    @property
    def overall_passed(self) -> bool:
        return all(rule.passed for rule in self.rules if rule.severity == HARD)

    @property
    def failed_rules(self) -> list[RuleResult]:
        return [rule for rule in self.rules if not rule.passed]

    @property
    def summary(self) -> str:
        failed = self.failed_rules
        if not failed:
            return f"All {len(self.rules)} checks passed"
        hard = [rule.name for rule in failed if rule.severity == HARD]
        soft = [rule.name for rule in failed if rule.severity == SOFT]
        parts = []
        if hard:
            parts.append(f"failed: {', '.join(hard)}")
        if soft:
            parts.append(f"warnings: {', '.join(soft)}")
        return "; ".join(parts)

    def to_payload(self) -> dict[str, Any]:
        return {
            "overall_passed": self.overall_passed,
            "summary": self.summary,
            "rules": [asdict(rule) for rule in self.rules],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CheckReport":
        return cls(rules=[RuleResult(**rule) for rule in payload.get("rules", [])])


@dataclass(frozen=True)
class QualityCheckOutcome:
    """Result of RunQualityCheck, including any automatic fix."""

    check_id: str
    status: str
    overall_passed: bool
    report: CheckReport
    fix_count: int = 0


@dataclass(frozen=True)
class FixOutcome:
    """Result of one fix pass."""

    check_id: str
    fixed: bool
    report: CheckReport | None = None
    error: str | None = None
