"""Validation result types shared by the audit-file and invoice checkers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

PASS = "pass"
FAIL = "fail"
WARNING = "warning"
STATUSES = (PASS, FAIL, WARNING)


@dataclass(frozen=True)
class ValidationResult:
    test_number: int
    test_name: str
    status: str
    message: str
    details: Optional[Any] = None

    def __post_init__(self) -> None:
        if self.status not in STATUSES:
            raise ValueError(f"Unknown status '{self.status}'")

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class ValidationReport:
    total_tests: int
    passed: int
    failed: int
    warnings: int
    results: Tuple[ValidationResult, ...]

    @classmethod
    def from_results(cls, results: Iterable[ValidationResult]):
        items = tuple(results)
        return cls(
            total_tests=len(items),
            passed=sum(1 for r in items if r.status == PASS),
            failed=sum(1 for r in items if r.status == FAIL),
            warnings=sum(1 for r in items if r.status == WARNING),
            results=items,
        )

    @classmethod
    def parse_failure(cls, message: str):
        """Report for input that could not be read at all."""

        result = ValidationResult(0, "XML Parsing", FAIL, message)
        return cls(total_tests=0, passed=0, failed=1, warnings=0, results=(result,))

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def result(self, test_number: int) -> ValidationResult:
        for item in self.results:
            if item.test_number == test_number:
                return item
        raise KeyError(test_number)

    def failures(self) -> Tuple[ValidationResult, ...]:
        return tuple(r for r in self.results if r.status == FAIL)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)
