from typing import List
import logging
from dataclasses import dataclass

@dataclass(frozen=True)
class ValidationIssue:
    path: str       # dotted config path, e.g. "normal_estimation.radius"
    code: str       # e.g., "NON_POSITIVE", "OUT_OF_RANGE", "EMPTY_GRID"
    severity: str   # "error" | "warning"
    message: str

def log_issues(issues: List[ValidationIssue], severity: str) -> bool:
    for issue in issues:
        (logging.error if issue.severity == severity else logging.warning)("❌ %s: %s", issue.code, issue.message)
    return any(i.severity == severity for i in issues)

def errors_only(issues: List[ValidationIssue]) -> List[ValidationIssue]:
    return [i for i in issues if i.severity == "error"]
