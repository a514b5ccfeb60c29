from typing import Iterable

from consent_scanner.features.scanner.schemas.scan_result import Issue, RiskLevel

RISK_DEDUCTIONS = {
    RiskLevel.CRITICAL: 30,
    RiskLevel.HIGH: 20,
    RiskLevel.MEDIUM: 10,
    RiskLevel.LOW: 5,
}

SEVERITY_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


def calculate_overall_risk(issues: Iterable[Issue]) -> RiskLevel:
    """Highest severity present; LOW when there are no issues."""
    levels = {issue.risk_level for issue in issues}
    for level in reversed(SEVERITY_ORDER):
        if level in levels:
            return level
    return RiskLevel.LOW


def calculate_score(issues: Iterable[Issue]) -> int:
    """100 minus the per-severity deductions, floored at 0."""
    deduction = sum(RISK_DEDUCTIONS[issue.risk_level] for issue in issues)
    return max(0, 100 - deduction)
