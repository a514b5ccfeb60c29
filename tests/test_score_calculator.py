import pytest
from pydantic import ValidationError

from consent_scanner.features.scanner.schemas.scan_result import Issue, RiskLevel
from consent_scanner.features.scanner.services.issues import calculate_overall_risk, calculate_score


def issue(level, code="TEST"):
    return Issue(code=code, title="t", description="d", risk_level=level, recommendation="r")


def test_no_issues_scores_full_marks():
    assert calculate_score([]) == 100
    assert calculate_overall_risk([]) == RiskLevel.LOW


@pytest.mark.parametrize("levels, expected", [
    ([RiskLevel.CRITICAL], 70),
    ([RiskLevel.CRITICAL, RiskLevel.HIGH], 50),
    ([RiskLevel.HIGH], 80),
    ([RiskLevel.MEDIUM], 90),
    ([RiskLevel.LOW], 95),
    ([RiskLevel.MEDIUM, RiskLevel.LOW, RiskLevel.LOW], 80),
])
def test_deductions(levels, expected):
    assert calculate_score([issue(level) for level in levels]) == expected


def test_score_is_floored_at_zero():
    assert calculate_score([issue(RiskLevel.CRITICAL)] * 4) == 0


@pytest.mark.parametrize("levels, expected", [
    ([RiskLevel.LOW], RiskLevel.LOW),
    ([RiskLevel.LOW, RiskLevel.MEDIUM], RiskLevel.MEDIUM),
    ([RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.LOW], RiskLevel.HIGH),
    ([RiskLevel.HIGH, RiskLevel.CRITICAL], RiskLevel.CRITICAL),
])
def test_overall_risk_is_highest_severity(levels, expected):
    assert calculate_overall_risk([issue(level) for level in levels]) == expected


def test_issues_are_immutable():
    item = issue(RiskLevel.LOW)
    with pytest.raises(ValidationError):
        item.code = "OTHER"
