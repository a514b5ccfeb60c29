"""
Issue rules and scoring.
"""
from consent_scanner.features.scanner.services.issues.issue_generator import generate_issues
from consent_scanner.features.scanner.services.issues.score_calculator import (
    calculate_overall_risk,
    calculate_score,
)

__all__ = ["generate_issues", "calculate_overall_risk", "calculate_score"]
