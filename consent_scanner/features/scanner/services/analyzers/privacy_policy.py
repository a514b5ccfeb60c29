import logging
import re
from typing import Dict, List, Optional
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError

from consent_scanner.features.scanner.schemas.scan_result import (
    Issue,
    PrivacyPolicyContent,
    PrivacyPolicyInfo,
    RiskLevel,
)
from consent_scanner.features.scanner.services.browser.browser_session import matches_crash_signature
from consent_scanner.platform.config import settings

logger = logging.getLogger(__name__)

LINK_SELECTORS = [
    'a[href*="privacy"]',
    'a[href*="datenschutz"]',
    'a[href*="prywatno"]',
    'a[href*="gdpr"]',
    'a:has-text("Privacy")',
    'a:has-text("Datenschutz")',
    'a:has-text("Polityka prywatności")',
    'a:has-text("GDPR")',
]

LINK_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"privacy", r"datenschutz", r"polityka.*prywatno", r"gdpr",
              r"data.*protection", r"personal.*data")
]

# (field, label, patterns); GDPR Art. 13-14 elements
CONTENT_CHECKS = [
    ("has_data_controller", "Data Controller", [
        r"data\s*controller", r"controller.*data", r"verantwortlich",
        r"administrator\s*danych", r"who\s*we\s*are", r"registered\s*address",
        r"contact\s*us",
    ]),
    ("has_dpo_contact", "DPO Contact", [
        r"data\s*protection\s*officer", r"\bdpo\b", r"datenschutzbeauftragt",
        r"inspektor\s*ochrony\s*danych",
    ]),
    ("has_purpose_of_processing", "Purpose of Processing", [
        r"purpose.*process", r"why\s*we\s*collect", r"how\s*we\s*use",
        r"we\s*use\s*your\s*data", r"zweck.*verarbeitung", r"cel.*przetwarzania",
    ]),
    ("has_legal_basis", "Legal Basis", [
        r"legal\s*basis", r"lawful\s*basis", r"legitimate\s*interest",
        r"legal\s*obligation", r"rechtsgrundlage", r"podstawa\s*prawna",
    ]),
    ("has_data_retention", "Data Retention", [
        r"retention", r"how\s*long", r"keep.*data", r"data.*deleted",
        r"aufbewahrung", r"speicherdauer", r"okres\s*przechowywania",
    ]),
    ("has_user_rights", "User Rights", [
        r"your\s*rights", r"subject\s*rights", r"right\s*to\s*access",
        r"right\s*to\s*erasure", r"right\s*to\s*object", r"ihre\s*rechte",
        r"betroffenenrechte", r"twoje\s*prawa",
    ]),
    ("has_right_to_complain", "Right to Complain", [
        r"supervisory\s*authority", r"data\s*protection\s*authority",
        r"lodge\s*a\s*complaint", r"aufsichtsbehörde", r"beschwerde",
        r"\buodo\b", r"\bcnil\b", r"\bico\b",
    ]),
    ("has_third_party_sharing", "Third Party Sharing", [
        r"third\s*part", r"share.*data", r"disclose", r"service\s*provider",
        r"weitergabe", r"podmioty\s*trzecie",
    ]),
    ("has_international_transfers", "International Transfers", [
        r"international\s*transfer", r"transfer.*outside", r"\beea\b",
        r"european\s*economic\s*area", r"third\s*countr", r"drittland",
    ]),
]

REQUIRED_ELEMENTS = {"Data Controller", "Purpose of Processing", "Legal Basis", "User Rights"}

MIN_POLICY_TEXT_LENGTH = 100

_COMPILED_CHECKS = [
    (field, label, [re.compile(p, re.IGNORECASE) for p in patterns])
    for field, label, patterns in CONTENT_CHECKS
]


def check_policy_text(text: str) -> PrivacyPolicyContent:
    """Grade policy text against the Art. 13-14 element patterns."""
    if not text or len(text) < MIN_POLICY_TEXT_LENGTH:
        return PrivacyPolicyContent()

    flags: Dict[str, bool] = {}
    detected: List[str] = []
    missing: List[str] = []
    for field, label, patterns in _COMPILED_CHECKS:
        found = any(p.search(text) for p in patterns)
        flags[field] = found
        if found:
            detected.append(label)
        elif label in REQUIRED_ELEMENTS:
            missing.append(label)

    return PrivacyPolicyContent(
        analyzed=True,
        detected_elements=detected,
        missing_elements=missing,
        **flags,
    )


class PrivacyPolicyAnalyzer:

    def __init__(self, timeout_ms: Optional[int] = None):
        self.timeout_ms = settings.POLICY_PAGE_TIMEOUT_MS if timeout_ms is None else timeout_ms

    async def detect(self, page) -> PrivacyPolicyInfo:
        """Locate a privacy policy link on the current page."""
        base_url = page.url

        for selector in LINK_SELECTORS:
            try:
                element = await page.query_selector(selector)
                href = await element.get_attribute("href") if element else None
            except PlaywrightError as e:
                logger.debug(f"Privacy link selector {selector} failed: {e}")
                continue
            if href:
                return PrivacyPolicyInfo(found=True, url=urljoin(base_url, href))

        # fallback: every anchor, matched on text or href
        try:
            links = await page.query_selector_all("a")
            for link in links:
                text = await link.text_content() or ""
                href = await link.get_attribute("href")
                if href and any(p.search(text) or p.search(href) for p in LINK_PATTERNS):
                    return PrivacyPolicyInfo(found=True, url=urljoin(base_url, href))
        except PlaywrightError as e:
            logger.debug(f"Privacy link scan failed: {e}")

        return PrivacyPolicyInfo()

    async def analyze_content(self, page, url: str) -> PrivacyPolicyContent:
        """Load the policy in `page` and check its text; unanalyzed on failure."""
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
            await page.wait_for_timeout(1000)
            text = await page.evaluate("() => document.body ? document.body.innerText : ''")
        except PlaywrightError as e:
            if matches_crash_signature(e):
                raise
            logger.warning(f"Could not analyze privacy policy at {url}: {e}")
            return PrivacyPolicyContent()

        return check_policy_text(text)

    @staticmethod
    def generate_issues(policy: PrivacyPolicyInfo) -> List[Issue]:
        if not policy.found:
            return [
                Issue(
                    code="NO_PRIVACY_POLICY",
                    title="No privacy policy link found",
                    description="No link to a privacy policy was detected on the website.",
                    risk_level=RiskLevel.MEDIUM,
                    recommendation=(
                        "Add a clearly visible link to your privacy policy in the footer "
                        "and consent banner."
                    ),
                )
            ]

        content = policy.content
        if not content.analyzed:
            return []

        issues: List[Issue] = []
        if content.missing_elements:
            issues.append(Issue(
                code="PRIVACY_POLICY_INCOMPLETE",
                title="Privacy policy missing required information",
                description=f"The privacy policy is missing: {', '.join(content.missing_elements)}.",
                risk_level=RiskLevel.HIGH,
                recommendation="Update your privacy policy to include all required GDPR Art. 13-14 elements.",
            ))
        if not content.has_data_retention:
            issues.append(Issue(
                code="NO_DATA_RETENTION_INFO",
                title="No data retention period specified",
                description="The privacy policy does not specify how long personal data is retained.",
                risk_level=RiskLevel.MEDIUM,
                recommendation=(
                    "Add clear information about data retention periods for each type "
                    "of data processing."
                ),
            ))
        if not content.has_right_to_complain:
            issues.append(Issue(
                code="NO_COMPLAINT_RIGHT_INFO",
                title="No information about right to complain",
                description=(
                    "The privacy policy does not mention the right to lodge a complaint "
                    "with a supervisory authority."
                ),
                risk_level=RiskLevel.MEDIUM,
                recommendation=(
                    "Add information about the right to complain to the relevant data "
                    "protection authority."
                ),
            ))
        return issues
