import logging
from typing import List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError

from consent_scanner.features.scanner.schemas.scan_result import (
    ButtonSize,
    ConsentBannerInfo,
    Issue,
    RiskLevel,
)
from consent_scanner.platform.config import settings

logger = logging.getLogger(__name__)

BANNER_SELECTORS = [
    '[class*="cookie"]',
    '[class*="consent"]',
    '[class*="gdpr"]',
    '[class*="privacy"]',
    '[id*="cookie"]',
    '[id*="consent"]',
    '[id*="gdpr"]',
    '[id*="privacy"]',
    '[data-testid*="cookie"]',
    '[data-testid*="consent"]',
    "#onetrust-banner-sdk",
    "#CybotCookiebotDialog",
    ".cc-window",
    "#cookie-law-info-bar",
    ".qc-cmp2-container",
    "#sp-cc",
    ".evidon-banner",
    "#truste-consent-track",
    ".optanon-alert-box-wrapper",
]

ACCEPT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    ".cc-btn.cc-allow",
    '[class*="accept"]',
    '[class*="agree"]',
    '[class*="allow"]',
    '[id*="accept"]',
    '[id*="agree"]',
    'button:has-text("Accept")',
    'button:has-text("I agree")',
    'button:has-text("Allow")',
    'button:has-text("OK")',
    'button:has-text("Got it")',
    'button:has-text("Akzeptieren")',
    'button:has-text("Zgadzam się")',
]

REJECT_SELECTORS = [
    "#onetrust-reject-all-handler",
    "#CybotCookiebotDialogBodyButtonDecline",
    ".cc-btn.cc-deny",
    '[class*="reject"]',
    '[class*="decline"]',
    '[class*="deny"]',
    '[id*="reject"]',
    '[id*="decline"]',
    'button:has-text("Reject")',
    'button:has-text("Decline")',
    'button:has-text("Deny")',
    'button:has-text("Refuse")',
    'button:has-text("Ablehnen")',
    'button:has-text("Odrzuć")',
]

SETTINGS_SELECTORS = [
    "#onetrust-pc-btn-handler",
    ".cc-btn.cc-settings",
    '[class*="settings"]',
    '[class*="customize"]',
    '[class*="preferences"]',
    '[class*="manage"]',
    'button:has-text("Settings")',
    'button:has-text("Customize")',
    'button:has-text("Preferences")',
    'button:has-text("Manage")',
    'button:has-text("More options")',
    'button:has-text("Einstellungen")',
    'button:has-text("Ustawienia")',
]

CHECKED_SELECTORS = [
    'input[type="checkbox"]:checked',
    '[role="checkbox"][aria-checked="true"]',
    ".toggle-switch.active",
    ".switch.on",
]

CATEGORY_SELECTORS = [
    '[class*="category"] input[type="checkbox"]',
    '[class*="purpose"] input[type="checkbox"]',
    '[class*="toggle"]',
    ".cookie-category",
    '#onetrust-consent-sdk input[type="checkbox"]',
    '#CybotCookiebotDialog input[type="checkbox"]',
    '[class*="category-item"]',
    '[class*="purpose-item"]',
    ".consent-category",
    "[data-category]",
]

NON_ESSENTIAL_KEYWORDS = [
    "analytics", "statistic", "performance", "marketing", "advertising",
    "ads", "targeting", "social", "preference", "functional",
]
ESSENTIAL_KEYWORDS = ["necessary", "essential", "required", "strictly"]

BLOCKING_COVERAGE_RATIO = 0.3
MIN_REJECT_TO_ACCEPT_AREA = 0.5

_LABEL_TEXT_JS = """
el => {
    const parent = el.closest('label, div, li, tr');
    return parent ? (parent.textContent || '').toLowerCase() : '';
}
"""


class ConsentAnalyzer:
    """Finds the consent banner on a loaded page and grades its quality."""

    def __init__(self, appear_wait_ms: Optional[int] = None):
        self.appear_wait_ms = (
            settings.BANNER_APPEAR_WAIT_MS if appear_wait_ms is None else appear_wait_ms
        )

    async def detect(self, page) -> ConsentBannerInfo:
        result = ConsentBannerInfo()

        # banners are frequently injected a moment after load
        await page.wait_for_timeout(self.appear_wait_ms)

        banner = await self._first_visible(page, BANNER_SELECTORS)
        if banner is None:
            return result

        result.found = True
        result.is_blocking = await self._is_blocking(page, banner)

        accept = await self._first_visible(page, ACCEPT_SELECTORS)
        result.has_accept_button = accept is not None
        result.quality.accept_button_size = await self._size_of(accept)

        reject = await self._first_visible(page, REJECT_SELECTORS)
        result.has_reject_button = reject is not None
        result.quality.reject_button_size = await self._size_of(reject)

        result.has_settings_option = await self._first_visible(page, SETTINGS_SELECTORS) is not None

        await self._grade_quality(page, result)
        return result

    async def click_accept(self, page) -> bool:
        """Click the first visible accept button; False when none was clicked."""
        for selector in ACCEPT_SELECTORS:
            try:
                element = await page.query_selector(selector)
                if element and await element.is_visible():
                    await element.click()
                    return True
            except PlaywrightError as e:
                logger.debug(f"Accept selector {selector} failed: {e}")
        return False

    async def _grade_quality(self, page, result: ConsentBannerInfo) -> None:
        quality = result.quality

        categories = await self._pre_checked_categories(page)
        quality.has_pre_checked_boxes = bool(categories)
        quality.pre_checked_categories = categories

        if quality.accept_button_size and quality.reject_button_size:
            quality.has_equal_prominence = (
                quality.reject_button_size.area
                >= quality.accept_button_size.area * MIN_REJECT_TO_ACCEPT_AREA
            )
        elif result.has_accept_button and not result.has_reject_button:
            quality.has_equal_prominence = False

        quality.is_cookie_wall = (
            result.is_blocking and not result.has_reject_button and not result.has_settings_option
        )

        count = await self._category_count(page)
        quality.category_count = count
        quality.has_granular_consent = count >= 2

    async def _is_blocking(self, page, banner) -> bool:
        box = await banner.bounding_box()
        viewport = page.viewport_size
        if not box or not viewport:
            return False
        coverage = (box["width"] * box["height"]) / (viewport["width"] * viewport["height"])
        return coverage > BLOCKING_COVERAGE_RATIO

    async def _pre_checked_categories(self, page) -> List[str]:
        found: List[str] = []
        for selector in CHECKED_SELECTORS:
            try:
                checkboxes = await page.query_selector_all(selector)
                for checkbox in checkboxes:
                    text = await checkbox.evaluate(_LABEL_TEXT_JS)
                    if any(kw in text for kw in ESSENTIAL_KEYWORDS):
                        continue
                    keyword = next((kw for kw in NON_ESSENTIAL_KEYWORDS if kw in text), None)
                    if keyword and keyword not in found:
                        found.append(keyword)
            except PlaywrightError as e:
                logger.debug(f"Checkbox selector {selector} failed: {e}")
        return found

    async def _category_count(self, page) -> int:
        count = 0
        for selector in CATEGORY_SELECTORS:
            try:
                elements = await page.query_selector_all(selector)
                count = max(count, len(elements))
            except PlaywrightError as e:
                logger.debug(f"Category selector {selector} failed: {e}")
        return count

    async def _first_visible(self, page, selectors: List[str]):
        for selector in selectors:
            try:
                element = await page.query_selector(selector)
                if element and await element.is_visible():
                    return element
            except PlaywrightError as e:
                logger.debug(f"Selector {selector} failed: {e}")
        return None

    async def _size_of(self, element) -> Optional[ButtonSize]:
        if element is None:
            return None
        try:
            box = await element.bounding_box()
        except PlaywrightError:
            return None
        if not box:
            return None
        return ButtonSize(width=box["width"], height=box["height"])

    @staticmethod
    def generate_issues(banner: ConsentBannerInfo) -> List[Issue]:
        if not banner.found:
            return [
                Issue(
                    code="NO_CONSENT_BANNER",
                    title="No cookie consent banner detected",
                    description="No cookie consent mechanism was detected on the website.",
                    risk_level=RiskLevel.CRITICAL,
                    recommendation=(
                        "Implement a GDPR-compliant cookie consent banner that appears "
                        "before any non-essential cookies are set."
                    ),
                )
            ]

        issues: List[Issue] = []
        quality = banner.quality

        if not banner.has_reject_button:
            issues.append(Issue(
                code="NO_REJECT_OPTION",
                title="No option to reject cookies",
                description=(
                    "The consent banner does not provide an easy way to reject "
                    "non-essential cookies."
                ),
                risk_level=RiskLevel.HIGH,
                recommendation='Add a clearly visible "Reject" or "Decline" button to the consent banner.',
            ))

        if quality.has_pre_checked_boxes:
            issues.append(Issue(
                code="PRE_CHECKED_BOXES",
                title="Non-essential cookies pre-selected",
                description=(
                    "Non-essential cookie categories are pre-checked: "
                    f"{', '.join(quality.pre_checked_categories)}."
                ),
                risk_level=RiskLevel.HIGH,
                recommendation=(
                    "All non-essential cookie categories must be unchecked by default. "
                    'Only "necessary" cookies can be pre-selected.'
                ),
            ))

        if not quality.has_equal_prominence:
            issues.append(Issue(
                code="UNEQUAL_BUTTON_PROMINENCE",
                title="Accept and Reject buttons have unequal prominence",
                description=(
                    'The "Accept" button is significantly more prominent than the '
                    '"Reject" option, which may manipulate user choice.'
                ),
                risk_level=RiskLevel.HIGH,
                recommendation=(
                    'Make the "Reject" button equally visible and accessible as the '
                    '"Accept" button (similar size, color and position).'
                ),
            ))

        if quality.is_cookie_wall:
            issues.append(Issue(
                code="COOKIE_WALL",
                title="Cookie wall detected",
                description=(
                    "The website blocks access to content until cookies are accepted, "
                    "with no option to reject or customize."
                ),
                risk_level=RiskLevel.CRITICAL,
                recommendation=(
                    "Remove the cookie wall. Users must be able to access the website "
                    "without accepting non-essential cookies."
                ),
            ))

        if not quality.has_granular_consent and banner.has_accept_button:
            issues.append(Issue(
                code="NO_GRANULAR_CONSENT",
                title="No granular cookie consent options",
                description=(
                    "The consent banner does not allow users to choose which cookie "
                    "categories to accept."
                ),
                risk_level=RiskLevel.MEDIUM,
                recommendation=(
                    "Provide options to accept or reject individual cookie categories "
                    "(for example Analytics or Marketing)."
                ),
            ))

        return issues
