"""Mock stand-ins for Playwright objects and scan collaborators."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from consent_scanner.features.scanner.schemas.scan_result import (
    ConsentBannerInfo,
    ConsentQuality,
    CookieInfo,
    FormsAnalysisResult,
    PrivacyPolicyContent,
    PrivacyPolicyInfo,
    TechnologyDetectionResult,
)
from consent_scanner.features.scanner.services.analyzers.base import ScanAnalyzers
from consent_scanner.features.scanner.services.analyzers.data_transfer import DataTransferAnalyzer
from consent_scanner.features.scanner.services.analyzers.security import SecurityAnalyzer
from consent_scanner.features.scanner.services.analyzers.tracker import TrackerAnalyzer
from consent_scanner.features.scanner.services.browser.browser_session import BrowserSession
from consent_scanner.features.scanner.services.pipeline.scan_pipeline import ScanPipeline

CRASH_MESSAGE = "Target page, context or browser has been closed"


def make_request(url, resource_type="script"):
    return SimpleNamespace(url=url, resource_type=resource_type)


class FakeBrowser:
    """
    One browser -> one context -> a main page and a privacy policy page.

    Requests listed in `on_load` are fired at the page's request listener
    during goto(); `goto_error` makes navigation fail instead.
    """

    def __init__(self, url="https://example.com/", on_load=(), goto_error=None):
        self.handlers = {}
        self.on_load = list(on_load)

        self.page = MagicMock()
        self.page.url = url
        self.page.on = MagicMock(side_effect=lambda event, cb: self.handlers.setdefault(event, cb))
        self.page.goto = AsyncMock(side_effect=goto_error or self._load)
        self.page.wait_for_timeout = AsyncMock()

        self.policy_page = MagicMock()
        self.policy_page.close = AsyncMock()

        self.context = MagicMock()
        self.context.new_page = AsyncMock(side_effect=[self.page, self.policy_page])
        self.context.close = AsyncMock()

        self.browser = MagicMock()
        self.browser.new_context = AsyncMock(return_value=self.context)
        self.browser.is_connected = MagicMock(return_value=True)
        self.browser.close = AsyncMock()

    def fire(self, request):
        self.handlers["request"](request)

    async def _load(self, url, **kwargs):
        for request in self.on_load:
            self.fire(request)


def make_cookie(name, before_consent, category="unknown", **kwargs):
    defaults = {"domain": "example.com", "secure": True, "same_site": "Lax"}
    defaults.update(kwargs)
    return CookieInfo(name=name, category=category, set_before_consent=before_consent, **defaults)


def make_analyzers(fake=None, banner=None, policy=None, policy_content=None, after_consent=()):
    """
    Real request-driven analyzers, mocked page-driven ones.

    Clicking accept fires `after_consent` requests through `fake`.
    """
    banner = banner or ConsentBannerInfo(
        found=True,
        has_accept_button=True,
        has_reject_button=True,
        quality=ConsentQuality(has_granular_consent=True, category_count=3),
    )
    cookies_before = [make_cookie("PHPSESSID", True, "necessary")]
    cookies_after = [
        make_cookie("PHPSESSID", False, "necessary"),
        make_cookie("_ga", False, "analytics"),
    ]

    async def click_accept(page):
        for request in after_consent:
            fake.fire(request)
        return True

    consent = MagicMock()
    consent.detect = AsyncMock(return_value=banner)
    consent.click_accept = AsyncMock(side_effect=click_accept)

    privacy_policy = MagicMock()
    privacy_policy.detect = AsyncMock(return_value=policy or PrivacyPolicyInfo(
        found=True, url="https://example.com/privacy"
    ))
    privacy_policy.analyze_content = AsyncMock(return_value=policy_content or PrivacyPolicyContent(
        analyzed=True, has_data_retention=True, has_right_to_complain=True
    ))

    cookies = MagicMock()
    cookies.collect = AsyncMock(side_effect=[cookies_before, cookies_after])

    forms = MagicMock()
    forms.analyze = AsyncMock(return_value=FormsAnalysisResult())

    technology = MagicMock()
    technology.detect = AsyncMock(return_value=TechnologyDetectionResult())

    return ScanAnalyzers(
        cookies=cookies,
        trackers=TrackerAnalyzer(),
        consent=consent,
        privacy_policy=privacy_policy,
        security=SecurityAnalyzer(),
        forms=forms,
        data_transfer=DataTransferAnalyzer(),
        technology=technology,
    )


# Site loads a first-party script and Google Analytics; Facebook fires after consent.
# Expected issues: TRACKERS_BEFORE_CONSENT (HIGH), US_DATA_TRANSFERS (HIGH) -> score 60.
DEFAULT_LOAD = [
    make_request("https://example.com/app.js"),
    make_request("https://www.google-analytics.com/analytics.js"),
]
DEFAULT_AFTER_CONSENT = [make_request("https://connect.facebook.net/en_US/fbevents.js")]


def make_pipeline(fakes, analyzer_factory=None, crash_retries=1):
    """Pipeline over a BrowserSession whose launcher hands out `fakes` in order."""
    launcher = AsyncMock(side_effect=[fake.browser for fake in fakes])
    session = BrowserSession(launcher=launcher)
    pipeline = ScanPipeline(
        session,
        analyzer_factory=analyzer_factory or (lambda: make_analyzers(
            fakes[0], after_consent=DEFAULT_AFTER_CONSENT
        )),
        navigation_timeout_ms=1000,
        consent_settle_ms=0,
        crash_retries=crash_retries,
    )
    return pipeline, session, launcher
