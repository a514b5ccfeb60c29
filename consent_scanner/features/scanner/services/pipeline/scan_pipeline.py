import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from consent_scanner.features.scanner.exceptions import (
    AnalysisError,
    EngineCrashError,
    NavigationError,
    NavigationTimeoutError,
    ScanError,
)
from consent_scanner.features.scanner.schemas.scan_result import (
    CookieSummary,
    ScanResult,
    SecurityInfo,
    ThirdPartyRequestSummary,
    TrackerSummary,
)
from consent_scanner.features.scanner.services.analyzers.base import ScanAnalyzers
from consent_scanner.features.scanner.services.browser.browser_session import BrowserSession
from consent_scanner.features.scanner.services.issues.issue_generator import generate_issues
from consent_scanner.features.scanner.services.issues.score_calculator import (
    calculate_overall_risk,
    calculate_score,
)
from consent_scanner.features.scanner.services.pipeline.request_recorder import RequestRecorder
from consent_scanner.features.scanner.services.pipeline.url_utils import (
    hostname,
    merge_cookies,
    normalize_url,
)
from consent_scanner.platform.config import settings
from consent_scanner.platform.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MAX_THIRD_PARTY_ITEMS = 50


class ScanPipeline:
    """
    Drives one browser scan of a website and returns an immutable ScanResult.

    Phases, in order:
      A. cookies, consent banner and privacy policy link before consent
      B. accept consent when the banner offers it, then let the page settle
      C. cookies after consent, merged with the pre-consent capture
      D. HTTPS, mixed content and cookie security
      E. forms
      F. privacy policy content, in a page of its own
      G. data transfers and technologies

    Errors come out as ScanError subclasses. A run that dies with an engine
    crash is retried from scratch on a fresh browser, up to crash_retries
    times; nothing else is retried. The browser context is closed on every
    path.
    """

    def __init__(
        self,
        browser_session: BrowserSession,
        analyzer_factory: Optional[Callable[[], ScanAnalyzers]] = None,
        navigation_timeout_ms: Optional[int] = None,
        consent_settle_ms: Optional[int] = None,
        crash_retries: Optional[int] = None,
    ):
        self.browser_session = browser_session
        self.analyzer_factory = analyzer_factory or ScanAnalyzers
        self.navigation_timeout_ms = (
            settings.NAVIGATION_TIMEOUT_MS if navigation_timeout_ms is None else navigation_timeout_ms
        )
        self.consent_settle_ms = (
            settings.CONSENT_SETTLE_MS if consent_settle_ms is None else consent_settle_ms
        )
        self.crash_retries = settings.SCAN_CRASH_RETRIES if crash_retries is None else crash_retries

    async def run(self, url: str) -> ScanResult:
        attempt = 0
        while True:
            try:
                return await self._run_once(url)
            except EngineCrashError as e:
                if attempt >= self.crash_retries:
                    raise
                attempt += 1
                logger.warning(f"Browser crashed while scanning {url}, retrying (attempt {attempt + 1}): {e}")

    async def _run_once(self, url: str) -> ScanResult:
        started = time.monotonic()
        target = normalize_url(url)
        try:
            base_host = hostname(target)
        except ValueError as e:
            raise NavigationError(str(e)) from e

        logger.info(f"Starting scan for {target}")

        analyzers = self.analyzer_factory()
        analyzers.reset()

        browser = await self.browser_session.acquire()
        context = None
        try:
            try:
                context = await self.browser_session.new_context(browser)
                page = await context.new_page()
            except PlaywrightError as e:
                raise self._crash_or(e, NavigationError(f"Could not open a page: {e}")) from e

            recorder = RequestRecorder(base_host, target.startswith("https://"), analyzers)
            page.on("request", recorder.on_request)

            await self._navigate(page, target)

            logger.info("Phase A: analyzing before consent...")
            cookies_before = await self._phase("Cookie collection", analyzers.cookies.collect(page, True))
            banner = await self._phase("Consent banner detection", analyzers.consent.detect(page))
            policy = await self._phase("Privacy policy detection", analyzers.privacy_policy.detect(page))

            if banner.found and banner.has_accept_button:
                logger.info("Phase B: accepting consent...")
                # flag first so requests fired by the click count as post-consent
                recorder.consent_given = True
                await self._phase("Consent acceptance", analyzers.consent.click_accept(page))
                await self._phase("Consent settle", page.wait_for_timeout(self.consent_settle_ms))

            logger.info("Phase C: analyzing after consent...")
            cookies_after = await self._phase("Cookie collection", analyzers.cookies.collect(page, False))
            cookies = merge_cookies(cookies_before, cookies_after)
            trackers = analyzers.trackers.detected_trackers()

            logger.info("Phase D: security analysis...")
            https = await self._phase("HTTPS analysis", analyzers.security.analyze_https(page, target))
            security = SecurityInfo(
                https=https,
                mixed_content=analyzers.security.mixed_content_info(),
                cookie_security=analyzers.security.analyze_cookie_security(cookies),
            )

            logger.info("Phase E: form analysis...")
            forms = await self._phase("Form analysis", analyzers.forms.analyze(page))

            if policy.found and policy.url:
                logger.info("Phase F: privacy policy content analysis...")
                content = await self._analyze_policy(context, analyzers, policy.url)
                policy = policy.model_copy(update={"content": content})

            logger.info("Phase G: data transfer and technology detection...")
            data_transfers = analyzers.data_transfer.transfer_info()
            technologies = await self._phase("Technology detection", analyzers.technology.detect(page))

            third_party = recorder.third_party_requests
            issues = generate_issues(
                cookies, trackers, third_party, banner, policy, security, forms, data_transfers
            )
            score = calculate_score(issues)
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.info(f"Scan completed in {duration_ms}ms. Score: {score}/100")

            return ScanResult(
                website_url=target,
                scan_date=datetime.now(timezone.utc),
                scan_duration_ms=duration_ms,
                cookies=CookieSummary(
                    total=len(cookies),
                    before_consent=sum(1 for c in cookies if c.set_before_consent),
                    items=cookies,
                ),
                trackers=TrackerSummary(
                    total=len(trackers),
                    before_consent=sum(1 for t in trackers if t.loaded_before_consent),
                    items=trackers,
                ),
                third_party_requests=ThirdPartyRequestSummary(
                    total=len(third_party),
                    before_consent=sum(1 for r in third_party if r.before_consent),
                    items=third_party[:MAX_THIRD_PARTY_ITEMS],
                ),
                consent_banner=banner,
                privacy_policy=policy,
                security=security,
                forms=forms,
                data_transfers=data_transfers,
                technologies=technologies,
                issues=issues,
                overall_risk_level=calculate_overall_risk(issues),
                score=score,
            )
        finally:
            await self.browser_session.close_context(context)

    async def _navigate(self, page, target: str) -> None:
        try:
            await page.goto(target, wait_until="networkidle", timeout=self.navigation_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError(
                f"Navigation to {target} timed out after {self.navigation_timeout_ms}ms"
            ) from e
        except PlaywrightError as e:
            raise self._crash_or(e, NavigationError(f"Navigation to {target} failed: {e}")) from e

    async def _analyze_policy(self, context, analyzers: ScanAnalyzers, policy_url: str):
        try:
            policy_page = await context.new_page()
        except PlaywrightError as e:
            raise self._crash_or(e, AnalysisError("Privacy policy analysis", str(e))) from e
        try:
            return await self._phase(
                "Privacy policy analysis", analyzers.privacy_policy.analyze_content(policy_page, policy_url)
            )
        finally:
            try:
                await policy_page.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing privacy policy page: {e}")

    async def _phase(self, name: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except ScanError:
            raise
        except Exception as e:
            raise self._crash_or(e, AnalysisError(name, str(e))) from e

    def _crash_or(self, error: BaseException, fallback: BaseException) -> BaseException:
        """EngineCrashError when `error` reads as a browser crash, else `fallback`."""
        if self.browser_session.report_failure(error):
            return EngineCrashError(str(error))
        return fallback
