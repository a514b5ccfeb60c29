from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from consent_scanner.features.scanner.schemas.scan_result import (
    ConsentBannerInfo,
    ConsentQuality,
    DataTransferInfo,
    FormInfo,
    HttpsInfo,
    PrivacyPolicyInfo,
    RiskLevel,
    SecurityInfo,
    ThirdPartyRequest,
)
from consent_scanner.features.scanner.services.analyzers.consent import ConsentAnalyzer
from consent_scanner.features.scanner.services.analyzers.cookie import CookieAnalyzer, categorize_cookie
from consent_scanner.features.scanner.services.analyzers.data_transfer import (
    DataTransferAnalyzer,
    match_us_service,
)
from consent_scanner.features.scanner.services.analyzers.form import (
    FormAnalyzer,
    classify_form,
    summarize_forms,
)
from consent_scanner.features.scanner.services.analyzers.privacy_policy import (
    PrivacyPolicyAnalyzer,
    check_policy_text,
)
from consent_scanner.features.scanner.services.analyzers.security import SecurityAnalyzer
from consent_scanner.features.scanner.services.analyzers.technology import (
    TechnologyAnalyzer,
    match_signatures,
)
from consent_scanner.features.scanner.services.analyzers.tracker import TrackerAnalyzer
from consent_scanner.features.scanner.services.issues.issue_generator import third_party_issues
from fakes import CRASH_MESSAGE, make_cookie, make_request


def codes(issues):
    return [issue.code for issue in issues]


# ============================================================================
# Cookies
# ============================================================================

@pytest.mark.parametrize("name, category", [
    ("PHPSESSID", "necessary"),
    ("_ga", "analytics"),
    ("_ga_ABC123", "analytics"),
    ("_fbp", "marketing"),
    ("intercom-id-abc123", "functional"),
    ("theme_pref", "functional"),
    ("zzz_random", "unknown"),
])
def test_categorize_cookie(name, category):
    assert categorize_cookie(name) == category


@pytest.mark.asyncio
async def test_collect_reads_context_cookies():
    page = MagicMock()
    page.context.cookies = AsyncMock(return_value=[
        {"name": "_ga", "domain": ".example.com", "path": "/", "expires": 1_900_000_000,
         "httpOnly": False, "secure": True, "sameSite": "Lax"},
        {"name": "PHPSESSID", "domain": "example.com", "path": "/", "expires": -1,
         "httpOnly": True, "secure": True, "sameSite": "Strict"},
    ])

    cookies = await CookieAnalyzer().collect(page, before_consent=True)

    assert [c.name for c in cookies] == ["_ga", "PHPSESSID"]
    assert cookies[0].category == "analytics"
    assert cookies[0].expires == datetime.fromtimestamp(1_900_000_000, tz=timezone.utc)
    assert cookies[1].expires is None
    assert all(c.set_before_consent for c in cookies)


def test_only_non_essential_pre_consent_cookies_are_flagged():
    assert CookieAnalyzer.generate_issues([
        make_cookie("PHPSESSID", True, "necessary"),
        make_cookie("_ga", False, "analytics"),
    ]) == []

    issues = CookieAnalyzer.generate_issues([make_cookie("_ga", True, "analytics")])
    assert codes(issues) == ["COOKIES_BEFORE_CONSENT"]
    assert issues[0].risk_level == RiskLevel.HIGH


# ============================================================================
# Trackers
# ============================================================================

def test_pre_consent_sighting_is_sticky():
    analyzer = TrackerAnalyzer()
    ga = make_request("https://www.google-analytics.com/g/collect")

    analyzer.analyze_request(ga, before_consent=False)
    analyzer.analyze_request(ga, before_consent=True)
    analyzer.analyze_request(ga, before_consent=False)

    trackers = analyzer.detected_trackers()
    assert len(trackers) == 1
    assert trackers[0].loaded_before_consent is True
    assert codes(TrackerAnalyzer.generate_issues(trackers)) == ["TRACKERS_BEFORE_CONSENT"]


def test_unknown_hosts_are_not_trackers():
    analyzer = TrackerAnalyzer()

    assert analyzer.analyze_request(make_request("https://cdn.example.com/app.js"), True) is None
    assert analyzer.detected_trackers() == []


def test_tracker_reset():
    analyzer = TrackerAnalyzer()
    analyzer.analyze_request(make_request("https://static.hotjar.com/c/hotjar.js"), True)

    analyzer.reset()

    assert analyzer.detected_trackers() == []


# ============================================================================
# Consent banner
# ============================================================================

def test_missing_banner_is_the_only_consent_issue():
    issues = ConsentAnalyzer.generate_issues(ConsentBannerInfo(found=False))

    assert codes(issues) == ["NO_CONSENT_BANNER"]
    assert issues[0].risk_level == RiskLevel.CRITICAL


def test_cookie_wall_banner():
    banner = ConsentBannerInfo(
        found=True,
        has_accept_button=True,
        has_reject_button=False,
        is_blocking=True,
        quality=ConsentQuality(is_cookie_wall=True, has_equal_prominence=False),
    )

    assert codes(ConsentAnalyzer.generate_issues(banner)) == [
        "NO_REJECT_OPTION",
        "UNEQUAL_BUTTON_PROMINENCE",
        "COOKIE_WALL",
        "NO_GRANULAR_CONSENT",
    ]


def test_pre_checked_categories_are_listed():
    banner = ConsentBannerInfo(
        found=True,
        has_accept_button=True,
        has_reject_button=True,
        quality=ConsentQuality(
            has_pre_checked_boxes=True,
            pre_checked_categories=["analytics", "marketing"],
            has_granular_consent=True,
        ),
    )

    issues = ConsentAnalyzer.generate_issues(banner)

    assert codes(issues) == ["PRE_CHECKED_BOXES"]
    assert "analytics, marketing" in issues[0].description


@pytest.mark.asyncio
async def test_detect_without_banner():
    page = MagicMock()
    page.wait_for_timeout = AsyncMock()
    page.query_selector = AsyncMock(return_value=None)

    banner = await ConsentAnalyzer(appear_wait_ms=0).detect(page)

    assert banner.found is False
    page.wait_for_timeout.assert_awaited_once_with(0)


@pytest.mark.asyncio
async def test_click_accept_uses_first_visible_button():
    button = MagicMock()
    button.is_visible = AsyncMock(return_value=True)
    button.click = AsyncMock()
    page = MagicMock()
    page.query_selector = AsyncMock(return_value=button)

    assert await ConsentAnalyzer().click_accept(page) is True
    button.click.assert_awaited_once()


# ============================================================================
# Privacy policy
# ============================================================================

COMPLETE_POLICY = (
    "Acme Ltd is the data controller for your personal data. The purpose of processing "
    "is order fulfilment. The legal basis is the performance of a contract. Your rights "
    "include access and erasure. Our retention period is two years. You may lodge a "
    "complaint with a supervisory authority."
)

PARTIAL_POLICY = "We explain how we use your data and your rights as a customer. " * 3


def test_short_text_is_not_analyzed():
    assert check_policy_text("Privacy").analyzed is False


def test_complete_policy():
    content = check_policy_text(COMPLETE_POLICY)

    assert content.analyzed is True
    assert content.missing_elements == []
    assert content.has_data_retention is True
    assert content.has_right_to_complain is True
    assert PrivacyPolicyAnalyzer.generate_issues(
        PrivacyPolicyInfo(found=True, url="https://example.com/privacy", content=content)
    ) == []


def test_partial_policy():
    content = check_policy_text(PARTIAL_POLICY)

    assert content.missing_elements == ["Data Controller", "Legal Basis"]
    assert codes(PrivacyPolicyAnalyzer.generate_issues(
        PrivacyPolicyInfo(found=True, url="https://example.com/privacy", content=content)
    )) == ["PRIVACY_POLICY_INCOMPLETE", "NO_DATA_RETENTION_INFO", "NO_COMPLAINT_RIGHT_INFO"]


def test_missing_policy():
    issues = PrivacyPolicyAnalyzer.generate_issues(PrivacyPolicyInfo())

    assert codes(issues) == ["NO_PRIVACY_POLICY"]
    assert issues[0].risk_level == RiskLevel.MEDIUM


@pytest.mark.asyncio
async def test_policy_link_is_resolved_against_page_url():
    link = MagicMock()
    link.get_attribute = AsyncMock(return_value="/legal/privacy")
    page = MagicMock()
    page.url = "https://example.com/shop/"
    page.query_selector = AsyncMock(return_value=link)

    policy = await PrivacyPolicyAnalyzer().detect(page)

    assert policy.found is True
    assert policy.url == "https://example.com/legal/privacy"


# ============================================================================
# Security
# ============================================================================

@pytest.mark.asyncio
async def test_https_redirect():
    page = MagicMock()
    page.url = "https://example.com/"

    info = await SecurityAnalyzer().analyze_https(page, "http://example.com")

    assert info.enabled is True
    assert info.redirects_to_https is True


def test_cookie_security_findings():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    cookies = [
        make_cookie(f"pref{i}", True, "functional", secure=False, same_site="None")
        for i in range(4)
    ]
    cookies.append(make_cookie("_ga", True, "analytics", expires=now + timedelta(days=730)))

    info = SecurityAnalyzer().analyze_cookie_security(cookies, now=now)

    assert info.without_secure == 4
    assert info.without_same_site == 4
    assert info.excessive_expiration == 1

    on_https = SecurityInfo(https=HttpsInfo(enabled=True), cookie_security=info)
    assert codes(SecurityAnalyzer.generate_issues(on_https)) == [
        "COOKIE_EXCESSIVE_EXPIRATION",
        "COOKIES_WITHOUT_SECURE",
        "COOKIES_WITHOUT_SAMESITE",
    ]

    on_http = SecurityInfo(https=HttpsInfo(enabled=False), cookie_security=info)
    assert codes(SecurityAnalyzer.generate_issues(on_http)) == [
        "NO_HTTPS",
        "COOKIE_EXCESSIVE_EXPIRATION",
        "COOKIES_WITHOUT_SAMESITE",
    ]


def test_mixed_content_only_on_https_pages():
    analyzer = SecurityAnalyzer()
    insecure = make_request("http://cdn.example.com/lib.js")

    analyzer.track_mixed_content(insecure, page_is_https=False)
    assert analyzer.mixed_content_info().found is False

    analyzer.track_mixed_content(insecure, page_is_https=True)
    analyzer.track_mixed_content(insecure, page_is_https=True)
    info = analyzer.mixed_content_info()
    assert info.resources == ["http://cdn.example.com/lib.js"]


# ============================================================================
# Forms
# ============================================================================

@pytest.mark.parametrize("raw, form_type", [
    ({"text": "subscribe to our newsletter", "email": True}, "newsletter"),
    ({"text": "", "email": True, "message": True}, "contact"),
    ({"action": "/search", "text": ""}, "search"),
    ({"text": "", "email": True}, "newsletter"),
    ({"text": "", "name": True}, "other"),
])
def test_classify_form(raw, form_type):
    assert classify_form(raw) == form_type


def test_form_issues():
    forms = summarize_forms([
        FormInfo(type="contact", has_email_field=True, has_name_field=True),
        FormInfo(
            type="newsletter",
            has_email_field=True,
            has_consent_checkbox=True,
            has_privacy_policy_link=True,
            has_pre_checked_marketing=True,
        ),
    ], ["https://example.com/"])

    assert forms.data_collection_forms == 2
    assert forms.forms_without_consent == 1
    assert codes(FormAnalyzer.generate_issues(forms)) == [
        "FORMS_WITHOUT_CONSENT",
        "FORMS_PRECHECKED_MARKETING",
        "FORMS_NO_PRIVACY_LINK",
    ]
    assert FormAnalyzer.generate_issues(forms)[0].risk_level == RiskLevel.HIGH


@pytest.mark.asyncio
async def test_analyze_skips_search_forms():
    page = MagicMock()
    page.url = "https://example.com/"
    page.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 3000ms exceeded."))
    page.evaluate = AsyncMock(return_value=[
        {"action": "/search", "text": "search"},
        {"action": "/contact", "text": "contact us", "email": True, "message": True},
    ])

    result = await FormAnalyzer().analyze(page)

    assert result.total_forms == 1
    assert result.forms[0].type == "contact"
    assert result.pages_scanned == ["https://example.com/"]


def inspecting_page(error):
    page = MagicMock()
    page.url = "https://example.com/"
    page.wait_for_selector = AsyncMock()
    page.content = AsyncMock(side_effect=error)
    page.evaluate = AsyncMock(side_effect=error)
    page.goto = AsyncMock(side_effect=error)
    return page


@pytest.mark.asyncio
async def test_page_script_errors_give_empty_results():
    page = inspecting_page(PlaywrightError("Execution context was destroyed"))

    assert (await FormAnalyzer().analyze(page)).total_forms == 0
    assert (await TechnologyAnalyzer().detect(page)).technologies == []
    assert (await PrivacyPolicyAnalyzer().analyze_content(page, "https://example.com/privacy")).analyzed is False


@pytest.mark.asyncio
async def test_engine_crash_is_not_swallowed():
    page = inspecting_page(PlaywrightError(CRASH_MESSAGE))

    with pytest.raises(PlaywrightError):
        await FormAnalyzer().analyze(page)
    with pytest.raises(PlaywrightError):
        await TechnologyAnalyzer().detect(page)
    with pytest.raises(PlaywrightError):
        await PrivacyPolicyAnalyzer().analyze_content(page, "https://example.com/privacy")


# ============================================================================
# Data transfers
# ============================================================================

def test_us_service_matching_uses_domain_boundary():
    assert match_us_service("www.google-analytics.com") is not None
    assert match_us_service("notgoogle-analytics.com") is None


def test_transfer_info_lists_high_risk_services_once():
    analyzer = DataTransferAnalyzer()
    for url in [
        "https://www.google-analytics.com/g/collect",
        "https://region1.google-analytics.com/g/collect",
        "https://connect.facebook.net/fbevents.js",
    ]:
        analyzer.analyze_request(make_request(url))

    info = analyzer.transfer_info()

    assert info.total_us_services == 2
    assert info.high_risk_transfers == ["Google Analytics", "Facebook/Meta"]
    assert codes(DataTransferAnalyzer.generate_issues(info)) == ["US_DATA_TRANSFERS"]


def test_excessive_us_services():
    info = DataTransferInfo(total_us_services=11)

    assert codes(DataTransferAnalyzer.generate_issues(info)) == ["EXCESSIVE_US_SERVICES"]


# ============================================================================
# Technologies and cross-cutting rules
# ============================================================================

def test_match_signatures():
    found = match_signatures(
        '<link href="/wp-content/themes/site.css">',
        ["https://www.google-analytics.com/analytics.js"],
        ["OneTrust"],
    )
    names = {t.name for t in found}

    assert {"WordPress", "Google Analytics", "OneTrust"} <= names


@pytest.mark.asyncio
async def test_technology_detection_from_page():
    analyzer = TechnologyAnalyzer()
    analyzer.track_request(make_request("https://www.google-analytics.com/analytics.js"))
    page = MagicMock()
    page.content = AsyncMock(return_value='<div id="__next"><script src="/_next/static/app.js">')
    page.evaluate = AsyncMock(return_value=["OneTrust"])

    result = await analyzer.detect(page)

    assert result.framework == "Next.js"
    assert result.consent_platform == "OneTrust"
    assert "Google Analytics" in result.analytics


def test_excessive_third_party_requests():
    requests = [
        ThirdPartyRequest(url=f"https://t{i}.example/x.js", domain=f"t{i}.example", type="script",
                          before_consent=True)
        for i in range(11)
    ]

    assert codes(third_party_issues(requests)) == ["EXCESSIVE_THIRD_PARTY"]
    assert third_party_issues(requests[:10]) == []
