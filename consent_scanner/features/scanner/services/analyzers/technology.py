"""
Technology fingerprinting from a fixed signature table.

A technology matches when any of its HTML patterns hits the page source, any
of its script patterns hits a script URL seen on the wire, or any of its
global names exists on `window`.
"""
import logging
import re
from typing import Dict, List, Optional

from playwright.async_api import Error as PlaywrightError

from consent_scanner.features.scanner.schemas.scan_result import (
    TechnologyDetectionResult,
    TechnologyInfo,
)
from consent_scanner.features.scanner.services.browser.browser_session import matches_crash_signature

logger = logging.getLogger(__name__)

TECH_SIGNATURES: List[Dict] = [
    # cms
    {"name": "WordPress", "category": "cms",
     "html": [r"wp-content", r"wp-includes"], "globals": ["wp", "wpApiSettings"]},
    {"name": "Drupal", "category": "cms",
     "html": [r"sites/default/files", r"drupal"], "globals": ["Drupal"]},
    {"name": "Shopify", "category": "cms",
     "html": [r"cdn\.shopify\.com"], "scripts": [r"cdn\.shopify\.com"], "globals": ["Shopify"],
     "gdpr_note": "Shopify processes customer data - ensure DPA is in place"},
    {"name": "Wix", "category": "cms",
     "html": [r"wixstatic\.com"], "scripts": [r"static\.wixstatic\.com"],
     "gdpr_note": "Wix is US-based - check data transfer compliance"},
    {"name": "Squarespace", "category": "cms",
     "html": [r"squarespace"], "scripts": [r"squarespace\.com"],
     "gdpr_note": "Squarespace is US-based - check data transfer compliance"},
    # frameworks
    {"name": "Next.js", "category": "framework",
     "html": [r"__NEXT_DATA__", r"/_next/"], "scripts": [r"_next/static"], "globals": ["__NEXT_DATA__"]},
    {"name": "Nuxt.js", "category": "framework",
     "html": [r"__NUXT__", r"/_nuxt/"], "globals": ["__NUXT__", "$nuxt"]},
    {"name": "React", "category": "framework",
     "html": [r"data-reactroot", r"_reactRootContainer"], "globals": ["React", "__REACT_DEVTOOLS_GLOBAL_HOOK__"]},
    {"name": "Angular", "category": "framework",
     "html": [r"ng-version", r"_ngcontent"], "globals": ["ng", "angular"]},
    {"name": "Vue.js", "category": "framework",
     "html": [r"data-v-[a-f0-9]"], "globals": ["Vue", "__VUE__"]},
    # analytics
    {"name": "Google Analytics", "category": "analytics",
     "scripts": [r"google-analytics\.com/analytics\.js", r"googletagmanager\.com/gtag", r"/ga\.js"],
     "globals": ["ga", "gtag"],
     "gdpr_note": "Requires consent before loading. US data transfer concerns."},
    {"name": "Google Tag Manager", "category": "analytics",
     "scripts": [r"googletagmanager\.com/gtm\.js"], "globals": ["google_tag_manager"],
     "gdpr_note": "Configure to respect consent. Can load other trackers."},
    {"name": "Hotjar", "category": "analytics",
     "scripts": [r"static\.hotjar\.com"], "globals": ["hj", "hjSiteSettings"],
     "gdpr_note": "Session recording requires explicit consent."},
    {"name": "Mixpanel", "category": "analytics",
     "scripts": [r"cdn\.mxpnl\.com"], "globals": ["mixpanel"],
     "gdpr_note": "User behavior tracking - requires consent."},
    {"name": "Matomo/Piwik", "category": "analytics",
     "scripts": [r"matomo\.js", r"piwik\.js"], "globals": ["_paq", "Matomo"],
     "gdpr_note": "Can be self-hosted for better GDPR compliance."},
    {"name": "Plausible", "category": "analytics", "gdpr_relevant": False,
     "scripts": [r"plausible\.io"],
     "gdpr_note": "Privacy-friendly, no cookies, EU-hosted option."},
    # advertising
    {"name": "Google Ads", "category": "advertising",
     "scripts": [r"googleadservices\.com", r"googlesyndication\.com"],
     "gdpr_note": "Requires marketing consent. US data transfer."},
    {"name": "Facebook Pixel", "category": "advertising",
     "scripts": [r"connect\.facebook\.net", r"facebook\.com/tr"], "globals": ["fbq", "_fbq"],
     "gdpr_note": "Requires marketing consent. US data transfer concerns."},
    {"name": "LinkedIn Insight", "category": "advertising",
     "scripts": [r"snap\.licdn\.com"], "globals": ["_linkedin_data_partner_ids"],
     "gdpr_note": "Requires marketing consent."},
    {"name": "TikTok Pixel", "category": "advertising",
     "scripts": [r"analytics\.tiktok\.com"], "globals": ["ttq"],
     "gdpr_note": "Requires marketing consent. Data transfer to China/US."},
    # consent platforms
    {"name": "OneTrust", "category": "consent",
     "scripts": [r"cdn\.cookielaw\.org"], "html": [r"onetrust", r"optanon"],
     "globals": ["OneTrust", "OptanonWrapper"]},
    {"name": "Cookiebot", "category": "consent",
     "scripts": [r"consent\.cookiebot\.com"], "html": [r"CybotCookiebot"], "globals": ["Cookiebot"]},
    {"name": "TrustArc", "category": "consent",
     "scripts": [r"consent\.trustarc\.com"], "globals": ["truste"]},
    {"name": "Quantcast Choice", "category": "consent",
     "scripts": [r"quantcast\.mgr\.consensu\.org"]},
    {"name": "Cookie Script", "category": "consent",
     "scripts": [r"cookie-script\.com"]},
    # cdn
    {"name": "Cloudflare", "category": "cdn", "gdpr_relevant": False,
     "scripts": [r"cdnjs\.cloudflare\.com"], "html": [r"cdn-cgi/"]},
    {"name": "AWS CloudFront", "category": "cdn", "gdpr_relevant": False,
     "scripts": [r"cloudfront\.net"]},
    {"name": "Akamai", "category": "cdn", "gdpr_relevant": False,
     "scripts": [r"akamaized\.net"]},
    # ecommerce
    {"name": "WooCommerce", "category": "ecommerce", "gdpr_relevant": False,
     "html": [r"woocommerce"], "globals": ["wc_add_to_cart_params"]},
    {"name": "Magento", "category": "ecommerce", "gdpr_relevant": False,
     "html": [r"magento", r"mage/"]},
    # chat
    {"name": "Intercom", "category": "chat",
     "scripts": [r"widget\.intercom\.io"], "globals": ["Intercom"],
     "gdpr_note": "Chat widget collects personal data."},
    {"name": "Zendesk", "category": "chat",
     "scripts": [r"static\.zdassets\.com"], "globals": ["zE", "zESettings"],
     "gdpr_note": "Chat widget collects personal data."},
    {"name": "Crisp", "category": "chat",
     "scripts": [r"client\.crisp\.chat"], "globals": ["$crisp", "CRISP_WEBSITE_ID"]},
    {"name": "LiveChat", "category": "chat",
     "scripts": [r"cdn\.livechatinc\.com"], "globals": ["LiveChatWidget"]},
    # email / marketing automation
    {"name": "Mailchimp", "category": "email",
     "html": [r"list-manage\.com"], "scripts": [r"chimpstatic\.com"]},
    {"name": "HubSpot", "category": "email",
     "scripts": [r"js\.hs-scripts\.com"], "globals": ["HubSpotConversations", "_hsq"]},
    # security
    {"name": "reCAPTCHA", "category": "security",
     "scripts": [r"google\.com/recaptcha", r"recaptcha/api\.js"], "globals": ["grecaptcha"],
     "gdpr_note": "Google reCAPTCHA sends data to Google."},
    {"name": "hCaptcha", "category": "security", "gdpr_relevant": False,
     "scripts": [r"hcaptcha\.com"], "globals": ["hcaptcha"]},
]

_GLOBAL_NAMES = sorted({g for sig in TECH_SIGNATURES for g in sig.get("globals", [])})

_COMPILED = [
    {
        **sig,
        "html": [re.compile(p, re.IGNORECASE) for p in sig.get("html", [])],
        "scripts": [re.compile(p, re.IGNORECASE) for p in sig.get("scripts", [])],
    }
    for sig in TECH_SIGNATURES
]

_GLOBALS_JS = """
names => names.filter(name => {
    try { return typeof window[name] !== 'undefined'; } catch (e) { return false; }
})
"""


def match_signatures(html: str, script_urls: List[str], globals_present: List[str]) -> List[TechnologyInfo]:
    present = set(globals_present)
    found: List[TechnologyInfo] = []
    for sig in _COMPILED:
        hit = (
            any(p.search(html) for p in sig["html"])
            or any(p.search(url) for p in sig["scripts"] for url in script_urls)
            or any(g in present for g in sig.get("globals", []))
        )
        if hit:
            found.append(TechnologyInfo(
                name=sig["name"],
                category=sig["category"],
                confidence="high",
                gdpr_relevant=sig.get("gdpr_relevant", "gdpr_note" in sig),
                gdpr_note=sig.get("gdpr_note"),
            ))
    return found


def _first(technologies: List[TechnologyInfo], category: str) -> Optional[str]:
    return next((t.name for t in technologies if t.category == category), None)


class TechnologyAnalyzer:

    def __init__(self):
        self._script_urls: List[str] = []

    def track_request(self, request) -> None:
        if request.resource_type == "script":
            self._script_urls.append(request.url)

    async def detect(self, page) -> TechnologyDetectionResult:
        try:
            html = await page.content()
            globals_present = await page.evaluate(_GLOBALS_JS, _GLOBAL_NAMES)
        except PlaywrightError as e:
            if matches_crash_signature(e):
                raise
            logger.warning(f"Technology detection could not read the page: {e}")
            html, globals_present = "", []

        technologies = match_signatures(html, self._script_urls, globals_present or [])
        return TechnologyDetectionResult(
            technologies=technologies,
            cms=_first(technologies, "cms"),
            framework=_first(technologies, "framework"),
            consent_platform=_first(technologies, "consent"),
            analytics=[t.name for t in technologies if t.category == "analytics"],
            advertising=[t.name for t in technologies if t.category == "advertising"],
            cdn=_first(technologies, "cdn"),
        )

    def reset(self) -> None:
        self._script_urls = []
