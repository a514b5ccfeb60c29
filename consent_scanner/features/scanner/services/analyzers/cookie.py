import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from consent_scanner.features.scanner.schemas.scan_result import CookieInfo, Issue, RiskLevel

# Exact names first, then prefixes (_ga_XXXX, mp_xxxx, amp_xxxx)
KNOWN_COOKIES: Dict[str, str] = {
    # necessary: sessions, CSRF, load balancing, consent storage
    "PHPSESSID": "necessary",
    "JSESSIONID": "necessary",
    "ASP.NET_SessionId": "necessary",
    "ASPSESSIONID": "necessary",
    "session_id": "necessary",
    "sid": "necessary",
    "connect.sid": "necessary",
    "laravel_session": "necessary",
    "_rails_session": "necessary",
    "sessionid": "necessary",
    "csrftoken": "necessary",
    "_csrf": "necessary",
    "csrf_token": "necessary",
    "XSRF-TOKEN": "necessary",
    "__cf_bm": "necessary",
    "cf_clearance": "necessary",
    "__cflb": "necessary",
    "AWSALB": "necessary",
    "AWSALBCORS": "necessary",
    "AWSELB": "necessary",
    "SERVERID": "necessary",
    "BIGipServer": "necessary",
    "incap_ses": "necessary",
    "visid_incap": "necessary",
    "CookieConsent": "necessary",
    "cookieconsent_status": "necessary",
    "cookie_consent": "necessary",
    "cc_cookie": "necessary",
    "euconsent-v2": "necessary",
    "OptanonConsent": "necessary",
    "OptanonAlertBoxClosed": "necessary",
    "didomi_token": "necessary",
    "usprivacy": "necessary",
    "wordpress_logged_in": "necessary",
    "wordpress_test_cookie": "necessary",
    "wp_woocommerce_session": "necessary",
    "woocommerce_cart_hash": "necessary",
    "__stripe_mid": "necessary",
    "__stripe_sid": "necessary",
    "locale": "necessary",
    "lang": "necessary",
    "currency": "necessary",
    # analytics
    "_ga": "analytics",
    "_gid": "analytics",
    "_gat": "analytics",
    "__utma": "analytics",
    "__utmb": "analytics",
    "__utmz": "analytics",
    "_pk_id": "analytics",
    "_pk_ses": "analytics",
    "s_cc": "analytics",
    "s_vi": "analytics",
    "AMCV_": "analytics",
    "_hjSessionUser": "analytics",
    "_hjSession": "analytics",
    "_hjid": "analytics",
    "_clck": "analytics",
    "_clsk": "analytics",
    "_hp2_id": "analytics",
    "mp_": "analytics",
    "amp_": "analytics",
    "ajs_anonymous_id": "analytics",
    "ajs_user_id": "analytics",
    "_ym_uid": "analytics",
    "_ym_d": "analytics",
    "__hstc": "analytics",
    "hubspotutk": "analytics",
    "_lo_uid": "analytics",
    # marketing
    "_fbp": "marketing",
    "_fbc": "marketing",
    "fr": "marketing",
    "_gcl_au": "marketing",
    "_gcl_aw": "marketing",
    "IDE": "marketing",
    "DSID": "marketing",
    "__gads": "marketing",
    "__gpi": "marketing",
    "NID": "marketing",
    "li_sugr": "marketing",
    "bcookie": "marketing",
    "lidc": "marketing",
    "UserMatchHistory": "marketing",
    "_uetsid": "marketing",
    "_uetvid": "marketing",
    "MUID": "marketing",
    "_ttp": "marketing",
    "_pin_unauth": "marketing",
    "cto_bundle": "marketing",
    "__adroll": "marketing",
    "personalization_id": "marketing",
    # functional
    "__hssc": "necessary",
    "intercom-id-": "functional",
    "intercom-session-": "functional",
    "__zlcmid": "functional",
    "crisp-client": "functional",
    "__tawkuuid": "functional",
    "drift_aid": "functional",
    "YSC": "functional",
    "VISITOR_INFO1_LIVE": "marketing",
}

COOKIE_CATEGORY_PATTERNS = [
    ("analytics", [
        r"^_ga", r"^_gid", r"^_gat", r"^__utm", r"analytics", r"^_pk_", r"^_hj",
        r"^_vis_opt", r"^_vwo", r"^ajs_", r"^amp_", r"^_hp2_", r"^mp_", r"^_ym_",
        r"^s_", r"^AMCV", r"^_clck", r"^_clsk", r"^optimizely", r"^fs_", r"^_lo_",
        r"^mf_", r"^ph_", r"^_ce", r"^ceg_", r"heatmap", r"tracking", r"pageview", r"^gtm",
    ]),
    ("marketing", [
        r"^_fb", r"^_gcl", r"^_gac", r"^IDE$", r"^DSID$", r"^__gads", r"^li_",
        r"^bcookie", r"^lidc", r"^_uet", r"^MUID", r"^_tt", r"^_pin", r"^_epik",
        r"^_scid", r"^cto_", r"^t_gid", r"^__adroll", r"^__ar_v", r"ads?_", r"marketing",
    ]),
    ("necessary", [
        r"sess", r"csrf", r"xsrf", r"consent", r"^__cf", r"^AWSALB", r"^BIGip",
        r"^__Host-", r"^__Secure-", r"auth", r"token", r"cart",
    ]),
    ("functional", [
        r"lang", r"locale", r"currency", r"^intercom", r"^crisp", r"^drift",
        r"chat", r"pref", r"theme",
    ]),
]

_COMPILED_PATTERNS = [
    (category, [re.compile(p, re.IGNORECASE) for p in patterns])
    for category, patterns in COOKIE_CATEGORY_PATTERNS
]


def categorize_cookie(name: str) -> str:
    """Known table (exact, then prefix), then name patterns, else unknown."""
    if name in KNOWN_COOKIES:
        return KNOWN_COOKIES[name]

    for key, category in KNOWN_COOKIES.items():
        if name.startswith(key):
            return category

    for category, patterns in _COMPILED_PATTERNS:
        if any(p.search(name) for p in patterns):
            return category

    return "unknown"


class CookieAnalyzer:
    """Reads the jar of the page's context and classifies every cookie."""

    async def collect(self, page, before_consent: bool) -> List[CookieInfo]:
        cookies = await page.context.cookies()
        return [self._to_cookie_info(c, before_consent) for c in cookies]

    def _to_cookie_info(self, cookie: dict, before_consent: bool) -> CookieInfo:
        expires: Optional[datetime] = None
        raw_expires = cookie.get("expires", -1)
        if raw_expires and raw_expires > 0:
            expires = datetime.fromtimestamp(raw_expires, tz=timezone.utc)

        return CookieInfo(
            name=cookie["name"],
            domain=cookie.get("domain", ""),
            path=cookie.get("path", "/"),
            expires=expires,
            http_only=bool(cookie.get("httpOnly", False)),
            secure=bool(cookie.get("secure", False)),
            same_site=cookie.get("sameSite") or "None",
            category=categorize_cookie(cookie["name"]),
            set_before_consent=before_consent,
        )

    @staticmethod
    def generate_issues(cookies: List[CookieInfo]) -> List[Issue]:
        non_essential = [c for c in cookies if c.set_before_consent and c.category != "necessary"]
        if not non_essential:
            return []
        return [
            Issue(
                code="COOKIES_BEFORE_CONSENT",
                title="Non-essential cookies set before consent",
                description=(
                    f"{len(non_essential)} non-essential cookie(s) were set before "
                    f"user consent was obtained."
                ),
                risk_level=RiskLevel.HIGH,
                recommendation=(
                    "Ensure all non-essential cookies are only set after obtaining "
                    "explicit user consent."
                ),
            )
        ]
