import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from consent_scanner.features.scanner.schemas.scan_result import (
    CookieInfo,
    CookieSecurityInfo,
    CookieSecurityIssue,
    HttpsInfo,
    Issue,
    MixedContentInfo,
    RiskLevel,
    SecurityInfo,
)

# CNIL guideline; months counted as 30 days
MAX_COOKIE_LIFETIME = timedelta(days=13 * 30)
MAX_MIXED_CONTENT_RESOURCES = 20
MAX_COOKIE_SECURITY_ISSUES = 20

MIXED_CONTENT_RESOURCE_TYPES = {
    "document", "script", "stylesheet", "image", "font", "xhr", "fetch",
}

SENSITIVE_COOKIE_PATTERN = re.compile(
    r"session|auth|token|csrf|xsrf|login|user|account", re.IGNORECASE
)


class SecurityAnalyzer:
    def __init__(self):
        self._mixed_content: List[str] = []

    async def analyze_https(self, page, original_url: str) -> HttpsInfo:
        is_https = page.url.startswith("https://")
        return HttpsInfo(
            enabled=is_https,
            redirects_to_https=original_url.startswith("http://") and is_https,
        )

    def track_mixed_content(self, request, page_is_https: bool) -> None:
        if not page_is_https:
            return
        url = request.url
        if not url.startswith("http://") or "localhost" in url:
            return
        if request.resource_type in MIXED_CONTENT_RESOURCE_TYPES:
            self._mixed_content.append(url)

    def mixed_content_info(self) -> MixedContentInfo:
        unique = list(dict.fromkeys(self._mixed_content))
        return MixedContentInfo(found=bool(unique), resources=unique[:MAX_MIXED_CONTENT_RESOURCES])

    def analyze_cookie_security(
        self, cookies: List[CookieInfo], now: Optional[datetime] = None
    ) -> CookieSecurityInfo:
        now = now or datetime.now(timezone.utc)
        info = CookieSecurityInfo()
        issues: List[CookieSecurityIssue] = []

        for cookie in cookies:
            if not cookie.secure:
                info.without_secure += 1
                if cookie.category != "necessary":
                    issues.append(CookieSecurityIssue(
                        cookie_name=cookie.name,
                        issue="no_secure",
                        description=f'Cookie "{cookie.name}" is missing the Secure flag',
                        recommendation="Add the Secure flag to ensure the cookie is only sent over HTTPS",
                    ))

            if not cookie.http_only:
                info.without_http_only += 1
                if SENSITIVE_COOKIE_PATTERN.search(cookie.name):
                    issues.append(CookieSecurityIssue(
                        cookie_name=cookie.name,
                        issue="no_httponly",
                        description=f'Cookie "{cookie.name}" is missing the HttpOnly flag',
                        recommendation="Add the HttpOnly flag to prevent JavaScript access to this cookie",
                    ))

            if not cookie.same_site or cookie.same_site == "None":
                info.without_same_site += 1
                if not cookie.secure:
                    issues.append(CookieSecurityIssue(
                        cookie_name=cookie.name,
                        issue="no_samesite",
                        description=f'Cookie "{cookie.name}" has SameSite=None without Secure flag',
                        recommendation="Cookies with SameSite=None must also have the Secure flag",
                    ))

            if cookie.expires is not None:
                expires = cookie.expires
                if expires.tzinfo is None:
                    expires = expires.replace(tzinfo=timezone.utc)
                lifetime = expires - now
                if lifetime > MAX_COOKIE_LIFETIME:
                    info.excessive_expiration += 1
                    months = round(lifetime.days / 30)
                    issues.append(CookieSecurityIssue(
                        cookie_name=cookie.name,
                        issue="excessive_expiration",
                        description=f'Cookie "{cookie.name}" expires in {months} months (max recommended: 13)',
                        recommendation="Reduce cookie lifetime to maximum 13 months as per CNIL guidelines",
                    ))

        info.issues = issues[:MAX_COOKIE_SECURITY_ISSUES]
        return info

    def reset(self) -> None:
        self._mixed_content = []

    @staticmethod
    def generate_issues(security: SecurityInfo) -> List[Issue]:
        issues: List[Issue] = []
        cookie_security = security.cookie_security

        if not security.https.enabled:
            issues.append(Issue(
                code="NO_HTTPS",
                title="Website not using HTTPS",
                description="The website is not served over a secure HTTPS connection.",
                risk_level=RiskLevel.HIGH,
                recommendation="Enable HTTPS with a valid SSL/TLS certificate to encrypt data in transit.",
            ))

        if security.mixed_content.found:
            issues.append(Issue(
                code="MIXED_CONTENT",
                title="Mixed content detected",
                description=(
                    f"{len(security.mixed_content.resources)} resource(s) are loaded over "
                    f"insecure HTTP on an HTTPS page."
                ),
                risk_level=RiskLevel.MEDIUM,
                recommendation="Ensure all resources (scripts, images, stylesheets) are loaded over HTTPS.",
            ))

        if cookie_security.excessive_expiration > 0:
            issues.append(Issue(
                code="COOKIE_EXCESSIVE_EXPIRATION",
                title="Cookies with excessive lifetime",
                description=(
                    f"{cookie_security.excessive_expiration} cookie(s) have a lifetime "
                    f"exceeding 13 months (CNIL guideline)."
                ),
                risk_level=RiskLevel.MEDIUM,
                recommendation="Reduce cookie lifetime to maximum 13 months as recommended by CNIL.",
            ))

        if cookie_security.without_secure > 0 and security.https.enabled:
            issues.append(Issue(
                code="COOKIES_WITHOUT_SECURE",
                title="Cookies missing Secure flag",
                description=(
                    f"{cookie_security.without_secure} cookie(s) are missing the Secure "
                    f"flag on an HTTPS site."
                ),
                risk_level=RiskLevel.MEDIUM,
                recommendation="Add the Secure flag to all cookies to ensure they are only sent over HTTPS.",
            ))

        if cookie_security.without_same_site > 3:
            issues.append(Issue(
                code="COOKIES_WITHOUT_SAMESITE",
                title="Cookies missing SameSite attribute",
                description=f"{cookie_security.without_same_site} cookie(s) are missing the SameSite attribute.",
                risk_level=RiskLevel.LOW,
                recommendation="Add SameSite=Lax or SameSite=Strict to cookies for CSRF protection.",
            ))

        return issues
