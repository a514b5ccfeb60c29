import logging
from typing import Dict, List, Tuple
from urllib.parse import urlparse

from consent_scanner.features.scanner.schemas.scan_result import (
    DataTransferInfo,
    Issue,
    RiskLevel,
    USServiceInfo,
)

logger = logging.getLogger(__name__)

# domain -> (name, category, data processed)
US_SERVICES: Dict[str, Tuple[str, str, str]] = {
    # analytics
    "google-analytics.com": ("Google Analytics", "analytics", "User behavior, IP address, device info"),
    "analytics.google.com": ("Google Analytics", "analytics", "User behavior, IP address, device info"),
    "googletagmanager.com": ("Google Tag Manager", "analytics", "Tag firing data, user interactions"),
    "hotjar.com": ("Hotjar", "analytics", "Session recordings, heatmaps, user behavior"),
    "fullstory.com": ("FullStory", "analytics", "Session recordings, user interactions"),
    "mixpanel.com": ("Mixpanel", "analytics", "User events, behavior analytics"),
    "segment.com": ("Segment", "analytics", "Customer data, events"),
    "segment.io": ("Segment", "analytics", "Customer data, events"),
    "amplitude.com": ("Amplitude", "analytics", "Product analytics, user behavior"),
    "heap.io": ("Heap", "analytics", "User interactions, events"),
    "newrelic.com": ("New Relic", "analytics", "Performance data, errors"),
    "sentry.io": ("Sentry", "analytics", "Error tracking, stack traces"),
    # advertising
    "doubleclick.net": ("Google Ads (DoubleClick)", "advertising", "Ad targeting, user profiles"),
    "googlesyndication.com": ("Google AdSense", "advertising", "Ad serving, user interests"),
    "googleadservices.com": ("Google Ads", "advertising", "Conversion tracking, remarketing"),
    "facebook.com": ("Facebook/Meta", "advertising", "User profiles, ad targeting"),
    "facebook.net": ("Facebook/Meta", "advertising", "Pixel tracking, conversions"),
    "tiktok.com": ("TikTok", "advertising", "Ad targeting, conversions"),
    "snapchat.com": ("Snapchat", "advertising", "Ad targeting, conversions"),
    "twitter.com": ("Twitter/X", "advertising", "Social tracking, ad targeting"),
    "ads-twitter.com": ("Twitter Ads", "advertising", "Conversion tracking"),
    "linkedin.com": ("LinkedIn", "advertising", "Professional profiles, ad targeting"),
    "bing.com": ("Microsoft Ads", "advertising", "Conversion tracking, remarketing"),
    "criteo.com": ("Criteo", "advertising", "Retargeting, user profiles"),
    "taboola.com": ("Taboola", "advertising", "Content recommendations, tracking"),
    "outbrain.com": ("Outbrain", "advertising", "Content recommendations, tracking"),
    # cdn / cloud
    "cloudflare.com": ("Cloudflare", "cdn", "IP address, request metadata"),
    "cloudfront.net": ("AWS CloudFront", "cdn", "IP address, request metadata"),
    "amazonaws.com": ("Amazon AWS", "cloud", "Hosted data, IP address"),
    "akamai.net": ("Akamai", "cdn", "IP address, request metadata"),
    "fastly.net": ("Fastly", "cdn", "IP address, request metadata"),
    "azureedge.net": ("Microsoft Azure CDN", "cdn", "IP address, request metadata"),
    "googleapis.com": ("Google APIs", "cloud", "IP address, API requests"),
    "gstatic.com": ("Google Static", "cdn", "IP address, request metadata"),
    # social
    "instagram.com": ("Instagram", "social", "Embedded content, user tracking"),
    "youtube.com": ("YouTube", "social", "Video views, user tracking"),
    "ytimg.com": ("YouTube Images", "social", "IP address, request metadata"),
    "pinterest.com": ("Pinterest", "social", "Social tracking, ad targeting"),
    # payment
    "stripe.com": ("Stripe", "payment", "Payment data, fraud signals"),
    "paypal.com": ("PayPal", "payment", "Payment data, account info"),
    "braintreegateway.com": ("Braintree", "payment", "Payment data"),
}

HIGH_RISK_CATEGORIES = {"analytics", "advertising"}
EXCESSIVE_US_SERVICES = 10


def match_us_service(host: str):
    host = host.lower()
    for domain, service in US_SERVICES.items():
        if host == domain or host.endswith("." + domain):
            return domain, service
    return None


class DataTransferAnalyzer:
    """Records every US-based service the page talks to, once per service name."""

    def __init__(self):
        self._services: Dict[str, USServiceInfo] = {}

    def analyze_request(self, request) -> None:
        host = urlparse(request.url).hostname
        if not host:
            return
        match = match_us_service(host)
        if match is None:
            return
        domain, (name, category, data_processed) = match
        if name not in self._services:
            self._services[name] = USServiceInfo(
                name=name, domain=domain, category=category, data_processed=data_processed
            )

    def transfer_info(self) -> DataTransferInfo:
        services = list(self._services.values())
        high_risk = list(dict.fromkeys(
            s.name for s in services if s.category in HIGH_RISK_CATEGORIES
        ))
        return DataTransferInfo(
            us_services_detected=services,
            total_us_services=len(services),
            high_risk_transfers=high_risk,
        )

    def reset(self) -> None:
        self._services.clear()

    @staticmethod
    def generate_issues(transfers: DataTransferInfo) -> List[Issue]:
        issues: List[Issue] = []
        high_risk = transfers.high_risk_transfers

        if high_risk:
            listed = ", ".join(high_risk[:5]) + ("..." if len(high_risk) > 5 else "")
            issues.append(Issue(
                code="US_DATA_TRANSFERS",
                title="Data transfers to US-based services",
                description=f"{len(high_risk)} US-based analytics/advertising service(s) detected: {listed}.",
                risk_level=RiskLevel.HIGH,
                recommendation=(
                    "After Schrems II, transfers to the US require additional safeguards "
                    "(SCCs, supplementary measures). Consider EU-based alternatives or "
                    "ensure a proper legal basis."
                ),
            ))

        if transfers.total_us_services > EXCESSIVE_US_SERVICES:
            issues.append(Issue(
                code="EXCESSIVE_US_SERVICES",
                title="Excessive number of US-based services",
                description=(
                    f"{transfers.total_us_services} US-based services detected. This "
                    f"increases data transfer compliance complexity."
                ),
                risk_level=RiskLevel.MEDIUM,
                recommendation=(
                    "Review and minimize the number of US-based third-party services. "
                    "Consider EU-based alternatives where possible."
                ),
            ))

        return issues
