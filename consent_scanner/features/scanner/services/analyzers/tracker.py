import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from consent_scanner.features.scanner.schemas.scan_result import Issue, RiskLevel, TrackerInfo

TRACKER_PATTERNS: List[Tuple[str, str, List[str]]] = [
    # analytics
    ("Google Analytics", "analytics", [
        r"google-analytics\.com", r"googletagmanager\.com", r"analytics\.google\.com",
    ]),
    ("Hotjar", "analytics", [r"hotjar\.com"]),
    ("Mixpanel", "analytics", [r"mixpanel\.com", r"cdn\.mxpnl\.com"]),
    ("Amplitude", "analytics", [r"amplitude\.com"]),
    ("Heap Analytics", "analytics", [r"heap\.io", r"heapanalytics\.com"]),
    ("Segment", "analytics", [r"segment\.com", r"segment\.io"]),
    ("Matomo", "analytics", [r"matomo\.cloud", r"/matomo\.js", r"/piwik\.js"]),
    ("Adobe Analytics", "analytics", [r"omtrdc\.net", r"demdex\.net", r"2o7\.net"]),
    ("Microsoft Clarity", "analytics", [r"clarity\.ms"]),
    ("Yandex Metrica", "analytics", [r"mc\.yandex\.ru", r"metrika\.yandex"]),
    ("FullStory", "analytics", [r"fullstory\.com"]),
    ("LogRocket", "analytics", [r"logrocket\.(io|com)", r"lr-ingest\.io"]),
    ("Mouseflow", "analytics", [r"mouseflow\.com"]),
    ("Crazy Egg", "analytics", [r"crazyegg\.com"]),
    ("Optimizely", "analytics", [r"optimizely\.com"]),
    ("VWO", "analytics", [r"visualwebsiteoptimizer\.com", r"vwo\.com"]),
    ("PostHog", "analytics", [r"posthog\.com"]),
    ("HubSpot", "analytics", [r"hs-analytics\.net", r"hs-scripts\.com", r"hubspot\.com"]),
    # advertising
    ("Facebook Pixel", "advertising", [r"connect\.facebook\.net", r"facebook\.com/tr"]),
    ("Google Ads", "advertising", [
        r"googleadservices\.com", r"googlesyndication\.com", r"doubleclick\.net",
    ]),
    ("LinkedIn Insight", "advertising", [r"snap\.licdn\.com", r"linkedin\.com/px"]),
    ("Twitter Pixel", "advertising", [r"static\.ads-twitter\.com", r"t\.co/i/adsct"]),
    ("TikTok Pixel", "advertising", [r"analytics\.tiktok\.com"]),
    ("Criteo", "advertising", [r"criteo\.(com|net)"]),
    ("Pinterest Tag", "advertising", [r"ct\.pinterest\.com", r"s\.pinimg\.com/ct"]),
    ("Microsoft Advertising", "advertising", [r"bat\.bing\.com"]),
    ("Taboola", "advertising", [r"taboola\.com"]),
    ("Outbrain", "advertising", [r"outbrain\.com"]),
    ("AdRoll", "advertising", [r"adroll\.com"]),
    # social
    ("Twitter Widgets", "social", [r"platform\.twitter\.com"]),
    ("LinkedIn SDK", "social", [r"platform\.linkedin\.com"]),
    ("AddThis", "social", [r"addthis\.com"]),
    ("ShareThis", "social", [r"sharethis\.com"]),
]

_COMPILED = [
    (name, tracker_type, [re.compile(p, re.IGNORECASE) for p in patterns])
    for name, tracker_type, patterns in TRACKER_PATTERNS
]


def match_tracker(url: str) -> Optional[Tuple[str, str]]:
    for name, tracker_type, patterns in _COMPILED:
        if any(p.search(url) for p in patterns):
            return name, tracker_type
    return None


class TrackerAnalyzer:
    """
    Classifies outgoing requests against known tracker patterns.

    Keeps one record per (tracker, host). A later pre-consent sighting
    overwrites an earlier one so the before-consent flag is sticky.
    """

    def __init__(self):
        self._detected: Dict[Tuple[str, str], TrackerInfo] = {}

    def analyze_request(self, request, before_consent: bool) -> Optional[TrackerInfo]:
        url = request.url
        match = match_tracker(url)
        if match is None:
            return None

        name, tracker_type = match
        domain = urlparse(url).hostname or ""
        key = (name, domain)
        if key in self._detected and not before_consent:
            return None

        info = TrackerInfo(
            name=name,
            type=tracker_type,
            domain=domain,
            loaded_before_consent=before_consent,
        )
        self._detected[key] = info
        return info

    def detected_trackers(self) -> List[TrackerInfo]:
        return list(self._detected.values())

    def reset(self) -> None:
        self._detected.clear()

    @staticmethod
    def generate_issues(trackers: List[TrackerInfo]) -> List[Issue]:
        early = [t for t in trackers if t.loaded_before_consent]
        if not early:
            return []
        names = ", ".join(t.name for t in early)
        return [
            Issue(
                code="TRACKERS_BEFORE_CONSENT",
                title="Tracking scripts loaded before consent",
                description=(
                    f"{len(early)} tracking script(s) were loaded before user consent: {names}."
                ),
                risk_level=RiskLevel.HIGH,
                recommendation="Delay loading of all tracking scripts until user consent is obtained.",
            )
        ]
