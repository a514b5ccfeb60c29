from typing import Dict, List, Tuple
from urllib.parse import urlparse

from consent_scanner.features.scanner.schemas.scan_result import CookieInfo


def normalize_url(url: str) -> str:
    """Prefix https:// when the URL carries no scheme."""
    url = url.strip()
    if not url.startswith("http://") and not url.startswith("https://"):
        url = "https://" + url
    return url


def strip_www(host: str) -> str:
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def is_same_site(base_host: str, request_host: str) -> bool:
    """
    First-party check on hostnames with the www. prefix ignored.

    Subdomains of the target count as first party, on a dot boundary only:
    cdn.example.com matches example.com, notexample.com does not.
    """
    base = strip_www(base_host)
    request = strip_www(request_host)
    if not base or not request:
        return False
    return request == base or request.endswith("." + base)


def hostname(url: str) -> str:
    """Hostname of `url`; raises ValueError when there is none."""
    host = urlparse(url).hostname
    if not host:
        raise ValueError(f"URL has no host: {url!r}")
    return host


def merge_cookies(before: List[CookieInfo], after: List[CookieInfo]) -> List[CookieInfo]:
    """
    Merge pre- and post-consent captures keyed by (name, domain).

    The pre-consent record always wins, so its set_before_consent flag is
    kept; cookies only seen after consent are appended in capture order.
    """
    merged: Dict[Tuple[str, str], CookieInfo] = {}
    for cookie in before:
        merged.setdefault(cookie.identity, cookie)
    for cookie in after:
        merged.setdefault(cookie.identity, cookie)
    return list(merged.values())
