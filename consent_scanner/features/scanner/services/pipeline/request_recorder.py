import logging
from typing import List

from consent_scanner.features.scanner.schemas.scan_result import ThirdPartyRequest
from consent_scanner.features.scanner.services.analyzers.base import ScanAnalyzers
from consent_scanner.features.scanner.services.pipeline.url_utils import hostname, is_same_site

logger = logging.getLogger(__name__)


class RequestRecorder:
    """
    Request observer attached to the scanned page.

    Every request is forwarded to the stateful analyzers; third-party ones
    are also recorded with the consent flag as it stood when they fired.
    """

    def __init__(self, base_host: str, page_is_https: bool, analyzers: ScanAnalyzers):
        self.base_host = base_host
        self.page_is_https = page_is_https
        self.analyzers = analyzers
        self.consent_given = False
        self.third_party_requests: List[ThirdPartyRequest] = []

    def on_request(self, request) -> None:
        url = request.url
        try:
            host = hostname(url)
        except ValueError:
            # data:, blob: and friends
            logger.debug(f"Skipping request without host: {url[:80]}")
            return

        before_consent = not self.consent_given

        if not is_same_site(self.base_host, host):
            self.third_party_requests.append(ThirdPartyRequest(
                url=url,
                domain=host,
                type=request.resource_type,
                before_consent=before_consent,
            ))
            self.analyzers.trackers.analyze_request(request, before_consent)

        self.analyzers.security.track_mixed_content(request, self.page_is_https)
        self.analyzers.data_transfer.analyze_request(request)
        self.analyzers.technology.track_request(request)
