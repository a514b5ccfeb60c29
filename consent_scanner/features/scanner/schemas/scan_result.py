"""
Scan Result Schemas

Evidence collected by the analyzers and the immutable ScanResult the
pipeline hands to the report writer.
"""
import enum
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


CookieCategory = Literal["necessary", "functional", "analytics", "marketing", "unknown"]
TrackerType = Literal["analytics", "advertising", "social", "other"]
FormType = Literal["contact", "newsletter", "login", "registration", "search", "other"]


# ============================================================================
# Cookies, trackers, third-party requests
# ============================================================================

class CookieInfo(BaseModel):
    name: str
    domain: str
    path: str = "/"
    expires: Optional[datetime] = None  # None for session cookies
    http_only: bool = False
    secure: bool = False
    same_site: str = "None"
    category: CookieCategory = "unknown"
    set_before_consent: bool

    @property
    def identity(self) -> tuple:
        return (self.name, self.domain)


class TrackerInfo(BaseModel):
    name: str
    type: TrackerType
    domain: str
    loaded_before_consent: bool


class ThirdPartyRequest(BaseModel):
    url: str
    domain: str
    type: str
    before_consent: bool


# ============================================================================
# Consent banner
# ============================================================================

class ButtonSize(BaseModel):
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height


class ConsentQuality(BaseModel):
    has_pre_checked_boxes: bool = False
    pre_checked_categories: List[str] = Field(default_factory=list)
    has_equal_prominence: bool = True
    accept_button_size: Optional[ButtonSize] = None
    reject_button_size: Optional[ButtonSize] = None
    is_cookie_wall: bool = False
    has_granular_consent: bool = False
    category_count: int = 0


class ConsentBannerInfo(BaseModel):
    found: bool = False
    has_accept_button: bool = False
    has_reject_button: bool = False
    has_settings_option: bool = False
    is_blocking: bool = False
    quality: ConsentQuality = Field(default_factory=ConsentQuality)


# ============================================================================
# Privacy policy
# ============================================================================

class PrivacyPolicyContent(BaseModel):
    analyzed: bool = False
    has_data_controller: bool = False
    has_dpo_contact: bool = False
    has_purpose_of_processing: bool = False
    has_legal_basis: bool = False
    has_data_retention: bool = False
    has_user_rights: bool = False
    has_right_to_complain: bool = False
    has_third_party_sharing: bool = False
    has_international_transfers: bool = False
    detected_elements: List[str] = Field(default_factory=list)
    missing_elements: List[str] = Field(default_factory=list)


class PrivacyPolicyInfo(BaseModel):
    found: bool = False
    url: Optional[str] = None
    content: PrivacyPolicyContent = Field(default_factory=PrivacyPolicyContent)


# ============================================================================
# Security
# ============================================================================

class HttpsInfo(BaseModel):
    enabled: bool
    redirects_to_https: bool = False


class MixedContentInfo(BaseModel):
    found: bool = False
    resources: List[str] = Field(default_factory=list)


class CookieSecurityIssue(BaseModel):
    cookie_name: str
    issue: Literal["no_secure", "no_httponly", "no_samesite", "excessive_expiration"]
    description: str
    recommendation: str


class CookieSecurityInfo(BaseModel):
    without_secure: int = 0
    without_http_only: int = 0
    without_same_site: int = 0
    excessive_expiration: int = 0
    issues: List[CookieSecurityIssue] = Field(default_factory=list)


class SecurityInfo(BaseModel):
    https: HttpsInfo
    mixed_content: MixedContentInfo = Field(default_factory=MixedContentInfo)
    cookie_security: CookieSecurityInfo = Field(default_factory=CookieSecurityInfo)


# ============================================================================
# Forms
# ============================================================================

class FormInfo(BaseModel):
    type: FormType = "other"
    has_email_field: bool = False
    has_name_field: bool = False
    has_phone_field: bool = False
    has_consent_checkbox: bool = False
    has_privacy_policy_link: bool = False
    has_pre_checked_marketing: bool = False

    @property
    def collects_personal_data(self) -> bool:
        return self.has_email_field or self.has_name_field or self.has_phone_field


class FormsAnalysisResult(BaseModel):
    total_forms: int = 0
    data_collection_forms: int = 0
    forms_with_consent: int = 0
    forms_without_consent: int = 0
    forms_with_pre_checked_marketing: int = 0
    forms_with_privacy_link: int = 0
    forms: List[FormInfo] = Field(default_factory=list)
    pages_scanned: List[str] = Field(default_factory=list)


# ============================================================================
# Data transfers and technologies
# ============================================================================

class USServiceInfo(BaseModel):
    name: str
    domain: str
    category: Literal["analytics", "advertising", "cdn", "cloud", "social", "payment", "other"]
    data_processed: str


class DataTransferInfo(BaseModel):
    us_services_detected: List[USServiceInfo] = Field(default_factory=list)
    total_us_services: int = 0
    high_risk_transfers: List[str] = Field(default_factory=list)


class TechnologyInfo(BaseModel):
    name: str
    category: str
    confidence: Literal["high", "medium", "low"] = "high"
    gdpr_relevant: bool = False
    gdpr_note: Optional[str] = None


class TechnologyDetectionResult(BaseModel):
    technologies: List[TechnologyInfo] = Field(default_factory=list)
    cms: Optional[str] = None
    framework: Optional[str] = None
    consent_platform: Optional[str] = None
    analytics: List[str] = Field(default_factory=list)
    advertising: List[str] = Field(default_factory=list)
    cdn: Optional[str] = None


# ============================================================================
# Issues and the final result
# ============================================================================

class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    title: str
    description: str
    risk_level: RiskLevel
    recommendation: str


class CookieSummary(BaseModel):
    total: int
    before_consent: int
    items: List[CookieInfo]


class TrackerSummary(BaseModel):
    total: int
    before_consent: int
    items: List[TrackerInfo]


class ThirdPartyRequestSummary(BaseModel):
    total: int
    before_consent: int
    items: List[ThirdPartyRequest]


class ScanResult(BaseModel):
    """Created once per successful scan; never mutated afterwards."""

    model_config = ConfigDict(frozen=True)

    website_url: str
    scan_date: datetime
    scan_duration_ms: int
    cookies: CookieSummary
    trackers: TrackerSummary
    third_party_requests: ThirdPartyRequestSummary
    consent_banner: ConsentBannerInfo
    privacy_policy: PrivacyPolicyInfo
    security: SecurityInfo
    forms: FormsAnalysisResult
    data_transfers: DataTransferInfo
    technologies: TechnologyDetectionResult
    issues: List[Issue]
    overall_risk_level: RiskLevel
    score: int = Field(ge=0, le=100)
