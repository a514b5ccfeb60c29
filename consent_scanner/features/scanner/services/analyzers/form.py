import logging
from typing import Dict, List

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from consent_scanner.features.scanner.schemas.scan_result import (
    FormInfo,
    FormsAnalysisResult,
    Issue,
    RiskLevel,
)
from consent_scanner.features.scanner.services.browser.browser_session import matches_crash_signature

logger = logging.getLogger(__name__)

FORM_TYPE_INDICATORS = [
    ("contact", ["contact", "kontakt", "message", "inquiry", "support", "feedback"]),
    ("newsletter", ["newsletter", "subscribe", "subscription", "mailing", "signup", "sign-up"]),
    ("login", ["login", "signin", "sign-in", "logon"]),
    ("registration", ["register", "create-account", "join"]),
    ("search", ["search", "query", "find"]),
]

# Collects one record per <form>, plus one per email input living outside a
# form (SPA widgets). Everything is lowercased in the page.
_COLLECT_FORMS_JS = """
() => {
    const consentWords = ['agree', 'consent', 'accept', 'privacy', 'terms', 'gdpr'];
    const marketingWords = ['marketing', 'newsletter', 'promotional', 'offers', 'subscribe'];
    const lower = s => (s || '').toLowerCase();

    const inspect = (root, action) => {
        const info = {
            action: lower(action),
            text: lower(root.textContent).slice(0, 500),
            email: false, name: false, phone: false, message: false,
            consent: false, privacyLink: false, preCheckedMarketing: false,
        };
        root.querySelectorAll('input, textarea').forEach(input => {
            const type = lower(input.type);
            const name = lower(input.name);
            const id = lower(input.id);
            const placeholder = lower(input.placeholder);
            if (type === 'email' || name.includes('email') || id.includes('email') || placeholder.includes('email')) info.email = true;
            if (name.includes('name') || id.includes('name') || placeholder.includes('name')) info.name = true;
            if (type === 'tel' || name.includes('phone') || name.includes('tel') || id.includes('phone')) info.phone = true;
            if (input.tagName === 'TEXTAREA' || name.includes('message') || id.includes('message')) info.message = true;
        });
        root.querySelectorAll('input[type="checkbox"]').forEach(cb => {
            const label = cb.closest('label');
            const text = lower(label ? label.textContent : '')
                || lower(cb.nextElementSibling ? cb.nextElementSibling.textContent : '')
                || lower(cb.parentElement ? cb.parentElement.textContent : '');
            if (consentWords.some(w => text.includes(w))) info.consent = true;
            if (cb.checked && marketingWords.some(w => text.includes(w))) info.preCheckedMarketing = true;
        });
        root.querySelectorAll('a').forEach(a => {
            const href = lower(a.href);
            const text = lower(a.textContent);
            if (href.includes('privacy') || href.includes('datenschutz') || text.includes('privacy') || text.includes('datenschutz')) info.privacyLink = true;
        });
        return info;
    };

    const results = Array.from(document.querySelectorAll('form')).map(f => inspect(f, f.getAttribute('action')));
    if (results.length === 0) {
        document.querySelectorAll('input[type="email"]').forEach(input => {
            if (input.closest('form')) return;
            const container = input.closest('div, section, article');
            if (container) results.push(inspect(container, null));
        });
    }
    return results;
}
"""


def classify_form(raw: Dict) -> str:
    text = raw.get("text") or ""
    action = raw.get("action") or ""
    for form_type, indicators in FORM_TYPE_INDICATORS:
        if any(i in text or i in action for i in indicators):
            return form_type

    if raw.get("message") and raw.get("email"):
        return "contact"
    if raw.get("email") and not raw.get("name") and not raw.get("message"):
        return "newsletter"
    return "other"


def summarize_forms(forms: List[FormInfo], pages_scanned: List[str]) -> FormsAnalysisResult:
    identifies = [f for f in forms if f.has_email_field or f.has_name_field]
    return FormsAnalysisResult(
        total_forms=len(forms),
        data_collection_forms=sum(1 for f in forms if f.collects_personal_data),
        forms_with_consent=sum(1 for f in identifies if f.has_consent_checkbox),
        forms_without_consent=sum(1 for f in identifies if not f.has_consent_checkbox),
        forms_with_pre_checked_marketing=sum(1 for f in forms if f.has_pre_checked_marketing),
        forms_with_privacy_link=sum(1 for f in identifies if f.has_privacy_policy_link),
        forms=forms,
        pages_scanned=pages_scanned,
    )


class FormAnalyzer:
    """Inspects the forms of the loaded page. Search forms are ignored."""

    async def analyze(self, page) -> FormsAnalysisResult:
        try:
            await page.wait_for_selector(
                'form, input[type="email"], input[type="text"]', timeout=3000
            )
        except PlaywrightTimeoutError:
            pass

        try:
            raw_forms = await page.evaluate(_COLLECT_FORMS_JS)
        except PlaywrightError as e:
            if matches_crash_signature(e):
                raise
            logger.warning(f"Form inspection failed on {page.url}: {e}")
            raw_forms = []

        forms = []
        for raw in raw_forms or []:
            form_type = classify_form(raw)
            if form_type == "search":
                continue
            forms.append(FormInfo(
                type=form_type,
                has_email_field=bool(raw.get("email")),
                has_name_field=bool(raw.get("name")),
                has_phone_field=bool(raw.get("phone")),
                has_consent_checkbox=bool(raw.get("consent")),
                has_privacy_policy_link=bool(raw.get("privacyLink")),
                has_pre_checked_marketing=bool(raw.get("preCheckedMarketing")),
            ))

        return summarize_forms(forms, [page.url])

    @staticmethod
    def generate_issues(forms: FormsAnalysisResult) -> List[Issue]:
        issues: List[Issue] = []

        if forms.forms_without_consent > 0:
            issues.append(Issue(
                code="FORMS_WITHOUT_CONSENT",
                title="Forms collecting personal data without consent",
                description=(
                    f"{forms.forms_without_consent} form(s) collect personal data without "
                    f"a consent checkbox."
                ),
                risk_level=RiskLevel.HIGH,
                recommendation=(
                    "Add an unchecked consent checkbox with a link to the privacy policy "
                    "to every form that collects personal data."
                ),
            ))

        if forms.forms_with_pre_checked_marketing > 0:
            issues.append(Issue(
                code="FORMS_PRECHECKED_MARKETING",
                title="Pre-checked marketing consent in forms",
                description=(
                    f"{forms.forms_with_pre_checked_marketing} form(s) have marketing or "
                    f"newsletter checkboxes checked by default."
                ),
                risk_level=RiskLevel.HIGH,
                recommendation="Marketing consent checkboxes must be unchecked by default.",
            ))

        missing_links = forms.data_collection_forms - forms.forms_with_privacy_link
        if forms.data_collection_forms > 0 and missing_links > 0:
            issues.append(Issue(
                code="FORMS_NO_PRIVACY_LINK",
                title="Forms without privacy policy link",
                description=(
                    f"{missing_links} data collection form(s) do not link to the privacy policy."
                ),
                risk_level=RiskLevel.LOW,
                recommendation="Link to the privacy policy near every form that collects personal data.",
            ))

        return issues
