"""
Bot-protection detection and challenge responses.

ProtectionDetector classifies a fetched page as clean, as an interstitial
challenge page (browser check, DDoS-protection banner), or as protected
by a CAPTCHA widget. Classification is a pure function of the response
body and status code.

ChallengeResponder reacts to a verdict: it shapes request headers and
cookies for a challenge-page retry, and it delegates CAPTCHA solving to
an external solver service, translating the returned token into the
form field the widget expects.
"""
import logging
import re
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from harvest.constants import DEFAULT_CAPTCHA_SERVICE
from harvest.exceptions import SolverRejected, SolverUnavailable
from harvest.infrastructure.fetcher import RequestOptions
from harvest.infrastructure.user_agents import UserAgentProvider
from harvest.models import ProtectionKind, ProtectionVerdict
from harvest.utils.captcha_solver import (
    BaseCaptchaSolver,
    CaptchaType,
    SolverStatus,
    get_solver,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Detection Markers
# =============================================================================

# Literal markers of interstitial verification pages (matched case-insensitively)
CHALLENGE_PAGE_MARKERS = [
    "cf-browser-verification",
    "cf_chl_",
    "cf-please-wait",
    "just a moment...",
    "checking your browser",
    "ddos protection by cloudflare",
]

# Vendor names that mark a 403/503 response as a protection page
PROTECTION_VENDOR_MARKERS = [
    "cloudflare",
    "ddos-guard",
]

PROTECTION_STATUS_CODES = {403, 503}

# First matching type wins
CAPTCHA_MARKERS: List[Tuple[CaptchaType, List[str]]] = [
    (CaptchaType.RECAPTCHA_V2, [
        'class="g-recaptcha"',
        "recaptcha/api2/anchor",
        "grecaptcha.render",
    ]),
    (CaptchaType.RECAPTCHA_V3, [
        "recaptcha/api.js?render=",
        "recaptcha/enterprise.js?render=",
        "grecaptcha.execute",
    ]),
    (CaptchaType.HCAPTCHA, [
        "hcaptcha.com/1/api.js",
        'class="h-captcha"',
        "js.hcaptcha.com",
    ]),
    (CaptchaType.TURNSTILE, [
        "challenges.cloudflare.com/turnstile/v0",
        'class="cf-turnstile"',
    ]),
    (CaptchaType.IMAGE_CAPTCHA, [
        "captcha.php",
        "captcha.jpg",
        "captcha.png",
        "captchaimage",
    ]),
]

SITE_KEY_PATTERN = re.compile(r"""data-sitekey\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
RENDER_KEY_PATTERN = re.compile(r"[?&]render=([A-Za-z0-9_-]+)")
RENDER_KEYWORDS = {"explicit", "onload"}

# Form field each widget reads its solution token from
RESPONSE_FIELDS: Dict[CaptchaType, str] = {
    CaptchaType.RECAPTCHA_V2: "g-recaptcha-response",
    CaptchaType.RECAPTCHA_V3: "g-recaptcha-response",
    CaptchaType.HCAPTCHA: "h-captcha-response",
    CaptchaType.TURNSTILE: "cf-turnstile-response",
}
GENERIC_RESPONSE_FIELD = "captcha-response"

# Cookie names set by Cloudflare while a visitor passes its challenge
CLOUDFLARE_COOKIE_PREFIXES = (
    "cf_clearance",
    "cf_chl_",
    "__cf_bm",
    "__cfduid",
)


# =============================================================================
# Detection
# =============================================================================

class ProtectionDetector:
    """Classifies fetched pages by the bot protection they show."""

    def classify(self, body: str, status_code: int) -> ProtectionVerdict:
        """
        Classify a fetched page.

        Challenge pages are checked before CAPTCHA widgets, so a page
        showing both is reported as a challenge page.

        Args:
            body: Response body
            status_code: HTTP status code

        Returns:
            ProtectionVerdict
        """
        text = (body or "").lower()

        indicators = self._challenge_indicators(text, status_code)
        if indicators:
            return ProtectionVerdict(
                kind=ProtectionKind.CHALLENGE_PAGE,
                indicators=tuple(indicators),
            )

        for captcha_type, markers in CAPTCHA_MARKERS:
            matched = [marker for marker in markers if marker.lower() in text]
            if matched:
                return ProtectionVerdict(
                    kind=ProtectionKind.CAPTCHA,
                    challenge_type=captcha_type,
                    site_key=extract_site_key(body, captcha_type),
                    indicators=tuple(matched),
                )

        return ProtectionVerdict(kind=ProtectionKind.CLEAN)

    @staticmethod
    def _challenge_indicators(text: str, status_code: int) -> List[str]:
        indicators = [marker for marker in CHALLENGE_PAGE_MARKERS if marker in text]
        if indicators:
            return indicators

        if status_code in PROTECTION_STATUS_CODES:
            vendors = [marker for marker in PROTECTION_VENDOR_MARKERS if marker in text]
            if vendors:
                return [f"status:{status_code}"] + vendors

        return []


def extract_site_key(body: str, captcha_type: Optional[CaptchaType] = None) -> Optional[str]:
    """
    Extract the public site key of a CAPTCHA widget.

    Reads the data-sitekey attribute; for reCAPTCHA v3 the render=<key>
    parameter of the script URL is used when no attribute is present.
    """
    match = SITE_KEY_PATTERN.search(body or "")
    if match:
        return match.group(1).strip() or None

    if captcha_type == CaptchaType.RECAPTCHA_V3:
        for render_match in RENDER_KEY_PATTERN.finditer(body or ""):
            key = render_match.group(1)
            if key.lower() not in RENDER_KEYWORDS:
                return key

    return None


def is_protection_cookie(name: str) -> bool:
    return name.startswith(CLOUDFLARE_COOKIE_PREFIXES)


def format_cookie_header(cookies: Dict[str, str]) -> str:
    """Format cookies as a Cookie header value."""
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


# =============================================================================
# Responses
# =============================================================================

class ChallengeResponder:
    """Best-effort reactions to challenge pages and CAPTCHA widgets."""

    def __init__(
        self,
        user_agents: Optional[UserAgentProvider] = None,
        solver: Optional[BaseCaptchaSolver] = None,
        solver_factory: Callable[..., BaseCaptchaSolver] = get_solver,
        solver_service: str = DEFAULT_CAPTCHA_SERVICE,
    ):
        """
        Args:
            user_agents: Provider used to rebuild identity headers
            solver: Solver to use instead of building one from the credential
            solver_factory: Builds a solver from (service, api_key=...)
            solver_service: Service name passed to the factory
        """
        self.user_agents = user_agents or UserAgentProvider()
        self._solver = solver
        self._solver_factory = solver_factory
        self._solver_service = solver_service

    def prepare_bypass(
        self,
        url: str,
        identity: Optional[str],
        baseline: RequestOptions,
        cookies: Optional[Dict[str, str]] = None,
    ) -> RequestOptions:
        """
        Shape request options for a retry after a challenge page.

        Adds Referer/Origin headers for the target origin, keeps the
        identity headers consistent, follows redirects and carries any
        cookies the challenge response set. Never raises.

        Args:
            url: Target page URL
            identity: User-agent string of the request, if any
            baseline: Options of the request that hit the challenge
            cookies: Cookies set by the challenge response

        Returns:
            Enriched options, or baseline itself when nothing can be improved
        """
        try:
            parts = urlsplit(url)
        except ValueError as e:
            logger.warning(f"Cannot prepare challenge bypass for {url}: {e}")
            return baseline

        if not parts.scheme or not parts.netloc:
            logger.warning(f"Cannot prepare challenge bypass for {url}: no origin")
            return baseline

        origin = f"{parts.scheme}://{parts.netloc}"
        options = baseline.copy()
        if identity:
            options.headers.update(self.user_agents.headers_for(identity))
        options.headers.update({
            "Referer": origin,
            "Origin": origin,
            "Sec-Fetch-Site": "same-origin",
        })
        options.follow_redirects = True

        if cookies:
            options.cookies.update(cookies)
            carried = [name for name in cookies if is_protection_cookie(name)]
            if carried:
                logger.debug(f"Carrying protection cookies: {', '.join(carried)}")

        return options

    def _get_solver(self, credential: str) -> BaseCaptchaSolver:
        if self._solver is None:
            self._solver = self._solver_factory(self._solver_service, api_key=credential)
        return self._solver

    async def request_solution(
        self,
        captcha_type: CaptchaType,
        site_key: str,
        url: str,
        solver_credential: Optional[str] = None,
    ) -> str:
        """
        Ask the external solver for a CAPTCHA token.

        Args:
            captcha_type: Detected widget type
            site_key: Public site key of the widget
            url: Page the widget appears on
            solver_credential: API key for the solver service

        Returns:
            Solution token

        Raises:
            SolverUnavailable: If no credential is configured
            SolverRejected: If the solver did not return a solution
        """
        if not solver_credential:
            raise SolverUnavailable("No CAPTCHA solver credential configured")

        try:
            solver = self._get_solver(solver_credential)
        except ValueError as e:
            raise SolverUnavailable(str(e)) from e

        try:
            result = await solver.solve(captcha_type=captcha_type, sitekey=site_key, page_url=url)
        except SolverRejected:
            raise
        except Exception as e:
            logger.error(f"{solver.service_name} failed unexpectedly: {e}")
            raise SolverRejected(
                f"{solver.service_name} failed on {captcha_type.value}: {e}"
            ) from e

        if result.status != SolverStatus.SOLVED or not result.solution:
            reason = result.error or result.status.value
            raise SolverRejected(
                f"{solver.service_name} could not solve {captcha_type.value}: {reason}"
            )

        return result.solution

    @staticmethod
    def apply_solution(captcha_type: CaptchaType, token: str) -> Dict[str, str]:
        """Translate a solution token into the form field the widget expects."""
        field_name = RESPONSE_FIELDS.get(captcha_type, GENERIC_RESPONSE_FIELD)
        return {field_name: token}
