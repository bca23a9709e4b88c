"""Heuristic CAPTCHA detection on raw form markup.

``CaptchaDetector.detect_in_form`` runs ordered detection layers over a
form (class names, script domains, data attributes, field names, iframes,
generic markers) and returns the first match. ``detect_captcha_in_html``
scans a whole page (domains, class names, field names). Rule tables are
ordered tuples; more specific markers come before the generic ones they
contain.
"""

from __future__ import annotations

import re
from enum import Enum

import lxml.html

from . import markup


class CaptchaType(str, Enum):
    """Known CAPTCHA providers and kinds."""

    NONE = "none"
    RECAPTCHA = "recaptcha"
    RECAPTCHA_V2 = "recaptchav2"
    RECAPTCHA_INVISIBLE = "recaptcha-invisible"
    HCAPTCHA = "hcaptcha"
    TURNSTILE = "turnstile"
    GEETEST = "geetest"
    FRIENDLY_CAPTCHA = "friendlycaptcha"
    ROTATE_CAPTCHA = "rotatecaptcha"
    CLICK_CAPTCHA = "clickcaptcha"
    IMAGE_CAPTCHA = "imagecaptcha"
    PUZZLE_CAPTCHA = "puzzlecaptcha"
    SLIDER_CAPTCHA = "slidercaptcha"
    MCAPTCHA = "mcaptcha"
    DATADOME = "datadome"
    PERIMETERX = "perimeterx"
    ARGON = "argon"
    BEHAVIOTECH = "behaviotech"
    SMART_CAPTCHA = "smartcaptcha"
    YANDEX = "yandex"
    FUNCAPTCHA = "funcaptcha"
    KASADA = "kasada"
    IMPERVA = "imperva"
    AWS_WAF = "awswaf"
    COINGECKO = "wsiz"
    NOVASCAPE = "novascape"
    SIMPLE = "simplecaptcha"
    OTHER = "other"


def is_valid_captcha_type(value: str) -> bool:
    """Whether ``value`` names a known CAPTCHA type."""
    return value in {t.value for t in CaptchaType}


_Rules = tuple[tuple[CaptchaType, tuple[str, ...]], ...]

_CLASS_RULES: _Rules = (
    (CaptchaType.RECAPTCHA_INVISIBLE, ("g-recaptcha-invisible", "grecaptcha-invisible")),
    (CaptchaType.RECAPTCHA_V2, ("g-recaptcha-v2", "grecaptcha-v2")),
    (CaptchaType.RECAPTCHA, ("g-recaptcha", "grecaptcha")),
    (CaptchaType.HCAPTCHA, ("h-captcha", "hcaptcha")),
    (CaptchaType.TURNSTILE, ("cf-turnstile", "cloudflare-turnstile-challenge", "turnstile")),
    (CaptchaType.GEETEST, ("geetest_", "geetest-box")),
    (CaptchaType.FRIENDLY_CAPTCHA, ("frc-captcha", "friendlycaptcha")),
    (CaptchaType.ROTATE_CAPTCHA, ("rotate-captcha", "rotatecaptcha")),
    (CaptchaType.CLICK_CAPTCHA, ("click-captcha", "clickcaptcha")),
    (CaptchaType.IMAGE_CAPTCHA, ("image-captcha", "imagecaptcha")),
    (CaptchaType.PUZZLE_CAPTCHA, ("puzzle-captcha", "__puzzle_captcha")),
    (CaptchaType.SLIDER_CAPTCHA, ("slider-captcha", "slidercaptcha", "slide-verify")),
    (CaptchaType.DATADOME, ("dd-challenge", "dd-top")),
    (CaptchaType.PERIMETERX, ("_px3", "px-container")),
    (CaptchaType.ARGON, ("argon-captcha",)),
    (CaptchaType.SMART_CAPTCHA, ("smart-captcha",)),
    (CaptchaType.YANDEX, ("smartcaptcha", "yandex-captcha")),
    (CaptchaType.FUNCAPTCHA, ("funcaptcha-container",)),
    (CaptchaType.MCAPTCHA, ("mcaptcha", "mcaptcha-container")),
    (CaptchaType.KASADA, ("kas", "kasada")),
    (CaptchaType.IMPERVA, ("_inc", "incapsula", "imperva")),
    (CaptchaType.AWS_WAF, ("aws-waf", "awswaf")),
)

_SCRIPT_RULES: tuple[tuple[CaptchaType, tuple[re.Pattern[str], ...]], ...] = tuple(
    (captcha_type, tuple(re.compile(p) for p in patterns))
    for captcha_type, patterns in (
        (CaptchaType.RECAPTCHA_INVISIBLE, (r"recaptcha.*invisible", r"grecaptcha\.render.*invisible")),
        (CaptchaType.RECAPTCHA_V2, (r"recaptcha.*v2", r"recaptcha/api\.js")),
        (CaptchaType.RECAPTCHA, (r"google\.com/recaptcha", r"recaptcha.*\.js", r"gstatic\.com/.*recaptcha")),
        (CaptchaType.HCAPTCHA, (r"js\.hcaptcha\.com", r"hcaptcha")),
        (CaptchaType.TURNSTILE, (r"challenges\.cloudflare\.com", r"js\.cloudflare\.com.*turnstile")),
        (CaptchaType.GEETEST, (r"geetest", r"api\.geetest\.com")),
        (CaptchaType.FRIENDLY_CAPTCHA, (r"friendlycaptcha", r"cdn\.friendlycaptcha\.com")),
        (CaptchaType.ROTATE_CAPTCHA, (r"api\.rotatecaptcha\.com",)),
        (CaptchaType.CLICK_CAPTCHA, (r"assets\.clickcaptcha\.com",)),
        (CaptchaType.IMAGE_CAPTCHA, (r"api\.imagecaptcha\.com",)),
        (CaptchaType.PUZZLE_CAPTCHA, (r"puzzle.*captcha",)),
        (CaptchaType.SLIDER_CAPTCHA, (r"slider.*captcha", r"slidercaptcha\.com")),
        (CaptchaType.DATADOME, (r"datadome\.co", r"cdn\.mxpnl\.com")),
        (CaptchaType.PERIMETERX, (r"perimeterx\.net",)),
        (CaptchaType.ARGON, (r"argon.*captcha", r"captcha\.argon")),
        (CaptchaType.BEHAVIOTECH, (r"behaviotech\.com",)),
        (CaptchaType.SMART_CAPTCHA, (r"captcha\.yandex\.com", r"smartcaptcha\.yandex")),
        (CaptchaType.YANDEX, (r"yandex\.com/.*captcha", r"captcha\.yandex")),
        (CaptchaType.FUNCAPTCHA, (r"funcaptcha\.com",)),
        (CaptchaType.COINGECKO, (r"wsiz\.com",)),
        (CaptchaType.NOVASCAPE, (r"novascape\.com",)),
        (CaptchaType.MCAPTCHA, (r"mcaptcha", r"app\.mcaptcha\.io")),
        (CaptchaType.KASADA, (r"kasada", r"kas\.kasadaproducts\.com")),
        (CaptchaType.IMPERVA, (r"/_incapsula_resource", r"incapsula", r"imperva")),
        (CaptchaType.AWS_WAF, (r"/aws-waf-captcha/", r"awswaf\.com", r"captcha\.aws\.amazon\.com")),
    )
)

_DATA_ATTRIBUTE_RULES: _Rules = (
    (CaptchaType.GEETEST, ("id_geetest", "geetest_id")),
    (CaptchaType.FRIENDLY_CAPTCHA, ("frc-captcha", "data-public-key")),
    (CaptchaType.SLIDER_CAPTCHA, ("data-slideshow", "slide-verify-container")),
    (CaptchaType.DATADOME, ("dd-challenge", "dd-action")),
    (CaptchaType.YANDEX, ("data-smartcaptcha", "captcha-container-yandex")),
    (CaptchaType.PERIMETERX, ("_pxappid", "_px3")),
    (CaptchaType.ARGON, ("argon-captcha",)),
    (CaptchaType.SMART_CAPTCHA, ("smart-captcha",)),
)

_SIMPLE_FIELD_MARKERS: tuple[str, ...] = (
    "simplecaptcha",
    "captcha_code",
    "captcha_input",
    "verify_code",
    "verification_code",
    "security_code",
    "text_captcha",
    "captcha_result",
)

_IFRAME_RULES: _Rules = (
    (CaptchaType.RECAPTCHA, ("recaptcha",)),
    (CaptchaType.HCAPTCHA, ("hcaptcha",)),
    (CaptchaType.TURNSTILE, ("challenges.cloudflare.com",)),
    (CaptchaType.GEETEST, ("geetest",)),
    (CaptchaType.SLIDER_CAPTCHA, ("slidercaptcha", "slide-verify")),
    (CaptchaType.MCAPTCHA, ("mcaptcha", "app.mcaptcha.io")),
    (CaptchaType.YANDEX, ("yandex", "smartcaptcha")),
    (CaptchaType.KASADA, ("kasada", "kas")),
    (CaptchaType.IMPERVA, ("incapsula", "imperva")),
    (CaptchaType.DATADOME, ("datadome",)),
)

_PAGE_DOMAIN_RULES: tuple[tuple[CaptchaType, tuple[re.Pattern[str], ...]], ...] = tuple(
    (captcha_type, tuple(re.compile(p) for p in patterns))
    for captcha_type, patterns in (
        (CaptchaType.RECAPTCHA_INVISIBLE, (r"recaptcha.*invisible",)),
        (CaptchaType.RECAPTCHA, (r"google\.com/recaptcha", r"gstatic\.com", r"recaptcha")),
        (CaptchaType.HCAPTCHA, (r"hcaptcha",)),
        (CaptchaType.TURNSTILE, (r"challenges\.cloudflare\.com", r"js\.cloudflare\.com")),
        (CaptchaType.GEETEST, (r"geetest",)),
        (CaptchaType.FRIENDLY_CAPTCHA, (r"friendlycaptcha",)),
        (CaptchaType.ROTATE_CAPTCHA, (r"rotatecaptcha",)),
        (CaptchaType.CLICK_CAPTCHA, (r"clickcaptcha",)),
        (CaptchaType.IMAGE_CAPTCHA, (r"imagecaptcha",)),
        (CaptchaType.PUZZLE_CAPTCHA, (r"puzzle-captcha", r"__puzzle_captcha")),
        (CaptchaType.SLIDER_CAPTCHA, (r"slider-captcha", r"slidercaptcha")),
        (CaptchaType.MCAPTCHA, (r"mcaptcha",)),
        (CaptchaType.KASADA, (r"kasada",)),
        (CaptchaType.IMPERVA, (r"incapsula", r"imperva")),
        (CaptchaType.AWS_WAF, (r"awswaf", r"captcha\.aws\.amazon\.com")),
        (CaptchaType.DATADOME, (r"datadome", r"dd-challenge")),
        (CaptchaType.PERIMETERX, (r"perimeterx", r"_pxappid")),
        (CaptchaType.ARGON, (r"argon-captcha",)),
        (CaptchaType.BEHAVIOTECH, (r"behaviotech",)),
        (CaptchaType.YANDEX, (r"yandex\.(?:com|ru)/.*captcha", r"smartcaptcha\.yandex")),
        (CaptchaType.SMART_CAPTCHA, (r"captcha\.yandex\.com", r"smartcaptcha")),
        (CaptchaType.FUNCAPTCHA, (r"funcaptcha", r"arkose")),
        (CaptchaType.COINGECKO, (r"wsiz\.com",)),
        (CaptchaType.NOVASCAPE, (r"novascape",)),
    )
)


def _match_substrings(text: str, rules: _Rules) -> CaptchaType:
    for captcha_type, markers in rules:
        if any(marker in text for marker in markers):
            return captcha_type
    return CaptchaType.NONE


def _has_simple_field(text: str) -> bool:
    return any(marker in text for marker in _SIMPLE_FIELD_MARKERS)


class CaptchaDetector:
    """Layered CAPTCHA detection on a single form."""

    def detect_in_form(self, form: lxml.html.HtmlElement) -> CaptchaType:
        html = markup.outer_html(form).lower()

        for layer in (
            lambda: _match_substrings(html, _CLASS_RULES),
            lambda: self._detect_by_script_domain(form),
            lambda: _match_substrings(html, _DATA_ATTRIBUTE_RULES),
            lambda: CaptchaType.SIMPLE if _has_simple_field(html) else CaptchaType.NONE,
            lambda: self._detect_by_iframe(html),
        ):
            captcha_type = layer()
            if captcha_type is not CaptchaType.NONE:
                return captcha_type

        if self._has_generic_markers(form, html):
            return CaptchaType.OTHER
        return CaptchaType.NONE

    @staticmethod
    def _detect_by_script_domain(form: lxml.html.HtmlElement) -> CaptchaType:
        """Match ``<script src>`` of the form and of its parent element."""
        scopes = [form]
        parent = form.getparent()
        if parent is not None:
            scopes.append(parent)
        sources = [
            src.lower()
            for scope in scopes
            for script in scope.iter("script")
            if (src := script.get("src"))
        ]
        for captcha_type, patterns in _SCRIPT_RULES:
            for src in sources:
                if any(p.search(src) for p in patterns):
                    return captcha_type
        return CaptchaType.NONE

    @staticmethod
    def _detect_by_iframe(html: str) -> CaptchaType:
        if "iframe" not in html:
            return CaptchaType.NONE
        return _match_substrings(html, _IFRAME_RULES)

    @staticmethod
    def _has_generic_markers(form: lxml.html.HtmlElement, html: str) -> bool:
        if "iframe" in html and any(k in html for k in ("captcha", "challenge", "security")):
            return True
        for script in form.iter("script"):
            text = (script.text_content() or "").lower()
            if any(k in text for k in ("captcha", "antibot", "challenge")):
                return True
        return False


def detect_captcha_in_html(html: str) -> CaptchaType:
    """Scan a whole page: provider domains, then class names, then field names."""
    lowered = (html or "").lower()
    for captcha_type, patterns in _PAGE_DOMAIN_RULES:
        if any(p.search(lowered) for p in patterns):
            return captcha_type
    captcha_type = _match_substrings(lowered, _CLASS_RULES)
    if captcha_type is not CaptchaType.NONE:
        return captcha_type
    if _has_simple_field(lowered):
        return CaptchaType.SIMPLE
    return CaptchaType.NONE
