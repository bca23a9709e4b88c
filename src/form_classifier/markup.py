"""HTML traversal helpers built on lxml.

Locates forms, inputs, labels, links and page-level text in a parsed
document. Every helper tolerates missing attributes and elements and
returns empty strings / zero counts instead of raising.
"""

from __future__ import annotations

import re
from collections import Counter

import lxml.html
from lxml import etree

_WHITESPACE_RE = re.compile(r"\s+")

# Input types that never hold user-visible data
_INVISIBLE_TYPES = frozenset({"hidden"})
_BUTTON_TYPES = frozenset({"submit", "button", "reset", "image"})

_FIELD_XPATH = (
    ".//input[not(@type) or translate(@type, 'HIDEN', 'hiden') != 'hidden']"
    " | .//textarea | .//select"
)


def load_html(html: str) -> lxml.html.HtmlElement:
    """Parse an HTML string into a document tree.

    The text is handed to lxml as UTF-8 bytes so pages that open with an
    XML declaration parse like any other. Empty or unparseable input
    yields an empty ``<html>`` document.
    """
    if not html or not html.strip():
        return lxml.html.document_fromstring("<html><body></body></html>")
    try:
        parser = lxml.html.HTMLParser(recover=True, encoding="utf-8")
        return lxml.html.document_fromstring(html.encode("utf-8"), parser=parser)
    except etree.ParserError:
        return lxml.html.document_fromstring("<html><body></body></html>")


def normalize_text(text: str) -> str:
    """Collapse whitespace runs and strip."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def element_text(el: lxml.html.HtmlElement) -> str:
    return normalize_text(el.text_content())


def outer_html(el: lxml.html.HtmlElement) -> str:
    """Serialized element without its trailing text."""
    return lxml.html.tostring(el, encoding="unicode", with_tail=False)


def get_forms(doc: lxml.html.HtmlElement) -> list[lxml.html.HtmlElement]:
    """All ``<form>`` elements in document order."""
    return list(doc.iter("form"))


def input_type(el: lxml.html.HtmlElement) -> str:
    """Lowercased input type; ``textarea`` / ``select`` for those tags."""
    tag = el.tag.lower() if isinstance(el.tag, str) else ""
    if tag in ("textarea", "select"):
        return tag
    if tag == "button":
        return (el.get("type") or "submit").strip().lower()
    return (el.get("type") or "text").strip().lower()


def get_type_counts(form: lxml.html.HtmlElement) -> Counter[str]:
    """Count inputs by type, plus ``textarea`` and ``select`` elements."""
    counts: Counter[str] = Counter()
    for el in form.xpath(".//input | .//textarea | .//select"):
        counts[input_type(el)] += 1
    return counts


def get_fields(form: lxml.html.HtmlElement) -> list[lxml.html.HtmlElement]:
    """Visible data-entry elements (non-hidden, non-button inputs, textareas, selects)."""
    return [el for el in form.xpath(_FIELD_XPATH) if input_type(el) not in _BUTTON_TYPES]


def get_input_count(form: lxml.html.HtmlElement) -> int:
    return len(get_fields(form))


def get_form_method(form: lxml.html.HtmlElement) -> str:
    return (form.get("method") or "GET").strip().upper()


def get_form_action(form: lxml.html.HtmlElement) -> str:
    return (form.get("action") or "").strip()


def get_submit_texts(form: lxml.html.HtmlElement) -> str:
    """Text of submit controls: input values, image alt text, button text."""
    parts: list[str] = []
    for el in form.xpath(".//input | .//button"):
        kind = input_type(el)
        if el.tag == "button" and kind == "submit":
            parts.append(element_text(el) or el.get("value") or "")
        elif kind == "submit":
            parts.append(el.get("value") or "")
        elif kind == "image":
            parts.append(el.get("alt") or el.get("value") or "")
    return normalize_text(" ".join(parts))


def get_links_text(form: lxml.html.HtmlElement) -> str:
    return normalize_text(" ".join(element_text(a) for a in form.iter("a")))


def get_label_text(form: lxml.html.HtmlElement) -> str:
    return normalize_text(" ".join(element_text(label) for label in form.iter("label")))


def css_of(el: lxml.html.HtmlElement) -> str:
    """``class`` and ``id`` attribute values of an element."""
    return normalize_text(f"{el.get('class') or ''} {el.get('id') or ''}")


def get_form_css(form: lxml.html.HtmlElement) -> str:
    return css_of(form)


def get_input_css(form: lxml.html.HtmlElement) -> str:
    return normalize_text(" ".join(css_of(el) for el in get_fields(form)))


def get_input_names(form: lxml.html.HtmlElement) -> str:
    return normalize_text(" ".join(el.get("name") or "" for el in get_fields(form)))


def get_input_titles(form: lxml.html.HtmlElement) -> str:
    return normalize_text(" ".join(el.get("title") or "" for el in get_fields(form)))


def get_field_label(field: lxml.html.HtmlElement) -> str:
    """Text of the ``<label>`` bound to a field via ``for=`` or by nesting."""
    field_id = field.get("id")
    root = field.getroottree().getroot()
    if field_id:
        for label in root.iter("label"):
            if label.get("for") == field_id:
                return element_text(label)
    for ancestor in field.iterancestors():
        if ancestor.tag == "label":
            return element_text(ancestor)
        if ancestor.tag == "form":
            break
    return ""


# ---------------------------------------------------------------------------
# Page-level helpers
# ---------------------------------------------------------------------------


def get_title(doc: lxml.html.HtmlElement) -> str:
    titles = doc.xpath("//title")
    return element_text(titles[0]) if titles else ""


def get_meta_description(doc: lxml.html.HtmlElement) -> str:
    values = doc.xpath(
        "//meta[translate(@name, 'DESCRIPTON', 'descripton')='description']/@content"
    )
    return normalize_text(str(values[0])) if values else ""


def get_headings(doc: lxml.html.HtmlElement, levels: tuple[str, ...] = ("h1", "h2", "h3")) -> str:
    return normalize_text(" ".join(element_text(h) for h in doc.iter(*levels)))


def get_page_css(doc: lxml.html.HtmlElement) -> str:
    """Class/id of ``<body>`` and its direct element children."""
    body = doc.find("body")
    if body is None:
        return ""
    parts = [css_of(body)]
    parts.extend(css_of(child) for child in body if isinstance(child.tag, str))
    return normalize_text(" ".join(parts))


def get_nav_text(doc: lxml.html.HtmlElement) -> str:
    navs = doc.xpath("//nav | //*[@role='navigation'] | //header")
    return normalize_text(" ".join(element_text(n) for n in navs))


def get_body_text(doc: lxml.html.HtmlElement, limit: int = 5000) -> str:
    """Visible body text without scripts and styles, truncated to ``limit``."""
    body = doc.find("body")
    if body is None:
        return ""
    parts: list[str] = []
    for el in body.iter():
        if isinstance(el.tag, str) and el.tag not in ("script", "style", "noscript") and el.text:
            parts.append(el.text)
        if el is not body and el.tail:
            parts.append(el.tail)
    return normalize_text(" ".join(parts))[:limit]


def count_tags(doc: lxml.html.HtmlElement, *tags: str) -> int:
    return sum(1 for _ in doc.iter(*tags))
