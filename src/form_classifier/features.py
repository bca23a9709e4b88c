"""Feature extractors and feature pipelines.

An extractor reads a markup node and produces either a short text string
(``TextExtractor``) or a mapping of boolean / categorical features
(``DictExtractor``). A ``FeaturePipeline`` binds one extractor to one
vectorizer configuration; an ordered list of pipelines defines a model's
feature space, block by block.

Three node kinds are used:

- form classifier: an lxml ``<form>`` element;
- field classifier: a ``FieldContext`` (field element, its form and the
  predicted form type);
- page classifier: a ``PageContext`` (document, predicted form types, URL).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Union
from urllib.parse import urlparse

import lxml.html

from . import markup
from .errors import ModelFormatError
from .vectorizers import ANALYZERS, ENGLISH_STOP_WORDS, DictVectorizer, TfidfVectorizer

VECTORIZER_KINDS: tuple[str, ...] = ("dict", "count", "tfidf")

Vectorizer = Union[DictVectorizer, TfidfVectorizer]


# ---------------------------------------------------------------------------
# Node contexts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldContext:
    """A form field together with its form and the form's predicted type."""

    element: lxml.html.HtmlElement
    form: lxml.html.HtmlElement
    form_type: str = ""


@dataclass(frozen=True)
class PageContext:
    """A parsed page together with the predicted types of its forms."""

    doc: lxml.html.HtmlElement
    form_types: tuple[str, ...] = ()
    url: str = ""


# ---------------------------------------------------------------------------
# Extractor variants
# ---------------------------------------------------------------------------


class TextExtractor(ABC):
    """Extractor producing a text string for the n-gram vectorizer."""

    kind: ClassVar[str] = "text"
    type_tag: ClassVar[str] = ""

    @abstractmethod
    def extract_text(self, node: Any) -> str:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))


class DictExtractor(ABC):
    """Extractor producing a feature mapping for the dict vectorizer."""

    kind: ClassVar[str] = "dict"
    type_tag: ClassVar[str] = ""

    @abstractmethod
    def extract_dict(self, node: Any) -> dict[str, Any]:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))


Extractor = Union[TextExtractor, DictExtractor]


# ---------------------------------------------------------------------------
# Form extractors
# ---------------------------------------------------------------------------


class FormElements(DictExtractor):
    """Structural features: counts of input kinds and the form method."""

    type_tag = "FormElements"

    def extract_dict(self, node: lxml.html.HtmlElement) -> dict[str, Any]:
        counts = markup.get_type_counts(node)
        input_count = markup.get_input_count(node)
        return {
            "has <textarea>": counts["textarea"] > 0,
            "has <input type=radio>": counts["radio"] > 0,
            "has <select>": counts["select"] > 0,
            "has <input type=checkbox>": counts["checkbox"] > 0,
            "has <input type=email>": counts["email"] > 0,
            "2 or 3 inputs": input_count in (2, 3),
            "no <input type=password>": counts["password"] == 0,
            "exactly one <input type=password>": counts["password"] == 1,
            "exactly two <input type=password>": counts["password"] == 2,
            "no <input type=text>": counts["text"] == 0,
            "exactly one <input type=text>": counts["text"] == 1,
            "exactly two <input type=text>": counts["text"] == 2,
            "3 or more <input type=text>": counts["text"] >= 3,
            "<form method": markup.get_form_method(node),
        }


class SubmitText(TextExtractor):
    type_tag = "SubmitText"

    def extract_text(self, node: lxml.html.HtmlElement) -> str:
        return markup.get_submit_texts(node)


class FormLinksText(TextExtractor):
    type_tag = "FormLinksText"

    def extract_text(self, node: lxml.html.HtmlElement) -> str:
        return markup.get_links_text(node)


class FormLabelText(TextExtractor):
    type_tag = "FormLabelText"

    def extract_text(self, node: lxml.html.HtmlElement) -> str:
        return markup.get_label_text(node)


def _normalize_url_part(part: str) -> str:
    return part.replace("/", "").replace("_", "").replace("-", "")


class FormUrl(TextExtractor):
    """Form action URL with separators stripped, scheme and host dropped."""

    type_tag = "FormUrl"

    def extract_text(self, node: lxml.html.HtmlElement) -> str:
        action = markup.get_form_action(node)
        if not action:
            return ""
        if "//" not in action:
            action = "http://" + action
        try:
            parsed = urlparse(action)
        except ValueError:
            return action
        head = "".join(_normalize_url_part(p) for p in (parsed.path, parsed.params, parsed.query))
        return head + "#" + _normalize_url_part(parsed.fragment)


class FormCss(TextExtractor):
    type_tag = "FormCss"

    def extract_text(self, node: lxml.html.HtmlElement) -> str:
        return markup.get_form_css(node)


class FormInputCss(TextExtractor):
    type_tag = "FormInputCss"

    def extract_text(self, node: lxml.html.HtmlElement) -> str:
        return markup.get_input_css(node)


class FormInputNames(TextExtractor):
    type_tag = "FormInputNames"

    def extract_text(self, node: lxml.html.HtmlElement) -> str:
        return markup.get_input_names(node)


class FormInputTitle(TextExtractor):
    type_tag = "FormInputTitle"

    def extract_text(self, node: lxml.html.HtmlElement) -> str:
        return markup.get_input_titles(node)


# ---------------------------------------------------------------------------
# Field extractors
# ---------------------------------------------------------------------------


class FieldElement(DictExtractor):
    """Tag, input type and form type of a single field."""

    type_tag = "FieldElement"

    def extract_dict(self, node: FieldContext) -> dict[str, Any]:
        el = node.element
        return {
            "tag": el.tag,
            "type": markup.input_type(el),
            "form type": node.form_type or None,
            "required": el.get("required") is not None,
            "has value": bool((el.get("value") or "").strip()),
            "has placeholder": bool((el.get("placeholder") or "").strip()),
            "autocomplete": (el.get("autocomplete") or "").strip().lower() or None,
        }


class FieldName(TextExtractor):
    type_tag = "FieldName"

    def extract_text(self, node: FieldContext) -> str:
        return node.element.get("name") or ""


class FieldLabel(TextExtractor):
    type_tag = "FieldLabel"

    def extract_text(self, node: FieldContext) -> str:
        return markup.get_field_label(node.element)


class FieldPlaceholder(TextExtractor):
    """Placeholder and title attributes."""

    type_tag = "FieldPlaceholder"

    def extract_text(self, node: FieldContext) -> str:
        el = node.element
        return markup.normalize_text(f"{el.get('placeholder') or ''} {el.get('title') or ''}")


class FieldCss(TextExtractor):
    type_tag = "FieldCss"

    def extract_text(self, node: FieldContext) -> str:
        return markup.css_of(node.element)


# ---------------------------------------------------------------------------
# Page extractors
# ---------------------------------------------------------------------------


def _bucket(count: int) -> str:
    if count == 0:
        return "0"
    if count == 1:
        return "1"
    if count <= 5:
        return "2-5"
    if count <= 20:
        return "6-20"
    return "20+"


class PageStructure(DictExtractor):
    """Coarse page structure: presence of landmark tags and size buckets."""

    type_tag = "PageStructure"

    def extract_dict(self, node: PageContext) -> dict[str, Any]:
        doc = node.doc
        password_inputs = doc.xpath("//input[translate(@type, 'PASWORD', 'pasword')='password']")
        search_inputs = doc.xpath("//input[translate(@type, 'SEARCH', 'search')='search']")
        return {
            "has <form>": markup.count_tags(doc, "form") > 0,
            "has <input type=password>": bool(password_inputs),
            "has <input type=search>": bool(search_inputs),
            "has <article>": markup.count_tags(doc, "article") > 0,
            "has <nav>": markup.count_tags(doc, "nav") > 0,
            "has <table>": markup.count_tags(doc, "table") > 0,
            "has <video>": markup.count_tags(doc, "video") > 0,
            "has <main>": markup.count_tags(doc, "main") > 0,
            "links": _bucket(markup.count_tags(doc, "a")),
            "forms": _bucket(markup.count_tags(doc, "form")),
            "inputs": _bucket(markup.count_tags(doc, "input", "textarea", "select")),
        }


class PageTitle(TextExtractor):
    type_tag = "PageTitle"

    def extract_text(self, node: PageContext) -> str:
        return markup.get_title(node.doc)


class PageMetaDescription(TextExtractor):
    type_tag = "PageMetaDescription"

    def extract_text(self, node: PageContext) -> str:
        return markup.get_meta_description(node.doc)


class PageHeadings(TextExtractor):
    type_tag = "PageHeadings"

    def extract_text(self, node: PageContext) -> str:
        return markup.get_headings(node.doc)


class PageH1(TextExtractor):
    type_tag = "PageH1"

    def extract_text(self, node: PageContext) -> str:
        return markup.get_headings(node.doc, ("h1",))


class PageCss(TextExtractor):
    type_tag = "PageCss"

    def extract_text(self, node: PageContext) -> str:
        return markup.get_page_css(node.doc)


class PageNavText(TextExtractor):
    type_tag = "PageNavText"

    def extract_text(self, node: PageContext) -> str:
        return markup.get_nav_text(node.doc)


class FormTypeSummary(DictExtractor):
    """Which form types the form classifier found on the page."""

    type_tag = "FormTypeSummary"

    def extract_dict(self, node: PageContext) -> dict[str, Any]:
        summary: dict[str, Any] = {f"has {form_type} form": True for form_type in node.form_types}
        summary["form count"] = _bucket(len(node.form_types))
        return summary


class PageBodyText(TextExtractor):
    type_tag = "PageBodyText"

    def extract_text(self, node: PageContext) -> str:
        return markup.get_body_text(node.doc)


class PageUrl(TextExtractor):
    """Path and query of the page URL."""

    type_tag = "PageUrl"

    def extract_text(self, node: PageContext) -> str:
        if not node.url:
            return ""
        try:
            parsed = urlparse(node.url)
        except ValueError:
            return node.url
        return markup.normalize_text(f"{parsed.path} {parsed.query}")


EXTRACTORS: dict[str, type] = {
    cls.type_tag: cls
    for cls in (
        FormElements, SubmitText, FormLinksText, FormLabelText, FormUrl,
        FormCss, FormInputCss, FormInputNames, FormInputTitle,
        FieldElement, FieldName, FieldLabel, FieldPlaceholder, FieldCss,
        PageStructure, PageTitle, PageMetaDescription, PageHeadings, PageH1,
        PageCss, PageNavText, FormTypeSummary, PageBodyText, PageUrl,
    )
}


def get_extractor(type_tag: str) -> Extractor:
    """Instantiate a registered extractor from its persisted type tag.

    Raises:
        ModelFormatError: If the tag is unknown.
    """
    try:
        return EXTRACTORS[type_tag]()
    except KeyError:
        raise ModelFormatError(
            f"Unknown extractor type: {type_tag!r}. Known: {', '.join(sorted(EXTRACTORS))}"
        ) from None


# ---------------------------------------------------------------------------
# Feature Pipeline
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FeaturePipeline:
    """One extractor bound to one vectorizer configuration.

    Args:
        name: Human-readable block name (persisted).
        extractor: ``DictExtractor`` for ``dict`` pipelines, otherwise a
            ``TextExtractor``.
        vectorizer: ``"dict"``, ``"count"`` or ``"tfidf"``.
        ngram_range: Inclusive n-gram length range.
        min_df: Minimum document frequency for a term to get a column.
        binary: Presence instead of counts.
        analyzer: ``"word"`` or ``"char_wb"``.
        stop_words: Explicit stop words (``word`` analyzer only).
        use_english_stop: Use the built-in English stop-word list.
    """

    name: str
    extractor: Extractor
    vectorizer: str = "tfidf"
    ngram_range: tuple[int, int] = (1, 1)
    min_df: int = 1
    binary: bool = False
    analyzer: str = "word"
    stop_words: Optional[frozenset[str]] = None
    use_english_stop: bool = False

    def __post_init__(self) -> None:
        if self.vectorizer not in VECTORIZER_KINDS:
            raise ValueError(
                f"Unknown vectorizer kind: {self.vectorizer!r}. Known: {VECTORIZER_KINDS}"
            )
        if self.analyzer not in ANALYZERS:
            raise ValueError(f"Unknown analyzer: {self.analyzer!r}. Known: {ANALYZERS}")
        expected = "dict" if self.vectorizer == "dict" else "text"
        if getattr(self.extractor, "kind", None) != expected:
            raise TypeError(
                f"Pipeline {self.name!r}: {self.vectorizer} vectorizer needs a "
                f"{expected} extractor, got {self.extractor!r}"
            )
        if self.stop_words is not None:
            object.__setattr__(self, "stop_words", frozenset(self.stop_words))
        object.__setattr__(self, "ngram_range", tuple(self.ngram_range))

    @property
    def effective_stop_words(self) -> Optional[frozenset[str]]:
        return ENGLISH_STOP_WORDS if self.use_english_stop else self.stop_words

    def make_vectorizer(self) -> Vectorizer:
        """Build a fresh, unfitted vectorizer for this pipeline."""
        if self.vectorizer == "dict":
            return DictVectorizer()
        return TfidfVectorizer(
            ngram_range=self.ngram_range,
            min_df=self.min_df,
            binary=self.binary,
            analyzer=self.analyzer,
            stop_words=self.effective_stop_words,
            use_idf=self.vectorizer == "tfidf",
        )

    def extract(self, node: Any) -> Union[str, dict[str, Any]]:
        """Run the extractor; the output form follows the extractor kind."""
        if isinstance(self.extractor, DictExtractor):
            return self.extractor.extract_dict(node)
        return self.extractor.extract_text(node)

    def config_dict(self) -> dict:
        return {
            "name": self.name,
            "extractor": self.extractor.type_tag,
            "vectorizer": self.vectorizer,
            "ngram_range": list(self.ngram_range),
            "min_df": self.min_df,
            "binary": self.binary,
            "analyzer": self.analyzer,
            "stop_words": sorted(self.stop_words) if self.stop_words is not None else None,
            "use_english_stop": self.use_english_stop,
        }

    @classmethod
    def from_config(cls, data: dict) -> "FeaturePipeline":
        """Rebuild a pipeline from ``config_dict()`` output.

        Raises:
            ModelFormatError: If the configuration is incomplete or invalid.
        """
        try:
            stop_words = data.get("stop_words")
            return cls(
                name=data["name"],
                extractor=get_extractor(data["extractor"]),
                vectorizer=data["vectorizer"],
                ngram_range=tuple(data.get("ngram_range", (1, 1))),
                min_df=data.get("min_df", 1),
                binary=data.get("binary", False),
                analyzer=data.get("analyzer", "word"),
                stop_words=frozenset(stop_words) if stop_words is not None else None,
                use_english_stop=data.get("use_english_stop", False),
            )
        except (KeyError, TypeError, ValueError) as exc:
            if isinstance(exc, ModelFormatError):
                raise
            raise ModelFormatError(f"Invalid pipeline configuration: {exc}") from exc


# ---------------------------------------------------------------------------
# Default pipeline tables
# ---------------------------------------------------------------------------


def default_form_pipelines() -> list[FeaturePipeline]:
    """The nine form-type feature blocks."""
    return [
        FeaturePipeline("form elements", FormElements(), "dict"),
        FeaturePipeline("submit text", SubmitText(), "count", (1, 2), 1, True, "word"),
        FeaturePipeline(
            "links text", FormLinksText(), "tfidf", (1, 2), 4, True, "word",
            stop_words=frozenset({"and", "or", "of"}),
        ),
        FeaturePipeline(
            "label text", FormLabelText(), "tfidf", (1, 2), 3, True, "word",
            use_english_stop=True,
        ),
        FeaturePipeline("form url", FormUrl(), "tfidf", (5, 6), 4, True, "char_wb"),
        FeaturePipeline("form css", FormCss(), "tfidf", (4, 5), 3, True, "char_wb"),
        FeaturePipeline("input css", FormInputCss(), "tfidf", (4, 5), 5, True, "char_wb"),
        FeaturePipeline("input names", FormInputNames(), "tfidf", (5, 6), 3, True, "char_wb"),
        FeaturePipeline("input title", FormInputTitle(), "tfidf", (5, 6), 3, True, "char_wb"),
    ]


def default_field_pipelines() -> list[FeaturePipeline]:
    return [
        FeaturePipeline("field element", FieldElement(), "dict"),
        FeaturePipeline("field name", FieldName(), "tfidf", (3, 5), 1, True, "char_wb"),
        FeaturePipeline("field label", FieldLabel(), "tfidf", (1, 2), 1, True, "word"),
        FeaturePipeline("field placeholder", FieldPlaceholder(), "tfidf", (1, 2), 1, True, "word"),
        FeaturePipeline("field css", FieldCss(), "tfidf", (4, 5), 2, True, "char_wb"),
    ]


def default_page_pipelines() -> list[FeaturePipeline]:
    return [
        FeaturePipeline("page structure", PageStructure(), "dict"),
        FeaturePipeline("form types", FormTypeSummary(), "dict"),
        FeaturePipeline(
            "title", PageTitle(), "tfidf", (1, 2), 2, True, "word", use_english_stop=True
        ),
        FeaturePipeline(
            "meta description", PageMetaDescription(), "tfidf", (1, 2), 2, True, "word",
            use_english_stop=True,
        ),
        FeaturePipeline("headings", PageHeadings(), "tfidf", (1, 2), 2, True, "word"),
        FeaturePipeline("h1", PageH1(), "tfidf", (1, 1), 2, True, "word"),
        FeaturePipeline("page css", PageCss(), "tfidf", (4, 5), 3, True, "char_wb"),
        FeaturePipeline("nav text", PageNavText(), "tfidf", (1, 1), 3, True, "word"),
        FeaturePipeline(
            "body text", PageBodyText(), "tfidf", (1, 1), 3, True, "word", use_english_stop=True
        ),
        FeaturePipeline("url", PageUrl(), "tfidf", (1, 1), 2, True, "word"),
    ]
