"""Form, field and page classification over raw HTML.

The ``FormFieldClassifier`` class is the primary entry point for users. It
bundles up to three ``LinearClassifier`` models:

- form model: form type of each ``<form>`` element (required);
- field model: type of each named field, given the predicted form type;
- page model: page type, given page text/structure and predicted form types.

and merges heuristic CAPTCHA detection into the results.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

import lxml.html

from . import markup
from .captcha import CaptchaDetector, CaptchaType, detect_captcha_in_html
from .classifier import ClassificationMetrics, LinearClassifier, cross_validate
from .config import TrainConfig, find_model
from .corpus import AnnotatedPage
from .errors import ModelFormatError, NotFittedError, TrainingError
from .features import (
    FeaturePipeline,
    FieldContext,
    PageContext,
    default_field_pipelines,
    default_form_pipelines,
    default_page_pipelines,
)
from .models import FormResult, FormResultProba, PageResult, PageResultProba

logger = logging.getLogger(__name__)

MODEL_VERSION = "1.0"


class FormFieldClassifier:
    """High-level form, field and page classifier.

    Example::

        clf = FormFieldClassifier.load("model.json")
        for form in clf.extract_forms(html):
            print(form.type)    # "login"
            print(form.fields)  # {"email": "username or email", "pass": "password"}

        page = clf.extract_page_type(html, url="https://example.com/login")
        print(page.type)        # "login"

    Args:
        form_model: Trained form-type classifier.
        field_model: Trained field-type classifier (optional).
        page_model: Trained page-type classifier (optional).
        captcha_detector: Custom CaptchaDetector instance (optional).
    """

    def __init__(
        self,
        form_model: Optional[LinearClassifier],
        field_model: Optional[LinearClassifier] = None,
        page_model: Optional[LinearClassifier] = None,
        captcha_detector: Optional[CaptchaDetector] = None,
    ) -> None:
        self._form_model = form_model
        self._field_model = field_model
        self._page_model = page_model
        self._captcha = captcha_detector or CaptchaDetector()

    @property
    def form_model(self) -> Optional[LinearClassifier]:
        return self._form_model

    @property
    def field_model(self) -> Optional[LinearClassifier]:
        return self._field_model

    @property
    def page_model(self) -> Optional[LinearClassifier]:
        return self._page_model

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    @classmethod
    def train(
        cls,
        pages: Sequence[AnnotatedPage],
        config: Optional[TrainConfig] = None,
        form_pipelines: Optional[Sequence[FeaturePipeline]] = None,
        field_pipelines: Optional[Sequence[FeaturePipeline]] = None,
        page_pipelines: Optional[Sequence[FeaturePipeline]] = None,
    ) -> "FormFieldClassifier":
        """Train all models an annotated corpus supports.

        The field model is trained only when forms carry field annotations,
        the page model only when pages carry a page type.

        Raises:
            TrainingError: If the corpus has no annotated forms.
        """
        config = config or TrainConfig()
        docs = [page.parse() for page in pages]

        forms: list[lxml.html.HtmlElement] = []
        form_labels: list[str] = []
        field_nodes: list[FieldContext] = []
        field_labels: list[str] = []
        for page, doc in zip(pages, docs):
            for form, annotation in page.paired_forms(doc):
                forms.append(form)
                form_labels.append(annotation.type)
                for element in markup.get_fields(form):
                    name = element.get("name")
                    if name and name in annotation.fields:
                        field_nodes.append(FieldContext(element, form, annotation.type))
                        field_labels.append(annotation.fields[name])

        if not forms:
            raise TrainingError("Corpus contains no annotated forms")

        logger.info("Training form model on %d forms", len(forms))
        form_model = LinearClassifier.train(
            forms, form_labels, list(form_pipelines or default_form_pipelines()), config
        )

        field_model = None
        if field_nodes:
            logger.info("Training field model on %d fields", len(field_nodes))
            field_model = LinearClassifier.train(
                field_nodes, field_labels, list(field_pipelines or default_field_pipelines()), config
            )

        page_model = None
        page_nodes: list[PageContext] = []
        page_labels: list[str] = []
        for page, doc in zip(pages, docs):
            if page.page_type:
                form_types = tuple(form_model.classify(f) for f in markup.get_forms(doc))
                page_nodes.append(PageContext(doc, form_types, page.url))
                page_labels.append(page.page_type)
        if page_nodes:
            logger.info("Training page model on %d pages", len(page_nodes))
            page_model = LinearClassifier.train(
                page_nodes, page_labels, list(page_pipelines or default_page_pipelines()), config
            )

        return cls(form_model, field_model, page_model)

    @staticmethod
    def evaluate(
        pages: Sequence[AnnotatedPage],
        k: int = 5,
        config: Optional[TrainConfig] = None,
        seed: int = 42,
        form_pipelines: Optional[Sequence[FeaturePipeline]] = None,
    ) -> list[ClassificationMetrics]:
        """Cross-validate the form-type model on an annotated corpus."""
        forms: list[lxml.html.HtmlElement] = []
        labels: list[str] = []
        for page in pages:
            for form, annotation in page.paired_forms():
                forms.append(form)
                labels.append(annotation.type)
        if not forms:
            raise TrainingError("Corpus contains no annotated forms")
        return cross_validate(
            forms, labels, list(form_pipelines or default_form_pipelines()), k=k, config=config, seed=seed
        )

    # ------------------------------------------------------------------
    # Single-form API
    # ------------------------------------------------------------------

    def classify(self, form: lxml.html.HtmlElement) -> str:
        """Form type of a single ``<form>`` element."""
        return self._require_form_model().classify(form)

    def classify_proba(self, form: lxml.html.HtmlElement, threshold: float = 0.0) -> dict[str, float]:
        return self._require_form_model().classify_proba(form, threshold)

    def classify_fields(self, form: lxml.html.HtmlElement, form_type: str) -> dict[str, str]:
        """``{field name: field type}``; empty without a field model."""
        if self._field_model is None:
            return {}
        fields: dict[str, str] = {}
        for name, node in self._field_nodes(form, form_type):
            fields[name] = self._field_model.classify(node)
        return fields

    def classify_fields_proba(
        self, form: lxml.html.HtmlElement, form_type: str, threshold: float = 0.0
    ) -> dict[str, dict[str, float]]:
        if self._field_model is None:
            return {}
        return {
            name: self._field_model.classify_proba(node, threshold)
            for name, node in self._field_nodes(form, form_type)
        }

    # ------------------------------------------------------------------
    # HTML API
    # ------------------------------------------------------------------

    def extract_forms(self, html: str) -> list[FormResult]:
        """Classify every form in an HTML string.

        Returns an empty list if the page has no forms.
        """
        model = self._require_form_model()
        results = []
        for form in markup.get_forms(markup.load_html(html)):
            form_type = model.classify(form)
            results.append(FormResult(
                type=form_type,
                captcha=self._form_captcha(form),
                fields=self.classify_fields(form, form_type),
            ))
        return results

    def extract_forms_proba(self, html: str, threshold: float = 0.0) -> list[FormResultProba]:
        """Like ``extract_forms`` but with probabilities at or above ``threshold``."""
        model = self._require_form_model()
        results = []
        for form in markup.get_forms(markup.load_html(html)):
            prediction = model.predict(form, threshold)
            results.append(FormResultProba(
                type=prediction.probabilities,
                captcha=self._form_captcha(form),
                fields=self.classify_fields_proba(form, prediction.predicted_class, threshold),
            ))
        return results

    def extract_page_type(self, html: str, url: str = "") -> PageResult:
        """Classify the page type and every form on the page."""
        form_model = self._require_form_model()
        page_model = self._require_page_model()
        doc = markup.load_html(html)
        forms = markup.get_forms(doc)

        form_results = []
        for form in forms:
            form_type = form_model.classify(form)
            form_results.append(FormResult(
                type=form_type,
                captcha=self._form_captcha(form),
                fields=self.classify_fields(form, form_type),
            ))

        context = PageContext(doc, tuple(r.type for r in form_results), url)
        return PageResult(
            type=page_model.classify(context),
            captcha=self._page_captcha(html, form_results),
            forms=form_results,
        )

    def extract_page_type_proba(self, html: str, url: str = "", threshold: float = 0.0) -> PageResultProba:
        """Page type probabilities; the page model sees the argmax form types."""
        form_model = self._require_form_model()
        page_model = self._require_page_model()
        doc = markup.load_html(html)

        form_results = []
        form_types = []
        for form in markup.get_forms(doc):
            prediction = form_model.predict(form, threshold)
            form_types.append(prediction.predicted_class)
            form_results.append(FormResultProba(
                type=prediction.probabilities,
                captcha=self._form_captcha(form),
                fields=self.classify_fields_proba(form, prediction.predicted_class, threshold),
            ))

        context = PageContext(doc, tuple(form_types), url)
        return PageResultProba(
            type=page_model.classify_proba(context, threshold),
            captcha=self._page_captcha(html, form_results),
            forms=form_results,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        form_model = self._require_form_model()
        return {
            "version": MODEL_VERSION,
            "form": form_model.to_dict(),
            "field": self._field_model.to_dict() if self._field_model else None,
            "page": self._page_model.to_dict() if self._page_model else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FormFieldClassifier":
        """Rebuild all models; dimension mismatches fail here, not at inference.

        Raises:
            ModelFormatError: If the data is malformed.
        """
        if not isinstance(data, dict) or not data.get("form"):
            raise ModelFormatError("Model file has no form model")
        field_data = data.get("field")
        page_data = data.get("page")
        return cls(
            LinearClassifier.from_dict(data["form"]),
            LinearClassifier.from_dict(field_data) if field_data else None,
            LinearClassifier.from_dict(page_data) if page_data else None,
        )

    def save(self, path: str | Path) -> None:
        """Save all models to one JSON file."""
        data = self.to_dict()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        logger.info("Saved model to %s", path)

    @classmethod
    def load(cls, path: str | Path | None = None) -> "FormFieldClassifier":
        """Load models from ``path``, or from ``find_model()`` when omitted."""
        path = Path(path) if path is not None else find_model()
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ModelFormatError(f"Invalid JSON in {path}: {exc}") from exc
        logger.debug("Loading model from %s", path)
        return cls.from_dict(data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_form_model(self) -> LinearClassifier:
        if self._form_model is None:
            raise NotFittedError("Classifier not initialized: no form model loaded")
        return self._form_model

    def _require_page_model(self) -> LinearClassifier:
        if self._page_model is None:
            raise NotFittedError("Page model not available")
        return self._page_model

    @staticmethod
    def _field_nodes(form: lxml.html.HtmlElement, form_type: str) -> list[tuple[str, FieldContext]]:
        """Named fields of a form; the first field wins for repeated names."""
        seen: dict[str, FieldContext] = {}
        for element in markup.get_fields(form):
            name = element.get("name")
            if name and name not in seen:
                seen[name] = FieldContext(element, form, form_type)
        return list(seen.items())

    def _form_captcha(self, form: lxml.html.HtmlElement) -> str:
        captcha_type = self._captcha.detect_in_form(form)
        return "" if captcha_type is CaptchaType.NONE else captcha_type.value

    @staticmethod
    def _page_captcha(html: str, forms: Sequence[FormResult | FormResultProba]) -> str:
        """First form-level CAPTCHA, else a whole-page scan."""
        for form in forms:
            if form.captcha:
                return form.captcha
        captcha_type = detect_captcha_in_html(html)
        return "" if captcha_type is CaptchaType.NONE else captcha_type.value
