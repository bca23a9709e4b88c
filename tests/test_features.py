"""Tests for feature extractors and feature pipelines."""

from __future__ import annotations

import lxml.html
import pytest

from form_classifier import markup
from form_classifier.errors import ModelFormatError
from form_classifier.features import (
    EXTRACTORS,
    FeaturePipeline,
    FieldContext,
    FieldElement,
    FieldLabel,
    FieldName,
    FieldPlaceholder,
    FormElements,
    FormInputNames,
    FormLabelText,
    FormLinksText,
    FormTypeSummary,
    FormUrl,
    PageContext,
    PageH1,
    PageStructure,
    PageTitle,
    PageUrl,
    SubmitText,
    default_field_pipelines,
    default_form_pipelines,
    default_page_pipelines,
    get_extractor,
)
from form_classifier.vectorizers import DictVectorizer, TfidfVectorizer

from conftest import first_form, login_page


def _form(html: str) -> lxml.html.HtmlElement:
    return first_form(f"<html><body>{html}</body></html>")


# ---------------------------------------------------------------------------
# Form extractors
# ---------------------------------------------------------------------------


class TestFormExtractors:

    def test_form_elements(self, login_form):
        features = FormElements().extract_dict(login_form)
        assert features["exactly one <input type=password>"] is True
        assert features["no <input type=password>"] is False
        assert features["has <input type=email>"] is True
        assert features["has <input type=checkbox>"] is True
        assert features["2 or 3 inputs"] is True
        assert features["no <input type=text>"] is True
        assert features["<form method"] == "POST"

    def test_form_elements_registration(self, registration_form):
        features = FormElements().extract_dict(registration_form)
        assert features["exactly two <input type=password>"] is True
        assert features["exactly one <input type=text>"] is True
        assert features["2 or 3 inputs"] is False

    def test_form_elements_default_method(self):
        assert FormElements().extract_dict(_form("<form></form>"))["<form method"] == "GET"

    def test_submit_text(self, login_form, search_form):
        assert SubmitText().extract_text(login_form) == "Log in"
        assert SubmitText().extract_text(search_form) == "Search"

    def test_links_text(self, login_form):
        assert FormLinksText().extract_text(login_form) == "Forgot your password?"

    def test_label_text(self, login_form):
        assert FormLabelText().extract_text(login_form) == "Email address Password Remember me"

    def test_input_names(self, login_form):
        assert FormInputNames().extract_text(login_form) == "email password remember"

    def test_form_url_strips_separators(self):
        form = _form('<form action="https://example.com/account/log_in-now?next=/home#top"></form>')
        assert FormUrl().extract_text(form) == "accountloginnownext=home#top"

    def test_form_url_relative(self):
        form = _form('<form action="/search"></form>')
        assert FormUrl().extract_text(form) == "search#"

    def test_form_url_missing_action(self):
        assert FormUrl().extract_text(_form("<form></form>")) == ""

    def test_empty_form_never_raises(self):
        form = _form("<form></form>")
        for tag, cls in EXTRACTORS.items():
            extractor = cls()
            if tag.startswith("Form") and tag != "FormTypeSummary":
                if extractor.kind == "dict":
                    assert isinstance(extractor.extract_dict(form), dict)
                else:
                    assert isinstance(extractor.extract_text(form), str)


# ---------------------------------------------------------------------------
# Field extractors
# ---------------------------------------------------------------------------


class TestFieldExtractors:

    def _field(self, form, name):
        element = next(el for el in markup.get_fields(form) if el.get("name") == name)
        return FieldContext(element, form, "login")

    def test_field_element(self, login_form):
        features = FieldElement().extract_dict(self._field(login_form, "email"))
        assert features["tag"] == "input"
        assert features["type"] == "email"
        assert features["form type"] == "login"
        assert features["required"] is True
        assert features["has placeholder"] is False

    def test_field_element_without_form_type(self, login_form):
        element = markup.get_fields(login_form)[0]
        assert FieldElement().extract_dict(FieldContext(element, login_form))["form type"] is None

    def test_field_name(self, login_form):
        assert FieldName().extract_text(self._field(login_form, "password")) == "password"

    def test_field_label_by_for(self, login_form):
        assert FieldLabel().extract_text(self._field(login_form, "email")) == "Email address"

    def test_field_label_by_nesting(self, login_form):
        assert FieldLabel().extract_text(self._field(login_form, "remember")) == "Remember me"

    def test_field_placeholder(self, search_form):
        element = markup.get_fields(search_form)[0]
        assert FieldPlaceholder().extract_text(FieldContext(element, search_form)) == "Search products"


# ---------------------------------------------------------------------------
# Page extractors
# ---------------------------------------------------------------------------


class TestPageExtractors:

    @pytest.fixture
    def page(self) -> PageContext:
        doc = markup.load_html(login_page(0))
        return PageContext(doc, ("search", "login"), "https://example.com/account/login?next=home")

    def test_page_structure(self, page):
        features = PageStructure().extract_dict(page)
        assert features["has <form>"] is True
        assert features["has <input type=password>"] is True
        assert features["has <nav>"] is True
        assert features["has <article>"] is False
        assert features["forms"] == "2-5"
        assert features["links"] == "2-5"

    def test_title_and_h1(self, page):
        assert PageTitle().extract_text(page) == "Sign in"
        assert PageH1().extract_text(page) == "Sign in"

    def test_form_type_summary(self, page):
        assert FormTypeSummary().extract_dict(page) == {
            "has search form": True,
            "has login form": True,
            "form count": "2-5",
        }

    def test_form_type_summary_no_forms(self):
        page = PageContext(markup.load_html("<p>hi</p>"))
        assert FormTypeSummary().extract_dict(page) == {"form count": "0"}

    def test_page_url(self, page):
        assert PageUrl().extract_text(page) == "/account/login next=home"

    def test_page_url_missing(self):
        assert PageUrl().extract_text(PageContext(markup.load_html(""))) == ""


# ---------------------------------------------------------------------------
# Registry and pipelines
# ---------------------------------------------------------------------------


class TestExtractorRegistry:

    def test_tags_are_unique_and_resolvable(self):
        for tag, cls in EXTRACTORS.items():
            assert cls.type_tag == tag
            assert type(get_extractor(tag)) is cls

    def test_unknown_tag_raises(self):
        with pytest.raises(ModelFormatError, match="Unknown extractor"):
            get_extractor("NoSuchExtractor")

    def test_extractors_compare_by_type(self):
        assert SubmitText() == SubmitText()
        assert SubmitText() != FormUrl()
        assert len({SubmitText(), SubmitText()}) == 1


class TestFeaturePipeline:

    def test_dict_pipeline_needs_dict_extractor(self):
        with pytest.raises(TypeError):
            FeaturePipeline("bad", SubmitText(), "dict")

    def test_text_pipeline_needs_text_extractor(self):
        with pytest.raises(TypeError):
            FeaturePipeline("bad", FormElements(), "tfidf")

    def test_unknown_vectorizer_kind(self):
        with pytest.raises(ValueError):
            FeaturePipeline("bad", SubmitText(), "hashing")

    def test_unknown_analyzer(self):
        with pytest.raises(ValueError):
            FeaturePipeline("bad", SubmitText(), "tfidf", analyzer="char")

    def test_make_vectorizer(self):
        assert isinstance(FeaturePipeline("e", FormElements(), "dict").make_vectorizer(), DictVectorizer)

        count = FeaturePipeline("s", SubmitText(), "count", (1, 2), 1, True).make_vectorizer()
        assert isinstance(count, TfidfVectorizer)
        assert count.use_idf is False
        assert count.binary is True
        assert count.ngram_range == (1, 2)

        tfidf = FeaturePipeline("l", FormLabelText(), "tfidf", use_english_stop=True).make_vectorizer()
        assert tfidf.use_idf is True
        assert "the" in tfidf.stop_words

    def test_extract_follows_extractor_kind(self, login_form):
        assert isinstance(FeaturePipeline("e", FormElements(), "dict").extract(login_form), dict)
        assert FeaturePipeline("s", SubmitText(), "count").extract(login_form) == "Log in"

    def test_config_roundtrip(self):
        for pipeline in default_form_pipelines() + default_field_pipelines() + default_page_pipelines():
            assert FeaturePipeline.from_config(pipeline.config_dict()) == pipeline

    def test_incomplete_config_rejected(self):
        with pytest.raises(ModelFormatError):
            FeaturePipeline.from_config({"name": "x", "vectorizer": "tfidf"})

    def test_default_tables(self):
        form = default_form_pipelines()
        assert len(form) == 9
        assert form[0].vectorizer == "dict"
        assert len({p.name for p in form}) == 9
        assert len(default_field_pipelines()) == 5
        assert len(default_page_pipelines()) == 10
