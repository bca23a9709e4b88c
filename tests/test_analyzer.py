"""Tests for the FormFieldClassifier facade."""

from __future__ import annotations

import json

import pytest

from form_classifier.analyzer import MODEL_VERSION, FormFieldClassifier
from form_classifier.config import MODEL_ENV_VAR
from form_classifier.corpus import AnnotatedForm, AnnotatedPage
from form_classifier.errors import ModelFormatError, NotFittedError, TrainingError
from form_classifier.models import FormResult, FormResultProba, PageResult, PageResultProba

from conftest import login_page, registration_page, search_page

RECAPTCHA_FIELD = '<div class="g-recaptcha" data-sitekey="abc"></div>'


class TestTraining:

    def test_all_models_trained(self, trained):
        assert trained.form_model is not None
        assert trained.field_model is not None
        assert trained.page_model is not None
        assert set(trained.form_model.classes) == {"login", "search", "registration"}
        assert set(trained.page_model.classes) == {"login", "search", "registration"}

    def test_field_and_page_models_optional(self):
        pages = [
            AnnotatedPage(html=login_page(i), forms=[AnnotatedForm("search"), AnnotatedForm("login")])
            for i in range(2)
        ] + [AnnotatedPage(html=search_page(i), forms=[AnnotatedForm("search")]) for i in range(2)]
        clf = FormFieldClassifier.train(pages)
        assert clf.form_model is not None
        assert clf.field_model is None
        assert clf.page_model is None

    def test_no_annotated_forms_raises(self):
        with pytest.raises(TrainingError):
            FormFieldClassifier.train([AnnotatedPage(html=login_page(0), page_type="login")])


class TestExtractForms:

    def test_form_types(self, trained):
        results = trained.extract_forms(login_page(0))
        assert [r.type for r in results] == ["search", "login"]
        assert all(isinstance(r, FormResult) for r in results)

    def test_unseen_page(self, trained):
        html = registration_page(0).replace("Create your account", "Join us").replace("shipping", "delivery")
        assert [r.type for r in trained.extract_forms(html)] == ["registration"]

    def test_field_types(self, trained):
        login = trained.extract_forms(login_page(1))[1]
        assert login.fields["email"] == "email"
        assert login.fields["password"] == "password"
        assert set(login.fields) == {"email", "password", "remember"}

    def test_registration_fields(self, trained):
        fields = trained.extract_forms(registration_page(2))[0].fields
        assert fields["username"] == "username"
        assert fields["password2"] == "password confirmation"

    def test_no_forms(self, trained):
        assert trained.extract_forms("<html><body><p>No forms here</p></body></html>") == []

    def test_empty_html(self, trained):
        assert trained.extract_forms("") == []

    def test_captcha_detected(self, trained):
        results = trained.extract_forms(login_page(0, extra=RECAPTCHA_FIELD))
        assert results[0].captcha == ""
        assert results[1].captcha == "recaptcha"
        assert results[1].to_dict()["captcha"] == "recaptcha"

    def test_xml_declaration_page(self, trained):
        html = '<?xml version="1.0" encoding="UTF-8"?>\n' + login_page(0)
        assert [r.type for r in trained.extract_forms(html)] == ["search", "login"]

    def test_text_after_form_not_captcha(self, trained):
        html = search_page(0).replace("</form>", "</form>Protected by hCaptcha")
        assert trained.extract_forms(html)[0].captcha == ""

    def test_to_dict_omits_empty(self, trained):
        data = trained.extract_forms(search_page(0))[0].to_dict()
        assert "captcha" not in data
        assert data["fields"] == {"q": "search query"}

    def test_classify_single_form(self, trained, login_form):
        assert trained.classify(login_form) == "login"


class TestExtractFormsProba:

    def test_probabilities(self, trained):
        results = trained.extract_forms_proba(login_page(0))
        assert all(isinstance(r, FormResultProba) for r in results)
        login = results[1]
        assert sum(login.type.values()) == pytest.approx(1.0)
        assert login.best_type == "login"
        assert sum(login.fields["password"].values()) == pytest.approx(1.0)

    def test_threshold(self, trained):
        results = trained.extract_forms_proba(login_page(0), threshold=0.3)
        for result in results:
            assert all(p >= 0.3 for p in result.type.values())
            for proba in result.fields.values():
                assert all(p >= 0.3 for p in proba.values())

    def test_threshold_does_not_change_field_form_type(self, trained):
        full = trained.extract_forms_proba(login_page(0), threshold=0.0)[1]
        filtered = trained.extract_forms_proba(login_page(0), threshold=1.01)[1]
        assert filtered.type == {}
        assert filtered.best_type == ""
        assert set(filtered.fields) == set(full.fields)

    def test_classify_proba_single_form(self, trained, login_form):
        probs = trained.classify_proba(login_form, threshold=0.0)
        assert max(probs, key=probs.get) == "login"


class TestPageType:

    def test_page_type(self, trained):
        result = trained.extract_page_type(login_page(3), url="https://example.com/account/login")
        assert isinstance(result, PageResult)
        assert result.type == "login"
        assert [f.type for f in result.forms] == ["search", "login"]
        assert result.captcha == ""

    def test_search_page(self, trained):
        assert trained.extract_page_type(search_page(1)).type == "search"

    def test_page_captcha_from_form(self, trained):
        result = trained.extract_page_type(login_page(0, extra=RECAPTCHA_FIELD))
        assert result.captcha == "recaptcha"

    def test_page_captcha_from_html(self, trained):
        html = login_page(0).replace(
            "</body>", '<script src="https://js.hcaptcha.com/1/api.js"></script></body>'
        )
        assert trained.extract_page_type(html).captcha == "hcaptcha"

    def test_page_type_proba(self, trained):
        result = trained.extract_page_type_proba(registration_page(0), threshold=0.0)
        assert isinstance(result, PageResultProba)
        assert sum(result.type.values()) == pytest.approx(1.0)
        assert max(result.type, key=result.type.get) == "registration"
        assert result.forms[0].best_type == "registration"
        assert result.to_dict()["forms"][0]["fields"]

    def test_page_without_page_model_raises(self, trained):
        clf = FormFieldClassifier(trained.form_model, trained.field_model)
        with pytest.raises(NotFittedError, match="Page model"):
            clf.extract_page_type(login_page(0))
        with pytest.raises(NotFittedError):
            clf.extract_page_type_proba(login_page(0))


class TestNotFitted:

    def test_no_form_model(self):
        clf = FormFieldClassifier(None)
        with pytest.raises(NotFittedError):
            clf.extract_forms(login_page(0))
        with pytest.raises(NotFittedError):
            clf.extract_forms_proba(login_page(0))
        with pytest.raises(NotFittedError):
            clf.to_dict()

    def test_fields_empty_without_field_model(self, trained):
        clf = FormFieldClassifier(trained.form_model)
        results = clf.extract_forms(login_page(0))
        assert [r.type for r in results] == ["search", "login"]
        assert all(r.fields == {} for r in results)


class TestPersistence:

    def test_roundtrip(self, trained, tmp_path):
        path = tmp_path / "model.json"
        trained.save(path)
        loaded = FormFieldClassifier.load(path)

        html = login_page(2)
        assert loaded.extract_forms_proba(html) == trained.extract_forms_proba(html)
        assert loaded.extract_page_type_proba(html) == trained.extract_page_type_proba(html)

    def test_file_layout(self, trained, tmp_path):
        path = tmp_path / "model.json"
        trained.save(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["version"] == MODEL_VERSION
        assert set(data) == {"version", "form", "field", "page"}

    def test_optional_models_saved_as_null(self, trained, tmp_path):
        path = tmp_path / "model.json"
        FormFieldClassifier(trained.form_model).save(path)
        loaded = FormFieldClassifier.load(path)
        assert loaded.field_model is None
        assert loaded.page_model is None

    def test_load_from_environment(self, trained, tmp_path, monkeypatch):
        path = tmp_path / "env-model.json"
        trained.save(path)
        monkeypatch.setenv(MODEL_ENV_VAR, str(path))
        assert FormFieldClassifier.load().form_model.classes == trained.form_model.classes

    def test_missing_form_model_rejected(self):
        with pytest.raises(ModelFormatError):
            FormFieldClassifier.from_dict({"version": MODEL_VERSION, "form": None})

    def test_invalid_json_rejected(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ModelFormatError):
            FormFieldClassifier.load(path)

    def test_dimension_mismatch_rejected(self, trained):
        data = trained.to_dict()
        data["page"]["coef"] = [row[:-1] for row in data["page"]["coef"]]
        with pytest.raises(ModelFormatError):
            FormFieldClassifier.from_dict(data)


class TestEvaluate:

    def test_cross_validation(self, annotated_pages):
        results = FormFieldClassifier.evaluate(annotated_pages, k=2, seed=1)
        assert len(results) == 2
        assert all(0.0 <= m.accuracy <= 1.0 for m in results)

    def test_no_forms_raises(self):
        with pytest.raises(TrainingError):
            FormFieldClassifier.evaluate([AnnotatedPage(html="<p>nothing</p>")])
