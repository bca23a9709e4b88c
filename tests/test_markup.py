"""Tests for the lxml traversal helpers."""

from __future__ import annotations

from form_classifier import markup

from conftest import first_form, login_page


def _form(html: str):
    return first_form(f"<html><body>{html}</body></html>")


class TestLoadHtml:

    def test_empty_input(self):
        doc = markup.load_html("")
        assert markup.get_forms(doc) == []

    def test_whitespace_input(self):
        assert markup.get_body_text(markup.load_html("   \n ")) == ""

    def test_forms_in_document_order(self):
        forms = markup.get_forms(markup.load_html(login_page(0)))
        assert [f.get("class") for f in forms] == ["header-search", "login-form"]

    def test_xml_declaration(self):
        html = (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<html xmlns="http://www.w3.org/1999/xhtml"><body>'
            '<form action="/login"><input name="user"><input type="password" name="pw"></form>'
            "</body></html>"
        )
        forms = markup.get_forms(markup.load_html(html))
        assert len(forms) == 1
        assert markup.get_form_action(forms[0]) == "/login"

    def test_non_ascii_text(self):
        doc = markup.load_html("<html><head><title>Connexion à votre compte</title></head></html>")
        assert markup.get_title(doc) == "Connexion à votre compte"


class TestFormHelpers:

    def test_fields_exclude_hidden_and_buttons(self):
        form = _form(
            '<form><input type="hidden" name="token"><input name="user">'
            '<input type="SUBMIT" value="Go"><button>Send</button>'
            '<textarea name="msg"></textarea><select name="topic"></select></form>'
        )
        assert [el.get("name") for el in markup.get_fields(form)] == ["user", "msg", "topic"]
        assert markup.get_input_count(form) == 3

    def test_input_type(self):
        form = _form('<form><input name="a"><input type="Email" name="b"><button>x</button></form>')
        inputs = list(form.iter("input", "button"))
        assert [markup.input_type(el) for el in inputs] == ["text", "email", "submit"]

    def test_type_counts(self, registration_form):
        counts = markup.get_type_counts(registration_form)
        assert counts["password"] == 2
        assert counts["text"] == 1
        assert counts["submit"] == 1

    def test_form_method_and_action(self):
        form = _form('<form method="post" action=" /go "></form>')
        assert markup.get_form_method(form) == "POST"
        assert markup.get_form_action(form) == "/go"
        assert markup.get_form_method(_form("<form></form>")) == "GET"

    def test_submit_texts(self):
        form = _form(
            '<form><input type="submit" value="Send"><input type="image" alt="Go">'
            '<button type="button">Cancel</button><button>  Log   in </button></form>'
        )
        assert markup.get_submit_texts(form) == "Send Go Log in"

    def test_css(self, login_form):
        assert markup.get_form_css(login_form) == "login-form login"
        assert markup.get_input_css(login_form) == "email password"

    def test_field_label_missing(self):
        form = _form('<form><input name="x" id="x"></form>')
        assert markup.get_field_label(markup.get_fields(form)[0]) == ""

    def test_outer_html_excludes_tail(self):
        form = _form("<form><input name='q'></form>Protected by hCaptcha")
        html = markup.outer_html(form)
        assert html.endswith("</form>")
        assert "hCaptcha" not in html


class TestPageHelpers:

    def test_title_and_meta(self):
        doc = markup.load_html(
            '<html><head><title> Sign  in </title>'
            '<meta name="Description" content="Access your account"></head><body></body></html>'
        )
        assert markup.get_title(doc) == "Sign in"
        assert markup.get_meta_description(doc) == "Access your account"

    def test_headings(self):
        doc = markup.load_html("<body><h1>One</h1><h2>Two</h2><h4>Four</h4></body>")
        assert markup.get_headings(doc) == "One Two"
        assert markup.get_headings(doc, ("h1",)) == "One"

    def test_body_text_skips_scripts(self):
        doc = markup.load_html("<body><p>Hello <b>big</b> world</p><script>var x = 1;</script>tail</body>")
        assert markup.get_body_text(doc) == "Hello big world tail"

    def test_body_text_limit(self):
        doc = markup.load_html("<body><p>" + "word " * 100 + "</p></body>")
        assert len(markup.get_body_text(doc, limit=20)) == 20

    def test_nav_text(self):
        doc = markup.load_html(login_page(0))
        assert markup.get_nav_text(doc).startswith("Home Help Shop")

    def test_page_css(self):
        doc = markup.load_html('<body class="home"><div id="main"></div><p class="note">x</p></body>')
        assert markup.get_page_css(doc) == "home main note"

    def test_count_tags(self):
        doc = markup.load_html(login_page(0))
        assert markup.count_tags(doc, "form") == 2
        assert markup.count_tags(doc, "input", "button") == 6
