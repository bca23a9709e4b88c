"""Shared test fixtures for form-classifier tests."""

from __future__ import annotations

import json
from pathlib import Path

import lxml.html
import pytest

from form_classifier.analyzer import FormFieldClassifier
from form_classifier.config import TrainConfig
from form_classifier.corpus import AnnotatedForm, AnnotatedPage

# ---------------------------------------------------------------------------
# Synthetic pages
# ---------------------------------------------------------------------------

NAV = '<nav><a href="/">Home</a> <a href="/help">Help</a> <a href="/shop">Shop</a></nav>'

HEADER_SEARCH = (
    '<form action="/search" method="get" class="header-search">'
    '<input type="search" name="q" placeholder="Search products">'
    '<button type="submit">Search</button>'
    "</form>"
)

LOGIN_TITLES = ["Sign in", "Sign in to your account", "Member sign in", "Sign in | Example"]
SEARCH_TERMS = ["widgets", "garden tools", "blue shoes", "coffee mugs"]
REGISTRATION_TITLES = ["Create account", "Create your account", "Create account | Example", "Create account now"]


def login_page(i: int = 0, extra: str = "") -> str:
    return f"""<html><head><title>{LOGIN_TITLES[i % 4]}</title></head>
<body class="page-login">
{NAV}
<header>{HEADER_SEARCH}</header>
<h1>Sign in</h1>
<form action="/account/login" method="post" class="login-form" id="login">
  <label for="email">Email address</label>
  <input type="email" name="email" id="email" required>
  <label for="password">Password</label>
  <input type="password" name="password" id="password">
  <label><input type="checkbox" name="remember"> Remember me</label>
  <input type="submit" value="Log in">
  <a href="/forgot">Forgot your password?</a>
  {extra}
</form>
<p>Welcome back. Sign in to continue shopping.</p>
</body></html>"""


def search_page(i: int = 0) -> str:
    term = SEARCH_TERMS[i % 4]
    return f"""<html><head><title>Search results for {term}</title></head>
<body class="page-search">
{NAV}
<h1>Search results</h1>
<form action="/search" method="get" class="search-form">
  <input type="search" name="q" value="{term}" placeholder="Search products">
  <button type="submit">Search</button>
</form>
<p>Showing results for {term}. Refine your search below.</p>
</body></html>"""


def registration_page(i: int = 0) -> str:
    return f"""<html><head><title>{REGISTRATION_TITLES[i % 4]}</title></head>
<body class="page-register">
{NAV}
<h1>Create your account</h1>
<form action="/account/register" method="post" class="signup-form">
  <label for="username">Username</label>
  <input type="text" name="username" id="username">
  <label for="reg-email">Email</label>
  <input type="email" name="email" id="reg-email">
  <label for="pw1">Password</label>
  <input type="password" name="password" id="pw1">
  <label for="pw2">Confirm password</label>
  <input type="password" name="password2" id="pw2">
  <input type="submit" value="Sign up">
</form>
<p>Join today and get free shipping on your first order.</p>
</body></html>"""


SEARCH_FIELDS = {"q": "search query"}
LOGIN_FIELDS = {"email": "email", "password": "password", "remember": "remember me checkbox"}
REGISTRATION_FIELDS = {
    "username": "username",
    "email": "email",
    "password": "password",
    "password2": "password confirmation",
}


def make_pages(n: int = 4) -> list[AnnotatedPage]:
    """``n`` annotated login, search and registration pages each."""
    pages: list[AnnotatedPage] = []
    for i in range(n):
        pages.append(AnnotatedPage(
            html=login_page(i),
            url=f"https://shop{i}.example.com/account/login",
            page_type="login",
            forms=[AnnotatedForm("search", dict(SEARCH_FIELDS)), AnnotatedForm("login", dict(LOGIN_FIELDS))],
            source=f"login-{i}.html",
        ))
        pages.append(AnnotatedPage(
            html=search_page(i),
            url=f"https://shop{i}.example.com/search?q=item{i}",
            page_type="search",
            forms=[AnnotatedForm("search", dict(SEARCH_FIELDS))],
            source=f"search-{i}.html",
        ))
        pages.append(AnnotatedPage(
            html=registration_page(i),
            url=f"https://shop{i}.example.com/account/register",
            page_type="registration",
            forms=[AnnotatedForm("registration", dict(REGISTRATION_FIELDS))],
            source=f"registration-{i}.html",
        ))
    return pages


def write_corpus(root: Path, pages: list[AnnotatedPage]) -> Path:
    """Write pages and their ``index.json`` under ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    entries = []
    for page in pages:
        (root / page.source).write_text(page.html, encoding="utf-8")
        entries.append({
            "file": page.source,
            "url": page.url,
            "page_type": page.page_type,
            "forms": [{"type": f.type, "fields": f.fields} for f in page.forms],
        })
    (root / "index.json").write_text(json.dumps({"pages": entries}, indent=2), encoding="utf-8")
    return root


def first_form(html: str, index: int = 0) -> lxml.html.HtmlElement:
    doc = lxml.html.document_fromstring(html)
    return list(doc.iter("form"))[index]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def login_form() -> lxml.html.HtmlElement:
    """The login form (second form) of a login page."""
    return first_form(login_page(0), 1)


@pytest.fixture
def search_form() -> lxml.html.HtmlElement:
    return first_form(search_page(0))


@pytest.fixture
def registration_form() -> lxml.html.HtmlElement:
    return first_form(registration_page(0))


@pytest.fixture
def annotated_pages() -> list[AnnotatedPage]:
    return make_pages()


@pytest.fixture
def corpus_dir(tmp_path: Path) -> Path:
    """An on-disk annotated corpus."""
    return write_corpus(tmp_path / "corpus", make_pages())


@pytest.fixture(scope="session")
def trained() -> FormFieldClassifier:
    """Form, field and page models trained once per test session."""
    return FormFieldClassifier.train(make_pages(), TrainConfig(C=5.0, max_iter=100))
