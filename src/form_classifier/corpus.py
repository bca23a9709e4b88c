"""Annotated training corpus loading.

A corpus is a directory with an ``index.json`` and the HTML files it
references::

    {
      "pages": [
        {
          "file": "example-login.html",
          "url": "https://example.com/login",
          "page_type": "login",
          "forms": [
            {"type": "login", "fields": {"user": "username", "pass": "password"}}
          ]
        }
      ]
    }

Annotated forms are paired with the page's ``<form>`` elements by position.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import lxml.html

from . import markup
from .errors import CorpusError

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"


@dataclass
class AnnotatedForm:
    """Form type and ``{field name: field type}`` annotations of one form."""

    type: str
    fields: dict[str, str] = field(default_factory=dict)


@dataclass
class AnnotatedPage:
    """One annotated HTML page."""

    html: str
    url: str = ""
    page_type: str | None = None
    forms: list[AnnotatedForm] = field(default_factory=list)
    source: str = ""

    def parse(self) -> lxml.html.HtmlElement:
        return markup.load_html(self.html)

    def paired_forms(
        self, doc: lxml.html.HtmlElement | None = None
    ) -> list[tuple[lxml.html.HtmlElement, AnnotatedForm]]:
        """Pair ``<form>`` elements with their annotations by position."""
        elements = markup.get_forms(doc if doc is not None else self.parse())
        if len(self.forms) > len(elements):
            logger.warning(
                "%s: %d form annotations but only %d <form> elements; extra annotations ignored",
                self.source or "page", len(self.forms), len(elements),
            )
        return list(zip(elements, self.forms))


def _parse_form(data: object, where: str) -> AnnotatedForm:
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise CorpusError(f"{where}: each form needs a string 'type'")
    fields = data.get("fields") or {}
    if not isinstance(fields, dict):
        raise CorpusError(f"{where}: 'fields' must be a mapping of field name to type")
    return AnnotatedForm(type=data["type"], fields={str(k): str(v) for k, v in fields.items()})


def load_corpus(path: str | Path) -> list[AnnotatedPage]:
    """Load every page listed in ``<path>/index.json``.

    Raises:
        CorpusError: If the index or a referenced HTML file is missing or
            malformed.
    """
    root = Path(path)
    index_path = root / INDEX_FILE
    if not index_path.is_file():
        raise CorpusError(f"Corpus index not found: {index_path}")
    try:
        with open(index_path, "r", encoding="utf-8") as f:
            index = json.load(f)
    except json.JSONDecodeError as exc:
        raise CorpusError(f"Invalid JSON in {index_path}: {exc}") from exc

    entries = index.get("pages") if isinstance(index, dict) else None
    if not isinstance(entries, list):
        raise CorpusError(f"{index_path}: expected a 'pages' list")

    pages: list[AnnotatedPage] = []
    for i, entry in enumerate(entries):
        where = f"{index_path}#pages[{i}]"
        if not isinstance(entry, dict) or not isinstance(entry.get("file"), str):
            raise CorpusError(f"{where}: each page needs a 'file'")
        html_path = root / entry["file"]
        if not html_path.is_file():
            raise CorpusError(f"{where}: file not found: {html_path}")
        pages.append(AnnotatedPage(
            html=html_path.read_text(encoding="utf-8", errors="replace"),
            url=entry.get("url") or "",
            page_type=entry.get("page_type"),
            forms=[_parse_form(form, where) for form in entry.get("forms") or []],
            source=entry["file"],
        ))

    logger.info("Loaded %d annotated pages from %s", len(pages), root)
    return pages
