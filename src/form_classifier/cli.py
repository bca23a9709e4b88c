"""Command-line interface for form-classifier.

Provides ``train``, ``run`` and ``evaluate`` commands with rich terminal
output using the ``click`` and ``rich`` libraries.

Usage::

    form-classifier train corpus/ -o model.json
    form-classifier run page.html --model model.json
    form-classifier run page.html --page --url https://example.com/login
    form-classifier evaluate corpus/ --folds 5
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .analyzer import FormFieldClassifier
from .config import TrainConfig
from .corpus import load_corpus
from .errors import FormClassifierError

console = Console()


@click.group()
@click.version_option(package_name="form-classifier")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """Form, field and page type classification for HTML."""
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@main.command()
@click.argument("corpus_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), default=Path("model.json"),
              show_default=True, help="Where to write the trained model.")
@click.option("--C", "c", type=float, default=5.0, show_default=True,
              help="Inverse regularization strength.")
@click.option("--max-iter", type=int, default=100, show_default=True,
              help="Optimiser iteration bound.")
@click.option("--no-balance", is_flag=True, help="Disable class-balanced sample weights.")
def train(corpus_dir: Path, output: Path, c: float, max_iter: int, no_balance: bool) -> None:
    """Train form, field and page models on an annotated corpus.

    Example: form-classifier train corpus/ -o model.json
    """
    try:
        config = TrainConfig(C=c, max_iter=max_iter, balance_classes=not no_balance)
        with console.status("[bold blue]Training models...", spinner="dots"):
            pages = load_corpus(corpus_dir)
            clf = FormFieldClassifier.train(pages, config)
            clf.save(output)
    except (FormClassifierError, ValueError, OSError) as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(1)

    table = Table(title="Trained models")
    table.add_column("Model", style="cyan")
    table.add_column("Classes", justify="right")
    table.add_column("Features", justify="right")
    for name, model in (
        ("form", clf.form_model),
        ("field", clf.field_model),
        ("page", clf.page_model),
    ):
        if model is None:
            table.add_row(name, "-", "-")
        else:
            table.add_row(name, str(len(model.classes)), str(model.dim))
    console.print(table)
    console.print(f"\n[dim]Model saved to {output}[/]")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--model", "-m", "model_path", type=click.Path(path_type=Path), default=None,
              help="Model file (default: discovered via FORM_CLASSIFIER_MODEL or model.json).")
@click.option("--proba", is_flag=True, help="Show class probabilities.")
@click.option("--threshold", type=float, default=0.05, show_default=True,
              help="Hide probabilities below this value (with --proba).")
@click.option("--page", is_flag=True, help="Also classify the page type.")
@click.option("--url", default="", help="Page URL (used by page classification).")
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich",
              help="Output format.")
def run(
    file: Path,
    model_path: Path | None,
    proba: bool,
    threshold: float,
    page: bool,
    url: str,
    output: str,
) -> None:
    """Classify the forms (and optionally the page) of an HTML file.

    Example: form-classifier run login.html --proba
    """
    try:
        clf = FormFieldClassifier.load(model_path)
        html = file.read_text(encoding="utf-8", errors="replace")
        if page:
            result = (
                clf.extract_page_type_proba(html, url, threshold)
                if proba else clf.extract_page_type(html, url)
            )
            data = result.to_dict()
        else:
            forms = clf.extract_forms_proba(html, threshold) if proba else clf.extract_forms(html)
            data = {"forms": [f.to_dict() for f in forms]}
    except (FormClassifierError, ValueError, OSError) as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(1)

    if output == "json":
        click.echo(json.dumps(data, indent=2))
    else:
        _render_result(data, file.name)


@main.command()
@click.argument("corpus_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--folds", "-k", type=int, default=5, show_default=True,
              help="Number of cross-validation folds.")
@click.option("--seed", type=int, default=42, show_default=True, help="Fold shuffling seed.")
def evaluate(corpus_dir: Path, folds: int, seed: int) -> None:
    """Cross-validate the form-type model on an annotated corpus.

    Example: form-classifier evaluate corpus/ --folds 5
    """
    try:
        with console.status("[bold blue]Cross-validating...", spinner="dots"):
            pages = load_corpus(corpus_dir)
            results = FormFieldClassifier.evaluate(pages, k=folds, seed=seed)
    except (FormClassifierError, ValueError, OSError) as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(1)

    if not results:
        console.print("[bold red]Error:[/] no fold had both training and test examples")
        sys.exit(1)

    table = Table(title=f"Form type cross-validation ({folds} folds)")
    table.add_column("Fold", justify="right", width=5)
    table.add_column("Accuracy", justify="right")
    table.add_column("Macro F1", justify="right")
    table.add_column("Weighted F1", justify="right")
    for i, metrics in enumerate(results, 1):
        table.add_row(str(i), f"{metrics.accuracy:.1%}", f"{metrics.macro_f1:.3f}",
                      f"{metrics.weighted_f1:.3f}")
    console.print(table)

    mean_accuracy = sum(m.accuracy for m in results) / len(results)
    mean_f1 = sum(m.macro_f1 for m in results) / len(results)
    console.print(f"Mean accuracy: [bold]{mean_accuracy:.1%}[/]  Mean macro F1: [bold]{mean_f1:.3f}[/]")


# ------------------------------------------------------------------
# Rich rendering helpers
# ------------------------------------------------------------------

def _format_type(value) -> str:
    if isinstance(value, dict):
        ranked = sorted(value.items(), key=lambda x: x[1], reverse=True)
        return ", ".join(f"{k} {v:.0%}" for k, v in ranked)
    return str(value)


def _render_result(data: dict, filename: str) -> None:
    """Render form (and page) results with rich formatting."""
    console.print()
    if "type" in data:
        header = f"[bold]Page type:[/] {_format_type(data['type'])}"
        if data.get("captcha"):
            header += f"\n[bold]CAPTCHA:[/] {data['captcha']}"
        console.print(Panel(header, title=filename, border_style="blue"))

    forms = data.get("forms") or []
    if not forms:
        console.print("[dim]No forms found.[/]")
        console.print()
        return

    for i, form in enumerate(forms, 1):
        table = Table(title=f"Form {i}: {_format_type(form['type'])}", show_lines=False)
        table.add_column("Field", style="cyan")
        table.add_column("Type", style="white")
        for name, field_type in (form.get("fields") or {}).items():
            table.add_row(name, _format_type(field_type))
        if form.get("captcha"):
            table.caption = f"CAPTCHA: {form['captcha']}"
        console.print(table)
        console.print()


if __name__ == "__main__":
    main()
