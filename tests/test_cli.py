"""Tests for the command-line interface."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from form_classifier.cli import main

from conftest import login_page


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def model_path(trained, tmp_path):
    path = tmp_path / "model.json"
    trained.save(path)
    return path


@pytest.fixture
def html_file(tmp_path):
    path = tmp_path / "page.html"
    path.write_text(login_page(0), encoding="utf-8")
    return path


class TestTrain:

    def test_train_writes_model(self, runner, corpus_dir, tmp_path):
        output = tmp_path / "out" / "model.json"
        result = runner.invoke(main, ["train", str(corpus_dir), "-o", str(output), "--max-iter", "50"])
        assert result.exit_code == 0, result.output
        assert output.is_file()
        data = json.loads(output.read_text(encoding="utf-8"))
        assert set(data) == {"version", "form", "field", "page"}
        assert "Trained models" in result.output

    def test_train_missing_index(self, runner, tmp_path):
        result = runner.invoke(main, ["train", str(tmp_path), "-o", str(tmp_path / "m.json")])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_train_invalid_c(self, runner, corpus_dir, tmp_path):
        result = runner.invoke(main, ["train", str(corpus_dir), "--C", "0", "-o", str(tmp_path / "m.json")])
        assert result.exit_code == 1
        assert "C must be positive" in result.output


class TestRun:

    def test_json_output(self, runner, model_path, html_file):
        result = runner.invoke(main, ["run", str(html_file), "--model", str(model_path), "-o", "json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [f["type"] for f in data["forms"]] == ["search", "login"]
        assert data["forms"][1]["fields"]["password"] == "password"

    def test_proba_output(self, runner, model_path, html_file):
        result = runner.invoke(
            main,
            ["run", str(html_file), "--model", str(model_path), "--proba", "--threshold", "0", "-o", "json"],
        )
        assert result.exit_code == 0, result.output
        login = json.loads(result.output)["forms"][1]
        assert sum(login["type"].values()) == pytest.approx(1.0, abs=1e-3)

    def test_page_output(self, runner, model_path, html_file):
        result = runner.invoke(
            main,
            ["run", str(html_file), "--model", str(model_path), "--page",
             "--url", "https://example.com/account/login", "-o", "json"],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["type"] == "login"
        assert len(data["forms"]) == 2

    def test_rich_output(self, runner, model_path, html_file):
        result = runner.invoke(main, ["run", str(html_file), "--model", str(model_path), "--page"])
        assert result.exit_code == 0, result.output
        assert "Page type" in result.output
        assert "password" in result.output

    def test_missing_model(self, runner, html_file, tmp_path):
        result = runner.invoke(main, ["run", str(html_file), "--model", str(tmp_path / "missing.json")])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_corrupt_model(self, runner, html_file, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"version": "1.0", "form": {"pipelines": []}}), encoding="utf-8")
        result = runner.invoke(main, ["run", str(html_file), "--model", str(path)])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestEvaluate:

    def test_evaluate(self, runner, corpus_dir):
        result = runner.invoke(main, ["evaluate", str(corpus_dir), "--folds", "2"])
        assert result.exit_code == 0, result.output
        assert "Mean accuracy" in result.output

    def test_invalid_folds(self, runner, corpus_dir):
        result = runner.invoke(main, ["evaluate", str(corpus_dir), "--folds", "1"])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestMain:

    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("train", "run", "evaluate"):
            assert command in result.output
