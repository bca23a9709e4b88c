"""Exception hierarchy for form-classifier.

All package-specific errors inherit from ``FormClassifierError`` so callers
can catch the base class for any failure. Each subclass also derives from
the builtin it refines, which keeps ``except ValueError`` style handlers
working.
"""

from __future__ import annotations


class FormClassifierError(Exception):
    """Base exception for all form-classifier errors."""


class NotFittedError(FormClassifierError, RuntimeError):
    """A vectorizer or model was used before it was fitted or loaded."""


class ModelFormatError(FormClassifierError, ValueError):
    """A persisted model is malformed or its dimensions are inconsistent."""


class TrainingError(FormClassifierError, ValueError):
    """Training input is unusable (no examples, mismatched lengths, ...)."""


class CorpusError(FormClassifierError, ValueError):
    """An annotated corpus directory is missing files or malformed."""
