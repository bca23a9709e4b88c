"""Multinomial logistic regression over sparse feature vectors.

Training minimises the (optionally class-balanced) multinomial
cross-entropy plus an L2 penalty on the weights::

    sum_i w_i * (logsumexp(z_i) - z_i[y_i]) + (1 / C) * sum_c ||coef_c||^2

where ``z_i[c] = coef_c . x_i + intercept_c``. Intercepts are not
penalised. The objective is convex; it is minimised with a small
pure-Python L-BFGS (two-loop recursion, Armijo backtracking), bounded by
``max_iter``.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .errors import ModelFormatError, NotFittedError, TrainingError
from .vectorizers import SparseVector

logger = logging.getLogger(__name__)

_HISTORY_SIZE = 10
_MAX_LINE_SEARCH = 40
_ARMIJO_C1 = 1e-4


# ---------------------------------------------------------------------------
# Math helpers
# ---------------------------------------------------------------------------


def softmax(logits: Sequence[float]) -> list[float]:
    """Numerically stable softmax (max-subtracted)."""
    if not logits:
        return []
    top = max(logits)
    exps = [math.exp(z - top) for z in logits]
    total = sum(exps)
    return [e / total for e in exps]


def argmax(values: Sequence[float]) -> int:
    """Index of the strictly greatest value; the first one wins ties."""
    best_idx = 0
    best = -math.inf
    for idx, value in enumerate(values):
        if value > best:
            best = value
            best_idx = idx
    return best_idx


def balanced_class_weights(y: Sequence[int], n_classes: int) -> list[float]:
    """``n_samples / (n_classes * count(c))`` for every class present."""
    counts = Counter(y)
    n = len(y)
    return [n / (n_classes * counts[c]) if counts[c] else 1.0 for c in range(n_classes)]


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _inf_norm(a: Sequence[float]) -> float:
    return max((abs(x) for x in a), default=0.0)


def multinomial_objective(
    params: Sequence[float],
    X: Sequence[SparseVector],
    y: Sequence[int],
    sample_weight: Sequence[float],
    n_classes: int,
    alpha: float,
) -> tuple[float, list[float]]:
    """Loss and gradient of the penalised multinomial cross-entropy.

    Args:
        params: Flat parameters, class-major weight rows followed by the
            ``n_classes`` intercepts.
        X: Feature vectors, all of the same dimension.
        y: Integer class index per sample.
        sample_weight: Loss weight per sample.
        n_classes: Number of classes.
        alpha: L2 penalty strength (``1 / C``).

    Returns:
        Tuple of (loss, gradient) with the gradient laid out like ``params``.
    """
    dim = X[0].dim if X else 0
    bias = n_classes * dim
    grad = [0.0] * len(params)
    loss = 0.0

    for x, yi, weight in zip(X, y, sample_weight):
        logits = [
            sum(v * params[c * dim + j] for j, v in x.entries.items()) + params[bias + c]
            for c in range(n_classes)
        ]
        top = max(logits)
        exps = [math.exp(z - top) for z in logits]
        total = sum(exps)
        loss += weight * (top + math.log(total) - logits[yi])

        for c in range(n_classes):
            g = weight * (exps[c] / total - (1.0 if c == yi else 0.0))
            if g == 0.0:
                continue
            row = c * dim
            for j, v in x.entries.items():
                grad[row + j] += g * v
            grad[bias + c] += g

    for k in range(bias):
        w = params[k]
        if w:
            loss += alpha * w * w
            grad[k] += 2.0 * alpha * w

    return loss, grad


def minimize_lbfgs(
    fun: Callable[[list[float]], tuple[float, list[float]]],
    x0: Sequence[float],
    max_iter: int = 100,
    tol: float = 1e-4,
) -> tuple[list[float], int, bool]:
    """Minimise a smooth function with limited-memory BFGS.

    Args:
        fun: Returns (value, gradient) at a point.
        x0: Starting point.
        max_iter: Maximum number of iterations.
        tol: Stop when the gradient infinity-norm is at most ``tol``.

    Returns:
        Tuple of (solution, iterations used, converged flag).
    """
    x = list(x0)
    f, g = fun(x)
    history: deque[tuple[list[float], list[float], float]] = deque(maxlen=_HISTORY_SIZE)

    for it in range(1, max_iter + 1):
        if _inf_norm(g) <= tol:
            return x, it - 1, True

        # Two-loop recursion: r approximates H^-1 g
        q = list(g)
        alphas: list[float] = []
        for s, yv, rho in reversed(history):
            a = rho * _dot(s, q)
            alphas.append(a)
            q = [qi - a * yi for qi, yi in zip(q, yv)]
        if history:
            s, yv, _ = history[-1]
            gamma = _dot(s, yv) / _dot(yv, yv)
        else:
            gamma = 1.0 / max(1.0, math.sqrt(_dot(g, g)))
        r = [gamma * qi for qi in q]
        for (s, yv, rho), a in zip(history, reversed(alphas)):
            b = rho * _dot(yv, r)
            r = [ri + (a - b) * si for ri, si in zip(r, s)]

        direction = [-ri for ri in r]
        slope = _dot(g, direction)
        if slope >= 0:
            # Not a descent direction; restart from steepest descent
            history.clear()
            direction = [-gi for gi in g]
            slope = -_dot(g, g)

        step = 1.0
        for _ in range(_MAX_LINE_SEARCH):
            x_new = [xi + step * di for xi, di in zip(x, direction)]
            f_new, g_new = fun(x_new)
            if f_new <= f + _ARMIJO_C1 * step * slope:
                break
            step *= 0.5
        else:
            logger.debug("Line search failed at iteration %d (f=%.6g)", it, f)
            return x, it, _inf_norm(g) <= tol

        s = [a - b for a, b in zip(x_new, x)]
        yv = [a - b for a, b in zip(g_new, g)]
        sy = _dot(s, yv)
        if sy > 1e-10:
            history.append((s, yv, 1.0 / sy))

        improvement = f - f_new
        x, f, g = x_new, f_new, g_new
        if improvement <= 1e-12 * max(1.0, abs(f)):
            return x, it, _inf_norm(g) <= tol

    return x, max_iter, _inf_norm(g) <= tol


# ---------------------------------------------------------------------------
# Logistic Regression
# ---------------------------------------------------------------------------


@dataclass
class LogisticRegression:
    """Multinomial logistic regression with L2 penalty.

    Args:
        C: Inverse regularization strength (smaller is stronger).
        max_iter: Optimiser iteration bound.
        balance_classes: Weight samples inversely to class frequency.
        tol: Gradient infinity-norm convergence threshold.
    """

    C: float = 5.0
    max_iter: int = 100
    balance_classes: bool = True
    tol: float = 1e-4

    # Learned parameters
    classes_: list[str] = field(default_factory=list, repr=False)
    coef_: list[list[float]] = field(default_factory=list, repr=False)
    intercept_: list[float] = field(default_factory=list, repr=False)
    n_iter_: int = field(default=0, repr=False)
    converged_: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if self.C <= 0:
            raise ValueError(f"C must be positive, got {self.C}")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")

    @property
    def is_fitted(self) -> bool:
        return bool(self.classes_)

    @property
    def n_features(self) -> int:
        return len(self.coef_[0]) if self.coef_ else 0

    def fit(self, X: Sequence[SparseVector], labels: Sequence[str]) -> "LogisticRegression":
        """Train on feature vectors and string labels.

        Classes are ordered by first occurrence in ``labels``.

        Raises:
            TrainingError: On zero examples, mismatched lengths or mixed
                vector dimensions.
        """
        if not X:
            raise TrainingError("Cannot train on zero examples")
        if len(X) != len(labels):
            raise TrainingError(
                f"vectors ({len(X)}) and labels ({len(labels)}) must have same length"
            )
        dim = X[0].dim
        if any(x.dim != dim for x in X):
            raise TrainingError("All feature vectors must have the same dimension")

        class_index: dict[str, int] = {}
        for label in labels:
            class_index.setdefault(label, len(class_index))
        classes = list(class_index)
        n_classes = len(classes)
        y = [class_index[label] for label in labels]

        if self.balance_classes:
            class_weights = balanced_class_weights(y, n_classes)
            sample_weight = [class_weights[yi] for yi in y]
        else:
            sample_weight = [1.0] * len(y)

        self.classes_ = classes
        if n_classes == 1:
            logger.info("Single class %r in training data; fitting a constant model", classes[0])
            self.coef_ = [[0.0] * dim]
            self.intercept_ = [0.0]
            self.n_iter_ = 0
            self.converged_ = True
            return self

        alpha = 1.0 / self.C

        def objective(params: list[float]) -> tuple[float, list[float]]:
            return multinomial_objective(params, X, y, sample_weight, n_classes, alpha)

        params, n_iter, converged = minimize_lbfgs(
            objective, [0.0] * (n_classes * (dim + 1)), self.max_iter, self.tol
        )
        if not converged:
            logger.warning(
                "Optimiser did not converge in %d iterations; consider raising max_iter",
                n_iter,
            )
        logger.debug("Fitted %d classes x %d features in %d iterations", n_classes, dim, n_iter)

        self.coef_ = [params[c * dim : (c + 1) * dim] for c in range(n_classes)]
        self.intercept_ = params[n_classes * dim :]
        self.n_iter_ = n_iter
        self.converged_ = converged
        return self

    def decision_function(self, x: SparseVector) -> list[float]:
        """Per-class logits ``coef_c . x + intercept_c``.

        Raises:
            NotFittedError: If the model has not been fitted.
            ValueError: If the vector dimension differs from the model's.
        """
        if not self.is_fitted:
            raise NotFittedError("Classifier has not been fitted. Call fit() first.")
        return [x.dot(row) + b for row, b in zip(self.coef_, self.intercept_)]

    def predict_proba(self, x: SparseVector) -> list[float]:
        """Class probabilities in ``classes_`` order."""
        return softmax(self.decision_function(x))

    def predict(self, x: SparseVector) -> str:
        return self.classes_[argmax(self.predict_proba(x))]

    def to_dict(self) -> dict:
        """Serialize learned parameters."""
        return {
            "classes": list(self.classes_),
            "coef": [list(row) for row in self.coef_],
            "intercept": list(self.intercept_),
        }

    @classmethod
    def from_dict(cls, data: dict, n_features: int | None = None) -> "LogisticRegression":
        """Deserialize parameters, validating their shape.

        Args:
            data: Output of ``to_dict()``.
            n_features: Expected coefficient width, if known.

        Raises:
            ModelFormatError: On missing keys or inconsistent dimensions.
        """
        try:
            classes = [str(c) for c in data["classes"]]
            coef = [[float(w) for w in row] for row in data["coef"]]
            intercept = [float(b) for b in data["intercept"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise ModelFormatError(f"Invalid classifier parameters: {exc}") from exc

        if not classes:
            raise ModelFormatError("Model has no classes")
        if len(set(classes)) != len(classes):
            raise ModelFormatError("Model classes must be distinct")
        if len(coef) != len(classes) or len(intercept) != len(classes):
            raise ModelFormatError(
                f"Expected {len(classes)} coefficient rows and intercepts, "
                f"got {len(coef)} and {len(intercept)}"
            )
        widths = {len(row) for row in coef}
        if len(widths) != 1:
            raise ModelFormatError("Coefficient rows have different widths")
        width = widths.pop()
        if n_features is not None and width != n_features:
            raise ModelFormatError(
                f"Coefficient width {width} does not match feature dimension {n_features}"
            )

        model = cls()
        model.classes_ = classes
        model.coef_ = coef
        model.intercept_ = intercept
        model.converged_ = True
        return model
