"""Pipeline classifier: feature pipelines + multinomial logistic regression.

Provides the trainable, persistable model used for form, field and page
classification:

- Vectorization of a markup node through an ordered list of feature
  pipelines, concatenated into one sparse vector
- Multinomial logistic regression over that vector
- Threshold-filtered probability output with a deterministic argmax
- Model persistence (JSON serialization) with load-time dimension checks
- Precision, recall, F1, confusion matrix and stratified k-fold
  cross-validation
"""

from __future__ import annotations

import json
import logging
import random
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .config import TrainConfig
from .errors import ModelFormatError, NotFittedError, TrainingError
from .features import FeaturePipeline, Vectorizer
from .linear import LogisticRegression, argmax
from .vectorizers import DictVectorizer, SparseVector, TfidfVectorizer, concat_sparse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fitted pipelines
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FittedPipeline:
    """A pipeline configuration together with its fitted vectorizer."""

    pipeline: FeaturePipeline
    vectorizer: Vectorizer

    @property
    def dim(self) -> int:
        return self.vectorizer.vocab_size()

    def transform(self, node: Any) -> SparseVector:
        return self.vectorizer.transform(self.pipeline.extract(node))

    def to_dict(self) -> dict:
        data = self.pipeline.config_dict()
        data["vocabulary"] = dict(self.vectorizer.vocabulary_)
        if isinstance(self.vectorizer, TfidfVectorizer) and self.vectorizer.use_idf:
            data["idf"] = list(self.vectorizer.idf_)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FittedPipeline":
        """Rehydrate a pipeline and its vectorizer without refitting."""
        pipeline = FeaturePipeline.from_config(data)
        vectorizer = pipeline.make_vectorizer()
        if isinstance(vectorizer, DictVectorizer):
            return cls(pipeline, DictVectorizer.from_dict(data))
        state = vectorizer.to_dict()
        state["vocabulary"] = data.get("vocabulary")
        if vectorizer.use_idf:
            state["idf"] = data.get("idf")
        return cls(pipeline, TfidfVectorizer.from_dict(state))


def fit_pipelines(
    nodes: Sequence[Any],
    pipelines: Sequence[FeaturePipeline],
) -> tuple[list[FittedPipeline], list[SparseVector]]:
    """Fit one vectorizer per pipeline and build the concatenated vectors."""
    fitted: list[FittedPipeline] = []
    blocks: list[list[SparseVector]] = []
    for pipeline in pipelines:
        vectorizer = pipeline.make_vectorizer()
        vectors = vectorizer.fit_transform([pipeline.extract(node) for node in nodes])
        logger.debug("Pipeline %r: %d columns", pipeline.name, vectorizer.vocab_size())
        fitted.append(FittedPipeline(pipeline, vectorizer))
        blocks.append(vectors)

    X = [concat_sparse(block[j] for block in blocks) for j in range(len(nodes))]
    return fitted, X


# ---------------------------------------------------------------------------
# Classification Result
# ---------------------------------------------------------------------------


@dataclass
class ClassificationResult:
    """Result of classifying a single node."""

    predicted_class: str
    confidence: float
    probabilities: dict[str, float]

    def to_dict(self) -> dict:
        return {
            "predicted_class": self.predicted_class,
            "confidence": round(self.confidence, 4),
            "probabilities": {
                k: round(v, 4) for k, v in sorted(
                    self.probabilities.items(),
                    key=lambda x: x[1],
                    reverse=True,
                )
            },
        }


# ---------------------------------------------------------------------------
# Linear Classifier
# ---------------------------------------------------------------------------


class LinearClassifier:
    """Feature pipelines bound to a multinomial logistic regression.

    Example::

        clf = LinearClassifier.train(forms, labels, default_form_pipelines())
        clf.classify(form)                  # "login"
        clf.classify_proba(form, 0.05)      # {"login": 0.91, "registration": 0.07}

        clf.save("form-model.json")
        loaded = LinearClassifier.load("form-model.json")

    Args:
        pipelines: Fitted pipelines in feature-space order.
        model: Fitted logistic regression whose coefficient width equals the
            sum of the pipelines' vocabulary sizes.

    Raises:
        ModelFormatError: If the coefficient width does not match.
    """

    def __init__(self, pipelines: Sequence[FittedPipeline], model: LogisticRegression) -> None:
        self._pipelines = list(pipelines)
        self._model = model
        if model.is_fitted and all(p.vectorizer.is_fitted for p in self._pipelines):
            if model.n_features != self.dim:
                raise ModelFormatError(
                    f"Coefficient width {model.n_features} does not match combined "
                    f"vocabulary size {self.dim}"
                )

    @property
    def classes(self) -> list[str]:
        """Known classes in canonical order."""
        return list(self._model.classes_)

    @property
    def pipelines(self) -> list[FittedPipeline]:
        return list(self._pipelines)

    @property
    def model(self) -> LogisticRegression:
        return self._model

    @property
    def dim(self) -> int:
        """Total feature-space size."""
        return sum(p.dim for p in self._pipelines)

    @classmethod
    def train(
        cls,
        nodes: Sequence[Any],
        labels: Sequence[str],
        pipelines: Sequence[FeaturePipeline],
        config: Optional[TrainConfig] = None,
    ) -> "LinearClassifier":
        """Fit the pipelines' vectorizers and the classifier on a labeled corpus.

        Args:
            nodes: Markup nodes accepted by the pipelines' extractors.
            labels: Class label per node.
            pipelines: Feature pipelines defining the feature space.
            config: Training hyperparameters.

        Raises:
            TrainingError: If there are no examples, no pipelines, or the
                label count does not match.
        """
        config = config or TrainConfig()
        if not nodes:
            raise TrainingError("Cannot train on zero examples")
        if len(nodes) != len(labels):
            raise TrainingError(
                f"nodes ({len(nodes)}) and labels ({len(labels)}) must have same length"
            )
        if not pipelines:
            raise TrainingError("At least one feature pipeline is required")

        fitted, X = fit_pipelines(nodes, pipelines)
        model = LogisticRegression(
            C=config.C,
            max_iter=config.max_iter,
            balance_classes=config.balance_classes,
            tol=config.tol,
        )
        model.fit(X, list(labels))
        logger.info(
            "Trained %d classes on %d examples (%d features)",
            len(model.classes_), len(nodes), X[0].dim,
        )
        return cls(fitted, model)

    def check_ready(self) -> None:
        """Raise unless every vectorizer and the classifier are fitted.

        Raises:
            NotFittedError: If any part of the model is uninitialized.
        """
        if not self._model.is_fitted:
            raise NotFittedError("Classifier not trained. Call train() or load() first.")
        for fp in self._pipelines:
            if not fp.vectorizer.is_fitted:
                raise NotFittedError(f"Pipeline {fp.pipeline.name!r} has no fitted vectorizer")
        if self._model.n_features != self.dim:
            raise NotFittedError(
                f"Coefficient width {self._model.n_features} does not match "
                f"feature dimension {self.dim}"
            )

    def vectorize(self, node: Any) -> SparseVector:
        """Run every pipeline on ``node`` and concatenate the results."""
        self.check_ready()
        return concat_sparse(fp.transform(node) for fp in self._pipelines)

    def proba_vector(self, x: SparseVector) -> list[float]:
        """Class probabilities for an already-vectorized node."""
        return self._model.predict_proba(x)

    def classify(self, node: Any) -> str:
        """Predicted class (first class in canonical order wins ties)."""
        probs = self.proba_vector(self.vectorize(node))
        return self._model.classes_[argmax(probs)]

    def classify_proba(self, node: Any, threshold: float = 0.0) -> dict[str, float]:
        """Class probabilities, omitting classes below ``threshold``."""
        return self.predict(node, threshold).probabilities

    def predict(self, node: Any, threshold: float = 0.0) -> ClassificationResult:
        """Classify a node; the argmax is taken over the unfiltered distribution."""
        probs = self.proba_vector(self.vectorize(node))
        best = argmax(probs)
        return ClassificationResult(
            predicted_class=self._model.classes_[best],
            confidence=probs[best],
            probabilities={
                cls: p for cls, p in zip(self._model.classes_, probs) if p >= threshold
            },
        )

    def classify_batch(self, nodes: Sequence[Any], threshold: float = 0.0) -> list[ClassificationResult]:
        return [self.predict(node, threshold) for node in nodes]

    def feature_names(self) -> list[str]:
        """Column names as ``"<pipeline name>: <token>"``, in column order."""
        names: list[str] = []
        for fp in self._pipelines:
            by_index = sorted(fp.vectorizer.vocabulary_.items(), key=lambda x: x[1])
            names.extend(f"{fp.pipeline.name}: {token}" for token, _ in by_index)
        return names

    def most_informative_features(
        self,
        class_name: str,
        top_n: int = 20,
    ) -> list[tuple[str, float]]:
        """Return the features with the largest positive weight for a class.

        Raises:
            ValueError: If class_name is not a known class.
        """
        self.check_ready()
        if class_name not in self._model.classes_:
            raise ValueError(f"Unknown class: {class_name}. Known: {self._model.classes_}")
        row = self._model.coef_[self._model.classes_.index(class_name)]
        weights = sorted(zip(self.feature_names(), row), key=lambda x: x[1], reverse=True)
        return [(name, round(w, 4)) for name, w in weights[:top_n]]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Serialize classes, coefficients and per-pipeline vectorizer state."""
        self.check_ready()
        data = self._model.to_dict()
        data["pipelines"] = [fp.to_dict() for fp in self._pipelines]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LinearClassifier":
        """Rebuild a ready-to-use classifier from ``to_dict()`` output.

        Raises:
            ModelFormatError: If the data is malformed or the coefficient
                width differs from the combined vocabulary size.
        """
        if not isinstance(data, dict) or not isinstance(data.get("pipelines"), list):
            raise ModelFormatError("Model data must contain a 'pipelines' list")
        pipelines = [FittedPipeline.from_dict(p) for p in data["pipelines"]]
        dim = sum(p.dim for p in pipelines)
        model = LogisticRegression.from_dict(data, n_features=dim)
        return cls(pipelines, model)

    def save(self, path: str | Path) -> None:
        """Save the trained model to a JSON file."""
        data = self.to_dict()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        logger.info("Saved model to %s", path)

    @classmethod
    def load(cls, path: str | Path) -> "LinearClassifier":
        """Load a trained model from a JSON file.

        Raises:
            ModelFormatError: If the file is not valid JSON or does not
                describe a consistent model.
        """
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ModelFormatError(f"Invalid JSON in {path}: {exc}") from exc
        return cls.from_dict(data)


# ---------------------------------------------------------------------------
# Evaluation Metrics
# ---------------------------------------------------------------------------

@dataclass
class ClassificationMetrics:
    """Evaluation metrics for a classification result.

    Attributes:
        accuracy: Overall accuracy.
        per_class: Per-class precision, recall, F1 scores.
        macro_precision: Unweighted mean precision across classes.
        macro_recall: Unweighted mean recall across classes.
        macro_f1: Unweighted mean F1 across classes.
        weighted_f1: Support-weighted mean F1 across classes.
        confusion_matrix: Nested dict ``{true: {predicted: count}}``.
        support: Per-class sample counts in the true labels.
    """

    accuracy: float = 0.0
    per_class: dict[str, dict[str, float]] = field(default_factory=dict)
    macro_precision: float = 0.0
    macro_recall: float = 0.0
    macro_f1: float = 0.0
    weighted_f1: float = 0.0
    confusion_matrix: dict[str, dict[str, int]] = field(default_factory=dict)
    support: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "accuracy": round(self.accuracy, 4),
            "macro_precision": round(self.macro_precision, 4),
            "macro_recall": round(self.macro_recall, 4),
            "macro_f1": round(self.macro_f1, 4),
            "weighted_f1": round(self.weighted_f1, 4),
            "per_class": {
                cls: {k: round(v, 4) for k, v in metrics.items()}
                for cls, metrics in self.per_class.items()
            },
            "confusion_matrix": self.confusion_matrix,
        }


def _safe_div(num: float, den: float) -> float:
    return num / den if den else 0.0


def compute_metrics(
    y_true: Sequence[str],
    y_pred: Sequence[str],
    labels: Optional[Sequence[str]] = None,
) -> ClassificationMetrics:
    """Compute classification metrics from true and predicted labels.

    Classes follow ``labels`` when given (typically a model's ``classes``),
    otherwise the order of first appearance in ``y_true`` then ``y_pred``.

    Raises:
        ValueError: On length mismatch, or a label missing from ``labels``.
    """
    if len(y_true) != len(y_pred):
        raise ValueError("y_true and y_pred must have the same length")

    classes = list(dict.fromkeys(labels if labels is not None else [*y_true, *y_pred]))
    unknown = (set(y_true) | set(y_pred)) - set(classes)
    if unknown:
        raise ValueError(f"Labels not in class list: {sorted(unknown)}")

    cm: dict[str, dict[str, int]] = {t: dict.fromkeys(classes, 0) for t in classes}
    for true, pred in zip(y_true, y_pred):
        cm[true][pred] += 1

    support = {c: sum(cm[c].values()) for c in classes}
    predicted = {c: sum(cm[t][c] for t in classes) for c in classes}

    per_class: dict[str, dict[str, float]] = {}
    for c in classes:
        precision = _safe_div(cm[c][c], predicted[c])
        recall = _safe_div(cm[c][c], support[c])
        f1 = _safe_div(2 * precision * recall, precision + recall)
        per_class[c] = {"precision": precision, "recall": recall, "f1": f1}

    def macro(key: str) -> float:
        return _safe_div(sum(m[key] for m in per_class.values()), len(classes))

    n = len(y_true)
    return ClassificationMetrics(
        accuracy=_safe_div(sum(cm[c][c] for c in classes), n),
        per_class=per_class,
        macro_precision=macro("precision"),
        macro_recall=macro("recall"),
        macro_f1=macro("f1"),
        weighted_f1=_safe_div(sum(per_class[c]["f1"] * support[c] for c in classes), n),
        confusion_matrix=cm,
        support={c: s for c, s in support.items() if s},
    )


# ---------------------------------------------------------------------------
# Cross-Validation
# ---------------------------------------------------------------------------

def stratified_k_fold(
    labels: Sequence[str],
    k: int = 5,
    seed: int = 42,
) -> list[tuple[list[int], list[int]]]:
    """Generate stratified k-fold ``(train, test)`` index splits.

    Indices of each class are shuffled with ``seed`` and dealt round-robin
    over the folds. The deal continues where the previous class stopped,
    so classes smaller than ``k`` do not all land in the first fold.
    """
    if k < 2:
        raise ValueError(f"k must be >= 2, got {k}")
    rng = random.Random(seed)

    by_class: dict[str, list[int]] = defaultdict(list)
    for idx, label in enumerate(labels):
        by_class[label].append(idx)

    fold_of = [0] * len(labels)
    position = 0
    for indices in by_class.values():
        rng.shuffle(indices)
        for idx in indices:
            fold_of[idx] = position % k
            position += 1

    return [
        (
            [i for i, f in enumerate(fold_of) if f != fold],
            [i for i, f in enumerate(fold_of) if f == fold],
        )
        for fold in range(k)
    ]


def cross_validate(
    nodes: Sequence[Any],
    labels: Sequence[str],
    pipelines: Sequence[FeaturePipeline],
    k: int = 5,
    config: Optional[TrainConfig] = None,
    seed: int = 42,
) -> list[ClassificationMetrics]:
    """Run stratified k-fold cross-validation.

    Folds with an empty train or test side are skipped.

    Returns:
        List of ClassificationMetrics (one per evaluated fold).
    """
    results: list[ClassificationMetrics] = []
    for fold, (train_idx, test_idx) in enumerate(stratified_k_fold(labels, k=k, seed=seed)):
        if not train_idx or not test_idx:
            logger.debug("Skipping fold %d: empty split", fold)
            continue
        clf = LinearClassifier.train(
            [nodes[i] for i in train_idx],
            [labels[i] for i in train_idx],
            pipelines,
            config,
        )
        y_true = [labels[i] for i in test_idx]
        y_pred = [clf.classify(nodes[i]) for i in test_idx]
        results.append(compute_metrics(y_true, y_pred, [*clf.classes, *y_true]))
    return results
