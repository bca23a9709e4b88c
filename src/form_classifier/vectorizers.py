"""Sparse feature vectors and the vectorizers that produce them.

Two vectorizers turn extractor output into fixed-width sparse vectors:

- ``DictVectorizer`` one-hot encodes mappings of boolean / categorical
  features over a vocabulary learned at fit time.
- ``TfidfVectorizer`` turns text into word or character n-gram vectors,
  optionally IDF-weighted, with document-frequency pruning and stop-word
  filtering. The ``count`` pipeline kind is the same class with
  ``use_idf=False``.

Both are pure Python; vectors are index -> value dicts since a single form
activates only a handful of the (often thousands of) columns.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import ModelFormatError, NotFittedError

ANALYZERS: tuple[str, ...] = ("word", "char_wb")

# ---------------------------------------------------------------------------
# Sparse Vector
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SparseVector:
    """Fixed-dimension sparse vector.

    Attributes:
        dim: Total number of columns.
        entries: Mapping of column index to value. Every index is ``< dim``.
    """

    dim: int
    entries: dict[int, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.dim < 0:
            raise ValueError(f"dim must be non-negative, got {self.dim}")
        for idx in self.entries:
            if idx < 0 or idx >= self.dim:
                raise ValueError(f"index {idx} out of range for dim {self.dim}")

    @property
    def nnz(self) -> int:
        """Number of stored entries."""
        return len(self.entries)

    def dot(self, weights: Sequence[float]) -> float:
        """Dot product with a dense row of length ``dim``."""
        if len(weights) != self.dim:
            raise ValueError(
                f"weights ({len(weights)}) and vector ({self.dim}) dimensions differ"
            )
        return sum(value * weights[idx] for idx, value in self.entries.items())

    def to_dense(self) -> list[float]:
        dense = [0.0] * self.dim
        for idx, value in self.entries.items():
            dense[idx] = value
        return dense


def concat_sparse(vectors: Iterable[SparseVector]) -> SparseVector:
    """Concatenate vectors, shifting indices by the preceding dimensions."""
    entries: dict[int, float] = {}
    offset = 0
    for vec in vectors:
        for idx, value in vec.entries.items():
            entries[offset + idx] = value
        offset += vec.dim
    return SparseVector(dim=offset, entries=entries)


# ---------------------------------------------------------------------------
# Dict Vectorizer
# ---------------------------------------------------------------------------


def _dict_token(key: str, value: Any) -> tuple[str, float] | None:
    """Map one ``(key, value)`` feature to its column token and value."""
    if value is None:
        return None
    if isinstance(value, bool):
        return f"{key}={'true' if value else 'false'}", 1.0
    if isinstance(value, (int, float)):
        return key, float(value)
    return f"{key}={value}", 1.0


@dataclass
class DictVectorizer:
    """One-hot encoder for feature mappings.

    Booleans become ``key=true`` / ``key=false`` columns, strings become
    ``key=value`` columns and numbers are stored under ``key`` with their
    own value. Columns are assigned in first-seen order.
    """

    vocabulary_: dict[str, int] = field(default_factory=dict, repr=False)
    _fitted: bool = field(default=False, repr=False)

    @property
    def is_fitted(self) -> bool:
        return self._fitted

    def vocab_size(self) -> int:
        return len(self.vocabulary_)

    def fit(self, samples: list[Mapping[str, Any]]) -> "DictVectorizer":
        vocabulary: dict[str, int] = {}
        for sample in samples:
            for key, value in sample.items():
                token = _dict_token(key, value)
                if token is not None and token[0] not in vocabulary:
                    vocabulary[token[0]] = len(vocabulary)
        self.vocabulary_ = vocabulary
        self._fitted = True
        return self

    def transform(self, sample: Mapping[str, Any]) -> SparseVector:
        """Encode one mapping; features unseen at fit time are dropped.

        Raises:
            NotFittedError: If the vectorizer has not been fitted.
        """
        if not self._fitted:
            raise NotFittedError("DictVectorizer has not been fitted. Call fit() first.")
        entries: dict[int, float] = {}
        for key, value in sample.items():
            token = _dict_token(key, value)
            if token is None:
                continue
            idx = self.vocabulary_.get(token[0])
            if idx is not None:
                entries[idx] = token[1]
        return SparseVector(dim=len(self.vocabulary_), entries=entries)

    def fit_transform(self, samples: list[Mapping[str, Any]]) -> list[SparseVector]:
        self.fit(samples)
        return [self.transform(s) for s in samples]

    def to_dict(self) -> dict:
        return {"vocabulary": dict(self.vocabulary_)}

    @classmethod
    def from_dict(cls, data: dict) -> "DictVectorizer":
        vocabulary = _check_vocabulary(data.get("vocabulary"))
        return cls(vocabulary_=vocabulary, _fitted=True)


# ---------------------------------------------------------------------------
# TF-IDF Vectorizer
# ---------------------------------------------------------------------------

_WORD_RE = re.compile(r"(?u)\b\w\w+\b")
_WHITESPACE_RE = re.compile(r"\s\s+")

ENGLISH_STOP_WORDS: frozenset[str] = frozenset({
    "a", "about", "above", "across", "after", "afterwards", "again", "against",
    "all", "almost", "alone", "along", "already", "also", "although", "always",
    "am", "among", "amongst", "an", "and", "another", "any", "anyhow", "anyone",
    "anything", "anyway", "anywhere", "are", "around", "as", "at", "be",
    "became", "because", "become", "becomes", "becoming", "been", "before",
    "beforehand", "behind", "being", "below", "beside", "besides", "between",
    "beyond", "both", "but", "by", "can", "cannot", "could", "did", "do",
    "does", "doing", "done", "down", "during", "each", "either", "else",
    "elsewhere", "enough", "etc", "even", "ever", "every", "everyone",
    "everything", "everywhere", "except", "few", "for", "former", "formerly",
    "from", "further", "had", "has", "have", "he", "hence", "her", "here",
    "hereafter", "hereby", "herein", "hers", "herself", "him", "himself",
    "his", "how", "however", "i", "ie", "if", "in", "indeed", "into", "is",
    "it", "its", "itself", "just", "last", "latter", "latterly", "least",
    "less", "many", "may", "me", "meanwhile", "might", "more", "moreover",
    "most", "mostly", "much", "must", "my", "myself", "namely", "neither",
    "never", "nevertheless", "next", "no", "nobody", "none", "noone", "nor",
    "not", "nothing", "now", "nowhere", "of", "off", "often", "on", "once",
    "one", "only", "onto", "or", "other", "others", "otherwise", "our", "ours",
    "ourselves", "out", "over", "own", "per", "perhaps", "please", "rather",
    "same", "seem", "seemed", "seeming", "seems", "several", "she", "should",
    "since", "so", "some", "somehow", "someone", "something", "sometime",
    "sometimes", "somewhere", "still", "such", "than", "that", "the", "their",
    "them", "themselves", "then", "thence", "there", "thereafter", "thereby",
    "therefore", "therein", "thereupon", "these", "they", "this", "those",
    "though", "through", "throughout", "thru", "thus", "to", "together", "too",
    "toward", "towards", "under", "until", "up", "upon", "us", "very", "via",
    "was", "we", "well", "were", "what", "whatever", "when", "whence",
    "whenever", "where", "whereafter", "whereas", "whereby", "wherein",
    "whereupon", "wherever", "whether", "which", "while", "whither", "who",
    "whoever", "whole", "whom", "whose", "why", "will", "with", "within",
    "without", "would", "yet", "you", "your", "yours", "yourself", "yourselves",
})


def _word_ngrams(tokens: list[str], min_n: int, max_n: int) -> list[str]:
    """Generate all word n-grams with ``min_n <= n <= max_n``."""
    terms: list[str] = []
    for n in range(min_n, max_n + 1):
        if n == 1:
            terms.extend(tokens)
            continue
        terms.extend(" ".join(tokens[i : i + n]) for i in range(len(tokens) - n + 1))
    return terms


def _char_wb_ngrams(text: str, min_n: int, max_n: int) -> list[str]:
    """Character n-grams inside word boundaries, words padded with spaces.

    A padded word shorter than ``n`` yields itself once.
    """
    text = _WHITESPACE_RE.sub(" ", text)
    terms: list[str] = []
    for word in text.split():
        padded = f" {word} "
        length = len(padded)
        for n in range(min_n, max_n + 1):
            offset = 0
            terms.append(padded[offset : offset + n])
            while offset + n < length:
                offset += 1
                terms.append(padded[offset : offset + n])
            if offset == 0:
                break
    return terms


@dataclass
class TfidfVectorizer:
    """Pure-Python n-gram vectorizer with optional IDF weighting.

    Builds a vocabulary from training documents and transforms text into
    (TF-)IDF weighted sparse vectors.

    Args:
        ngram_range: Tuple of (min_n, max_n), both inclusive.
        min_df: Minimum document frequency (absolute count) for a term.
        binary: Use presence (1.0) instead of raw counts.
        analyzer: ``"word"`` or ``"char_wb"``.
        stop_words: Words dropped before n-gram generation (``word`` only).
        use_idf: Scale values by smoothed IDF. ``False`` gives plain counts.
    """

    ngram_range: tuple[int, int] = (1, 1)
    min_df: int = 1
    binary: bool = False
    analyzer: str = "word"
    stop_words: Optional[frozenset[str]] = None
    use_idf: bool = True

    # Learned state
    vocabulary_: dict[str, int] = field(default_factory=dict, repr=False)
    idf_: list[float] = field(default_factory=list, repr=False)
    _fitted: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if self.analyzer not in ANALYZERS:
            raise ValueError(f"Unknown analyzer: {self.analyzer!r}. Known: {ANALYZERS}")
        min_n, max_n = self.ngram_range
        if min_n < 1 or max_n < min_n:
            raise ValueError(f"Invalid ngram_range: {self.ngram_range}")
        if self.min_df < 1:
            raise ValueError(f"min_df must be >= 1, got {self.min_df}")
        self.ngram_range = (int(min_n), int(max_n))
        if self.stop_words is not None:
            self.stop_words = frozenset(self.stop_words)

    @property
    def is_fitted(self) -> bool:
        return self._fitted

    def vocab_size(self) -> int:
        return len(self.vocabulary_)

    def fit(self, documents: list[str]) -> "TfidfVectorizer":
        """Learn vocabulary and IDF weights from a corpus.

        Args:
            documents: List of raw text documents.

        Returns:
            Self (for method chaining).
        """
        n_docs = len(documents)

        # Count document frequency for each term
        doc_freq: Counter[str] = Counter()
        for doc in documents:
            doc_freq.update(set(self.analyze(doc)))

        terms = sorted(term for term, df in doc_freq.items() if df >= self.min_df)
        self.vocabulary_ = {term: idx for idx, term in enumerate(terms)}

        # Smooth IDF: log((1 + N) / (1 + df)) + 1
        if self.use_idf:
            self.idf_ = [math.log((1 + n_docs) / (1 + doc_freq[term])) + 1 for term in terms]
        else:
            self.idf_ = []

        self._fitted = True
        return self

    def transform(self, document: str) -> SparseVector:
        """Transform one document; terms outside the vocabulary are ignored.

        Raises:
            NotFittedError: If the vectorizer has not been fitted.
        """
        if not self._fitted:
            raise NotFittedError("Vectorizer has not been fitted. Call fit() first.")

        entries: dict[int, float] = {}
        for term, count in Counter(self.analyze(document)).items():
            idx = self.vocabulary_.get(term)
            if idx is None:
                continue
            value = 1.0 if self.binary else float(count)
            if self.use_idf:
                value *= self.idf_[idx]
            entries[idx] = value
        return SparseVector(dim=len(self.vocabulary_), entries=entries)

    def fit_transform(self, documents: list[str]) -> list[SparseVector]:
        """Fit and transform in one step."""
        self.fit(documents)
        return [self.transform(doc) for doc in documents]

    def idf(self, term: str) -> float:
        """IDF weight of a vocabulary term (1.0 when IDF is disabled)."""
        idx = self.vocabulary_[term]
        return self.idf_[idx] if self.use_idf else 1.0

    def analyze(self, text: str) -> list[str]:
        """Tokenize and generate n-grams from text."""
        text = (text or "").lower()
        min_n, max_n = self.ngram_range
        if self.analyzer == "char_wb":
            return _char_wb_ngrams(text, min_n, max_n)

        tokens = _WORD_RE.findall(text)
        if self.stop_words:
            tokens = [t for t in tokens if t not in self.stop_words]
        return _word_ngrams(tokens, min_n, max_n)

    def to_dict(self) -> dict:
        """Serialize vectorizer state to a dictionary."""
        data = {
            "ngram_range": list(self.ngram_range),
            "min_df": self.min_df,
            "binary": self.binary,
            "analyzer": self.analyzer,
            "stop_words": sorted(self.stop_words) if self.stop_words is not None else None,
            "use_idf": self.use_idf,
            "vocabulary": dict(self.vocabulary_),
        }
        if self.use_idf:
            data["idf"] = list(self.idf_)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TfidfVectorizer":
        """Deserialize vectorizer from a dictionary.

        Raises:
            ModelFormatError: If keys are missing or the IDF table does not
                match the vocabulary.
        """
        try:
            stop_words = data.get("stop_words")
            vec = cls(
                ngram_range=tuple(data["ngram_range"]),
                min_df=data["min_df"],
                binary=data["binary"],
                analyzer=data["analyzer"],
                stop_words=frozenset(stop_words) if stop_words is not None else None,
                use_idf=data["use_idf"],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ModelFormatError(f"Invalid vectorizer state: {exc}") from exc

        vec.vocabulary_ = _check_vocabulary(data.get("vocabulary"))
        if vec.use_idf:
            idf = data.get("idf")
            if not isinstance(idf, list) or len(idf) != len(vec.vocabulary_):
                raise ModelFormatError(
                    f"IDF table size does not match vocabulary size {len(vec.vocabulary_)}"
                )
            vec.idf_ = [float(w) for w in idf]
        vec._fitted = True
        return vec


def _check_vocabulary(vocabulary: Any) -> dict[str, int]:
    """Validate that a persisted vocabulary maps onto ``0..n-1`` exactly."""
    if not isinstance(vocabulary, dict):
        raise ModelFormatError("Vocabulary must be a mapping of token to column index")
    if sorted(vocabulary.values()) != list(range(len(vocabulary))):
        raise ModelFormatError("Vocabulary indices must be unique and dense (0..n-1)")
    return {str(k): int(v) for k, v in vocabulary.items()}
