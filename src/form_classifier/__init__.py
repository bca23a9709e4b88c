"""form-classifier -- form, field and page type classification for HTML."""

__version__ = "0.1.0"

from .analyzer import FormFieldClassifier
from .captcha import CaptchaDetector, CaptchaType, detect_captcha_in_html
from .classifier import (
    ClassificationMetrics,
    ClassificationResult,
    FittedPipeline,
    LinearClassifier,
    compute_metrics,
    cross_validate,
    stratified_k_fold,
)
from .config import TrainConfig, find_model
from .corpus import AnnotatedForm, AnnotatedPage, load_corpus
from .errors import (
    CorpusError,
    FormClassifierError,
    ModelFormatError,
    NotFittedError,
    TrainingError,
)
from .features import (
    DictExtractor,
    FeaturePipeline,
    FieldContext,
    PageContext,
    TextExtractor,
    default_field_pipelines,
    default_form_pipelines,
    default_page_pipelines,
)
from .linear import LogisticRegression
from .models import FormResult, FormResultProba, PageResult, PageResultProba
from .vectorizers import DictVectorizer, SparseVector, TfidfVectorizer

__all__ = [
    # Core
    "FormFieldClassifier",
    "FormResult",
    "FormResultProba",
    "PageResult",
    "PageResultProba",
    # Vectorization
    "SparseVector",
    "DictVectorizer",
    "TfidfVectorizer",
    "TextExtractor",
    "DictExtractor",
    "FeaturePipeline",
    "FieldContext",
    "PageContext",
    "default_form_pipelines",
    "default_field_pipelines",
    "default_page_pipelines",
    # Classification
    "LogisticRegression",
    "LinearClassifier",
    "FittedPipeline",
    "ClassificationResult",
    "ClassificationMetrics",
    "compute_metrics",
    "cross_validate",
    "stratified_k_fold",
    "TrainConfig",
    "find_model",
    # Corpus
    "AnnotatedForm",
    "AnnotatedPage",
    "load_corpus",
    # CAPTCHA
    "CaptchaDetector",
    "CaptchaType",
    "detect_captcha_in_html",
    # Errors
    "FormClassifierError",
    "NotFittedError",
    "ModelFormatError",
    "TrainingError",
    "CorpusError",
]
