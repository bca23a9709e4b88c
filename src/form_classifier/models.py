"""Result records for form, field and page classification."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FormResult:
    """Classification of a single form."""

    type: str
    captcha: str = ""
    fields: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data: dict = {"type": self.type}
        if self.captcha:
            data["captcha"] = self.captcha
        if self.fields:
            data["fields"] = dict(self.fields)
        return data


@dataclass
class FormResultProba:
    """Probability-based classification of a single form."""

    type: dict[str, float]
    captcha: str = ""
    fields: dict[str, dict[str, float]] = field(default_factory=dict)

    @property
    def best_type(self) -> str:
        return max(self.type, key=self.type.get) if self.type else ""  # type: ignore[arg-type]

    def to_dict(self) -> dict:
        data: dict = {"type": {k: round(v, 4) for k, v in self.type.items()}}
        if self.captcha:
            data["captcha"] = self.captcha
        if self.fields:
            data["fields"] = {
                name: {k: round(v, 4) for k, v in proba.items()}
                for name, proba in self.fields.items()
            }
        return data


@dataclass
class PageResult:
    """Page type together with the classification of every form on it."""

    type: str
    captcha: str = ""
    forms: list[FormResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict = {"type": self.type}
        if self.captcha:
            data["captcha"] = self.captcha
        if self.forms:
            data["forms"] = [f.to_dict() for f in self.forms]
        return data


@dataclass
class PageResultProba:
    """Page type probabilities together with per-form probabilities."""

    type: dict[str, float]
    captcha: str = ""
    forms: list[FormResultProba] = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict = {"type": {k: round(v, 4) for k, v in self.type.items()}}
        if self.captcha:
            data["captcha"] = self.captcha
        if self.forms:
            data["forms"] = [f.to_dict() for f in self.forms]
        return data
