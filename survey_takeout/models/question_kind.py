"""Closed set of survey question kinds and their decoded answer variants.

Answers are decoded once, at the store boundary, into exactly one variant per
kind. Scoring and curation then work on the variant rather than comparing
kind strings.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union


class QuestionKind(str, Enum):
    HERO_COVER = "HeroCover"
    TEXT = "Text"
    MULTIPLE_CHOICE = "MultipleChoice"
    CHECKBOX = "Checkbox"
    DROPDOWN = "Dropdown"
    MATRIX_LIKERT = "MatrixLikert"
    RATING = "Rating"
    DATE = "Date"
    SIGNATURE = "Signature"


@dataclass(frozen=True)
class NoAnswer:
    """HeroCover and other display-only questions."""


@dataclass(frozen=True)
class TextAnswer:
    text: str


@dataclass(frozen=True)
class ChoiceAnswer:
    selected: tuple[str, ...]


@dataclass(frozen=True)
class MatrixAnswer:
    cells: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class RatingAnswer:
    score: Optional[float]
    comment: Optional[str] = None


@dataclass(frozen=True)
class DateAnswer:
    value: str


@dataclass(frozen=True)
class SignatureAnswer:
    image_ref: str


AnswerValue = Union[NoAnswer, TextAnswer, ChoiceAnswer, MatrixAnswer, RatingAnswer, DateAnswer, SignatureAnswer]


def numeric_score(answer: AnswerValue) -> float | None:
    """Return the satisfaction score carried by an answer, if any.

    Only ratings are scored; every other variant is counted but never
    averaged.
    """
    if isinstance(answer, RatingAnswer):
        return None if answer.score is None else float(answer.score)
    if isinstance(answer, (NoAnswer, TextAnswer, ChoiceAnswer, MatrixAnswer, DateAnswer, SignatureAnswer)):
        return None
    raise TypeError(f"unknown answer variant: {type(answer).__name__}")


def comment_text(answer: AnswerValue) -> str | None:
    """Return the free-text part of an answer eligible for curation."""
    if isinstance(answer, TextAnswer):
        text = answer.text
    elif isinstance(answer, RatingAnswer):
        text = answer.comment
    else:
        return None
    text = (text or "").strip()
    return text or None


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def decode_answer(kind: QuestionKind | str, columns: Mapping[str, Any]) -> AnswerValue:
    """Decode stored answer columns into the variant for `kind`.

    `columns` uses the storage column names: text_value, numeric_value,
    date_value, selected_options, matrix_values, signature_ref,
    comment_value.
    """
    kind = QuestionKind(kind)
    if kind is QuestionKind.HERO_COVER:
        return NoAnswer()
    if kind is QuestionKind.TEXT:
        return TextAnswer(text=_clean_text(columns.get("text_value")) or "")
    if kind in (QuestionKind.MULTIPLE_CHOICE, QuestionKind.CHECKBOX, QuestionKind.DROPDOWN):
        raw = columns.get("selected_options")
        selected: list[str] = []
        if isinstance(raw, str) and raw:
            parsed = json.loads(raw)
            selected = [str(v) for v in (parsed if isinstance(parsed, list) else [parsed])]
        elif isinstance(raw, (list, tuple)):
            selected = [str(v) for v in raw]
        elif columns.get("text_value"):
            selected = [s.strip() for s in str(columns["text_value"]).split(",") if s.strip()]
        return ChoiceAnswer(selected=tuple(selected))
    if kind is QuestionKind.MATRIX_LIKERT:
        raw = columns.get("matrix_values")
        cells = json.loads(raw) if isinstance(raw, str) and raw else (raw or {})
        return MatrixAnswer(cells={str(k): int(v) for k, v in dict(cells).items()})
    if kind is QuestionKind.RATING:
        number = columns.get("numeric_value")
        return RatingAnswer(
            score=None if number is None else float(number),
            comment=_clean_text(columns.get("comment_value")),
        )
    if kind is QuestionKind.DATE:
        return DateAnswer(value=str(columns.get("date_value") or ""))
    return SignatureAnswer(image_ref=str(columns.get("signature_ref") or columns.get("text_value") or ""))


def encode_answer(kind: QuestionKind | str, value: Mapping[str, Any]) -> dict[str, Any]:
    """Map a submitted answer payload onto storage columns for `kind`.

    Raises ValueError when the payload does not fit the kind.
    """
    kind = QuestionKind(kind)
    columns: dict[str, Any] = {
        "text_value": None,
        "numeric_value": None,
        "date_value": None,
        "selected_options": None,
        "matrix_values": None,
        "signature_ref": None,
        "comment_value": _clean_text(value.get("comment_value")),
    }
    if kind is QuestionKind.TEXT:
        columns["text_value"] = _clean_text(value.get("text_value"))
    elif kind in (QuestionKind.MULTIPLE_CHOICE, QuestionKind.CHECKBOX, QuestionKind.DROPDOWN):
        selected = value.get("selected_options")
        if selected is None and value.get("text_value") is not None:
            selected = [value["text_value"]]
        if selected is not None:
            if not isinstance(selected, (list, tuple)):
                selected = [selected]
            columns["selected_options"] = json.dumps([str(s) for s in selected])
    elif kind is QuestionKind.MATRIX_LIKERT:
        cells = value.get("matrix_values")
        if cells is not None:
            if not isinstance(cells, Mapping):
                raise ValueError("matrix_values must be an object")
            columns["matrix_values"] = json.dumps({str(k): int(v) for k, v in cells.items()})
    elif kind is QuestionKind.RATING:
        number = value.get("numeric_value")
        if number is not None:
            if isinstance(number, bool) or not isinstance(number, (int, float)):
                raise ValueError("numeric_value must be a number")
            columns["numeric_value"] = float(number)
    elif kind is QuestionKind.DATE:
        columns["date_value"] = _clean_text(value.get("date_value"))
    elif kind is QuestionKind.SIGNATURE:
        columns["signature_ref"] = _clean_text(value.get("signature_ref") or value.get("text_value"))
    return columns


__all__ = [
    "QuestionKind",
    "AnswerValue",
    "NoAnswer",
    "TextAnswer",
    "ChoiceAnswer",
    "MatrixAnswer",
    "RatingAnswer",
    "DateAnswer",
    "SignatureAnswer",
    "numeric_score",
    "comment_text",
    "decode_answer",
    "encode_answer",
]
