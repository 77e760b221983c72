"""
Grading rules for each question type.

A stored question keeps its type in a string column and its type-specific data
either in its options (choice-like types) or in a JSON metadata blob. Before
grading, the question is turned into exactly one rule variant below; the
variant carries only the fields its type needs.

Metadata shapes:

    NUMERICAL  {"correct": 10, "tolerance": 0.5}
    MATCHING   {"pairs": [{"left": "H2O", "right": "water"}, ...]}
    CLOZE      {"parts": [{"kind": "text", "value": "Paris is in "},
                          {"kind": "blank", "answer": "France"}]}
"""

import math
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from coursegate.infrastructure.db.models import QuestionModel, QuestionType


class ChoiceRule(BaseModel):
    type: Literal["SINGLE_CHOICE", "MULTI_SELECT", "TRUE_FALSE"]
    correct_option_ids: List[int]


class NumericalRule(BaseModel):
    type: Literal["NUMERICAL"]
    correct: float
    tolerance: float = Field(default=0.0, ge=0)

    @field_validator("correct", "tolerance")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("must be a finite number")
        return value


class MatchingPair(BaseModel):
    left: str
    right: str


class MatchingRule(BaseModel):
    type: Literal["MATCHING"]
    pairs: List[MatchingPair] = Field(min_length=1)


class ClozeText(BaseModel):
    kind: Literal["text"]
    value: str = ""


class ClozeBlank(BaseModel):
    kind: Literal["blank"]
    answer: str


ClozePart = Annotated[Union[ClozeText, ClozeBlank], Field(discriminator="kind")]


class ClozeRule(BaseModel):
    type: Literal["CLOZE"]
    parts: List[ClozePart]

    @property
    def blanks(self) -> List[str]:
        return [part.answer for part in self.parts if isinstance(part, ClozeBlank)]


class UnsupportedRule(BaseModel):
    # Authored and stored, but there is no grading contract for these yet
    type: Literal["DRAG_DROP_IMAGE", "DRAG_DROP_TEXT"]


QuestionRule = Annotated[
    Union[ChoiceRule, NumericalRule, MatchingRule, ClozeRule, UnsupportedRule],
    Field(discriminator="type"),
]

_rule_adapter = TypeAdapter(QuestionRule)


def parse_rule(question_type: str, metadata: dict = None, correct_option_ids: List[int] = None):
    """
    Validates raw question data into a rule variant.

    Raises pydantic.ValidationError when the type is unknown or the metadata
    does not fit the type.
    """
    if question_type in QuestionType.CHOICE_TYPES:
        payload = {"type": question_type, "correct_option_ids": correct_option_ids or []}
    else:
        payload = dict(metadata or {})
        payload["type"] = question_type
    return _rule_adapter.validate_python(payload)


def build_rule(question: QuestionModel):
    correct_ids = [option.id for option in question.options if option.is_correct]
    return parse_rule(question.type, question.question_metadata, correct_ids)


def student_metadata(question: QuestionModel) -> Optional[dict]:
    """
    The part of a question's metadata a student needs to answer it, with the
    expected values removed.
    """
    if question.type in QuestionType.CHOICE_TYPES:
        return None
    try:
        rule = build_rule(question)
    except ValidationError:
        return None

    if isinstance(rule, MatchingRule):
        return {
            "left": [pair.left for pair in rule.pairs],
            "right": sorted(pair.right for pair in rule.pairs),
        }
    if isinstance(rule, ClozeRule):
        parts = []
        for part in rule.parts:
            if isinstance(part, ClozeText):
                parts.append({"kind": "text", "value": part.value})
            else:
                parts.append({"kind": "blank"})
        return {"parts": parts}
    return None
