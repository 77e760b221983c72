import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional

from .question_rules import (
    ChoiceRule,
    ClozeRule,
    MatchingRule,
    NumericalRule,
    UnsupportedRule,
)


@dataclass
class SubmittedAnswer:
    selected_option_ids: List[int] = field(default_factory=list)
    payload: Any = None


EMPTY_ANSWER = SubmittedAnswer()


def is_answer_correct(rule, answer: Optional[SubmittedAnswer]) -> bool:
    """
    Grades one answer against one rule. All-or-nothing, never raises.
    A missing answer is graded as an empty one.
    """
    if answer is None:
        answer = EMPTY_ANSWER

    if isinstance(rule, ChoiceRule):
        return _grade_choice(rule, answer)
    if isinstance(rule, NumericalRule):
        return _grade_numerical(rule, answer.payload)
    if isinstance(rule, MatchingRule):
        return _grade_matching(rule, answer.payload)
    if isinstance(rule, ClozeRule):
        return _grade_cloze(rule, answer.payload)
    if isinstance(rule, UnsupportedRule):
        return False
    raise TypeError(f"No grading rule for {type(rule).__name__}")


def _grade_choice(rule: ChoiceRule, answer: SubmittedAnswer) -> bool:
    selected = sorted(set(answer.selected_option_ids or []))
    return selected == sorted(set(rule.correct_option_ids))


def _to_number(value: Any) -> Optional[float]:
    # bool is an int subclass; True is not an answer to a numeric question
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _decimal(value: float) -> Decimal:
    # Shortest repr, so 0.1 compares as the 0.1 the author typed
    return Decimal(str(value))


def _grade_numerical(rule: NumericalRule, payload: Any) -> bool:
    submitted = _to_number(payload)
    if submitted is None:
        return False
    return abs(_decimal(submitted) - _decimal(rule.correct)) <= _decimal(rule.tolerance)


def _pair_key(pair: Any) -> Optional[str]:
    if isinstance(pair, dict):
        left, right = pair.get("left"), pair.get("right")
    elif isinstance(pair, (list, tuple)) and len(pair) == 2:
        left, right = pair
    else:
        return None
    if not isinstance(left, str) or not isinstance(right, str):
        return None
    return f"{left}\t{right}"


def _grade_matching(rule: MatchingRule, payload: Any) -> bool:
    if not isinstance(payload, list):
        return False
    submitted = [_pair_key(pair) for pair in payload]
    if any(key is None for key in submitted):
        return False
    expected = [f"{pair.left}\t{pair.right}" for pair in rule.pairs]
    return sorted(submitted) == sorted(expected)


def _normalize_blank(value: str) -> str:
    return value.strip().casefold()


def _grade_cloze(rule: ClozeRule, payload: Any) -> bool:
    if not isinstance(payload, list):
        return False
    expected = rule.blanks
    if len(payload) != len(expected):
        return False
    for submitted, answer in zip(payload, expected):
        if not isinstance(submitted, str):
            return False
        if _normalize_blank(submitted) != _normalize_blank(answer):
            return False
    return True
