import math

import pytest

from coursegate.application.assessment.answer_evaluator import SubmittedAnswer, is_answer_correct
from coursegate.application.assessment.question_rules import parse_rule


def numeric(correct=10, tolerance=0.5):
    return parse_rule("NUMERICAL", {"correct": correct, "tolerance": tolerance})


def payload(value):
    return SubmittedAnswer(payload=value)


class TestChoice:
    def test_exact_set_is_correct(self):
        rule = parse_rule("MULTI_SELECT", correct_option_ids=[3, 1])
        assert is_answer_correct(rule, SubmittedAnswer(selected_option_ids=[1, 3]))

    def test_duplicates_in_submission_are_ignored(self):
        rule = parse_rule("MULTI_SELECT", correct_option_ids=[1, 3])
        assert is_answer_correct(rule, SubmittedAnswer(selected_option_ids=[3, 1, 3]))

    def test_subset_is_incorrect(self):
        rule = parse_rule("MULTI_SELECT", correct_option_ids=[1, 3])
        assert not is_answer_correct(rule, SubmittedAnswer(selected_option_ids=[1]))

    def test_superset_is_incorrect(self):
        rule = parse_rule("SINGLE_CHOICE", correct_option_ids=[2])
        assert not is_answer_correct(rule, SubmittedAnswer(selected_option_ids=[1, 2]))

    def test_true_false_graded_like_single_choice(self):
        rule = parse_rule("TRUE_FALSE", correct_option_ids=[7])
        assert is_answer_correct(rule, SubmittedAnswer(selected_option_ids=[7]))
        assert not is_answer_correct(rule, SubmittedAnswer(selected_option_ids=[8]))

    def test_missing_answer_is_incorrect(self):
        rule = parse_rule("SINGLE_CHOICE", correct_option_ids=[2])
        assert not is_answer_correct(rule, None)


class TestNumerical:
    def test_boundary_of_tolerance_is_correct(self):
        assert is_answer_correct(numeric(), payload(10.5))
        assert is_answer_correct(numeric(), payload(9.5))

    @pytest.mark.parametrize(
        "correct, tolerance, submitted",
        [(0.3, 0.1, 0.4), (0.3, 0.1, 0.2), (1.1, 0.2, 1.3), (0.7, 0.1, "0.8")],
    )
    def test_boundary_holds_for_inexact_decimals(self, correct, tolerance, submitted):
        assert is_answer_correct(numeric(correct, tolerance), payload(submitted))

    def test_just_past_inexact_boundary_is_incorrect(self):
        assert not is_answer_correct(numeric(0.3, 0.1), payload(0.4000001))

    def test_just_outside_tolerance_is_incorrect(self):
        assert not is_answer_correct(numeric(), payload(10.51))

    def test_zero_tolerance_requires_exact_value(self):
        rule = numeric(correct=42, tolerance=0)
        assert is_answer_correct(rule, payload(42))
        assert not is_answer_correct(rule, payload(42.001))

    def test_numeric_string_is_accepted(self):
        assert is_answer_correct(numeric(), payload(" 10.2 "))

    @pytest.mark.parametrize("value", [None, "ten", math.nan, math.inf, True, [10], {"value": 10}])
    def test_unusable_submissions_are_incorrect(self, value):
        assert not is_answer_correct(numeric(), payload(value))


class TestMatching:
    RULE = {
        "pairs": [
            {"left": "H2O", "right": "water"},
            {"left": "NaCl", "right": "salt"},
        ]
    }

    def test_pairs_in_any_order_are_correct(self):
        rule = parse_rule("MATCHING", self.RULE)
        submitted = [{"left": "NaCl", "right": "salt"}, {"left": "H2O", "right": "water"}]
        assert is_answer_correct(rule, payload(submitted))

    def test_two_element_lists_are_accepted(self):
        rule = parse_rule("MATCHING", self.RULE)
        assert is_answer_correct(rule, payload([["H2O", "water"], ["NaCl", "salt"]]))

    def test_swapped_right_sides_are_incorrect(self):
        rule = parse_rule("MATCHING", self.RULE)
        submitted = [{"left": "H2O", "right": "salt"}, {"left": "NaCl", "right": "water"}]
        assert not is_answer_correct(rule, payload(submitted))

    def test_missing_pair_is_incorrect(self):
        rule = parse_rule("MATCHING", self.RULE)
        assert not is_answer_correct(rule, payload([{"left": "H2O", "right": "water"}]))

    def test_malformed_payload_is_incorrect(self):
        rule = parse_rule("MATCHING", self.RULE)
        assert not is_answer_correct(rule, payload("H2O=water"))
        assert not is_answer_correct(rule, payload([{"left": "H2O"}, {"left": "NaCl", "right": "salt"}]))


class TestCloze:
    RULE = {
        "parts": [
            {"kind": "text", "value": "The capital of France is "},
            {"kind": "blank", "answer": "Paris"},
            {"kind": "text", "value": " and of Italy is "},
            {"kind": "blank", "answer": "Rome"},
        ]
    }

    def test_case_and_whitespace_are_ignored(self):
        rule = parse_rule("CLOZE", self.RULE)
        assert is_answer_correct(rule, payload(["  paris", "ROME "]))

    def test_wrong_blank_is_incorrect(self):
        rule = parse_rule("CLOZE", self.RULE)
        assert not is_answer_correct(rule, payload(["Paris", "Milan"]))

    def test_length_mismatch_is_incorrect(self):
        rule = parse_rule("CLOZE", self.RULE)
        assert not is_answer_correct(rule, payload(["Paris"]))
        assert not is_answer_correct(rule, payload(["Paris", "Rome", "Berlin"]))

    def test_order_matters(self):
        rule = parse_rule("CLOZE", self.RULE)
        assert not is_answer_correct(rule, payload(["Rome", "Paris"]))


class TestUnsupported:
    @pytest.mark.parametrize("question_type", ["DRAG_DROP_IMAGE", "DRAG_DROP_TEXT"])
    def test_drag_and_drop_is_always_incorrect(self, question_type):
        rule = parse_rule(question_type, {"zones": ["a"]})
        assert not is_answer_correct(rule, payload({"a": "a"}))
