import pytest

from reranking import Parsed, Unparsed, parse_judgement


def test_mapping_with_score_and_rationale():
    result = parse_judgement({"score": 0.8, "rationale": "close match"})
    assert result == Parsed(score=0.8, rationale="close match")


def test_story_store_keys_are_accepted():
    result = parse_judgement({"llm_score": "0.4", "reason": "partial overlap"})
    assert result == Parsed(score=0.4, rationale="partial overlap")


def test_out_of_range_scores_are_clamped():
    assert parse_judgement({"score": 3}).score == 1.0
    assert parse_judgement({"score": -2}).score == 0.0


def test_non_numeric_or_nan_score_is_unparsed():
    assert isinstance(parse_judgement({"score": "high"}), Unparsed)
    assert isinstance(parse_judgement({"score": float("nan")}), Unparsed)


def test_json_string():
    result = parse_judgement('{"score": 0.65, "rationale": "same feature"}')
    assert result == Parsed(score=0.65, rationale="same feature")


def test_json_embedded_in_prose():
    result = parse_judgement('Sure! Here you go: {"score": 0.3, "reason": "weak"} Thanks.')
    assert result == Parsed(score=0.3, rationale="weak")


def test_number_fallback_picks_first_value_in_range():
    result = parse_judgement("I would rate this 7 out of 10, so 0.7 overall.")
    assert isinstance(result, Parsed)
    assert result.score == pytest.approx(0.7)


def test_unparseable_text():
    result = parse_judgement("cannot decide")
    assert isinstance(result, Unparsed)
    assert result.raw == "cannot decide"
    assert result.fallback_score == 0.0


def test_unparsed_raw_is_truncated():
    result = parse_judgement("x" * 1000)
    assert isinstance(result, Unparsed)
    assert len(result.raw) == 300
