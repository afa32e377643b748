import pytest

from config import MATCH_THRESHOLD
from kb import best_match, extract_search_terms, is_general_query, score


@pytest.mark.parametrize("name", ["Apple Juice", "Arasaka Portable Neural Battery", "x"])
def test_identical_names_score_one(name):
    assert score(name, name) == 1.0


def test_case_is_ignored():
    assert score("APPLE juice", "Apple Juice") == 1.0


def test_candidate_containing_search_passes_threshold():
    assert score("juice", "Apple Juice") == 0.9
    assert score("juice", "Apple Juice") >= MATCH_THRESHOLD


def test_search_containing_candidate():
    assert score("the big apple juice bottle", "Apple Juice") == 0.8


def test_unrelated_names_stay_below_threshold():
    assert score("zzz", "Apple Juice") < MATCH_THRESHOLD


def test_word_overlap_ratio():
    # one common word out of max(2, 3)
    assert score("orange soda", "Orange Juice 1000ml") == pytest.approx(1 / 3)


def test_empty_input_scores_zero():
    assert score("", "Apple Juice") == 0.0
    assert score("apple", "") == 0.0


def test_best_match_prefers_highest_score():
    products = [{"id": 1, "name": "Orange Juice"}, {"id": 2, "name": "Apple Juice"}]
    product, s = best_match("apple juice", products)
    assert product["id"] == 2
    assert s == 1.0


def test_best_match_ties_keep_catalog_order():
    products = [{"id": 1, "name": "Lemon Juice"}, {"id": 2, "name": "Apple Juice"}]
    product, s = best_match("juice", products)
    assert product["id"] == 1
    assert s == 0.9


def test_best_match_of_nothing():
    assert best_match("apple", []) is None


@pytest.mark.parametrize("query", ["", "   ", "What products do you have?", "show me the catalog", "all products"])
def test_general_queries(query):
    assert is_general_query(query)


def test_specific_query_is_not_general():
    assert not is_general_query("apple juice")


def test_search_terms_drop_stop_words_and_short_words():
    assert extract_search_terms("Do you have an apple juice?") == ["apple", "juice"]


def test_search_terms_add_semantic_variations_without_duplicates():
    terms = extract_search_terms("cheap budget stuff")
    assert terms == ["cheap", "budget", "affordable", "inexpensive", "stuff"]
