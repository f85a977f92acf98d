"""Tests for best-match selection."""

import random

from modules.conflation_engine.matching import MatchSelector
from modules.conflation_engine.models import ElementType, MatchCandidate


def candidate(key, live_id, score, live_type=ElementType.NODE):
    return MatchCandidate(key, live_id, live_type, score, score)


class TestMatchSelector:
    """Test cases for MatchSelector."""

    def test_lowest_score_wins(self):
        best = MatchSelector().select([candidate((1,), 7, 12.0), candidate((1,), 8, 3.5)])

        assert best[(1,)].live_id == 8

    def test_equal_scores_go_to_lowest_live_id(self):
        best = MatchSelector().select([candidate((1,), 9, 10.0), candidate((1,), 4, 10.0)])

        assert best[(1,)].live_id == 4

    def test_equal_score_and_id_go_to_lowest_type(self):
        best = MatchSelector().select([
            candidate((1,), 4, 10.0, ElementType.WAY),
            candidate((1,), 4, 10.0, ElementType.NODE),
        ])

        assert best[(1,)].live_type is ElementType.NODE

    def test_selection_is_independent_of_order(self):
        candidates = [candidate((1,), live_id, float(live_id % 3)) for live_id in range(1, 12)]
        expected = MatchSelector().select(candidates)

        for seed in range(5):
            shuffled = list(candidates)
            random.Random(seed).shuffle(shuffled)
            assert MatchSelector().select(shuffled) == expected

        assert expected[(1,)].live_id == 3

    def test_nan_scores_are_ignored(self):
        best = MatchSelector().select([candidate((1,), 1, float("nan")), candidate((1,), 2, 40.0)])

        assert best[(1,)].live_id == 2

    def test_keys_with_only_nan_scores_have_no_match(self):
        assert MatchSelector().select([candidate((1,), 1, float("nan"))]) == {}

    def test_live_feature_may_win_for_several_keys(self):
        best = MatchSelector().select([
            candidate((1,), 5, 2.0),
            candidate((2,), 5, 3.0),
            candidate((2,), 6, 4.0),
        ])

        assert best[(1,)].live_id == 5
        assert best[(2,)].live_id == 5

    def test_no_candidates(self):
        assert MatchSelector().select([]) == {}
