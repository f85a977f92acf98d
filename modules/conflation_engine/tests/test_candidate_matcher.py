"""Tests for the spatial candidate search."""

import pytest

from modules.conflation_engine.matching import CandidateMatcher, RulesetRegistry
from modules.conflation_engine.models import ElementType

from conftest import make_live, make_upstream, point, ruleset_dict


def candidate_pairs(matching_pass):
    return sorted((c.upstream_key, c.live_id) for c in matching_pass.candidates)


class TestCandidateMatcher:
    """Test cases for CandidateMatcher."""

    @pytest.fixture
    def matcher(self, store, registry):
        return CandidateMatcher(store, registry)

    def test_pairs_within_threshold(self, store, registry, matcher):
        store.upstream = [make_upstream(101, point())]
        store.live = [make_live(1, point(10)), make_live(2, point(0, 49)), make_live(3, point(80))]

        result = matcher.find_candidates(registry.get("signs"))

        assert candidate_pairs(result) == [((101,), 1), ((101,), 2)]

    def test_threshold_is_inclusive(self, store, registry, matcher):
        store.upstream = [make_upstream(101, point())]
        store.live = [make_live(1, point(50)), make_live(2, point(50.5))]

        result = matcher.find_candidates(registry.get("signs"))

        assert candidate_pairs(result) == [((101,), 1)]
        assert result.candidates[0].distance == pytest.approx(50.0)

    def test_default_score_is_distance(self, store, registry, matcher):
        store.upstream = [make_upstream(101, point())]
        store.live = [make_live(1, point(30, 40), element_type="w")]

        candidate = matcher.find_candidates(registry.get("signs")).candidates[0]

        assert candidate.score == pytest.approx(50.0)
        assert candidate.live_type is ElementType.WAY

    def test_items_outside_region_are_ignored(self, store, registry, matcher):
        store.upstream = [make_upstream(101, point()), make_upstream(102, point(30000))]
        store.live = [make_live(1, point(5)), make_live(2, point(30005))]

        result = matcher.find_candidates(registry.get("signs"))

        assert [item.key for item in result.upstream_items] == [(101,)]
        assert [feature.id for feature in result.live_features] == [1]
        assert candidate_pairs(result) == [((101,), 1)]

    def test_items_without_geometry_are_skipped(self, store, registry, matcher):
        store.upstream = [make_upstream(101, point()), make_upstream(102)]
        store.live = [make_live(1, point(5))]

        result = matcher.find_candidates(registry.get("signs"))

        assert result.skipped == 1
        assert [item.key for item in result.upstream_items] == [(101,)]

    def test_duplicate_upstream_keys_keep_first(self, store, registry, matcher):
        store.upstream = [
            make_upstream((101, 102), point(), {"NAMN": "Rådhuset"}),
            make_upstream((102, 101), point(20), {"NAMN": "Kyrkan"}),
        ]

        result = matcher.load(registry.get("signs"))

        assert len(result.upstream_items) == 1
        assert result.skipped == 1
        assert result.derived_tags[(101, 102)]["inscription"] == "Rådhuset"

    def test_live_filter_restricts_candidates(self, store, matcher):
        registry = RulesetRegistry({"signs": ruleset_dict(
            live_filter={"types": ["n"], "tags": {"information": ["board"]}}
        )})
        store.upstream = [make_upstream(101, point())]
        store.live = [
            make_live(1, point(5), {"information": "board"}),
            make_live(2, point(5), {"information": "board"}, element_type="w"),
            make_live(3, point(5), {"amenity": "bench"}),
        ]

        result = CandidateMatcher(store, registry).find_candidates(registry.get("signs"))

        assert candidate_pairs(result) == [((101,), 1)]

    def test_derived_tags_recorded_per_key(self, store, registry, matcher):
        store.upstream = [make_upstream(101, point(), {"NAMN": " Rådhuset "})]

        result = matcher.find_candidates(registry.get("signs"))

        assert result.derived_tags == {(101,): {"information": "sign", "inscription": "Rådhuset"}}
        assert result.candidates == []

    def test_tag_weighted_scoring(self, store):
        registry = RulesetRegistry({"signs": ruleset_dict(scoring="tag_weighted")})
        store.upstream = [make_upstream(101, point(), {"NAMN": "Rådhuset"})]
        store.live = [
            make_live(1, point(10), {"information": "sign", "inscription": "Rådhuset"}),
            make_live(2, point(5), {"amenity": "bench"}),
        ]

        result = CandidateMatcher(store, registry).find_candidates(registry.get("signs"))
        scores = {c.live_id: c.score for c in result.candidates}

        assert scores[1] == pytest.approx(10.0)
        assert scores[2] == pytest.approx(10.0)
        assert {c.live_id: c.distance for c in result.candidates}[2] == pytest.approx(5.0)

    def test_store_errors_propagate(self, store, registry, matcher):
        store.error = OSError("disk gone")

        with pytest.raises(OSError):
            matcher.find_candidates(registry.get("signs"))
