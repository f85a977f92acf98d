"""Tests for conflation engine data models."""

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError
from shapely.geometry import LineString, Point

from src.exceptions import ConflationValidationError
from modules.conflation_engine.models import (
    Deviation,
    DeviationAction,
    DeviationKind,
    ElementType,
    LiveFeature,
    MatchCandidate,
    MatchResult,
    MatchState,
    UpstreamItem,
    apply_action,
    parse_action,
)

NOW = datetime(2024, 5, 2, 12, 0, 0, tzinfo=timezone.utc)


def missing_deviation(**overrides) -> Deviation:
    data = dict(
        id=1,
        dataset_id=27,
        layer_id=16,
        upstream_item_ids=(101,),
        kind=DeviationKind.MISSING,
        suggested_geom=Point(615000, 6729000),
        title="missing",
    )
    data.update(overrides)
    return Deviation(**data)


class TestUpstreamItem:
    """Test cases for UpstreamItem Pydantic model."""

    def test_ids_are_sorted_and_unique(self):
        item = UpstreamItem(ids=(7, 3, 7), dataset_id=27)

        assert item.ids == (3, 7)
        assert item.key == (3, 7)

    def test_empty_ids_rejected(self):
        with pytest.raises(ValidationError):
            UpstreamItem(ids=(), dataset_id=27)

    def test_attributes_are_stringified(self):
        """Test that attribute values become strings and nulls are dropped."""
        item = UpstreamItem(ids=(1,), dataset_id=27,
                            attributes={"NAMN": "Rådhuset", "NR": 12, "ANM": None})

        assert item.attributes == {"NAMN": "Rådhuset", "NR": "12"}

    def test_empty_geometry_is_absent(self):
        item = UpstreamItem(ids=(1,), dataset_id=27, geometry=Point())

        assert item.geometry is None
        assert item.has_geometry() is False

    def test_items_are_immutable(self):
        item = UpstreamItem(ids=(1,), dataset_id=27)

        with pytest.raises(ValidationError):
            item.dataset_id = 28


class TestLiveFeature:
    """Test cases for LiveFeature Pydantic model."""

    def test_valid_live_feature(self):
        feature = LiveFeature(id=5, type="w", tags={"information": "board", "ele": 12},
                              geometry=LineString([(0, 0), (1, 1)]))

        assert feature.type is ElementType.WAY
        assert feature.tags == {"information": "board", "ele": "12"}
        assert feature.ref == (5, "w")

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            LiveFeature(id=5, type="x")

    def test_has_tag_value(self):
        feature = LiveFeature(id=5, type="n", tags={"information": "board"})

        assert feature.has_tag_value("information", ["board", "sign"])
        assert not feature.has_tag_value("information", ["guidepost"])
        assert not LiveFeature(id=6, type="n").has_tag_value("information", ["board"])


class TestDeviation:
    """Test cases for the Deviation model and its invariants."""

    def test_missing_deviation(self):
        deviation = missing_deviation()

        assert deviation.suggested_tags is None
        assert deviation.note == ""
        assert deviation.has_action() is False
        assert deviation.center.equals(Point(615000, 6729000))

    def test_tag_mismatch_deviation(self):
        deviation = Deviation(
            dataset_id=27, layer_id=16, upstream_item_ids=(101,),
            kind=DeviationKind.TAG_MISMATCH, suggested_tags={"information": "sign"},
            live_element_id=5, live_element_type=ElementType.NODE,
            live_geom=Point(615010, 6729000), title="tag mismatch",
        )

        assert deviation.suggested_geom is None
        assert deviation.center.equals(Point(615010, 6729000))
        assert "n5" in deviation.get_summary()

    def test_match_with_suggested_geometry_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            missing_deviation(live_element_id=5, live_element_type="n",
                              suggested_tags={"information": "sign"})

        assert "suggested_geom must be empty" in str(exc_info.value)

    def test_match_without_suggested_tags_rejected(self):
        with pytest.raises(ValidationError):
            missing_deviation(suggested_geom=None, live_element_id=5, live_element_type="n",
                              suggested_tags={})

    def test_missing_without_geometry_rejected(self):
        with pytest.raises(ValidationError):
            missing_deviation(suggested_geom=None)

    def test_live_reference_requires_type(self):
        with pytest.raises(ValidationError) as exc_info:
            missing_deviation(suggested_geom=None, live_element_id=5,
                              suggested_tags={"information": "sign"})

        assert "set together" in str(exc_info.value)

    def test_action_requires_timestamp(self):
        with pytest.raises(ValidationError) as exc_info:
            missing_deviation(action=DeviationAction.FIXED)

        assert "action and action_at must be set together" in str(exc_info.value)

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            missing_deviation(title="")


class TestApplyAction:
    """Test cases for the workflow action transition."""

    def test_apply_action_sets_action_and_time(self):
        old_state = missing_deviation()

        new_state = apply_action(old_state, "fixed", NOW)

        assert new_state.action is DeviationAction.FIXED
        assert new_state.action_at == NOW
        assert old_state.action is None
        assert old_state.action_at is None
        assert new_state.suggested_geom.equals(old_state.suggested_geom)

    def test_apply_action_overwrites_previous_decision(self):
        state = apply_action(missing_deviation(), DeviationAction.DEFERRED, NOW)

        state = apply_action(state, "not-an-issue", datetime(2024, 6, 1, tzinfo=timezone.utc))

        assert state.action is DeviationAction.NOT_AN_ISSUE
        assert state.action_at.month == 6

    def test_apply_action_none_clears(self):
        state = apply_action(missing_deviation(), "deferred", NOW)

        cleared = apply_action(state, None, NOW)

        assert cleared.action is None
        assert cleared.action_at is None

    def test_unknown_action_rejected(self):
        with pytest.raises(ConflationValidationError) as exc_info:
            apply_action(missing_deviation(), "ignored", NOW)

        assert "already-fixed" in str(exc_info.value)

    @pytest.mark.parametrize("value", ["fixed", "already-fixed", "not-an-issue", "deferred"])
    def test_parse_action_accepts_enumerated_values(self, value):
        assert parse_action(value).value == value


class TestMatchRecords:
    """Test cases for MatchCandidate and MatchResult."""

    def test_candidate_sort_key_orders_by_score_then_id(self):
        a = MatchCandidate((1,), 9, ElementType.NODE, 10.0, 10.0)
        b = MatchCandidate((1,), 3, ElementType.WAY, 10.0, 10.0)
        c = MatchCandidate((1,), 1, ElementType.NODE, 12.0, 12.0)

        assert sorted([a, b, c], key=lambda m: m.sort_key) == [b, a, c]

    def test_match_states(self):
        geom = Point(0, 0)

        assert MatchResult((1,), {}, geom).state is MatchState.NOT_IN_LIVE
        assert MatchResult((1,), {}, geom, 5, ElementType.NODE, {}, geom).state is MatchState.IN_BOTH
        assert MatchResult((), None, None, 5, ElementType.NODE, {}, geom).state \
            is MatchState.NOT_IN_UPSTREAM

    def test_geometries_skip_absent_sides(self):
        result = MatchResult((1,), {}, Point(0, 0))

        assert len(result.geometries()) == 1
