"""Tests for deviation classification."""

import pytest

from modules.conflation_engine.matching import (
    Classification,
    DeviationClassifier,
    RulesetConfig,
)
from modules.conflation_engine.matching.registry import template_tags
from modules.conflation_engine.models import DeviationKind, ElementType

from conftest import make_live, make_upstream, point, ruleset_dict


@pytest.fixture
def ruleset():
    return RulesetConfig.from_dict(ruleset_dict(texts={
        "missing_title": "Skylt saknas",
        "mismatch_title": "Skylt har avvikande taggar",
    }))


@pytest.fixture
def classifier():
    return DeviationClassifier()


class TestDeviationClassifier:
    """Test cases for DeviationClassifier."""

    def test_unmatched_item_is_missing(self, classifier, ruleset):
        item = make_upstream(101, point(), {"NAMN": "Gamla rådhuset"})

        deviation = classifier.classify(item, template_tags(item, ruleset), None, ruleset)

        assert deviation.kind is DeviationKind.MISSING
        assert deviation.suggested_geom.equals(point())
        assert deviation.suggested_tags is None
        assert deviation.live_element_id is None
        assert deviation.upstream_item_ids == (101,)
        assert deviation.dataset_id == 27
        assert deviation.layer_id == 16
        assert deviation.title == "Skylt saknas"
        assert deviation.id is None

    def test_matched_item_with_different_tags(self, classifier, ruleset):
        item = make_upstream(101, point(), {"NAMN": "Gamla rådhuset"})
        live = make_live(5, point(10), {"information": "board"})

        deviation = classifier.classify(item, template_tags(item, ruleset), live, ruleset)

        assert deviation.kind is DeviationKind.TAG_MISMATCH
        assert deviation.suggested_tags == {"information": "sign",
                                            "inscription": "Gamla rådhuset"}
        assert deviation.suggested_geom is None
        assert deviation.live_element_id == 5
        assert deviation.live_element_type is ElementType.NODE
        assert deviation.live_geom.equals(point(10))
        assert deviation.title == "Skylt har avvikande taggar"

    def test_matched_item_with_agreeing_tags(self, classifier, ruleset):
        item = make_upstream(101, point(), {"NAMN": "Gamla rådhuset"})
        live = make_live(5, point(10), {"information": "sign", "inscription": "Gamla rådhuset",
                                        "tourism": "information"})

        assert classifier.classify(item, template_tags(item, ruleset), live, ruleset) is None

    def test_attribute_whitespace_is_trimmed_before_comparison(self, classifier, ruleset):
        item = make_upstream(101, point(), {"NAMN": "  Gamla rådhuset  "})
        live = make_live(5, point(10), {"information": "sign", "inscription": "Gamla rådhuset"})

        assert classifier.classify(item, template_tags(item, ruleset), live, ruleset) is None

    def test_only_differing_tags_are_suggested(self, classifier, ruleset):
        item = make_upstream(101, point(), {"NAMN": "Gamla rådhuset"})
        live = make_live(5, point(10), {"information": "sign", "inscription": "Rådhuset"})

        deviation = classifier.classify(item, template_tags(item, ruleset), live, ruleset)

        assert deviation.suggested_tags == {"inscription": "Gamla rådhuset"}

    def test_live_without_tags(self, classifier, ruleset):
        item = make_upstream(101, point())
        live = make_live(5, point(10))

        deviation = classifier.classify(item, template_tags(item, ruleset), live, ruleset)

        assert deviation.suggested_tags == {"information": "sign"}

    @pytest.mark.parametrize("derived,live_tags,expected", [
        ({"a": "1"}, None, Classification.TAG_MISMATCH),
        ({"a": "1"}, {"a": "1"}, Classification.NO_DEVIATION),
        ({}, {"a": "1"}, Classification.NO_DEVIATION),
        ({"a": "1"}, {"a": "2"}, Classification.TAG_MISMATCH),
    ])
    def test_classification(self, derived, live_tags, expected):
        live = make_live(1, point(), live_tags)

        assert DeviationClassifier.classification(derived, live) is expected

    def test_classification_without_live(self):
        assert DeviationClassifier.classification({}, None) is Classification.MISSING
