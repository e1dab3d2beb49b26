"""Tests for blocklist.pipeline.RuleFilterPipeline."""

# pylint: disable=missing-function-docstring
from pytest import raises

from blocklist.config import Transformation
from blocklist.errors import (
    NoRulesAfterCommentStrip,
    NoRulesAfterValidation,
    SuspiciouslyFewRules,
)
from blocklist.pipeline import RuleFilterPipeline


def _lines(count: int) -> list[str]:
    return [f"r{i}.example.com" for i in range(count)]


def test_default_pipeline_strips_dedupes_and_validates_in_order():
    lines = ["a.com", "#comment", "b.com", "a.com", "c.com", "x", "two words.com", "[hdr]"]

    result = RuleFilterPipeline(min_rules=1).run(lines)

    assert result == ["a.com", "b.com", "c.com"]


def test_pipeline_is_idempotent():
    lines = ["! title", "z.example.org", "a.example.org", "z.example.org", "bad", "m.example.org"]
    pipeline = RuleFilterPipeline(min_rules=1)

    once = pipeline.run(lines)

    assert pipeline.run(once) == once


def test_pipeline_is_deterministic_for_identical_input():
    lines = _lines(150) + _lines(150)

    assert RuleFilterPipeline().run(list(lines)) == RuleFilterPipeline().run(list(lines))


def test_transformations_run_in_canonical_order_regardless_of_input_order():
    pipeline = RuleFilterPipeline(
        [Transformation.VALIDATE, Transformation.DEDUPLICATE, Transformation.REMOVE_COMMENTS],
        min_rules=1,
    )

    pipeline.run(["a.com", "a.com", "# c"])

    assert [s.transformation for s in pipeline.stats] == [
        Transformation.REMOVE_COMMENTS,
        Transformation.DEDUPLICATE,
        Transformation.VALIDATE,
    ]
    assert [s.removed for s in pipeline.stats] == [1, 1, 0]


def test_only_configured_stages_run():
    result = RuleFilterPipeline([Transformation.DEDUPLICATE], min_rules=1).run(
        ["# kept comment", "a.com", "a.com"]
    )

    assert result == ["# kept comment", "a.com"]


def test_compress_stage_rewrites_hosts_entries():
    pipeline = RuleFilterPipeline(
        [Transformation.REMOVE_COMMENTS, Transformation.COMPRESS, Transformation.VALIDATE],
        min_rules=1,
    )

    result = pipeline.run(["# hosts", "0.0.0.0 ads.example.com", "example.com"])

    assert result == ["||example.com^"]


def test_only_comments_fails_after_comment_strip():
    with raises(NoRulesAfterCommentStrip):
        RuleFilterPipeline(min_rules=1).run(["# one", "! two", "[three]"])


def test_nothing_valid_fails_after_validation():
    with raises(NoRulesAfterValidation):
        RuleFilterPipeline(min_rules=1).run(["nodot", "a b.com", "x.y"])


def test_too_few_rules_is_rejected():
    with raises(SuspiciouslyFewRules) as excinfo:
        RuleFilterPipeline(min_rules=100).run(_lines(50))

    assert excinfo.value.count == 50
    assert excinfo.value.minimum == 100


def test_exactly_minimum_rules_passes():
    assert len(RuleFilterPipeline(min_rules=100).run(_lines(100))) == 100
