"""Tests for blocklist.pruning: deduplication and format compression."""

# pylint: disable=missing-function-docstring
from pytest import mark

from blocklist import pruning


def test_deduplicate_first_occurrence_wins():
    assert pruning.deduplicate(["a", "b", "a", "c"]) == ["a", "b", "c"]


def test_deduplicate_is_exact_match():
    assert pruning.deduplicate(["A.com", "a.com", "a.com "]) == ["A.com", "a.com", "a.com "]


def test_extract_hosts_domains_multiple_and_inline_comment():
    assert pruning.extract_hosts_domains(
        "0.0.0.0 ads.example.com Tracker.Example.net. # trailing"
    ) == ["ads.example.com", "tracker.example.net"]


def test_extract_hosts_domains_skips_local_hostnames():
    assert pruning.extract_hosts_domains("127.0.0.1 localhost") == []


@mark.parametrize("line", ["||example.com^", "192.168.1.1 router.lan", "example.com"])
def test_extract_hosts_domains_rejects_non_blocking_lines(line):
    assert pruning.extract_hosts_domains(line) is None


def test_walk_parent_domains_stops_at_registered_domain():
    assert pruning.walk_parent_domains("a.b.example.com") == ("b.example.com", "example.com")
    assert pruning.walk_parent_domains("x.example.co.uk") == ("example.co.uk",)
    assert pruning.walk_parent_domains("example.com") == ()


def test_to_abp_rewrites_known_formats():
    assert pruning.to_abp("0.0.0.0 a.example.com b.example.com") == [
        "||a.example.com^",
        "||b.example.com^",
    ]
    assert pruning.to_abp("Plain.Example.org") == ["||plain.example.org^"]
    assert pruning.to_abp("/ads[0-9]+/") == ["/ads[0-9]+/"]


def test_compress_prunes_subdomains_covered_by_parent():
    lines = [
        "0.0.0.0 ads.example.com",
        "||deep.ads.example.com^",
        "example.com",
        "unrelated.org",
    ]

    assert pruning.compress(lines) == ["||example.com^", "||unrelated.org^"]


def test_compress_keeps_modifier_rules_and_unknown_formats():
    lines = [
        "||example.com^",
        "||ads.example.com^$important",
        "@@||ok.example.com^",
        "/banner\\d+/",
    ]

    assert pruning.compress(lines) == lines


def test_compress_does_not_treat_public_suffix_as_parent():
    assert pruning.compress(["||co.uk^", "example.co.uk"]) == ["||co.uk^", "||example.co.uk^"]


def test_compress_collapses_equivalent_formats_in_first_seen_order():
    lines = ["b.example.org", "0.0.0.0 a.example.net", "||b.example.org^", "a.example.net"]

    assert pruning.compress(lines) == ["||b.example.org^", "||a.example.net^"]


def test_compress_is_stable_on_its_own_output():
    once = pruning.compress(["0.0.0.0 x.example.com y.example.com", "example.net"])

    assert pruning.compress(once) == once
