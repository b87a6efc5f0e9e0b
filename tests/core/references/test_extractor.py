"""Tests for link extraction, page ids and substitution."""

import pytest

from wikiref.core.references.extractor import (
    count_candidate_links,
    count_links,
    extract_links,
    extract_page_id,
    split_marked,
    substitute_links,
    wrap_content,
)

CLOUD = "https://acme.atlassian.net/wiki"
LINK_1 = f"{CLOUD}/spaces/ENG/pages/101/Runbook"
LINK_2 = f"{CLOUD}/spaces/ENG/pages/202/Design"


# ---------------------------------------------------------------------------
# extract_links
# ---------------------------------------------------------------------------


class TestExtractLinks:

    def test_empty_inputs(self):
        assert extract_links("", CLOUD) == []
        assert extract_links(f"see {LINK_1}", "") == []
        assert extract_links("no links here", CLOUD) == []

    def test_trailing_punctuation_and_dedup(self):
        text = f"Read {LINK_1}. Then read {LINK_1} again"
        assert extract_links(text, CLOUD) == [LINK_1]

    @pytest.mark.parametrize("suffix", [".", ",", ";", ":", "!", "?", ")", "]", "}", ">", ").", "!?"])
    def test_strips_each_trailing_character(self, suffix):
        assert extract_links(f"x {LINK_1}{suffix} y", CLOUD) == [LINK_1]

    def test_first_appearance_order(self):
        text = f"{LINK_2} and {LINK_1} and {LINK_2}"
        assert extract_links(text, CLOUD) == [LINK_2, LINK_1]

    def test_other_hosts_ignored(self):
        text = f"https://other.atlassian.net/wiki/spaces/X/pages/9/Y and {LINK_1}"
        assert extract_links(text, CLOUD) == [LINK_1]

    def test_lookalike_host_ignored(self):
        text = "https://acme.atlassian.net.evil.io/wiki/pages/1"
        assert extract_links(text, CLOUD) == []

    def test_cloud_requires_wiki_path(self):
        text = "https://acme.atlassian.net/jira/browse/ENG-1"
        assert extract_links(text, "https://acme.atlassian.net") == []
        assert extract_links(f"{text} {LINK_1}", "https://acme.atlassian.net") == [LINK_1]

    def test_server_base_url_without_path(self):
        link = "https://wiki.corp.local/pages/viewpage.action?pageId=12345"
        assert extract_links(f"see ({link})", "https://wiki.corp.local") == [link]

    def test_base_path_restricts_matches(self):
        base = "https://corp.local/confluence"
        text = "https://corp.local/jira/x https://corp.local/confluence/display/ENG/Home"
        assert extract_links(text, base) == ["https://corp.local/confluence/display/ENG/Home"]

    def test_host_match_is_case_insensitive(self):
        link = "https://ACME.atlassian.net/wiki/spaces/ENG/pages/5/X"
        assert extract_links(link, CLOUD) == [link]

    def test_skips_content_markers(self):
        text = f"@conf-cnt body mentions {LINK_1}@ and {LINK_2}"
        assert extract_links(text, CLOUD) == [LINK_2]

    def test_deterministic(self):
        text = f"{LINK_1} {LINK_2}. {LINK_1}, text"
        assert extract_links(text, CLOUD) == extract_links(text, CLOUD)


# ---------------------------------------------------------------------------
# extract_page_id
# ---------------------------------------------------------------------------


class TestExtractPageId:

    @pytest.mark.parametrize(
        "link, page_id",
        [
            (LINK_1, "101"),
            (f"{CLOUD}/spaces/ENG/pages/987654", "987654"),
            (f"{CLOUD}/spaces/ENG/pages/42?focusedCommentId=1", "42"),
            ("https://wiki.corp.local/pages/viewpage.action?pageId=777", "777"),
            ("https://wiki.corp.local/pages/viewpage.action?spaceKey=X&pageId=778", "778"),
        ],
    )
    def test_found(self, link, page_id):
        assert extract_page_id(link) == page_id

    @pytest.mark.parametrize(
        "link",
        [
            f"{CLOUD}/spaces/ENG/overview",
            f"{CLOUD}/spaces/ENG/pages/abc/Title",
            "https://wiki.corp.local/display/ENG/Home",
        ],
    )
    def test_missing(self, link):
        assert extract_page_id(link) is None


# ---------------------------------------------------------------------------
# count_candidate_links
# ---------------------------------------------------------------------------


class TestCountCandidateLinks:

    def test_counts_every_confluence_url(self):
        text = (
            f"{LINK_1} {LINK_1}. {LINK_2} "
            "https://wiki.corp.local/pages/viewpage.action?pageId=9 "
            "https://example.com/unrelated"
        )
        assert count_candidate_links(text) == 4

    def test_empty(self):
        assert count_candidate_links("") == 0


class TestCountLinks:

    def test_counts_repeats(self):
        text = f"{LINK_1} {LINK_1}, {LINK_1}. {LINK_2}"
        assert count_links(text, CLOUD) == 4
        assert len(extract_links(text, CLOUD)) == 2

    def test_ignores_marked_and_foreign_links(self):
        text = f"@conf-cnt {LINK_1} @ {LINK_2} https://other.atlassian.net/wiki/pages/1"
        assert count_links(text, CLOUD) == 1

    def test_empty_inputs(self):
        assert count_links("", CLOUD) == 0
        assert count_links(LINK_1, "") == 0


# ---------------------------------------------------------------------------
# markers and substitution
# ---------------------------------------------------------------------------


class TestWrapContent:

    def test_wraps_with_markers(self):
        assert wrap_content(LINK_1, "  Steps  ") == "@conf-cnt Steps@"

    def test_empty_content_keeps_link(self):
        assert wrap_content(LINK_1, "   ") == LINK_1

    def test_email_addresses_survive(self):
        assert wrap_content(LINK_1, "mail ops@acme.io") == "@conf-cnt mail ops@acme.io@"

    def test_stray_end_marker_removed(self):
        assert wrap_content(LINK_1, "ping @ desk") == "@conf-cnt ping  desk@"

    def test_custom_markers(self):
        assert wrap_content(LINK_1, "Body", "<<", ">>") == "<<Body>>"


class TestSplitMarked:

    def test_segments(self):
        parts = split_marked("a @conf-cnt X@ b")
        assert parts == [("a ", False), ("@conf-cnt X@", True), (" b", False)]

    def test_email_does_not_close_span(self):
        parts = split_marked("@conf-cnt mail ops@acme.io now@ tail")
        assert parts[0] == ("@conf-cnt mail ops@acme.io now@", True)
        assert parts[1] == (" tail", False)

    def test_marker_followed_by_punctuation(self):
        parts = split_marked("see @conf-cnt X@. next")
        assert parts[1] == ("@conf-cnt X@", True)


class TestSubstituteLinks:

    def test_replaces_every_occurrence(self):
        text = f"Read {LINK_1}. Again {LINK_1}!"
        result = substitute_links(text, {LINK_1: "@conf-cnt Steps@"})
        assert result == "Read @conf-cnt Steps@. Again @conf-cnt Steps@!"

    def test_longest_link_wins(self):
        short = f"{CLOUD}/spaces/ENG/pages/1"
        long = f"{CLOUD}/spaces/ENG/pages/1/Title"
        result = substitute_links(f"{long} {short}", {short: "S", long: "L"})
        assert result == "L S"

    def test_prefix_of_unmapped_url_untouched(self):
        short = f"{CLOUD}/spaces/ENG/pages/1"
        text = f"{short}2/Other"
        assert substitute_links(text, {short: "S"}) == text

    def test_replacement_not_rescanned(self):
        replacement = f"@conf-cnt links to {LINK_2}@"
        result = substitute_links(f"{LINK_1} {LINK_2}", {LINK_1: replacement, LINK_2: "B"})
        assert result == f"{replacement} B"

    def test_existing_markers_untouched(self):
        text = f"@conf-cnt {LINK_1}@ {LINK_1}"
        assert substitute_links(text, {LINK_1: "X"}) == f"@conf-cnt {LINK_1}@ X"

    def test_empty_mapping(self):
        assert substitute_links("text", {}) == "text"
