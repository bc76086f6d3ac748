from revoc.utils.text_processing import (
    Segment,
    clean_title,
    contains_name,
    names_equal,
    normalize_name,
    segment_mentions,
)


class TestNameMatching:
    def test_normalize_collapses_whitespace(self):
        assert normalize_name("  Maria   Lopez \n") == "Maria Lopez"
        assert normalize_name(None) == ""

    def test_exact_match_ignores_case_only(self):
        assert names_equal("maria", "MARIA")
        assert names_equal(" Maria  Lopez", "maria lopez")
        assert not names_equal("Maria", "Maria Lopez")

    def test_substring_match(self):
        assert contains_name("Had lunch with MARIA from Acme", "maria")
        assert not contains_name("Had lunch with Tom", "Maria")

    def test_empty_name_never_matches(self):
        assert not contains_name("anything", "")
        assert not contains_name("anything", "   ")


class TestSegmentMentions:
    def test_longer_name_wins_over_contained_shorter_name(self):
        text = "Ask Jonathan Smith about Jon's report"
        segments = segment_mentions(text, [(1, "Jon"), (2, "Jonathan Smith")])

        assert segments == [
            Segment("Ask "),
            Segment("Jonathan Smith", 2),
            Segment(" about "),
            Segment("Jon", 1),
            Segment("'s report"),
        ]

    def test_order_of_contacts_does_not_matter(self):
        text = "Ask Jonathan Smith about Jon's report"
        a = segment_mentions(text, [(1, "Jon"), (2, "Jonathan Smith")])
        b = segment_mentions(text, [(2, "Jonathan Smith"), (1, "Jon")])
        assert a == b

    def test_segments_rebuild_original_text_and_keep_casing(self):
        text = "maria met MARIA and Maria"
        segments = segment_mentions(text, [(7, "Maria")])

        assert "".join(s.text for s in segments) == text
        assert [s.text for s in segments if s.is_contact] == ["maria", "MARIA", "Maria"]
        assert all(s.contact_id == 7 for s in segments if s.is_contact)

    def test_regex_characters_in_names_are_literal(self):
        segments = segment_mentions("Ping A.B. (CTO) today", [(3, "A.B. (CTO)")])
        assert Segment("A.B. (CTO)", 3) in segments

    def test_no_contacts_or_no_text(self):
        assert segment_mentions("hello", []) == [Segment("hello")]
        assert segment_mentions("", [(1, "Jon")]) == []

    def test_duplicate_contact_ids_ignored(self):
        segments = segment_mentions("Jon here", [(1, "Jon"), (1, "Jon")])
        assert segments == [Segment("Jon", 1), Segment(" here")]


class TestCleanTitle:
    def test_strips_quotes(self):
        assert clean_title('"Lunch with Maria"') == "Lunch with Maria"

    def test_truncates_with_ellipsis(self):
        title = clean_title("x" * 100, max_length=10)
        assert len(title) == 10
        assert title.endswith("…")

    def test_falls_back_when_empty(self):
        assert clean_title("  ''  ") == "New Conversation"
        assert clean_title(None, fallback="Untitled") == "Untitled"
