"""
Tests for review text cleaning and content tiers.
"""

from curtaincall.textclean import (
    classify_content_tier,
    clean_html,
    clean_review_text,
    clean_text,
    looks_like_html,
    word_count,
)


def words(n):
    return " ".join(["word"] * n)


class TestCleaning:

    def test_clean_html_drops_chrome(self):
        html = """
        <html><head><style>p {color: red}</style><script>track()</script></head>
        <body><nav>Home | Theater</nav>
        <article><p>The cast is&nbsp;superb.</p><p>Go.</p></article>
        <footer>Copyright</footer></body></html>
        """
        assert clean_html(html) == "The cast is superb. Go."

    def test_clean_text_collapses_whitespace(self):
        assert clean_text("  A  fine\n\n  evening ") == "A fine evening"
        assert clean_text(None) == ""

    def test_clean_review_text_detects_markup(self):
        assert looks_like_html("<p>Hi</p>")
        assert not looks_like_html("3 < 4 and 5 > 2")
        assert clean_review_text("<div>Loud <b>and</b> proud</div>") == "Loud and proud"
        assert clean_review_text("plain   text") == "plain text"

    def test_word_count(self):
        assert word_count("one two  three") == 3
        assert word_count(None) == 0


class TestClassifyContentTier:

    def test_complete(self):
        tier, _reason, count = classify_content_tier(words(300))
        assert tier == "complete"
        assert count == 300

    def test_short_text_is_truncated(self):
        tier, reason, _ = classify_content_tier(words(120))
        assert tier == "truncated"
        assert reason == "only 120 words"

    def test_paywall_marker(self):
        tier, reason, _ = classify_content_tier(words(400) + " Subscribe to continue reading")
        assert tier == "truncated"
        assert "paywall" in reason

    def test_error_page_is_invalid(self):
        tier, _, _ = classify_content_tier("Sorry, we couldn't find the page you're looking for.")
        assert tier == "invalid"

    def test_error_phrase_in_long_review_is_not_invalid(self):
        tier, _, _ = classify_content_tier(words(400) + " page not found")
        assert tier == "complete"

    def test_excerpt_and_stub(self):
        assert classify_content_tier(None, ["A triumph."])[0] == "excerpt"
        assert classify_content_tier("", ["  "])[0] == "stub"
        assert classify_content_tier(None)[0] == "stub"
