"""
Tests for lexicon sentiment scoring and quote extraction.
"""

import pytest

from peptidedb.signals.sentiment import (
    SentimentScorer,
    average_sentiment,
    extract_quote,
    has_safety_phrase,
    is_boilerplate,
    label_for_average,
    label_for_score,
    score_sentiment,
)
from peptidedb.types import SentimentLabel


class TestScoreSentiment:
    """Test the weighted lexicon score and its labels."""

    def test_empty_text_gets_sparse_bias(self):
        score = score_sentiment("")
        assert score.value == 0.05
        assert score.label is SentimentLabel.POSITIVE

    def test_strongly_negative(self):
        score = score_sentiment("This is a scam, avoid them.")
        assert score.value == -1.0
        assert score.label is SentimentLabel.NEGATIVE

    def test_positive_phrases(self):
        score = score_sentiment("Legit vendor, fast shipping and reliable quality.")
        assert score.value == 1.0
        assert score.label is SentimentLabel.POSITIVE

    def test_denominator_floor(self):
        # one negative phrase of weight 0.6 over the 1.25 floor
        assert score_sentiment("Some side effects at first").value == -0.48

    def test_matches_whole_words_only(self):
        assert score_sentiment("The goods arrived").value == 0.05

    def test_mixed_text(self):
        score = score_sentiment("Excellent quality, but bad packaging, delayed and worse support.")
        assert score.value == pytest.approx(-0.067)
        assert score.label is SentimentLabel.MIXED

    def test_deterministic(self):
        text = "BPC-157 helped my knee but the vial looked contaminated."
        assert score_sentiment(text) == score_sentiment(text)

    def test_custom_lexicon(self):
        scorer = SentimentScorer(positive={"stellar": 1.0}, negative={})
        assert scorer.score("stellar service").label is SentimentLabel.POSITIVE
        assert scorer.has_signal("stellar")
        assert not scorer.has_signal("great")


class TestLabels:
    @pytest.mark.parametrize("value,label", [
        (0.2, SentimentLabel.POSITIVE),
        (0.05, SentimentLabel.POSITIVE),
        (0.0, SentimentLabel.POSITIVE),
        (-0.1, SentimentLabel.MIXED),
        (-0.2, SentimentLabel.NEGATIVE),
    ])
    def test_label_for_score(self, value, label):
        assert label_for_score(value) is label

    @pytest.mark.parametrize("avg,label", [
        (None, SentimentLabel.NEUTRAL),
        (0.3, SentimentLabel.POSITIVE),
        (-0.24, SentimentLabel.NEGATIVE),
        (0.05, SentimentLabel.NEUTRAL),
        (0.15, SentimentLabel.MIXED),
        (-0.15, SentimentLabel.MIXED),
    ])
    def test_label_for_average(self, avg, label):
        assert label_for_average(avg) is label

    def test_average_sentiment(self):
        assert average_sentiment([]) is None
        assert average_sentiment([0.1, 0.2]) == 0.15


class TestQuoteExtraction:
    """Test sentence ranking for the representative quote."""

    def test_prefers_term_with_sentiment(self):
        quote = extract_quote(
            "Hi all",
            "Thanks. I ran BPC-157 for six weeks and my tendon pain improved a lot. Shipping was slow.",
            "BPC-157",
        )
        assert quote == "I ran BPC-157 for six weeks and my tendon pain improved a lot."

    def test_short_safety_sentence_is_kept(self):
        quote = extract_quote("", "Got nausea.", "semaglutide")
        assert quote == "Got nausea."

    def test_falls_back_to_title_and_body(self):
        assert extract_quote("Hi", "ok", "BPC-157") == "Hi ok"

    def test_truncates(self):
        body = "BPC-157 was " + "really " * 40 + "effective."
        quote = extract_quote("", body, "BPC-157", max_chars=60)
        assert len(quote) == 60
        assert quote.endswith("...")

    def test_boilerplate(self):
        assert is_boilerplate("thanks for sharing")
        assert is_boilerplate("https://example.com/a")
        assert is_boilerplate("word")
        assert not is_boilerplate("Thanks to the lab report I finally trusted this batch of peptides")

    def test_safety_phrase(self):
        assert has_safety_phrase("Bad nausea for a week")
        assert not has_safety_phrase("Arrived on time")
