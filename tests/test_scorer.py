"""Tests for the quantitative page scorer."""

from bs4 import BeautifulSoup

from seocrawler.config import ScoringConfig
from seocrawler.constants import (
    ADD_STRUCTURED_DATA_SUGGESTION,
    SITEMAP_SUGGESTION,
    STRUCTURED_DATA_PRESENT_SUGGESTION,
)
from seocrawler.scorer import PageScorer

TITLE = "Handmade Ceramic Mugs and Bowls | Clay Studio"
DESCRIPTION = (
    "Browse handmade ceramic mugs, bowls and plates, fired in small batches "
    "at our studio and shipped worldwide."
)


class TestPageScorer:
    """Test cases for PageScorer."""

    def test_well_formed_page_without_structured_data(self, html_page):
        """A valid page that only lacks JSON-LD scores 90 with one issue."""
        assert len(TITLE) == 45
        html = html_page(title=TITLE, description=DESCRIPTION, h1s=("Handmade Ceramics",), words=400)

        result = PageScorer().score(html)

        assert result.score == 90
        assert result.issues == ["Content: No Schema.org structured data (JSON-LD) found."]
        assert result.suggestions == [SITEMAP_SUGGESTION, ADD_STRUCTURED_DATA_SUGGESTION]
        assert result.title == TITLE
        assert result.h1_count == 1
        assert result.word_count >= 400

    def test_perfect_page(self, html_page):
        html = html_page(
            title=TITLE, description=DESCRIPTION, h1s=("Handmade Ceramics",), words=400, json_ld=True
        )

        result = PageScorer().score(html)

        assert result.score == 100
        assert result.issues == []
        assert result.has_structured_data is True
        assert result.suggestions == [SITEMAP_SUGGESTION, STRUCTURED_DATA_PRESENT_SUGGESTION]

    def test_empty_page(self):
        """Every penalty applies to an empty document."""
        result = PageScorer().score("")

        # 100 - 10 (title) - 10 (description) - 15 (h1) - 15 (thin) - 10 (json-ld)
        assert result.score == 40
        assert "Technical: Missing <title> tag." in result.issues
        assert "Technical: Missing meta description." in result.issues
        assert "Critical: Missing H1 tag." in result.issues
        assert "Content: Thin content (0 words)." in result.issues

    def test_title_length_bounds(self, html_page):
        scorer = PageScorer()
        base = dict(description=DESCRIPTION, h1s=("H",), words=400, json_ld=True)

        too_long = scorer.score(html_page(title="x" * 70, **base))
        too_short = scorer.score(html_page(title="Home", **base))

        assert too_long.score == 95
        assert too_long.issues == ["Technical: Title is too long (> 65 characters)."]
        assert too_short.score == 95
        assert too_short.issues == ["Technical: Title is too short (< 30 characters)."]

    def test_description_length_bounds(self, html_page):
        scorer = PageScorer()
        base = dict(title=TITLE, h1s=("H",), words=400, json_ld=True)

        assert scorer.score(html_page(description="x" * 200, **base)).score == 95
        assert scorer.score(html_page(description="Short text.", **base)).score == 95

    def test_multiple_h1(self, html_page):
        html = html_page(title=TITLE, description=DESCRIPTION, h1s=("One", "Two"), words=400, json_ld=True)

        result = PageScorer().score(html)

        assert result.score == 90
        assert result.issues == ["Technical: Found 2 H1 tags (one is recommended)."]

    def test_image_alt_penalty_capped(self, html_page):
        base = dict(title=TITLE, description=DESCRIPTION, h1s=("H",), words=400, json_ld=True)

        two = PageScorer().score(html_page(images=(("a.jpg", None), ("b.jpg", ""), ("c.jpg", "Cup")), **base))
        many = PageScorer().score(html_page(images=tuple((f"{i}.jpg", None) for i in range(8)), **base))

        assert two.score == 96
        assert two.images_without_alt == 2
        assert two.total_images == 3
        assert many.score == 90

    def test_script_text_not_counted(self, html_page):
        html = html_page(
            title=TITLE, description=DESCRIPTION, h1s=("H",), words=10, json_ld=True,
            extra_body="<script>" + "var x = 1; " * 500 + "</script>",
        )

        result = PageScorer().score(html)

        assert result.word_count < 300
        assert "Content: Thin content" in result.issues[0]

    def test_score_never_negative(self, html_page):
        config = ScoringConfig(missing_h1_penalty=200)
        result = PageScorer(config).score(html_page())

        assert result.score == 0

    def test_deterministic_and_soup_untouched(self, html_page):
        html = html_page(title=TITLE, description=DESCRIPTION, h1s=("H",), words=50)
        soup = BeautifulSoup(html, "html.parser")
        before = str(soup)

        first = PageScorer().score(soup)
        second = PageScorer().score(html)

        assert first.score == second.score
        assert first.issues == second.issues
        assert str(soup) == before

    def test_custom_thresholds(self, html_page):
        config = ScoringConfig(thin_content_words=50)
        html = html_page(title=TITLE, description=DESCRIPTION, h1s=("H",), words=60, json_ld=True)

        assert PageScorer(config).score(html).score == 100
