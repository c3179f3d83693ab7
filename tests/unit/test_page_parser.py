"""Unit tests for HTML page parsing."""

from geocrawl.crawler.page_parser import parse_page

PRODUCT_PAGE = """
<html>
<head>
  <title> Best Cancer Insurance 2026 </title>
  <meta name="description" content="Compare cancer insurance plans">
  <meta name="keywords" content="insurance, cancer">
  <meta property="og:title" content="Cancer Insurance Guide">
  <meta property="og:image" content="https://a.test/og.png">
  <link rel="canonical" href="https://a.test/guide">
  <script type="application/ld+json">{"@type": "Product", "name": "Plan A"}</script>
  <script type="application/ld+json">{not valid json</script>
</head>
<body>
  <nav id="toc"><a href="#one">One</a></nav>
  <h1>Cancer insurance</h1>
  <h2>Coverage</h2>
  <h2>Pricing</h2>
  <h3></h3>
  <p>Plans differ in coverage and price.</p>
  <p>Read the terms.</p>
  <img src="a.png"><img src="b.png">
  <div itemscope itemtype="https://schema.org/Product">Plan A</div>
  <section class="faq-section">
    <div class="faq-item">Q1</div>
    <div class="faq-item">Q2</div>
  </section>
</body>
</html>
"""


def test_extracts_meta_tags() -> None:
    meta = parse_page(PRODUCT_PAGE).meta_tags

    assert meta.title == "Best Cancer Insurance 2026"
    assert meta.description == "Compare cancer insurance plans"
    assert meta.keywords == "insurance, cancer"
    assert meta.og_title == "Cancer Insurance Guide"
    assert meta.og_image == "https://a.test/og.png"
    assert meta.canonical == "https://a.test/guide"
    assert meta.author is None


def test_skips_invalid_json_ld() -> None:
    page = parse_page(PRODUCT_PAGE)

    assert page.schema_markup == [{"@type": "Product", "name": "Plan A"}]


def test_content_structure() -> None:
    structure = parse_page(PRODUCT_PAGE).content_structure

    assert structure.h1 == ["Cancer insurance"]
    assert structure.h2 == ["Coverage", "Pricing"]
    assert structure.h3 == []
    assert structure.paragraph_count == 2
    assert structure.image_count == 2
    assert structure.link_count == 1
    assert structure.word_count > 10
    assert structure.has_table_of_contents is True
    assert structure.has_faq is True
    assert structure.faq_count == 2
    assert structure.has_product_info is True
    assert structure.has_reviews is False


def test_empty_document() -> None:
    page = parse_page("")

    assert page.meta_tags.title is None
    assert page.schema_markup == []
    assert page.content_structure.word_count == 0
    assert page.content_structure.has_faq is False
    assert page.content_structure.faq_count is None


def test_to_dict_uses_camel_case_keys() -> None:
    structure = parse_page(PRODUCT_PAGE).content_structure.to_dict()

    assert structure["headings"]["h2"] == ["Coverage", "Pricing"]
    assert structure["hasFAQ"] is True
    assert structure["faqCount"] == 2
