from projectica.references import normalize_references
from projectica.schemas import Reference


def _sources(count: int):
    return [{"title": f"Source {i}", "url": f"https://example.com/{i}"} for i in range(1, count + 1)]


def test_markers_are_renumbered_densely_in_ascending_order():
    text = "Growth [5] is driven by EVs [2] and batteries [2], see also [9]."
    result = normalize_references(text, _sources(10))

    assert result.text == "Growth [2] is driven by EVs [1] and batteries [1], see also [3]."
    assert [ref.url for ref in result.references] == [
        "https://example.com/2",
        "https://example.com/5",
        "https://example.com/9",
    ]


def test_out_of_range_markers_stay_literal():
    result = normalize_references("Claim [4] and fact [1].", _sources(2))

    assert "[4]" in result.text
    assert result.text == "Claim [4] and fact [1]."
    # [1] is cited; the other source pads the list up to what is available.
    assert [ref.url for ref in result.references] == ["https://example.com/1", "https://example.com/2"]


def test_zero_marker_is_not_a_valid_reference():
    result = normalize_references("Odd [0] marker [2].", _sources(3))

    assert result.text == "Odd [0] marker [1]."
    assert result.references[0].url == "https://example.com/2"


def test_padding_fills_minimum_from_unused_sources_in_order():
    # Deliberate policy: fewer than three cited sources are topped up, uncited.
    result = normalize_references("Only one claim [3].", _sources(5))

    assert result.text == "Only one claim [1]."
    assert [ref.url for ref in result.references] == [
        "https://example.com/3",
        "https://example.com/1",
        "https://example.com/2",
    ]
    assert "[2]" not in result.text
    assert "[3]" not in result.text


def test_no_markers_pads_with_first_sources():
    result = normalize_references("No citations here.", _sources(4))

    assert result.text == "No citations here."
    assert len(result.references) == 3


def test_no_sources_never_fails():
    result = normalize_references("Mentions [1] and [2].", [])

    assert result.text == "Mentions [1] and [2]."
    assert result.references == []


def test_more_than_minimum_citations_are_not_trimmed():
    result = normalize_references("[1] [2] [3] [4]", _sources(4))

    assert result.text == "[1] [2] [3] [4]"
    assert len(result.references) == 4


def test_bare_url_sources_become_references():
    result = normalize_references("See [1].", ["https://a.test", "https://b.test"])

    assert result.references[0] == Reference(title="https://a.test", url="https://a.test")
    assert result.to_dict()["references"][0] == {"title": "https://a.test", "url": "https://a.test"}


def test_malformed_sources_keep_their_positions():
    sources = [
        {"title": "a", "url": "https://a.test"},
        None,
        {"title": {"nested": True}, "url": "https://c.test"},
        42,
    ]

    result = normalize_references("x [1] y [3] z [4] w [2]", sources)

    assert result.text == "x [1] y [3] z [4] w [2]"
    assert [ref.url for ref in result.references] == ["https://a.test", "", "https://c.test", ""]
    assert result.references[3].title == "42"
