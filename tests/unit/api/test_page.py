from parcel_pulse.api.page import (
    extract_token_from_html,
    extract_token_with_patterns,
    extract_tracking_ids,
    scan_token,
)

GLOBAL = '<html><head><script>window.csrfToken = "glob-123";</script></head></html>'
META = '<html><head><meta name="CSRF-TOKEN" content="meta-456"></head></html>'
INPUT = '<form><input type="hidden" name="csrfToken" value="input-789"></form>'


def test_each_location_is_read():
    assert extract_token_from_html(GLOBAL) == "glob-123"
    assert extract_token_from_html(META) == "meta-456"
    assert extract_token_from_html(INPUT) == "input-789"


def test_priority_global_then_meta_then_input():
    html = GLOBAL.replace("</head>", '<meta name="CSRF-TOKEN" content="m"></head>') + INPUT
    assert extract_token_from_html(html) == "glob-123"
    assert extract_token_from_html(META + INPUT) == "meta-456"


def test_empty_locations_yield_none():
    html = '<meta name="CSRF-TOKEN" content=""><input name="csrfToken" value="">'
    assert extract_token_from_html(html) is None
    assert extract_token_from_html("") is None


def test_regex_patterns_on_raw_html():
    assert extract_token_with_patterns('<input value="abc" name="csrfToken">') == "abc"
    assert extract_token_with_patterns("var CSRF_TOKEN = 'xyz';") == "xyz"
    assert extract_token_with_patterns("<p>nothing</p>") is None
    assert scan_token("var CSRF_TOKEN = 'xyz';") == "xyz"


def test_extract_tracking_ids_from_all_sources():
    html = """
    <div class="pt-delivery-card-trackingId">Tracking ID: TBA111111111111</div>
    <div class="pt-delivery-card-trackingId">TBA222222222222</div>
    <span data-tracking-id="TBA333333333333"></span>
    <span class="a-size-medium">Your parcel TBA444444444444 is on its way</span>
    <span class="a-size-medium">TBA111111111111</span>
    """
    ids = extract_tracking_ids(html, "https://www.amazon.it/progress-tracker/package?trackingId=TBA555555555555")
    assert ids == [
        "TBA111111111111",
        "TBA222222222222",
        "TBA333333333333",
        "TBA555555555555",
        "TBA444444444444",
    ]


def test_extract_tracking_ids_nothing_found():
    assert extract_tracking_ids("<html></html>") == []
