from app.utils.i18n import (
    SUPPORTED_CODES,
    language_name,
    negotiate_language,
    normalize,
    parse_accept_language,
)


def test_supported_codes():
    assert SUPPORTED_CODES == ["en", "es", "fr", "de", "it", "pt", "ru", "zh", "ja", "ko", "ar", "hi", "ur"]


def test_normalize_region_tags():
    assert normalize("pt-BR") == "pt"
    assert normalize(" zh_CN ") == "zh"
    assert normalize("") is None
    assert normalize(None) is None


def test_parse_accept_language_orders_by_quality():
    header = "fr;q=0.5, de-DE, en;q=0.8, *;q=0.1"
    assert parse_accept_language(header) == ["de", "en", "fr"]


def test_parse_accept_language_drops_zero_and_malformed_quality():
    assert parse_accept_language("es;q=0, it;q=abc, ja") == ["ja"]


def test_parse_accept_language_reads_q_after_other_parameters():
    assert parse_accept_language("en;level=1;q=0.5, de;q=0.8;level=1, fr;Q=0.6") == ["de", "fr", "en"]


def test_query_parameter_wins():
    assert negotiate_language("ar", "fr", "de") == "ar"


def test_selected_header_beats_accept_language():
    assert negotiate_language(None, "hi", "es") == "hi"


def test_unsupported_values_fall_through():
    assert negotiate_language("xx", "yy", "nl, ko;q=0.9") == "ko"


def test_default_when_nothing_matches():
    assert negotiate_language(None, None, "nl") == "en"


def test_language_name():
    assert language_name("ur") == "Urdu"
    assert language_name("xx") == "English"
