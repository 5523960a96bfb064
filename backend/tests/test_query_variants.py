from flatlist.services.country_detector import Country, detect_country
from flatlist.services.query_variants import address_variants, dedupe, phrase_variants, strip_stopwords


def test_detect_uk_postcode():
    assert detect_country("221B Baker Street, London NW1 6XE") == Country.UK


def test_detect_us_state_and_zip():
    assert detect_country("123 Main St Apt 4B, Springfield, IL 62701") == Country.US
    assert detect_country("500 Market St, San Francisco, CA") == Country.US


def test_detect_italian_street_and_city():
    assert detect_country("Via Roma 12, Milano") == Country.IT
    assert detect_country("Corso Buenos Aires 5") == Country.IT
    assert detect_country("Navigli, Milano") == Country.IT


def test_italian_postcode_is_not_a_us_zip():
    assert detect_country("Via Roma 12, 20121 Milano") == Country.IT


def test_italian_province_code_is_not_a_us_state():
    assert detect_country("Via Roma 12, Milano, MI") == Country.IT
    assert detect_country("Corso Como 5, 20124 Milano, MI, Italia") == Country.IT
    assert detect_country("Piazza Duomo 1, Como, CO") == Country.IT
    # A full ZIP after the state still wins
    assert detect_country("100 Via Verde, San Dimas, CA 91773") == Country.US


def test_detect_other():
    assert detect_country("Rue de Rivoli 10, Paris") == Country.OTHER
    assert detect_country("") == Country.OTHER


def test_detection_priority_uk_before_it():
    # An Italian street name with a UK postcode is a UK address
    assert detect_country("10 Via Roma, London NW1 6XE") == Country.UK


def test_us_variants_in_order():
    assert address_variants("123 Main St Apt 4B, Springfield, IL 62701") == [
        "123 Main St Apt 4B, Springfield, IL 62701",
        "123 Main St, Springfield, IL 62701",
        "123 Main St, Springfield, IL",
        "Springfield, IL",
    ]


def test_uk_variants_in_order():
    assert address_variants("221B Baker Street, London NW1 6XE") == [
        "221B Baker Street, London NW1 6XE",
        "NW1 6XE",
        "London, NW1 6XE",
    ]


def test_italian_variants_in_order():
    assert address_variants("Via Cicognara Leopoldo, 2, Plebisciti - Susa, Milano") == [
        "Via Cicognara Leopoldo, 2, Plebisciti - Susa, Milano",
        "Via Cicognara Leopoldo 2, Plebisciti - Susa, Milano",
        "Via Leopoldo Cicognara 2, Plebisciti - Susa, Milano",
        "Via Cicognara Leopoldo, 2, Milano",
        "Via Cicognara Leopoldo, Milano",
        "Via Cicognara Leopoldo, Milano, Italy",
    ]


def test_italian_street_named_after_city():
    assert address_variants("Via Roma 12, Milano") == [
        "Via Roma 12, Milano",
        "Via Roma 12, Milano, Italy",
    ]


def test_other_variants_are_the_address_only():
    assert address_variants("Rue de Rivoli 10, Paris") == ["Rue de Rivoli 10, Paris"]
    assert address_variants("   ") == []


def test_explicit_country_overrides_detection():
    variants = address_variants("Via Roma 12, Milano", Country.OTHER)
    assert variants == ["Via Roma 12, Milano"]


def test_dedupe_preserves_first_occurrence():
    assert dedupe(["b", "a", "b", "", "c", "a"]) == ["b", "a", "c"]


def test_strip_stopwords_keeps_proper_nouns():
    assert strip_stopwords("the Susa metro station in Milan, Italy") == "susa milan"
    assert strip_stopwords("near M2 line Piola") == "near piola"


def test_station_phrase_variants():
    assert phrase_variants("Susa metro station Milan") == [
        "Piazzale susa milan",
        "Piazza susa milan",
        "susa milan metro",
        "Via susa milan",
        "Susa metro station Milan",
        "susa milan",
    ]


def test_university_phrase_keeps_campus():
    assert phrase_variants("Politecnico campus Bovisa Milano") == [
        "politecnico bovisa milano",
        "politecnico milano",
        "Politecnico campus Bovisa Milano",
    ]


def test_plain_phrase_falls_back_to_raw_and_stripped():
    assert phrase_variants("Duomo di Milano") == ["Duomo di Milano", "duomo milano"]
