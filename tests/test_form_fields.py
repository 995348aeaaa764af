"""
Tests for the form-field extractor
"""

from email_service.modules.form_fields import extract_form_fields, format_form_fields


def test_basic_extraction():
    fields = extract_form_fields("Naam: Jan\nEmail: jan@test.nl")
    assert fields == {"Naam": "Jan", "Email": "jan@test.nl"}


def test_line_without_separator_is_skipped():
    assert extract_form_fields("just text") == {}
    assert extract_form_fields("Naam: Jan\njust text") == {"Naam": "Jan"}


def test_separator_priority():
    fields = extract_form_fields(
        "Naam : Jan\n"
        "Afstand = 10 km\n"
        "Postcode=1234AB\n"
        "Tijd: 10:30"
    )
    assert fields["Naam"] == "Jan"
    assert fields["Afstand"] == "10 km"
    assert fields["Postcode"] == "1234AB"
    # ": " wins over ":" so the time keeps its colon
    assert fields["Tijd"] == "10:30"


def test_empty_key_or_value_is_skipped():
    assert extract_form_fields(": waarde\nsleutel:\n=") == {}


def test_blank_and_empty_input():
    assert extract_form_fields("") == {}
    assert extract_form_fields("\n\n   \n") == {}


def test_format_uses_preferred_order_then_encounter_order():
    fields = {
        "Opmerking": "Graag",
        "E-mail": "jan@test.nl",
        "Extra": "x",
        "Naam": "Jan",
        "Afstand": "10 km",
    }
    assert format_form_fields(fields) == (
        "Naam : Jan\n"
        "E-mail : jan@test.nl\n"
        "Afstand : 10 km\n"
        "Opmerking : Graag\n"
        "Extra : x"
    )


def test_format_does_not_mutate_input():
    fields = {"Woonplaats": "Apeldoorn", "Naam": "Jan"}
    format_form_fields(fields)
    assert list(fields) == ["Woonplaats", "Naam"]


def test_extract_then_format_is_deterministic():
    body = "Woonplaats: Apeldoorn\nNaam: Jan\nE-mail: jan@test.nl"
    formatted = format_form_fields(extract_form_fields(body))
    assert formatted.splitlines()[0] == "Naam : Jan"
    assert format_form_fields(extract_form_fields(formatted)) == formatted
