"""
Form-Field Extractor
Recovers "key: value" / "key = value" pairs from form notification mails
and lays them out in a fixed, reviewable order
"""

from typing import Dict, Mapping

# Tried in this order; the first that yields a non-empty key and value wins
FIELD_SEPARATORS = (" : ", ": ", ":", " :", " = ", "=")

FIELD_ORDER = (
    "Naam",
    "E-mail",
    "Telefoonnummer",
    "Geboortedatum",
    "Geslacht",
    "Adres",
    "Postcode",
    "Woonplaats",
    "Afstand",
    "Vereniging",
    "Inschrijving_voor",
    "Betaalmethode",
    "lange_tekst",
    "Heb_je_een_vraag_of_opmerking_neem_dan_contact_op_met_ons",
)


def _split_field(line: str):
    for separator in FIELD_SEPARATORS:
        if separator not in line:
            continue
        key, value = line.split(separator, 1)
        key, value = key.strip(), value.strip()
        if key and value:
            return key, value
    return None


def extract_form_fields(content: str) -> Dict[str, str]:
    """
    Parse form fields out of plain text

    Example:
        >>> extract_form_fields("Naam: Jan\\nEmail: jan@test.nl\\njust text")
        {'Naam': 'Jan', 'Email': 'jan@test.nl'}
    """
    fields: Dict[str, str] = {}
    if not content:
        return fields

    for line in content.split("\n"):
        line = line.strip()
        if not line:
            continue
        pair = _split_field(line)
        if pair:
            key, value = pair
            fields[key] = value

    return fields


def format_form_fields(fields: Mapping[str, str]) -> str:
    """Render fields as "key : value" lines, preferred fields first"""
    lines = [f"{key} : {fields[key]}" for key in FIELD_ORDER if key in fields]
    preferred = set(FIELD_ORDER)
    lines.extend(
        f"{key} : {value}" for key, value in fields.items() if key not in preferred
    )
    return "\n".join(lines)
