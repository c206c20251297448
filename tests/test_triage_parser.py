"""Parsing of the SPECIALTY / PHARMACY_NEEDED / URGENCY block in AI replies."""
import pytest

from careconnect.services.triage_parser import parse_diagnosis, strip_metadata

REPLY = """CALL EMERGENCY SERVICES IMMEDIATELY

ASSESSMENT: Possible cardiac event (EMERGENCY).

This is guidance, not a diagnosis.

SPECIALTY: Cardiologist
PHARMACY_NEEDED: NO
URGENCY: immediate"""


def test_parses_all_fields():
    parsed = parse_diagnosis(REPLY)
    assert parsed.specialty == "Cardiologist"
    assert parsed.pharmacy_needed is False
    assert parsed.urgency == "immediate"


def test_metadata_removed_from_text():
    parsed = parse_diagnosis(REPLY)
    assert "SPECIALTY" not in parsed.assessment_text
    assert "URGENCY" not in parsed.assessment_text
    assert parsed.assessment_text.startswith("CALL EMERGENCY SERVICES IMMEDIATELY")
    assert parsed.assessment_text.endswith("This is guidance, not a diagnosis.")


def test_missing_fields_default():
    parsed = parse_diagnosis("Rest and drink fluids.")
    assert parsed.specialty is None
    assert parsed.pharmacy_needed is False
    assert parsed.urgency == "unknown"
    assert parsed.assessment_text == "Rest and drink fluids."


def test_empty_reply():
    parsed = parse_diagnosis(None)
    assert parsed.assessment_text == ""
    assert parsed.urgency == "unknown"


def test_case_insensitive_and_markdown():
    text = "Advice.\n\n**Specialty:** ENT\n**pharmacy_needed:** yes\n*Urgency*: 24-hours"
    parsed = parse_diagnosis(text)
    assert parsed.specialty == "ENT"
    assert parsed.pharmacy_needed is True
    assert parsed.urgency == "24-hours"
    assert parsed.assessment_text == "Advice."


def test_first_occurrence_wins():
    text = "SPECIALTY: Dermatologist\nmore\nSPECIALTY: Cardiologist"
    parsed = parse_diagnosis(text)
    assert parsed.specialty == "Dermatologist"
    assert "Cardiologist" not in parsed.assessment_text


def test_brackets_around_value_are_dropped():
    assert parse_diagnosis("SPECIALTY: [General Practitioner]").specialty == "General Practitioner"


@pytest.mark.parametrize("value", ["soon", "asap", "tomorrow", ""])
def test_unrecognized_urgency_is_unknown(value):
    assert parse_diagnosis(f"text\nURGENCY: {value}").urgency == "unknown"


def test_urgency_normalized():
    assert parse_diagnosis("URGENCY: Routine.").urgency == "routine"


def test_key_mid_sentence_is_not_metadata():
    text = "Your specialty: none needed today."
    parsed = parse_diagnosis(text)
    assert parsed.specialty is None
    assert parsed.assessment_text == text


def test_crlf_reply():
    parsed = parse_diagnosis("Advice.\r\nSPECIALTY: Neurologist\r\nURGENCY: week\r\n")
    assert parsed.specialty == "Neurologist"
    assert parsed.urgency == "week"
    assert parsed.assessment_text == "Advice."


def test_strip_metadata_collapses_blank_runs():
    assert strip_metadata("a\n\n\n\n\nb") == "a\n\nb"
