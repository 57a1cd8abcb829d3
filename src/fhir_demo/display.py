"""Console formatting for patient records."""

from __future__ import annotations

from datetime import date, datetime

from fhir_demo.models import Patient

UNKNOWN = "<unknown>"
NONE = "<none>"


def _parse_date(raw: str | None) -> date | None:
    """Full dates, or year-month dates read as the first of the month."""
    if not raw:
        return None
    text = raw.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%Y-%m").date()
    except ValueError:
        return None


def format_birth_date(raw: str | None, today: date | None = None) -> str:
    """Render a birth date with the patient's age appended.

    Under a year old the age is given in months as the plain difference of
    month numbers, which goes wrong across a year boundary (a December
    birth seen in October shows "-2 month/s").

    Args:
        raw: The birth date as stored on the patient.
        today: Reference date; defaults to the current date.

    Returns:
        "<raw> (Age N)", "<raw> (Age N month/s)", the raw text when it is
        not a date, or "<unknown>" when there is no birth date.
    """
    today = today or date.today()
    formatted = raw or ""

    dob = _parse_date(raw)
    if dob is not None:
        age = today.year - dob.year
        # not had this year's birthday yet
        if today.timetuple().tm_yday < dob.timetuple().tm_yday:
            age -= 1

        if age >= 1:
            formatted = f"{raw} (Age {age})"
        else:
            formatted = f"{raw} (Age {today.month - dob.month} month/s)"

    if not formatted.strip():
        formatted = UNKNOWN
    return formatted


def format_phones(patient: Patient) -> str:
    """Comma-separated phone values, or "<none>"."""
    phones = [t.value for t in patient.telecom if t.value and t.value.strip()]
    return ", ".join(phones) if phones else NONE


def display_patient_results(patients: list[Patient], today: date | None = None) -> None:
    for i, patient in enumerate(patients):
        name = patient.name[0].display if patient.name else ""

        print(f"INDEX {i}")
        print(f" - Id:           {patient.id}")
        print(f" - Name:         {name}")
        print(f" - Dob:          {format_birth_date(patient.birth_date, today)}")
        print(f" - Contact:      {format_phones(patient)}")
