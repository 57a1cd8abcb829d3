"""Console entry point: runs the patient demo against a public FHIR server.

The sequence is fixed:
1. (Optional) search patients and list them, when FHIR_SEARCH_CRITERIA is set
2. Create a demo patient
3. Add a phone number to it
4. Display it
5. Delete it

Run with:
    fhir-demo
or:
    python -m fhir_demo
"""

from __future__ import annotations

import asyncio
import logging
import sys

from fhir_demo.config import (
    FHIR_MAX_RESULTS,
    FHIR_SEARCH_CRITERIA,
    FHIR_SERVER,
    LOG_LEVEL,
)
from fhir_demo.display import display_patient_results
from fhir_demo.fhir_client import FhirServer
from fhir_demo.patient_service import PatientService

DEMO_FAMILY = "Ritis"
DEMO_GIVEN = "Arthur"
DEMO_DOB = "1970-01-01"
DEMO_PHONE = "867.5309"


def _resolve_server(name: str) -> FhirServer:
    try:
        return FhirServer(name.strip().lower())
    except ValueError:
        known = ", ".join(s.value for s in FhirServer)
        raise ValueError(f"Unknown FHIR_SERVER '{name}' (expected one of: {known})") from None


def _split_criteria(raw: str) -> list[str]:
    return [term.strip() for term in raw.split(",") if term.strip()]


async def main(
    server: FhirServer | None = None,
    search_criteria: list[str] | None = None,
    service: PatientService | None = None,
) -> None:
    """Run the demo once.

    Args:
        server: Which server to use; defaults to FHIR_SERVER.
        search_criteria: Search terms for the optional search phase;
            defaults to FHIR_SEARCH_CRITERIA.
        service: A ready-made service (used by tests instead of ``server``).
    """
    if service is None:
        service = PatientService(server or _resolve_server(FHIR_SERVER))
    if search_criteria is None:
        search_criteria = _split_criteria(FHIR_SEARCH_CRITERIA)

    async with service:
        if search_criteria:
            patients = await service.search_patients(search_criteria, FHIR_MAX_RESULTS)
            display_patient_results(patients)

        patient = await service.create_patient(DEMO_FAMILY, DEMO_GIVEN, dob=DEMO_DOB)
        if patient is not None:
            await service.add_phone_number(patient, DEMO_PHONE)

            display_patient_results([patient])

            await service.delete_patient(patient.id)

    print("Done.")


def run() -> None:
    """Console script entry point."""
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(message)s",
        stream=sys.stdout,
    )
    asyncio.run(main())


if __name__ == "__main__":
    run()
