"""Patient create/read/update/delete and search against a FHIR server.

PatientService is the one place the demo talks to the server. It narrates
every step through the module logger, which the console driver routes to
standard output.
"""

from __future__ import annotations

import logging
from datetime import date
from types import TracebackType

from fhir_demo.fhir_client import (
    FhirClient,
    FhirClientSettings,
    FhirProtocolError,
    FhirServer,
    ResourceFormat,
    ReturnPreference,
)
from fhir_demo.models import (
    Bundle,
    ContactPoint,
    ContactPointSystem,
    ContactPointUse,
    HumanName,
    OperationOutcome,
    Patient,
)

logger = logging.getLogger(__name__)


def _outcome_codes(bundle: Bundle) -> list[str]:
    """Non-blank coding codes from every OperationOutcome issue in the bundle."""
    return [
        coding.code
        for outcome in bundle.resources_of_type(OperationOutcome)
        for issue in outcome.issue
        if issue.details is not None
        for coding in issue.details.coding
        if coding.code and coding.code.strip()
    ]


class PatientService:
    """Patient operations bound to a single FHIR server.

    Build it from a FhirServer (the usual case) or hand it a ready-made
    FhirClient, which is what the tests do.
    """

    def __init__(
        self,
        server: FhirServer = FhirServer.FIRELY,
        client: FhirClient | None = None,
    ) -> None:
        if client is None:
            client = FhirClient(
                server,
                FhirClientSettings(
                    preferred_format=ResourceFormat.JSON,
                    return_preference=ReturnPreference.REPRESENTATION,
                ),
            )
        self._client = client

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> PatientService:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def search_patients(
        self,
        criteria: list[str] | None = None,
        max_results: int = 20,
    ) -> list[Patient]:
        """Gets a list of patients matching the given criteria.

        Args:
            criteria: Search terms, e.g. ["name=Smith"].
            max_results: The maximum number of patients returned.

        Returns:
            Matching patients in the order the server delivered them;
            an empty list when nothing matched.

        Raises:
            FhirProtocolError: If the server did not return a Bundle.
        """
        logger.info("Fetching patients...")

        bundle = await self._client.search(Patient, criteria)

        if bundle is None:
            raise FhirProtocolError("Response did not return a bundle.")

        if bundle.total == 0:
            error = "No patients found matching search criteria."
            codes = _outcome_codes(bundle)
            if codes:
                error += f" Code(s): {','.join(codes)}"
            logger.info(error)
            return []

        if bundle.total is None:
            logger.info("Server did not report a total; reading all pages.")
        else:
            logger.info("%d result(s) found.", bundle.total)

        result: list[Patient] = []
        page_count = 0
        page: Bundle | None = bundle
        while page is not None:
            page_count += 1
            logger.info("Processing Bundle %d (%d entries)", page_count, len(page.entry))

            remaining = max(max_results - len(result), 0)
            result.extend(page.resources_of_type(Patient)[:remaining])

            if len(result) >= max_results:
                break

            page = await self._client.continue_(page)

        return result

    async def create_patient(
        self,
        family: str,
        given: str,
        dob: str | date | None = None,
    ) -> Patient | None:
        """Creates a new patient with one name and an optional birth date.

        ``dob`` may be a date or a FHIR partial date string ("1970",
        "1970-01", "1970-01-01").
        """
        if isinstance(dob, date):
            dob = dob.isoformat()

        new_patient = Patient(
            name=[HumanName(family=family, given=[given])],
            birth_date=dob,
        )

        result = await self._client.create(new_patient)

        if result is not None:
            logger.info("New patient created with Id '%s'.", result.id)

        return result

    async def read_patient(self, patient_id: str) -> Patient | None:
        """Returns the patient with the given id."""
        return await self._client.read(Patient, patient_id)

    async def add_phone_number(
        self,
        patient: Patient,
        phone: str,
        use: ContactPointUse = ContactPointUse.MOBILE,
    ) -> Patient | None:
        """Adds ``phone`` as a new telecom contact point and saves the patient.

        ``patient`` is modified in place before the update is sent.

        Raises:
            ValueError: If ``phone`` is empty or whitespace.
        """
        if not phone or not phone.strip():
            raise ValueError("phone must not be blank")

        contact = ContactPoint(
            system=ContactPointSystem.PHONE,
            value=phone,
            use=use,
        )
        patient.telecom.append(contact)

        result = await self._client.update(patient)

        if result is not None:
            logger.info("Telephone '%s' added to patient '%s'.", phone, result.id)

        return result

    async def update_patient(self, patient: Patient) -> Patient | None:
        """Sends ``patient`` to the server as a full update."""
        result = await self._client.update(patient)

        if result is not None:
            logger.info("Patient '%s' updated.", result.id)

        return result

    async def delete_patient(self, patient_id: str) -> None:
        """Deletes the patient with the given id."""
        await self._client.delete(f"Patient/{patient_id}")

        logger.info("Patient '%s' deleted.", patient_id)
