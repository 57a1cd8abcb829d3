"""Plain data structures for the FHIR resources this program touches.

These are deliberately partial: only the fields the demo reads or writes
are declared. Anything else the server sends is kept as an extra field so
that a full update (PUT) sends the resource back without losing data.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class ContactPointSystem(str, Enum):
    PHONE = "phone"
    FAX = "fax"
    EMAIL = "email"
    PAGER = "pager"
    URL = "url"
    SMS = "sms"
    OTHER = "other"


class ContactPointUse(str, Enum):
    HOME = "home"
    WORK = "work"
    TEMP = "temp"
    OLD = "old"
    MOBILE = "mobile"


def _is_empty(value: Any) -> bool:
    return value is None or value == [] or value == {}


def _prune(value: Any) -> Any:
    """Drop empty lists and dicts; FHIR JSON does not allow them."""
    if isinstance(value, dict):
        pruned = {k: _prune(v) for k, v in value.items()}
        return {k: v for k, v in pruned.items() if not _is_empty(v)}
    if isinstance(value, list):
        pruned_items = [_prune(v) for v in value]
        return [v for v in pruned_items if not _is_empty(v)]
    return value


class FhirModel(BaseModel):
    """Base for all FHIR elements: camelCase JSON, unknown fields retained."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_fhir(self) -> dict[str, Any]:
        """Serialize to a FHIR JSON-ready dict."""
        return _prune(self.model_dump(mode="json", by_alias=True, exclude_none=True))


class Coding(FhirModel):
    system: str | None = None
    code: str | None = None
    display: str | None = None


class CodeableConcept(FhirModel):
    coding: list[Coding] = Field(default_factory=list)
    text: str | None = None


class HumanName(FhirModel):
    family: str | None = None
    given: list[str] = Field(default_factory=list)
    text: str | None = None

    @property
    def display(self) -> str:
        """The name as a person would write it, e.g. "Arthur Ritis"."""
        if self.text:
            return self.text
        return " ".join(part for part in [*self.given, self.family or ""] if part)

    def __str__(self) -> str:
        return self.display


class ContactPoint(FhirModel):
    system: ContactPointSystem | None = None
    value: str | None = None
    use: ContactPointUse | None = None


class Resource(FhirModel):
    """A top-level FHIR resource. Subclasses default ``resourceType``."""

    resourceType: str = ""  # noqa: N815
    id: str | None = None

    @classmethod
    def get_resource_type(cls) -> str:
        return cls.model_fields["resourceType"].default


ResourceT = TypeVar("ResourceT", bound=Resource)


class Patient(Resource):
    resourceType: str = "Patient"  # noqa: N815

    name: list[HumanName] = Field(default_factory=list)
    birth_date: str | None = Field(default=None, alias="birthDate")
    telecom: list[ContactPoint] = Field(default_factory=list)


class OperationOutcomeIssue(FhirModel):
    severity: str | None = None
    code: str | None = None
    details: CodeableConcept | None = None
    diagnostics: str | None = None


class OperationOutcome(Resource):
    resourceType: str = "OperationOutcome"  # noqa: N815

    issue: list[OperationOutcomeIssue] = Field(default_factory=list)


class BundleLink(FhirModel):
    relation: str
    url: str


class BundleEntry(FhirModel):
    full_url: str | None = Field(default=None, alias="fullUrl")
    # Kept raw; entries are only typed when a caller asks for a resource type.
    resource: dict[str, Any] | None = None


class Bundle(Resource):
    resourceType: str = "Bundle"  # noqa: N815

    type: str | None = None
    total: int | None = None
    link: list[BundleLink] = Field(default_factory=list)
    entry: list[BundleEntry] = Field(default_factory=list)

    @property
    def next_link(self) -> str | None:
        """URL of the following page of results, if the server sent one."""
        for link in self.link:
            if link.relation == "next":
                return link.url
        return None

    def resources_of_type(self, resource_cls: type[ResourceT]) -> list[ResourceT]:
        """Entries whose resource is of ``resource_cls``'s type, in order.

        Entries of any other type (search-mode "include" resources,
        OperationOutcomes, ...) are skipped.
        """
        return [
            resource_cls.model_validate(entry.resource)
            for entry in self.entry
            if entry.resource
            and entry.resource.get("resourceType") == resource_cls.get_resource_type()
        ]
