from enum import IntEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LangLevel(IntEnum):
    UNKNOWN = 0
    REASONABLE = 1
    GOOD = 2
    EXCELLENT = 3


class CVModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class PersonalDetails(CVModel):
    city: str | None = None
    country: str | None = None
    dob: str | None = None
    email: str | None = None
    first_name: str | None = None
    gender: str | None = None
    house_number: str | None = None
    house_number_suffix: str | None = None
    initials: str | None = None
    phone_number: str | None = None
    street_name: str | None = None
    sur_name: str | None = None
    sur_name_prefix: str | None = None
    zip: str | None = None


class Education(CVModel):
    # 0 = unknown, 1 = education, 2 = course
    is_: Literal[0, 1, 2] = Field(default=0, alias="is")
    name: str
    description: str = ""
    institute: str = ""
    is_completed: bool | None = None
    has_diploma: bool | None = None
    start_date: str | None = None
    end_date: str | None = None


class WorkExperience(CVModel):
    profession: str
    description: str = ""
    employer: str = ""
    still_employed: bool | None = None
    weekly_hours_worked: int | None = None
    start_date: str | None = None
    end_date: str | None = None


class Language(CVModel):
    name: str
    level_spoken: LangLevel | None = None
    level_written: LangLevel | None = None


class CVToScan(CVModel):
    """A scraped CV as accepted by ``/api/v1/scraper/scanCV``.

    Dates are RFC 3339 strings. Unknown fields are kept and forwarded.
    """

    reference_number: str | int
    link: str | None = None
    presentation: str | None = None
    personal_details: PersonalDetails = Field(default_factory=PersonalDetails)
    preferred_jobs: list[str] = Field(default_factory=list)
    work_experiences: list[WorkExperience] = Field(default_factory=list)
    educations: list[Education] = Field(default_factory=list)
    languages: list[Language] = Field(default_factory=list)
    drivers_licenses: list[str] = Field(default_factory=list)

    @field_validator("reference_number")
    @classmethod
    def _reference_not_empty(cls, value: str | int) -> str | int:
        if value == "":
            raise ValueError("referenceNumber cannot be empty")
        return value

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def new_cv_to_scan(reference_number: str | int) -> CVToScan:
    return CVToScan(reference_number=reference_number)
