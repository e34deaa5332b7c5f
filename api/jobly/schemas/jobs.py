from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RESTRICTED_UPDATE_FIELDS = ("id", "company_handle")


class JobOut(BaseModel):
    id: int
    title: str
    salary: int | None = None
    equity: Decimal | None = None
    company_handle: str


class JobEnvelope(BaseModel):
    job: JobOut


class JobListOut(BaseModel):
    jobs: list[JobOut] = Field(default_factory=list)


class JobDeletedOut(BaseModel):
    deleted: str


class JobCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    salary: int | None = Field(default=None, ge=0)
    equity: Decimal | None = Field(default=None, ge=0, le=1)
    company_handle: str = Field(min_length=1, max_length=25)


class JobUpdateRequest(BaseModel):
    """Sparse job update; only the fields a client actually sent are applied."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    salary: int | None = Field(default=None, ge=0)
    equity: Decimal | None = Field(default=None, ge=0, le=1)

    @model_validator(mode="before")
    @classmethod
    def reject_restricted_fields(cls, data: Any) -> Any:
        if isinstance(data, dict):
            restricted = [name for name in RESTRICTED_UPDATE_FIELDS if name in data]
            if restricted:
                raise ValueError(f"restricted fields cannot be updated: {', '.join(restricted)}")
        return data

    @field_validator("title")
    @classmethod
    def title_not_null(cls, value: str | None) -> str:
        if value is None:
            raise ValueError("title cannot be null")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)
