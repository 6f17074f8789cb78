"""Schema baselines shared by session requests and responses."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Response DTO base; built from ORM rows or plain values."""

    model_config = ConfigDict(extra="forbid", from_attributes=True)


class StrictRequestModel(BaseModel):
    """Request DTO base: unknown fields are rejected and strings trimmed."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, str_strip_whitespace=True)
