"""Request models for endpoints whose payload is not an entity contract."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class RegistrationInput(_Input):
    """Validate account registration input."""

    username: StrictStr = Field(min_length=1, max_length=255)
    email: StrictStr | None = Field(default=None, max_length=255)
    password: StrictStr = Field(min_length=1)


class LoginInput(_Input):
    username: StrictStr = Field(min_length=1)
    password: StrictStr = Field(min_length=1)


class MessageInput(_Input):
    """A single user turn posted to a conversation."""

    content: StrictStr = Field(min_length=1)


class QueryCompletionInput(_Input):
    """Terminal outcome of a running query."""

    status: Literal["completed", "error"]
    duration: StrictInt
    rows_returned: StrictInt | None = Field(default=None, alias="rowsReturned")
    credits_used: Decimal | None = Field(
        default=None, alias="creditsUsed", max_digits=10, decimal_places=6
    )


class CleaningInput(_Input):
    """Which cleaning steps to run over a stored data source."""

    fill_missing: StrictBool = Field(default=True, alias="fillMissing")
    remove_outliers: StrictBool = Field(default=False, alias="removeOutliers")
    remove_duplicates: StrictBool = Field(default=False, alias="removeDuplicates")


__all__ = [
    "CleaningInput",
    "LoginInput",
    "MessageInput",
    "QueryCompletionInput",
    "RegistrationInput",
]
