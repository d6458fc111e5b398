"""Account model."""

import re

from pydantic import BaseModel, Field, field_validator

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    """Normalize an email for use as an account key.

    Raises:
        ValueError: If the value does not look like an email address.
    """
    normalized = (email or "").strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        raise ValueError(f"Invalid email address: {email!r}")
    return normalized


class Account(BaseModel):
    """A Google identity the server can act for.

    Attributes:
        email: Unique account key, stored lower-cased.
        category: Free-form label such as "work" or "personal".
        description: Free-form description.
    """

    email: str = Field(..., description="Account email")
    category: str = Field(default="", description="Free-form category label")
    description: str = Field(default="", description="Free-form description")

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_email(value)
