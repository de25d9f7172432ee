"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models MUST inherit from
BaseResponseSchema; all request bodies inherit from BaseCreateSchema.
"""

from decimal import Decimal, ROUND_HALF_UP
from pydantic import BaseModel, ConfigDict


CENT = Decimal("0.01")


def round_money(value) -> Decimal:
    """Round a monetary value to cents, half-up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Features:
    - Enables from_attributes for ORM compatibility
    - Allows population by field name or alias

    Usage:
        class WalletResponse(BaseResponseSchema):
            id: UUID
            organization_id: UUID
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    These schemas accept string UUIDs from the client and convert to UUID
    objects, so malformed identifiers never reach the services.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )
