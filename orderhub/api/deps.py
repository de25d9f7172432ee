from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.database import get_db
from orderhub.schemas.order import OrganizationType, StatusActor


logger = logging.getLogger(__name__)


async def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> uuid.UUID:
    """
    Dependency to get the acting user.

    Authentication happens upstream; the gateway forwards the verified user
    id in the X-User-Id header.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing or invalid X-User-Id header",
    )

    if not x_user_id:
        raise credentials_exception

    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        logger.warning(f"Invalid user id in header: {x_user_id}")
        raise credentials_exception


async def get_status_actor(
    x_organization_id: Annotated[Optional[str], Header()] = None,
    x_organization_type: Annotated[Optional[str], Header()] = None,
) -> Optional[StatusActor]:
    """Acting organization for status changes, when the caller identifies one."""
    if not x_organization_id and not x_organization_type:
        return None

    if not x_organization_id or not x_organization_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-Id and X-Organization-Type must be sent together",
        )

    try:
        return StatusActor(
            organization_id=uuid.UUID(x_organization_id),
            organization_type=OrganizationType(x_organization_type.strip().upper()),
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid acting organization headers",
        )


# Type aliases for cleaner dependency injection
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
Actor = Annotated[Optional[StatusActor], Depends(get_status_actor)]
DB = Annotated[AsyncSession, Depends(get_db)]
