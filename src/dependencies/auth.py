from typing import Annotated, List, Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.api.auth.models import DecodedToken
from src.api.discount_rules.models import CustomerContext
from src.config.constants import UserRole
from src.dependencies.firebase import auth
from src.shared.exceptions import ForbiddenException, UnauthorizedException
from src.shared.utils import get_logger

logger = get_logger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _decode(token: str) -> DecodedToken:
    return DecodedToken(**auth.verify_id_token(token))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> DecodedToken:
    if not credentials or not credentials.credentials:
        raise UnauthorizedException(detail="Authentication token is missing")

    try:
        return _decode(credentials.credentials)
    except Exception as e:
        raise UnauthorizedException(detail=f"Invalid authentication credentials: {e}")


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(optional_security),
) -> Optional[DecodedToken]:
    """
    Caller identity for public endpoints.

    A missing or unverifiable token means an anonymous caller, never an error.
    """
    if not credentials or not credentials.credentials:
        return None

    try:
        return _decode(credentials.credentials)
    except Exception as e:
        logger.info(f"Treating caller as anonymous, token rejected: {e}")
        return None


def customer_context(user: Optional[DecodedToken]) -> Optional[CustomerContext]:
    """Segment data used by user restrictions, read from custom claims."""
    if user is None:
        return None
    return CustomerContext(user_type=user.user_type, order_count=user.order_count)


async def get_customer(
    current_user: Annotated[DecodedToken, Depends(get_current_user)],
) -> CustomerContext:
    return customer_context(current_user)


async def get_optional_customer(
    current_user: Annotated[Optional[DecodedToken], Depends(get_optional_user)],
) -> Optional[CustomerContext]:
    return customer_context(current_user)


class RoleChecker:
    def __init__(self, allowed_roles: List[UserRole]):
        self.allowed_roles = allowed_roles

    async def __call__(
        self,
        current_user: Annotated[DecodedToken, Depends(get_current_user)],
    ) -> DecodedToken:
        if current_user.role not in self.allowed_roles:
            raise ForbiddenException(
                "You do not have permission to perform this action."
            )
        return current_user
