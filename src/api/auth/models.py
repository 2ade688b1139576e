from typing import Optional

from pydantic import BaseModel

from src.config.constants import UserRole, UserType


class DecodedToken(BaseModel):
    iss: str
    aud: str
    auth_time: int
    user_id: str
    sub: str
    iat: int
    exp: int
    email: Optional[str] = None
    email_verified: Optional[bool] = None
    phone_number: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    firebase: dict
    uid: str
    # Custom claims
    role: Optional[UserRole] = None
    user_type: Optional[UserType] = None
    order_count: Optional[int] = None
