import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Role(str, enum.Enum):
    ADMIN = "admin"
    SUB_ADMIN = "sub_admin"
    VENDOR = "vendor"
    RIDER = "rider"
    BUYER = "buyer"


class AuthUser(BaseModel):
    """
    Represents an authenticated user from the bearer token.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: Role = Role.BUYER

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUB_ADMIN)
