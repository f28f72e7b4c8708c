from typing import Optional
from fastapi import Header
from pydantic import BaseModel, ConfigDict


class AuthContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> Optional[AuthContext]:
    """Identity stamped on the request by the upstream auth proxy, if any."""
    if not x_user_id or not x_user_id.strip():
        return None
    return AuthContext(user_id=x_user_id.strip(), email=x_user_email)
