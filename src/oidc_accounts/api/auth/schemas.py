from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OIDCLoginResponse(BaseModel):
    user_id: str
    team_id: str
    is_new_user: bool
    is_new_team: bool
    client: str = Field(default="web", description="OAuth client that started the login")


class OIDCConfigResponse(BaseModel):
    name: str = "oidc"
    display_name: str
    logout_url: Optional[str] = None
    pkce: bool = False


class AuthenticationFailedResponse(BaseModel):
    detail: str = "authentication_failed"
