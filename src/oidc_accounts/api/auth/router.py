from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from oidc_accounts.api.auth.schemas import (
    AuthenticationFailedResponse,
    OIDCConfigResponse,
    OIDCLoginResponse,
)
from oidc_accounts.api.services.authorization import (
    STATE_COOKIE,
    STATE_COOKIE_MAX_AGE,
    AuthorizationState,
    build_authorization_request,
    exchange_code,
    verify_state,
)
from oidc_accounts.api.services.errors import (
    OIDCAuthenticationError,
    ProvisioningError,
)
from oidc_accounts.api.services.oidc import OIDCCallbackHandler
from oidc_accounts.api.services.provisioner import AccountProvisioner
from oidc_accounts.api.services.resolver import SQLProviderLookup, TenantResolver
from oidc_accounts.api.services.tenants import (
    TenantContext,
    get_team_from_request,
    parse_client,
)
from oidc_accounts.api.services.userinfo import UserInfoClient, UserInfoFetcher
from oidc_accounts.api.utils.logging import sanitize_for_log
from oidc_accounts.config import OIDCSettings
from oidc_accounts.db import session_dependency

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@lru_cache(maxsize=1)
def get_settings() -> OIDCSettings:
    return OIDCSettings.from_env()


def get_userinfo_fetcher() -> UserInfoFetcher:
    return UserInfoClient()


def _authentication_failed() -> JSONResponse:
    response = JSONResponse(
        status_code=401,
        content=AuthenticationFailedResponse().model_dump(),
    )
    response.delete_cookie(STATE_COOKIE)
    return response


@router.get("/oidc.config", response_model=OIDCConfigResponse)
async def oidc_config(
    settings: OIDCSettings = Depends(get_settings),
) -> OIDCConfigResponse:
    return OIDCConfigResponse(
        display_name=settings.display_name,
        logout_url=settings.logout_url,
        pkce=settings.pkce,
    )


@router.get("/oidc")
async def oidc_authorize(
    request: Request,
    client: Optional[str] = None,
    settings: OIDCSettings = Depends(get_settings),
) -> RedirectResponse:
    auth_request = build_authorization_request(settings, parse_client(client))

    response = RedirectResponse(auth_request.authorization_url, status_code=302)
    response.set_cookie(
        STATE_COOKIE,
        auth_request.state.to_cookie(),
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=request.url.scheme == "https",
        samesite="lax",
    )
    return response


@router.api_route(
    "/oidc.callback",
    methods=["GET", "POST"],
    response_model=OIDCLoginResponse,
    responses={401: {"model": AuthenticationFailedResponse}},
)
async def oidc_callback(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(session_dependency),
    settings: OIDCSettings = Depends(get_settings),
    fetcher: UserInfoFetcher = Depends(get_userinfo_fetcher),
):
    # response_mode=form_post delivers code and state in the body.
    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({key: str(value) for key, value in form.items()})

    expected = AuthorizationState.from_cookie(request.cookies.get(STATE_COOKIE))

    try:
        if params.get("error"):
            raise OIDCAuthenticationError(
                f"Identity provider returned error: {params['error']}"
            )

        state = verify_state(expected, params.get("state"))
        tokens = await exchange_code(settings, params.get("code", ""), state.code_verifier)

        team = await get_team_from_request(db, request.url.hostname, settings)
        handler = OIDCCallbackHandler(
            settings,
            resolver=TenantResolver(SQLProviderLookup(db)),
            provisioner=AccountProvisioner(db),
        )
        result = await handler.handle_callback(
            TenantContext(team=team, client=state.client),
            tokens,
            fetcher,
        )
    except (OIDCAuthenticationError, ProvisioningError) as exc:
        await db.rollback()
        logger.warning(
            "OIDC authentication failed (%s): %s",
            type(exc).__name__,
            sanitize_for_log(str(exc)),
        )
        return _authentication_failed()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("OIDC account provisioning failed")
        return _authentication_failed()

    response.delete_cookie(STATE_COOKIE)
    return OIDCLoginResponse(
        user_id=str(result.user.id),
        team_id=str(result.team.id),
        is_new_user=result.is_new_user,
        is_new_team=result.is_new_team,
        client=result.client.value,
    )
