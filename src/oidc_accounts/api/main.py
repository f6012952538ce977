from __future__ import annotations

from fastapi import FastAPI

from oidc_accounts import __version__
from oidc_accounts.api.auth import router as auth_router

app = FastAPI(title="oidc-accounts", version=__version__)
app.include_router(auth_router)
