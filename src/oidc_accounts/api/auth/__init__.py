"""OIDC login endpoints."""

from .router import router

__all__ = ["router"]
