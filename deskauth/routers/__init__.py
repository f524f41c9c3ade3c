"""API routers for DeskAuth."""

from deskauth.routers import auth, external_identity

__all__ = ["auth", "external_identity"]
