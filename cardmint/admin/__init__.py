"""Administrative tooling."""

from .service import AdminService

__all__ = ["AdminService"]
