"""API routers for crmimport."""

from crmimport.routers import imports

__all__ = ["imports"]
