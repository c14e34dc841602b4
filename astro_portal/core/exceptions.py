# astro_portal/core/exceptions.py
from fastapi import status


class AstroPortalError(Exception):
    """Base error for the store, ad service and export pipeline."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendError(AstroPortalError):
    """A Supabase query, RPC or edge function call failed."""
    status_code = status.HTTP_502_BAD_GATEWAY


class NotFoundError(AstroPortalError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class ValidationFailure(AstroPortalError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PlanLimitExceeded(AstroPortalError):
    status_code = status.HTTP_403_FORBIDDEN


class ExportError(AstroPortalError):
    """Both the primary and the fallback PDF renderers failed."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ExportTimeout(AstroPortalError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
