from fastapi import Depends, Request

from uploadgate.auth.deps import Principal, get_current_principal
from uploadgate.services.multipart import MultipartCoordinator
from uploadgate.services.upload_fields import AuthorizationContext


def get_coordinator(request: Request) -> MultipartCoordinator:
    return request.app.state.coordinator


def get_upload_context(
    resource: str,
    resource_id: str,
    field: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> AuthorizationContext:
    """
    Resolve the upload field for this request once; the coordinator decides
    on ``ctx.is_allowed()`` before any backend call.
    """
    return request.app.state.upload_fields.resolve(principal, resource, resource_id, field)
