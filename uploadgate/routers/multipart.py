# uploadgate/routers/multipart.py
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from uploadgate.core.errors import InvalidPartNumber
from uploadgate.dependencies import get_coordinator, get_upload_context
from uploadgate.domain.models import CompletedPart
from uploadgate.schemas.uploads_multipart import (
    MPUBatchSignOut,
    MPUCompleteIn,
    MPUCompleteOut,
    MPUCreateIn,
    MPUCreateOut,
    MPUPartOut,
    MPUSignPartOut,
)
from uploadgate.services.multipart import MultipartCoordinator
from uploadgate.services.upload_fields import AuthorizationContext

router = APIRouter(prefix="/{resource}/{resource_id}/{field}/multipart", tags=["multipart"])


@router.post("", response_model=MPUCreateOut)
def create_multipart_upload(
    body: MPUCreateIn,
    ctx: AuthorizationContext = Depends(get_upload_context),
    coordinator: MultipartCoordinator = Depends(get_coordinator),
):
    session = coordinator.create(ctx, body.filename, body.content_type, body.metadata)
    return MPUCreateOut(key=session.storage_key, upload_id=session.upload_id)


@router.get("/{upload_id}", response_model=List[MPUPartOut])
def get_uploaded_parts(
    upload_id: str,
    key: str = Query(..., min_length=1),
    ctx: AuthorizationContext = Depends(get_upload_context),
    coordinator: MultipartCoordinator = Depends(get_coordinator),
):
    parts = coordinator.list_parts(ctx, key, upload_id)
    return [
        MPUPartOut(part_number=p.part_number, size=p.size, etag=p.etag, last_modified=p.last_modified)
        for p in parts
    ]


# moet vóór /{upload_id}/{part_number} staan
@router.get("/{upload_id}/batch", response_model=MPUBatchSignOut)
def batch_sign_parts_upload(
    upload_id: str,
    key: str = Query(..., min_length=1),
    part_numbers: str = Query(..., alias="partNumbers"),
    ctx: AuthorizationContext = Depends(get_upload_context),
    coordinator: MultipartCoordinator = Depends(get_coordinator),
):
    tokens = [t.strip() for t in part_numbers.split(",") if t.strip()]
    if not tokens:
        raise InvalidPartNumber("partNumbers must list at least one part number")

    result = coordinator.sign_parts(ctx, key, upload_id, tokens)
    return MPUBatchSignOut(
        presigned_urls={n: a.url for n, a in result.presigned_urls.items()},
        errors=result.errors,
    )


@router.get("/{upload_id}/{part_number}", response_model=MPUSignPartOut)
def sign_part_upload(
    upload_id: str,
    part_number: int,
    key: str = Query(..., min_length=1),
    ctx: AuthorizationContext = Depends(get_upload_context),
    coordinator: MultipartCoordinator = Depends(get_coordinator),
):
    auth = coordinator.sign_part(ctx, key, upload_id, part_number)
    return MPUSignPartOut(url=auth.url, expires_in=auth.expires_in)


@router.post("/{upload_id}/complete", response_model=MPUCompleteOut)
def complete_multipart_upload(
    upload_id: str,
    body: MPUCompleteIn,
    key: str = Query(..., min_length=1),
    ctx: AuthorizationContext = Depends(get_upload_context),
    coordinator: MultipartCoordinator = Depends(get_coordinator),
):
    parts = [CompletedPart(part_number=p.part_number, etag=p.etag) for p in body.parts]
    location = coordinator.complete(ctx, key, upload_id, parts)
    return MPUCompleteOut(location=location)


@router.delete("/{upload_id}")
def abort_multipart_upload(
    upload_id: str,
    key: str = Query(..., min_length=1),
    ctx: AuthorizationContext = Depends(get_upload_context),
    coordinator: MultipartCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    coordinator.abort(ctx, key, upload_id)
    return {}
