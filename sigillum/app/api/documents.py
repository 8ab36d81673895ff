"""
Document certification endpoints.

Thin HTTP glue: every route delegates to the coordinator and lets typed
pipeline errors propagate to the application's exception handler.

    POST /documents/upload           direct registration (admin)
    GET  /documents/upload-url       presigned phase one (admin)
    POST /documents/process          presigned phase two (admin)
    GET  /documents/resolve/{code}   deliver the certified copy
    POST /documents/verify-file      compare a file against its record
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel, Field

from sigillum.app.api.dependencies import (
    CoordinatorDep,
    require_admin,
    stamp_options,
)
from sigillum.app.config import QrPosition, QrSize
from sigillum.app.schemas.document import RegistrationResult, VerificationResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Documents"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ProcessRequest(BaseModel):
    doc_code: str = Field(..., min_length=1)
    qr_size: Optional[QrSize] = None
    qr_position: Optional[QrPosition] = None


def _revoked_header(revoked: bool) -> Dict[str, str]:
    return {"X-Document-Revoked": "true" if revoked else "false"}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post(
    "/upload",
    status_code=201,
    response_model=RegistrationResult,
    dependencies=[Depends(require_admin)],
    summary="Register a PDF in a single request",
)
async def upload_document(
    coordinator: CoordinatorDep,
    file: UploadFile = File(..., description="PDF to certify"),
    qr_size: Optional[QrSize] = Form(default=None),
    qr_position: Optional[QrPosition] = Form(default=None),
) -> RegistrationResult:
    # Never buffer more than one byte past the limit.
    limit = coordinator.settings.max_upload_size_bytes
    data = await file.read(limit + 1)

    return await coordinator.register_upload(
        data,
        filename=file.filename,
        content_type=file.content_type,
        options=stamp_options(coordinator, qr_size, qr_position),
    )


@router.get(
    "/upload-url",
    dependencies=[Depends(require_admin)],
    summary="Choose the upload mode and issue a presigned PUT URL",
)
async def request_upload_url(coordinator: CoordinatorDep) -> Dict[str, Any]:
    if not coordinator.presigned_mode:
        return {"mode": "direct"}

    ticket = await coordinator.request_upload_url()
    return {"mode": "presigned", **ticket.model_dump()}


@router.post(
    "/process",
    status_code=201,
    response_model=RegistrationResult,
    dependencies=[Depends(require_admin)],
    summary="Certify a file previously uploaded via presigned URL",
)
async def process_document(
    body: ProcessRequest,
    coordinator: CoordinatorDep,
) -> RegistrationResult:
    return await coordinator.process_upload(
        body.doc_code.strip(),
        options=stamp_options(coordinator, body.qr_size, body.qr_position),
    )


# ---------------------------------------------------------------------------
# Resolution and verification
# ---------------------------------------------------------------------------


@router.get(
    "/resolve/{doc_code}",
    summary="Deliver the certified PDF for a document code",
    response_class=Response,
)
async def resolve_document(doc_code: str, coordinator: CoordinatorDep) -> Response:
    doc_code = doc_code.strip()
    resolved = await coordinator.resolve(doc_code)
    headers = _revoked_header(resolved.record.revoked)

    if resolved.redirect_url is not None:
        return RedirectResponse(
            resolved.redirect_url,
            status_code=307,
            headers=headers,
        )

    return Response(
        content=resolved.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="{doc_code}.pdf"',
            **headers,
        },
    )


@router.post(
    "/verify-file",
    response_model=VerificationResult,
    summary="Check a presented PDF against its registered hash",
)
async def verify_file(
    coordinator: CoordinatorDep,
    file: UploadFile = File(..., description="Candidate PDF"),
    doc_code: str = Form(..., min_length=1),
) -> VerificationResult:
    candidate = await file.read()
    return await coordinator.verify(doc_code.strip(), candidate)
