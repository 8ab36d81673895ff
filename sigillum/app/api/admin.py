"""
Administrative endpoints, guarded by the shared admin credential.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from sigillum.app.api.dependencies import CoordinatorDep, require_admin
from sigillum.app.schemas.document import RevocationResult

router = APIRouter(tags=["Administration"], dependencies=[Depends(require_admin)])


class RevokeRequest(BaseModel):
    doc_code: str = Field(..., min_length=1)


@router.get("/documents", summary="List registered documents, newest first")
async def list_documents(coordinator: CoordinatorDep) -> Dict[str, Any]:
    documents = await coordinator.list_documents()
    return {
        "success": True,
        "documents": [record.model_dump() for record in documents],
    }


@router.post(
    "/revoke",
    response_model=RevocationResult,
    summary="Revoke a document (one-way)",
)
async def revoke_document(
    body: RevokeRequest,
    coordinator: CoordinatorDep,
) -> RevocationResult:
    return await coordinator.revoke(body.doc_code.strip())
