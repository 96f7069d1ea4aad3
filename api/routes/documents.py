"""
Document route — compose an arbitrary document (report, invoice, letter,
notice, lease) and stream the PDF back.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from api.routes.reports import get_resolver
from api.security import require_api_key
from engine.branding import BrandingResolver, normalize_profile
from engine.composer import DOCUMENT_TYPES, DocumentComposer
from engine.errors import DocumentGenerationError
from engine.models import BrandingProfile, DocumentSpec

router = APIRouter()


class DocumentRequest(BaseModel):
    type: str
    title: str
    content: Dict[str, Any] = {}
    owner: Optional[str] = None
    tenant_id: Optional[str] = None
    branding: Optional[Dict[str, Any]] = None


def get_composer() -> DocumentComposer:
    return DocumentComposer()


@router.post("/documents", dependencies=[Depends(require_api_key)])
def compose_document(request: DocumentRequest,
                     composer: DocumentComposer = Depends(get_composer),
                     resolver: BrandingResolver = Depends(get_resolver)):
    """Compose a document and return it as application/pdf."""
    if request.type not in DOCUMENT_TYPES:
        raise HTTPException(
            400,
            f"Unsupported document type '{request.type}'. Use: {', '.join(DOCUMENT_TYPES)}",
        )

    if request.branding:
        branding = normalize_profile(BrandingProfile.from_dict(request.branding))
    else:
        branding = resolver.resolve(request.tenant_id)

    document = DocumentSpec(type=request.type, title=request.title,
                            content=request.content, owner=request.owner)
    try:
        result = composer.run({"document": document, "branding": branding})
    except DocumentGenerationError as exc:
        raise HTTPException(422, str(exc))

    return Response(
        content=result.pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Page-Count": str(result.page_count),
        },
    )
