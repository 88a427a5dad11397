"""OCR document verification endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from meditrap.api.deps import get_text_extractor
from meditrap.core.errors import InvalidRequestError
from meditrap.services.document_verification import DocumentVerifier, TextExtractor

router = APIRouter(prefix="/verify", tags=["verify"])


def get_verifier(extractor: Optional[TextExtractor] = Depends(get_text_extractor)) -> DocumentVerifier:
    if extractor is None:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="No OCR provider is configured on this server.",
        )
    return DocumentVerifier(extractor)


async def _read_upload(document: Optional[UploadFile]) -> bytes:
    if document is None:
        raise InvalidRequestError("No file uploaded. Use form field `document`.")
    data = await document.read()
    if not data:
        raise InvalidRequestError("Uploaded file is empty.")
    return data


@router.post("/document")
async def verify_document(
    document: Optional[UploadFile] = File(None),
    verifier: DocumentVerifier = Depends(get_verifier),
):
    """Look for Aadhaar numbers in an uploaded identity document."""
    data = await _read_upload(document)
    return verifier.verify_document(data, document.filename or "document", document.content_type)


@router.post("/drug-license")
async def verify_drug_license(
    document: Optional[UploadFile] = File(None),
    verifier: DocumentVerifier = Depends(get_verifier),
):
    """Look for drug-licence details in an uploaded licence image."""
    data = await _read_upload(document)
    return verifier.verify_drug_license(data, document.filename or "document", document.content_type)
