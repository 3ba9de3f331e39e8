"""
Documents API Router

Encrypt and decrypt identity documents, and manage the passcode gate.
"""

from fastapi import APIRouter, Depends
from typing import Optional

from pydantic import Field

from talent_calendar.api.dependencies import get_document_access, get_document_encryption
from talent_calendar.auth.bearer import require_bearer
from talent_calendar.services.document_access import DocumentAccessGate
from talent_calendar.services.document_encryption import DocumentEncryptionService
from talent_calendar.sync.architecture import CamelModel
from talent_calendar.utils.errors import TalentCalendarError

router = APIRouter(prefix="/documents", tags=["documents"], dependencies=[Depends(require_bearer)])


class DocumentRequest(CamelModel):
    action: str = Field(pattern="^(encrypt|decrypt)$")
    file_name: str
    talent_id: str
    document_type: str
    file_data: Optional[str] = None
    iv: Optional[str] = None
    passcode: Optional[str] = None


class BirthYearRequest(CamelModel):
    birth_year: int = Field(ge=1900, le=2100)


@router.post("")
async def handle_document(
    request: DocumentRequest,
    encryption: DocumentEncryptionService = Depends(get_document_encryption),
    access: DocumentAccessGate = Depends(get_document_access)
):
    """Encrypt an uploaded document, or decrypt one behind the passcode gate"""
    if request.action == "encrypt":
        if not request.file_data:
            raise TalentCalendarError("fileData is required", 400)
        return await encryption.encrypt(
            request.file_data, request.file_name, request.talent_id, request.document_type
        )

    if not request.iv:
        raise TalentCalendarError("iv is required", 400)
    return await access.view_document(
        request.file_name, request.talent_id, request.document_type, request.iv, request.passcode or ""
    )


@router.get("/access/{talent_id}")
async def access_status(talent_id: str, access: DocumentAccessGate = Depends(get_document_access)):
    return await access.status(talent_id)


@router.put("/access/{talent_id}")
async def set_birth_year(
    talent_id: str,
    request: BirthYearRequest,
    access: DocumentAccessGate = Depends(get_document_access)
):
    """Set the reference birth year used as the passcode"""
    return await access.set_birth_year(talent_id, request.birth_year)


@router.post("/access/{talent_id}/lock")
async def lock_access(talent_id: str, access: DocumentAccessGate = Depends(get_document_access)):
    return await access.lock(talent_id)


@router.delete("/access/{talent_id}/lock")
async def clear_lock(talent_id: str, access: DocumentAccessGate = Depends(get_document_access)):
    return await access.clear_lock(talent_id)
