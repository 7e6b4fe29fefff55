# sealsend/api/routes/files.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from sealsend.core.errors import SealSendError
from sealsend.core.security import get_current_username, get_transfer_service
from sealsend.models import FileRecord
from sealsend.schemas.file import DownloadOut, FileMetadataOut, UploadIn
from sealsend.services.transfer import TransferService, UploadMetadata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=FileMetadataOut)
def upload_file(
    req: UploadIn,
    username: str = Depends(get_current_username),
    transfer: TransferService = Depends(get_transfer_service),
):
    meta = req.metadata
    return transfer.upload(
        username,
        UploadMetadata(
            recipient=meta.recipient,
            file_name=meta.file_name,
            encrypted_ephemeral_key=meta.encrypted_ephemeral_key,
            auto_delete=meta.auto_delete,
        ),
        req.encrypted_content,
    )


@router.get("", response_model=List[FileMetadataOut])
def list_files(
    username: str = Depends(get_current_username),
    transfer: TransferService = Depends(get_transfer_service),
):
    """Inbox of the authenticated user. There is no way to list someone else's."""
    return transfer.list_files(username)


def _finalize_download(transfer: TransferService, record: FileRecord) -> None:
    # runs after the response went out; there is no client left to report to
    try:
        transfer.finalize_download(record)
    except SealSendError:
        logger.exception("auto-delete failed for file %s", record.id)


@router.get("/download", response_model=DownloadOut)
def download_file(
    background: BackgroundTasks,
    id: str = Query(min_length=1),
    username: str = Depends(get_current_username),
    transfer: TransferService = Depends(get_transfer_service),
):
    result = transfer.download(username, id)
    # Body is encoded before background tasks run, so a failed response never deletes
    if result.record.auto_delete:
        background.add_task(_finalize_download, transfer, result.record)
    return DownloadOut(
        metadata=FileMetadataOut.model_validate(result.record),
        encrypted_content=result.content,
    )


@router.delete("")
def delete_file(
    id: str = Query(min_length=1),
    username: str = Depends(get_current_username),
    transfer: TransferService = Depends(get_transfer_service),
):
    transfer.delete(username, id)
    return {"status": "ok"}
