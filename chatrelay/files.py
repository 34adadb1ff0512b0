from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import StreamingResponse
from typing import Optional
from urllib.parse import quote
import logging
import mimetypes

from .errors import (BlobNotFound, DownloadFailed, MetadataLookupFailed,
                     MissingUpload, StorageError, UploadFailed)
from .models import FileReference

logger = logging.getLogger(__name__)

router = APIRouter()


def content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


def file_url_for(request: Request, file_id: str) -> str:
    base = request.app.state.settings.public_base_url
    if base:
        return f"{base.rstrip('/')}/files/{file_id}"
    return str(request.url_for('download_file', file_id=file_id))


@router.post('/upload')
async def upload_file(request: Request, file: Optional[UploadFile] = File(None)):
    if file is None:
        raise MissingUpload()
    blobs = request.app.state.blob_store
    original_name = file.filename or 'upload'
    data = await file.read()
    try:
        file_id = await blobs.store(original_name, data, content_type=file.content_type)
    except StorageError as e:
        raise UploadFailed(e.details) from e
    logger.info("Stored upload %s (%s, %d bytes)", file_id, original_name, len(data))
    ref = FileReference(
        file_url=file_url_for(request, file_id),
        file_id=file_id,
        original_name=original_name,
    )
    return ref.model_dump(by_alias=True)


@router.get('/files/{file_id}', name='download_file')
async def download_file(request: Request, file_id: str):
    blobs = request.app.state.blob_store
    oid = blobs.parse_id(file_id)
    try:
        info = await blobs.describe(oid)
    except StorageError as e:
        raise MetadataLookupFailed(e.details) from e
    if info is None:
        raise BlobNotFound()

    chunks = blobs.stream(oid)
    # pull the first chunk so open/read failures still get a JSON 500
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = b''
    except StorageError as e:
        raise DownloadFailed(e.details) from e

    async def body():
        if first:
            yield first
        try:
            async for chunk in chunks:
                yield chunk
        except StorageError as e:
            logger.error("Download of %s aborted: %s", file_id, e.details)
            raise DownloadFailed(e.details) from e

    media_type = info.content_type or mimetypes.guess_type(info.filename)[0] or 'application/octet-stream'
    return StreamingResponse(
        body(),
        media_type=media_type,
        headers={'Content-Disposition': content_disposition(info.filename)},
    )
