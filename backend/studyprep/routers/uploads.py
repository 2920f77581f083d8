# studyprep/routers/uploads.py
from fastapi import APIRouter, Depends, File, Form, UploadFile

from studyprep.core.auth import get_principal
from studyprep.core.errors import ValidationFailure
from studyprep.schemas.user import UploadOut
from studyprep.services.storage import StorageBackend, get_storage, is_valid_folder, sanitize_filename, timestamp_ms

router = APIRouter(prefix="/uploads", tags=["Uploads"], dependencies=[Depends(get_principal)])


@router.post("", response_model=UploadOut, summary="Upload a file into a storage folder")
async def upload_file(
    file: UploadFile = File(...),
    folder: str = Form("general"),
    storage: StorageBackend = Depends(get_storage),
):
    """
    Stores `<folder>/<ms>_<sanitized name>` and returns its public URL.
    Folder names are limited to letters, digits, `_`, `-` and `/` separators.
    """
    if not is_valid_folder(folder):
        raise ValidationFailure("Invalid folder name")

    data = await file.read()
    if not data:
        raise ValidationFailure("No file provided")

    filename = f"{timestamp_ms()}_{sanitize_filename(file.filename or '')}"
    stored = storage.upload(data, f"{folder}/{filename}", file.content_type)
    return UploadOut(url=stored.url, filename=filename, size=len(data), type=file.content_type)
