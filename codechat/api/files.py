"""File upload endpoints."""

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from pydantic import BaseModel, ValidationError, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from codechat.api.dependencies import get_container, require_session
from codechat.container import ServiceContainer
from codechat.models.conversation import UploadResponse
from codechat.models.session import Session
from codechat.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/files")


class UploadConstraints(BaseModel):
    """Declared type and size of an upload, checked against the service limits.

    Limits come from the validation context: ``allowed_types`` and
    ``max_bytes``.
    """

    type: str
    size: int

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str, info: ValidationInfo) -> str:
        allowed = (info.context or {}).get("allowed_types", ())
        if v not in allowed:
            raise PydanticCustomError(
                "file_type", "File type should be one of: {allowed}", {"allowed": ", ".join(allowed)}
            )
        return v

    @field_validator("size")
    @classmethod
    def validate_size(cls, v: int, info: ValidationInfo) -> int:
        max_bytes = (info.context or {}).get("max_bytes", 0)
        if v > max_bytes:
            raise PydanticCustomError(
                "file_size", "File size should be less than {limit}MB", {"limit": max_bytes // (1024 * 1024)}
            )
        return v


async def read_within_limit(file: UploadFile, max_bytes: int) -> tuple[bytes, int]:
    """Read an upload, never buffering more than ``max_bytes + 1`` bytes.

    Returns the data and the upload size. When the size is already known to
    exceed the limit nothing is read.
    """
    if file.size is not None and file.size > max_bytes:
        return b"", file.size
    data = await file.read(max_bytes + 1)
    return data, len(data)


@router.post("/upload", response_model=UploadResponse, tags=["Files"])
async def upload_file(
    file: UploadFile | None = File(None),
    session: Session = Depends(require_session),
    container: ServiceContainer = Depends(get_container),
) -> UploadResponse:
    """Store an image or PDF the user wants to attach to a message."""
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    settings = container.settings
    data, size = await read_within_limit(file, settings.max_upload_bytes)
    try:
        UploadConstraints.model_validate(
            {"type": file.content_type or "", "size": size},
            context={"allowed_types": settings.allowed_upload_types, "max_bytes": settings.max_upload_bytes},
        )
    except ValidationError as e:
        message = ", ".join(error["msg"] for error in e.errors())
        logger.info(f"Rejected upload {file.filename!r} from user {session.user_id}: {message}")
        raise HTTPException(status_code=400, detail=message) from e

    try:
        blob = await container.blob_store.put(file.filename or "upload", data, file.content_type)
    except Exception as e:
        logger.error(f"Upload error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Upload failed") from e

    return UploadResponse(url=blob.url, pathname=blob.pathname, contentType=blob.content_type, size=blob.size)


@router.get("/{pathname}", tags=["Files"])
async def download_file(
    pathname: str,
    container: ServiceContainer = Depends(get_container),
) -> Response:
    """Serve a previously uploaded file."""
    stored = await container.blob_store.fetch(pathname)
    if stored is None:
        raise HTTPException(status_code=404, detail="Not Found")
    data, content_type = stored
    return Response(content=data, media_type=content_type)
