import uuid

from fastapi import HTTPException, UploadFile, status


async def read_upload(file: UploadFile, max_bytes: int, images_only: bool = False) -> bytes:
    content_type = file.content_type or "application/octet-stream"
    if images_only and not content_type.startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only image files are allowed")

    data = await file.read(max_bytes + 1)
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large (max {max_bytes // (1024 * 1024)} MB)",
        )
    return data


def file_extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return "bin"
    return filename.rsplit(".", 1)[1].lower() or "bin"


def unique_object_path(prefix: str, filename: str | None) -> str:
    return f"{prefix}/{uuid.uuid4()}.{file_extension(filename)}"
