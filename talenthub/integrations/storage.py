import logging
from urllib.parse import quote, unquote

import httpx

from talenthub.core.errors import CollaboratorFailure

logger = logging.getLogger(__name__)


class SupabaseStorage:
    """Object storage over the Supabase Storage REST API."""

    def __init__(self, base_url: str, service_key: str, http: httpx.AsyncClient) -> None:
        self._base = f"{base_url.rstrip('/')}/storage/v1"
        self._http = http
        self._headers = {"Authorization": f"Bearer {service_key}", "apikey": service_key}

    def _object_url(self, bucket: str, path: str) -> str:
        return f"{self._base}/object/{bucket}/{quote(path)}"

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str, upsert: bool = False) -> None:
        headers = {**self._headers, "Content-Type": content_type, "x-upsert": "true" if upsert else "false"}
        try:
            response = await self._http.post(self._object_url(bucket, path), content=data, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Upload to %s/%s failed: %s", bucket, path, exc)
            raise CollaboratorFailure("File upload failed") from exc
        logger.debug("Uploaded %s/%s (%d bytes)", bucket, path, len(data))

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base}/object/public/{bucket}/{quote(path)}"

    def path_from_public_url(self, bucket: str, url: str) -> str | None:
        marker = f"/object/public/{bucket}/"
        if marker not in url:
            return None
        return unquote(url.split(marker, 1)[1].split("?", 1)[0])

    async def signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        try:
            response = await self._http.post(
                f"{self._base}/object/sign/{bucket}/{quote(path)}",
                json={"expiresIn": expires_in},
                headers=self._headers,
            )
            response.raise_for_status()
            signed_path = response.json()["signedURL"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.error("Signing %s/%s failed: %s", bucket, path, exc)
            raise CollaboratorFailure("Could not sign file URL") from exc
        return f"{self._base}{signed_path}"

    async def delete(self, bucket: str, paths: list[str]) -> None:
        try:
            response = await self._http.request(
                "DELETE", f"{self._base}/object/{bucket}", json={"prefixes": paths}, headers=self._headers
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Delete from %s failed: %s", bucket, exc)
            raise CollaboratorFailure("File delete failed") from exc


async def delete_best_effort(storage: SupabaseStorage, bucket: str, paths: list[str]) -> None:
    try:
        await storage.delete(bucket, paths)
    except CollaboratorFailure:
        logger.warning("Leaving %d orphaned object(s) in %s", len(paths), bucket)
