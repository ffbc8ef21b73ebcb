"""Durable storage for generated recipe images.

Two backends share one contract: ``save`` converts the provider payload to
WebP, writes it, and returns the public URL; ``verify`` re-reads what was
written and raises ``VerificationError`` unless a non-empty file is there.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any, Protocol

from PIL import Image, UnidentifiedImageError

from app.config import Settings, settings
from app.core.exceptions import ImageStoreConfigError, VerificationError
from app.core.ids import image_filename

logger = logging.getLogger(__name__)

WEBP_MIME_TYPE = "image/webp"


@dataclass(frozen=True)
class StoredImage:
    """A generated image that exists on durable storage."""

    url: str
    byte_size: int
    sha256: str | None = None


class ImageStore(Protocol):
    async def save(self, *, item_id: str, slot: int, payload: bytes) -> StoredImage: ...

    async def verify(self, url: str) -> StoredImage: ...


def convert_to_webp(payload: bytes, *, quality: int, location: str) -> bytes:
    """Re-encode provider output as WebP; unreadable input fails verification."""
    if not payload:
        raise VerificationError(location, "provider returned an empty image")
    try:
        with Image.open(BytesIO(payload)) as image:
            if image.mode not in ("RGB", "RGBA"):
                image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
            buffer = BytesIO()
            image.save(buffer, format="WEBP", quality=quality)
    except (UnidentifiedImageError, OSError) as exc:
        raise VerificationError(location, f"payload is not a readable image ({exc})") from exc
    return buffer.getvalue()


class LocalImageStore:
    """Writes WebP files under the public upload directory."""

    def __init__(self, app_settings: Settings | None = None) -> None:
        self.settings = app_settings or settings
        self.upload_dir = Path(self.settings.image_upload_dir)
        self.public_path = "/" + self.settings.image_public_path.strip("/")

    async def save(self, *, item_id: str, slot: int, payload: bytes) -> StoredImage:
        filename = image_filename(item_id, slot)
        webp = convert_to_webp(
            payload,
            quality=self.settings.image_webp_quality,
            location=filename,
        )
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        (self.upload_dir / filename).write_bytes(webp)

        url = f"{self.public_path}/{filename}"
        logger.info(
            "Generated image written",
            extra={"item_id": item_id, "slot": slot, "url": url, "byte_size": len(webp)},
        )
        return await self.verify(url)

    async def verify(self, url: str) -> StoredImage:
        path = self._path_for(url)
        if not path.is_file():
            raise VerificationError(url, "file does not exist")
        size = path.stat().st_size
        if size <= 0:
            raise VerificationError(url, "file is empty")
        data = path.read_bytes()
        if len(data) != size:
            raise VerificationError(url, "file could not be read back")
        return StoredImage(url=url, byte_size=size, sha256=hashlib.sha256(data).hexdigest())

    def _path_for(self, url: str) -> Path:
        prefix = self.public_path + "/"
        if not url.startswith(prefix):
            raise VerificationError(url, f"not under {self.public_path}")
        name = url[len(prefix):]
        if not name or "/" in name or name.startswith("."):
            raise VerificationError(url, "invalid image filename")
        return self.upload_dir / name


class R2ImageStore:
    """Uploads WebP files to a Cloudflare R2 bucket with a public base URL."""

    key_prefix = "generated-recipes"

    def __init__(self, app_settings: Settings | None = None, client: Any | None = None) -> None:
        self.settings = app_settings or settings
        self._client = client

    async def save(self, *, item_id: str, slot: int, payload: bytes) -> StoredImage:
        self._validate_config()
        filename = image_filename(item_id, slot)
        webp = convert_to_webp(
            payload,
            quality=self.settings.image_webp_quality,
            location=filename,
        )
        sha256 = hashlib.sha256(webp).hexdigest()
        object_key = f"{self.key_prefix}/{filename}"

        self._get_client().put_object(
            Bucket=self.settings.cloudflare_r2_bucket,
            Key=object_key,
            Body=webp,
            ContentType=WEBP_MIME_TYPE,
            Metadata={"sha256": sha256, "item_id": item_id, "slot": str(slot)},
        )
        url = f"{self._public_base_url()}/{object_key}"
        logger.info(
            "Generated image uploaded",
            extra={"item_id": item_id, "slot": slot, "object_key": object_key},
        )
        return await self.verify(url)

    async def verify(self, url: str) -> StoredImage:
        self._validate_config()
        prefix = self._public_base_url() + "/"
        if not url.startswith(prefix):
            raise VerificationError(url, "not served from the configured bucket")
        object_key = url[len(prefix):]
        try:
            head = self._get_client().head_object(
                Bucket=self.settings.cloudflare_r2_bucket,
                Key=object_key,
            )
        except Exception as exc:
            raise VerificationError(url, f"object lookup failed ({exc})") from exc

        size = int(head.get("ContentLength") or 0)
        if size <= 0:
            raise VerificationError(url, "object is empty")
        metadata = head.get("Metadata") or {}
        return StoredImage(url=url, byte_size=size, sha256=metadata.get("sha256"))

    def _public_base_url(self) -> str:
        return str(self.settings.cloudflare_r2_public_base_url).rstrip("/")

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> Any:
        import boto3
        from botocore.config import Config

        endpoint_url = f"https://{self.settings.cloudflare_r2_account_id}.r2.cloudflarestorage.com"
        return boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=self.settings.cloudflare_r2_region,
            aws_access_key_id=self.settings.cloudflare_r2_access_key_id,
            aws_secret_access_key=self.settings.cloudflare_r2_secret_access_key,
            config=Config(signature_version="s3v4"),
        )

    def _validate_config(self) -> None:
        required = {
            "cloudflare_r2_account_id": self.settings.cloudflare_r2_account_id,
            "cloudflare_r2_access_key_id": self.settings.cloudflare_r2_access_key_id,
            "cloudflare_r2_secret_access_key": self.settings.cloudflare_r2_secret_access_key,
            "cloudflare_r2_bucket": self.settings.cloudflare_r2_bucket,
            "cloudflare_r2_public_base_url": self.settings.cloudflare_r2_public_base_url,
        }
        missing = [key for key, value in required.items() if not value]
        if missing:
            raise ImageStoreConfigError(
                "Missing required R2 config: " + ", ".join(sorted(missing))
            )


def build_image_store(app_settings: Settings | None = None) -> ImageStore:
    """Image store for the configured storage backend."""
    resolved = app_settings or settings
    if resolved.image_storage_backend == "r2":
        return R2ImageStore(resolved)
    return LocalImageStore(resolved)
