"""
Storage abstraction for listing photos.
Supports AWS S3 (production) and local disk (development).

Photos are written once and referenced from listings by public URL. Nothing
here deletes them: a photo dropped from a listing stays in the bucket.
"""
import os
import logging
from io import BytesIO

from PIL import Image, ImageOps

from constants import IMAGE_QUALITY, MAX_IMAGE_DIMENSION

logger = logging.getLogger(__name__)


def _process_image(file_obj) -> bytes:
    """
    Process uploaded image: EXIF transpose, resize if needed, convert to JPEG.
    Returns JPEG bytes.
    """
    img = Image.open(file_obj)
    img = ImageOps.exif_transpose(img)
    img = img.convert("RGBA")
    bg = Image.new("RGB", img.size, (255, 255, 255))
    bg.paste(img, (0, 0), img)
    if bg.width > MAX_IMAGE_DIMENSION or bg.height > MAX_IMAGE_DIMENSION:
        if bg.width > bg.height:
            new_width = MAX_IMAGE_DIMENSION
            new_height = int(bg.height * (MAX_IMAGE_DIMENSION / bg.width))
        else:
            new_height = MAX_IMAGE_DIMENSION
            new_width = int(bg.width * (MAX_IMAGE_DIMENSION / bg.height))
        bg = bg.resize((new_width, new_height), Image.Resampling.LANCZOS)
    buf = BytesIO()
    bg.save(buf, "JPEG", quality=IMAGE_QUALITY, optimize=True)
    return buf.getvalue()


class LocalStorage:
    """Store photos on local disk."""

    def __init__(self, upload_folder: str):
        self.upload_folder = upload_folder
        os.makedirs(upload_folder, exist_ok=True)

    def is_s3(self) -> bool:
        return False

    def save_photo(self, file_obj, key: str) -> str:
        """Save photo to disk. Returns key."""
        jpeg_bytes = _process_image(file_obj)
        path = os.path.join(self.upload_folder, key)
        with open(path, "wb") as f:
            f.write(jpeg_bytes)
        return key

    def get_photo_url(self, key: str) -> str:
        """Served by the /uploads/<filename> route."""
        return f"/uploads/{key}"


class S3Storage:
    """Store photos in AWS S3."""

    def __init__(self, bucket: str, region: str, cdn_url: str = None):
        import boto3
        self.bucket = bucket
        self.region = region
        self.cdn_url = cdn_url.rstrip("/") if cdn_url else None
        self.client = boto3.client("s3", region_name=region)

    def is_s3(self) -> bool:
        return True

    def _key(self, filename: str) -> str:
        """S3 object key with items/ prefix."""
        return f"items/{filename}"

    def save_photo(self, file_obj, key: str) -> str:
        """Save photo to S3. Returns key."""
        jpeg_bytes = _process_image(file_obj)
        self.client.put_object(
            Bucket=self.bucket,
            Key=self._key(key),
            Body=jpeg_bytes,
            ContentType="image/jpeg",
            CacheControl="max-age=3600",
        )
        return key

    def get_photo_url(self, key: str) -> str:
        """Return public URL for the photo."""
        if self.cdn_url:
            return f"{self.cdn_url}/items/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/items/{key}"


# Module-level storage instance (initialized when app loads)
_storage = None


def init_storage(app):
    """Initialize storage with app config. Call from app startup."""
    global _storage
    bucket = os.environ.get("AWS_S3_BUCKET")
    if bucket:
        region = os.environ.get("AWS_S3_REGION", "ap-south-1")
        cdn_url = os.environ.get("AWS_S3_CDN_URL")
        _storage = S3Storage(bucket=bucket, region=region, cdn_url=cdn_url)
    else:
        upload_folder = app.config.get("UPLOAD_FOLDER", "static/uploads")
        _storage = LocalStorage(upload_folder=upload_folder)
    logger.info(f"Photo storage: {'S3' if _storage.is_s3() else 'local disk'}")
    return _storage


def get_storage_instance():
    """Get the initialized storage instance. Must call init_storage first."""
    return _storage
