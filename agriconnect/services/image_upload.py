import time

import cloudinary.utils

from agriconnect.config import settings
from agriconnect.models.enums import UserRole

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif"}

ALLOWED_FOLDERS = {
    UserRole.FARMER.value: {"products", "profile"},
    UserRole.SELLER.value: {"profile"},
    UserRole.ADMIN.value: {"products", "profile", "categories"},
}


def can_upload_to(role: str, folder: str) -> bool:
    return folder in ALLOWED_FOLDERS.get(role, set())


def generate_upload_signature(folder: str, user_id: int, file_type: str) -> dict:
    """Build signed params for a direct browser-to-Cloudinary upload.

    Raises ValueError when Cloudinary credentials are missing.
    """
    if not (settings.CLOUDINARY_CLOUD_NAME and settings.CLOUDINARY_API_KEY and settings.CLOUDINARY_API_SECRET):
        raise ValueError("Image upload is not configured (CLOUDINARY_* settings are required).")

    timestamp = int(time.time())
    params = {
        "timestamp": timestamp,
        "public_id": f"{folder}/{user_id}/{timestamp}",
        "folder": folder,
    }
    signature = cloudinary.utils.api_sign_request(params, settings.CLOUDINARY_API_SECRET)

    return {
        "url": f"https://api.cloudinary.com/v1_1/{settings.CLOUDINARY_CLOUD_NAME}/image/upload",
        "params": {
            **params,
            "resource_type": "image" if file_type.startswith("image/") else "auto",
            "signature": signature,
            "api_key": settings.CLOUDINARY_API_KEY,
        },
    }
