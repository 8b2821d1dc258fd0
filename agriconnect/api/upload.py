from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from agriconnect.dependencies import get_current_user, rate_limit
from agriconnect.errors import ApiError, bad_request, forbidden
from agriconnect.models import User
from agriconnect.services.image_upload import ALLOWED_IMAGE_TYPES, can_upload_to, generate_upload_signature

router = APIRouter()


class UploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_type: str = Field(alias="fileType", min_length=1)
    folder: str = Field(min_length=1)


class UploadResponse(BaseModel):
    url: str
    params: dict


@router.post(
    "",
    response_model=UploadResponse,
    summary="Get signed parameters for a direct image upload",
    dependencies=[Depends(rate_limit("upload"))],
)
def create_upload(
    body: UploadRequest,
    current_user: Annotated[User, Depends(get_current_user)],
):
    file_type = body.file_type.lower()
    if file_type not in ALLOWED_IMAGE_TYPES:
        raise bad_request("Only JPEG, PNG, WEBP and GIF images can be uploaded")
    if not can_upload_to(current_user.role, body.folder):
        raise forbidden("Insufficient permissions for this folder")

    try:
        return generate_upload_signature(body.folder, current_user.id, file_type)
    except ValueError as e:
        raise ApiError("SERVICE_UNAVAILABLE", str(e))
