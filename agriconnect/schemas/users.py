from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from agriconnect.models.enums import FarmCapacity, UserRole


class Location(BaseModel):
    province: str = Field(min_length=1, max_length=120)
    district: str = Field(min_length=1, max_length=120)
    sector: str = Field(min_length=1, max_length=120)
    address: str | None = Field(default=None, max_length=255)


class ProfileUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    location: Location | None = None
    description: str | None = Field(default=None, max_length=2000)
    profile_picture_url: str | None = Field(default=None, max_length=512)
    contact_email: EmailStr | None = None
    contact_phone: str | None = Field(default=None, pattern=r"^(\+250|0)(7[0-9]{8})$")
    social_links: dict[str, str] | None = None


class FarmerProfileRequest(BaseModel):
    farm_name: str = Field(min_length=1, max_length=255)
    farm_location_details: str = Field(min_length=1, max_length=512)
    farm_capacity: FarmCapacity
    certifications: list[str] = Field(default_factory=list)
    gps_coordinates: str | None = Field(default=None, max_length=64)
    bio: str | None = Field(default=None, max_length=2000)


class SellerProfileRequest(BaseModel):
    business_name: str = Field(min_length=1, max_length=255)
    delivery_options: list[str] = Field(default_factory=list)
    business_registration_number: str | None = Field(default=None, max_length=64)


class UserRoleUpdateRequest(BaseModel):
    role: UserRole


class FarmerProfileResponse(BaseModel):
    id: int
    farm_name: str
    farm_location_details: str
    farm_capacity: FarmCapacity
    certifications: list[str]
    gps_coordinates: str | None = None
    bio: str | None = None

    model_config = {"from_attributes": True}


class SellerProfileResponse(BaseModel):
    id: int
    business_name: str
    delivery_options: list[str]
    business_registration_number: str | None = None

    model_config = {"from_attributes": True}


class ProfileResponse(BaseModel):
    id: int
    name: str
    location: dict | None = None
    description: str | None = None
    profile_picture_url: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    social_links: dict | None = None
    farmer_profile: FarmerProfileResponse | None = None
    seller_profile: SellerProfileResponse | None = None

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    id: int
    email: str
    phone_number: str | None = None
    role: UserRole
    is_verified: bool
    created_at: datetime | None = None
    profile: ProfileResponse | None = None

    model_config = {"from_attributes": True}


class PublicProfileResponse(BaseModel):
    """Profile as shown to other users; contact details stay private."""

    id: int
    role: UserRole
    is_verified: bool
    name: str | None = None
    location: dict | None = None
    description: str | None = None
    profile_picture_url: str | None = None
    farmer_profile: FarmerProfileResponse | None = None
    seller_profile: SellerProfileResponse | None = None
    average_rating: float | None = None
    review_count: int = 0
