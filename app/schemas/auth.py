from pydantic import BaseModel, Field
from typing import Optional, Union
from datetime import datetime


class SendOtpIn(BaseModel):
    mobile_number: Optional[str] = None


class SendOtpOut(BaseModel):
    message: str
    expires_in_seconds: int
    debug_code: Optional[str] = None


class VerifyOtpIn(BaseModel):
    mobile_number: Optional[str] = None
    otp: Optional[str] = None


class UserRead(BaseModel):
    id: Union[int, str]
    mobile_number: Optional[str] = None
    is_verified: bool
    full_name: Optional[str] = None
    default_street_address_line_1: Optional[str] = None
    default_street_address_line_2: Optional[str] = None
    default_city: Optional[str] = None
    default_state_province_region: Optional[str] = None
    default_postal_code: Optional[str] = None
    default_country: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VerifyOtpOut(BaseModel):
    message: str
    token: str
    user: UserRead


class SessionRead(BaseModel):
    userId: Union[int, str]
    mobileNumber: str
    user: UserRead


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=100)
    default_street_address_line_1: Optional[str] = Field(default=None, max_length=255)
    default_street_address_line_2: Optional[str] = Field(default=None, max_length=255)
    default_city: Optional[str] = Field(default=None, max_length=100)
    default_state_province_region: Optional[str] = Field(default=None, max_length=100)
    default_postal_code: Optional[str] = Field(default=None, max_length=20)
    default_country: Optional[str] = Field(default=None, max_length=100)
