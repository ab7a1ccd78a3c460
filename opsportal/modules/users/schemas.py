from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    nick_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    job_title: Optional[str] = None
    skills: Optional[List[str]] = None
    is_technician: Optional[bool] = None
    is_office_staff: Optional[bool] = None


class OnboardingComplete(BaseModel):
    display_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class RoleAssign(BaseModel):
    role_id: Optional[str] = None  # None removes the role


class ProfileResponse(BaseModel):
    id: str
    email: str
    display_name: str
    nick_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    job_title: Optional[str] = None
    skills: Optional[List[str]] = None
    user_types: List[str] = []
    role_id: Optional[str] = None
    is_active: bool = True
    onboarding_completed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
