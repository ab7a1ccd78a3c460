from pydantic import BaseModel, EmailStr
from typing import Optional, List
from datetime import datetime


class InvitationCreate(BaseModel):
    email: EmailStr
    display_name: str
    nick_name: Optional[str] = None
    role_id: Optional[str] = None
    is_technician: bool = False
    is_office_staff: bool = False
    skills: Optional[List[str]] = None
    job_title: Optional[str] = None


class InvitationUpdate(BaseModel):
    email: Optional[EmailStr] = None
    display_name: Optional[str] = None
    nick_name: Optional[str] = None
    role_id: Optional[str] = None
    is_technician: Optional[bool] = None
    is_office_staff: Optional[bool] = None
    skills: Optional[List[str]] = None
    job_title: Optional[str] = None


class InvitationResponse(BaseModel):
    id: str
    email: str
    display_name: str
    nick_name: Optional[str] = None
    role_id: Optional[str] = None
    is_technician: bool = False
    is_office_staff: bool = False
    skills: Optional[List[str]] = None
    job_title: Optional[str] = None
    onboarding_completed: bool = False
    invited_by: Optional[str] = None
    created_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    claimed_by: Optional[str] = None

    class Config:
        from_attributes = True
