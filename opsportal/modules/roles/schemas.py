from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class PermissionResponse(BaseModel):
    id: str
    name: str
    resource: str
    action: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PermissionGroup(BaseModel):
    resource: str
    display_name: str
    permissions: List[PermissionResponse]


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, pattern=r"^[a-z][a-z0-9_]*$")
    display_name: str = Field(..., min_length=1)
    description: Optional[str] = None


class RoleUpdate(BaseModel):
    display_name: Optional[str] = None
    description: Optional[str] = None


class RoleResponse(BaseModel):
    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    is_system: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleWithPermissionsResponse(RoleResponse):
    permissions: List[PermissionResponse]


class RolePermissionAssign(BaseModel):
    permission_id: str


class RolePermissionsReplace(BaseModel):
    permission_ids: List[str]


class RoleDeleteResponse(BaseModel):
    role_id: str
    unassigned_profiles: int
    message: str
