from pydantic import BaseModel, EmailStr, field_validator
from datetime import datetime

class Token(BaseModel):
    access_token: str
    token_type: str

class UserResponse(BaseModel):
    """Schema for a staff account"""
    id: int
    email: str
    name: str | None = None
    role: str
    created_at: datetime

    @field_validator('role', mode='before')
    @classmethod
    def role_value(cls, v):
        return getattr(v, "value", v)

    class Config:
        from_attributes = True

class StaffCreate(BaseModel):
    email: EmailStr
    password: str
    name: str | None = None
    role: str = "STAFF"

    @field_validator('role')
    @classmethod
    def validate_role(cls, v: str) -> str:
        allowed = ['ADMIN', 'STAFF']
        if v not in allowed:
            raise ValueError(f'Role must be one of: {allowed}')
        return v

class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str
