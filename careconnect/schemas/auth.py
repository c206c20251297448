from datetime import date

from pydantic import BaseModel, EmailStr, field_validator


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    full_name: str = ""
    phone: str | None = None

    @field_validator("password")
    @classmethod
    def password_min_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters.")
        return v


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str
    phone: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    blood_type: str | None = None
    allergies: str | None = None


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    blood_type: str | None = None
    allergies: str | None = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
