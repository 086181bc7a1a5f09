from datetime import datetime

from pydantic import BaseModel, Field


class FileMeta(BaseModel):
    id: str
    original_name: str
    stored_name: str
    mime_type: str
    size: int = Field(ge=0)
    locked: bool = False
    uploaded_at: datetime


class FileRecord(FileMeta):
    access_password: str | None = None

    def public(self) -> FileMeta:
        return FileMeta(**self.model_dump(exclude={"access_password"}))


class Session(BaseModel):
    token: str
    file_id: str
    expires_at: float


class RotatingPassword(BaseModel):
    value: str
    expires_at: float


class CreateCodeRequest(BaseModel):
    code: str | None = None


class CreateCodeResponse(BaseModel):
    url: str
    id: str
    password: str | None = None


class UploadResponse(BaseModel):
    ok: bool = True
    id: str
    meta: FileMeta
    password: str | None = None


class FileListResponse(BaseModel):
    files: list[FileMeta]


class LockResponse(BaseModel):
    ok: bool = True
    id: str
    locked: bool


class AuthRequest(BaseModel):
    password: str = ""


class AuthResponse(BaseModel):
    token: str
    expires_at: float


class PasswordVerifyRequest(BaseModel):
    password: str = ""


class PasswordVerifyResponse(BaseModel):
    valid: bool
    expires_at: float


class PasswordInfoResponse(BaseModel):
    expires_at: float | None
