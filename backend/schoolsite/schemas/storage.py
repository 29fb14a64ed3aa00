from pydantic import BaseModel
from typing import List


class UploadTargetResponse(BaseModel):
    """Where and how the client should send image bytes"""
    upload_url: str
    storage_id: str
    method: str = "PUT"
    expires_in: int


class UploadResult(BaseModel):
    storage_id: str


class SweepResult(BaseModel):
    deleted: List[str]
