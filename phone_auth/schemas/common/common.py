# phone_auth/schemas/common/common.py
from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str
    storage_backend: str
