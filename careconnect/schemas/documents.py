from datetime import datetime

from pydantic import BaseModel


class DocumentResponse(BaseModel):
    id: int
    file_name: str
    file_type: str
    file_hash: str
    file_size: int
    file_url: str  # signed, expires after SIGNED_URL_TTL_SECONDS
    created_at: datetime
