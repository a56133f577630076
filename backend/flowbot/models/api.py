# /flowbot/models/api.py

from pydantic import BaseModel, Field
from typing import Dict, Optional
from datetime import datetime

# Request and response bodies for the HTTP API.


class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str


class ToggleRequest(BaseModel):
    enabled: bool
