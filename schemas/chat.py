from pydantic import BaseModel, ConfigDict
from typing import Any, Optional


class ChatMessage(BaseModel):
    id: str
    user: str
    text: str
    time: int

class SystemNotification(BaseModel):
    text: str
    time: int

class InboundFrame(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    data: Optional[Any] = None

class PresenceResponse(BaseModel):
    online_users: list[str]
    online_users_count: int

class HealthResponse(BaseModel):
    status: str
    connections: int
