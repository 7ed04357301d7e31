from typing import Optional

from .monitoring import ClientPayload


class SessionLockRequest(ClientPayload):
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class SessionStartRequest(ClientPayload):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    invite_token: Optional[str] = None
