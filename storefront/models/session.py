from typing import Optional
from pydantic import BaseModel

class Credentials(BaseModel):
    email: str
    password: str

class AdminSession(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    email: Optional[str] = None
