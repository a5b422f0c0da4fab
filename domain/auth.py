"""Domain Entities - Auth"""
from pydantic import BaseModel
from typing import Optional


class CurrentUser(BaseModel):
    """Caller identity taken from a verified access token"""
    user_id: str
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    role: str = "authenticated"

    class Config:
        from_attributes = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
