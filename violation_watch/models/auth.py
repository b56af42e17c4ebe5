from enum import Enum
from pydantic import BaseModel
from typing import Optional

class Role(str, Enum):
    ANONYMOUS = "anonymous"
    USER = "user"
    INTERNAL = "internal"

class AuthContext(BaseModel):
    user_id: Optional[str] = None
    role: Role = Role.ANONYMOUS
    caller: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.role == Role.USER and self.user_id is not None
