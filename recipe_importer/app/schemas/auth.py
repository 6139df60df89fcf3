from typing import Optional

from pydantic import BaseModel


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
