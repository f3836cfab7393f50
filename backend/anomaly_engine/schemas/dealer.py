"""Dealer schemas."""

from typing import Optional

from pydantic import BaseModel


class Dealer(BaseModel):
    id: int
    name: str
    group_id: Optional[int] = None
    group_name: Optional[str] = None

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def group_label(self) -> str:
        return self.group_name or f"Group {self.group_id}"
