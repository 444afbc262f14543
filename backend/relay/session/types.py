"""
Pydantic models and enums shared by the session and messaging layers.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RoomType(StrEnum):
    TWO_PLAYER = "2player"
    THREE_PLAYER = "3player"

    @property
    def capacity(self) -> int:
        """Connections admitted to a room of this type (and its highest seat number)."""
        return 3 if self is RoomType.THREE_PLAYER else 2


class WireModel(BaseModel):
    """Base for everything sent over the wire: camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class RoomSummary(WireModel):
    """Room information for lobby listing and discovery."""

    id: str
    players: int
    capacity: int
    is_full: bool
    room_type: RoomType
    game_started: bool
