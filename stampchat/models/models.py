# stampchat/models/models.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StoredModel(BaseModel):
    """Documents are stored with camelCase keys; attributes stay snake_case."""

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict:
        """Field data as written to the store (no id, camelCase keys)."""
        return self.model_dump(by_alias=True, exclude={"id"})


# ============================================================================
# STORED ENTITIES
# ============================================================================

class Room(StoredModel):
    id: str
    name: str


class Message(StoredModel):
    id: str
    text: str
    created_at: datetime = Field(alias="createdAt")
    username: str
    likes: int = Field(0, ge=0)
    reply_to: Optional[str] = Field(None, alias="replyTo")


class Vote(StoredModel):
    id: str
    question: str
    options: List[str] = Field(min_length=2)
    created_at: datetime = Field(alias="createdAt")
    votes: List[int]

    @model_validator(mode="after")
    def tallies_match_options(self) -> "Vote":
        if len(self.votes) != len(self.options):
            raise ValueError(
                f"votes has {len(self.votes)} entries for {len(self.options)} options"
            )
        if any(count < 0 for count in self.votes):
            raise ValueError("vote tallies must be non-negative")
        return self


class Participant(BaseModel):
    name: str
    role: str


class Game(StoredModel):
    id: str
    room_name: str = Field(alias="roomName")
    participants: List[Participant]


# ============================================================================
# REQUEST BODIES
# ============================================================================

class CreateRoomRequest(BaseModel):
    id: str
    name: str


class SendMessageRequest(StoredModel):
    username: str
    text: str
    reply_to: Optional[str] = Field(None, alias="replyTo")


class LikeMessageRequest(BaseModel):
    # likes value the client last saw for this message
    likes: int = Field(0, ge=0)


class CreateVoteRequest(BaseModel):
    question: str
    options: List[str]


class CastVoteRequest(StoredModel):
    option_index: int = Field(alias="optionIndex")


class CreateGameRequest(StoredModel):
    room_name: str = Field(alias="roomName")
    participants: List[str]


# ============================================================================
# DISPLAY SHAPES
# ============================================================================

class Segment(BaseModel):
    kind: str  # "stamp" or "html"
    html: str = ""
    asset: Optional[str] = None
    url: Optional[str] = None


class RenderedMessage(Message):
    segments: List[Segment] = Field(default_factory=list)


class OptionTally(BaseModel):
    label: str
    count: int
    percent: int


class VoteTally(StoredModel):
    id: str
    question: str
    created_at: datetime = Field(alias="createdAt")
    total: int
    options: List[OptionTally]
