# Records and event payloads exchanged with clients and persisted in MongoDB.
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from typing import Annotated, Any, Optional
from datetime import datetime, timezone
import html

DOWNLOAD_LABEL = "Download File"


def utcnow_ms() -> datetime:
    """Current UTC time truncated to the millisecond precision BSON dates keep."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def download_link(file_url: str) -> str:
    return f'<a href="{html.escape(file_url, quote=True)}" target="_blank">{DOWNLOAD_LABEL}</a>'


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[str] = Field(default=None, alias='_id')
    text: str
    timestamp: datetime = Field(default_factory=utcnow_ms)
    room: str
    username: Optional[str] = None

    @field_validator('timestamp')
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Mongo hands back naive datetimes that are implicitly UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def compose(cls, text: str, room: str, username: Optional[str] = None,
                file_url: Optional[str] = None) -> "ChatMessage":
        if file_url:
            text = f"{text} {download_link(file_url)}"
        return cls(text=text, room=room, username=username)

    def to_document(self) -> dict:
        return self.model_dump(exclude={'id'})

    def to_event(self) -> dict:
        return self.model_dump(mode='json', by_alias=True)


class FileReference(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_url: str = Field(alias='fileUrl')
    file_id: str = Field(alias='fileId')
    original_name: str = Field(alias='originalName')


class BlobInfo(BaseModel):
    id: str
    filename: str
    length: int = 0
    content_type: Optional[str] = None


# Inbound realtime payloads

class JoinRoomPayload(BaseModel):
    room: str
    username: Optional[str] = None


class NewMessagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    file_url: Optional[str] = Field(default=None, alias='fileUrl')


class Envelope(BaseModel):
    event: str
    data: Any = None


PageNumber = Annotated[int, Field(ge=0, strict=True)]
page_number = TypeAdapter(PageNumber)
