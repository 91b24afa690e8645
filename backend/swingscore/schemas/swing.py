from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, field_validator

from swingscore.schemas.base import CamelModel
from swingscore.schemas.score import ScoreVector


class VideoRef(CamelModel):
    kind: Literal["durable", "ephemeral"]
    locator: str  # Object-store path for durable refs, URL or opaque token otherwise


class _SwingMetadataBase(CamelModel):
    club_type: Optional[str] = None
    club_name: Optional[str] = None
    video_ref: Optional[VideoRef] = None


class SelfSwingMetadata(_SwingMetadataBase):
    ownership: Literal["self"] = "self"


class FriendSwingMetadata(_SwingMetadataBase):
    ownership: Literal["friend"] = "friend"

    @field_validator("video_ref")
    @classmethod
    def _ephemeral_only(cls, value: Optional[VideoRef]):
        if value is not None and value.kind != "ephemeral":
            raise ValueError("videos of someone else's swing may only use an ephemeral locator")
        return value


class ProSwingMetadata(_SwingMetadataBase):
    ownership: Literal["pro"] = "pro"
    pro_name: str = Field(min_length=1)

    @field_validator("video_ref")
    @classmethod
    def _ephemeral_only(cls, value: Optional[VideoRef]):
        if value is not None and value.kind != "ephemeral":
            raise ValueError("videos of a pro swing may only use an ephemeral locator")
        return value


SwingMetadata = Annotated[
    Union[SelfSwingMetadata, FriendSwingMetadata, ProSwingMetadata],
    Field(discriminator="ownership"),
]


class SwingRecord(CamelModel):
    id: str
    user_id: Optional[str] = None
    recorded_at: datetime
    analyzed_at: datetime
    scores: ScoreVector
    metadata: SwingMetadata
    fingerprint: Optional[str] = None
    blended: bool = Field(default=False, alias="_blended")
    is_mock_data: bool = Field(default=False, alias="_isMockData")
