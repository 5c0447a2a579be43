from datetime import datetime
from pydantic import AnyHttpUrl, BaseModel, Field

class CreateLinkIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    url: AnyHttpUrl
    password: str | None = Field(default=None, max_length=128)
    expires_at: datetime | None = None

class LinkOut(BaseModel):
    id: str
    title: str
    target_url: str
    share_url: str
    is_protected: bool
    expires_at: datetime | None
    view_count: int
    file_name: str | None
    file_size: int | None
    created_at: datetime

class LinkStatsOut(BaseModel):
    total_links: int
    total_views: int
    active_links: int
    expired_links: int

class UnlockIn(BaseModel):
    password: str

class AccessOut(BaseModel):
    state: str
    link_id: str
    title: str | None = None
    target_url: str | None = None
    expires_at: datetime | None = None
    password_rejected: bool = False
