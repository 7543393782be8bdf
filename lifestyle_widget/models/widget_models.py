# lifestyle_widget/models/widget_models.py
# Wire models for the remote widget API and the embed message protocol,
# plus the client-side state types owned by the widget state machine.
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

RESIZE_MESSAGE_TYPE = "WIDGET_RESIZE"


def _as_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, (dict, list)):
        raise ValueError("expected a scalar")
    return str(v)


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "on", "y"}
    return bool(v)


def _as_count(v: Any) -> int:
    try:
        n = int(v)
    except (TypeError, ValueError):
        return 0
    return n if n >= 0 else 0


class EventType(str, Enum):
    VIEW = "view"
    LIKE = "like"
    CLICK = "click"


class Render(BaseModel):
    """One lifestyle image for a SKU, as served by GET /renders."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field("", description="Render ID (also the target of likes/events)")
    image_url: str = Field("", description="Absolute image URL")
    alt_text: str = Field("", description="Alt text for the image")

    @field_validator("id", "image_url", "alt_text", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return _as_text(v)


class LikeToggleResponse(BaseModel):
    """Response of POST /likes; missing fields default to not-liked/zero."""
    model_config = ConfigDict(extra="ignore")

    liked: bool = Field(False, description="Whether this session now likes the render")
    total_likes: int = Field(0, description="Authoritative like count across all sessions")

    @field_validator("liked", mode="before")
    @classmethod
    def _coerce_liked(cls, v):
        return _as_bool(v)

    @field_validator("total_likes", mode="before")
    @classmethod
    def _coerce_total(cls, v):
        return _as_count(v)


class LikeStateEntry(BaseModel):
    """One value of the GET /likes batched lookup map."""
    model_config = ConfigDict(extra="ignore")

    liked: bool = False
    total: int = 0

    @field_validator("liked", mode="before")
    @classmethod
    def _coerce_liked(cls, v):
        return _as_bool(v)

    @field_validator("total", mode="before")
    @classmethod
    def _coerce_total(cls, v):
        return _as_count(v)


class EventPayload(BaseModel):
    sku_id: str
    event_type: EventType
    session_id: str


class WidgetResizeMessage(BaseModel):
    """Child → parent embed message: {type: "WIDGET_RESIZE", height: number}."""
    model_config = ConfigDict(extra="ignore")

    type: Literal["WIDGET_RESIZE"]
    height: float = Field(..., ge=0, allow_inf_nan=False)

    @field_validator("height", mode="before")
    @classmethod
    def _require_number(cls, v):
        # bool is an int subclass; numeric strings are not numbers either
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("height must be a number")
        return v


@dataclass(frozen=True)
class LikeState:
    render_id: str
    liked: bool = False
    total: int = 0


@dataclass
class ActionResponse(Generic[T]):
    """Result of a remote call: exactly one of data/error is meaningful."""
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def get_action_response(data=None, error=None, status_code: int | None = None) -> ActionResponse:
    if error is not None:
        msg = error if isinstance(error, str) else (str(error) or type(error).__name__)
        return ActionResponse(error=msg or "Unknown error", status_code=status_code)
    return ActionResponse(data=data, status_code=status_code)


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    ERRORED = "errored"


@dataclass(frozen=True)
class WidgetLoadState:
    status: LoadStatus = LoadStatus.IDLE
    renders: tuple[Render, ...] = field(default_factory=tuple)
    reason: Optional[str] = None

    @classmethod
    def idle(cls) -> "WidgetLoadState":
        return cls(LoadStatus.IDLE)

    @classmethod
    def loading(cls) -> "WidgetLoadState":
        return cls(LoadStatus.LOADING)

    @classmethod
    def ready(cls, renders) -> "WidgetLoadState":
        return cls(LoadStatus.READY, tuple(renders))

    @classmethod
    def empty(cls) -> "WidgetLoadState":
        return cls(LoadStatus.EMPTY)

    @classmethod
    def errored(cls, reason: str) -> "WidgetLoadState":
        return cls(LoadStatus.ERRORED, reason=reason or "unknown")
