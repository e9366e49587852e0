"""User-facing feedback returned by coordinator operations."""

from dataclasses import dataclass
from enum import Enum


class ToastTone(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    DANGER = "danger"


@dataclass(frozen=True)
class Toast:
    """A dismissible message with its tone."""
    text: str
    tone: ToastTone

    @classmethod
    def success(cls, text: str) -> "Toast":
        return cls(text=text, tone=ToastTone.SUCCESS)

    @classmethod
    def info(cls, text: str) -> "Toast":
        return cls(text=text, tone=ToastTone.INFO)

    @classmethod
    def danger(cls, text: str) -> "Toast":
        return cls(text=text, tone=ToastTone.DANGER)
