# domain/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from email.message import Message
from enum import Enum
from pathlib import Path


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    LOGGED_IN = "logged_in"
    MAILBOX_SELECTED = "mailbox_selected"


@dataclass(frozen=True)
class FetchedMessage:
    uid: int
    raw: bytes
    flags: tuple[bytes, ...] = ()


@dataclass(frozen=True)
class ParsedMessage:
    uid: int
    subject: str
    content_type: str
    params: dict[str, str]
    message: Message

    @property
    def boundary(self) -> str | None:
        return self.params.get("boundary")


@dataclass(frozen=True)
class MimePart:
    content_type: str
    transfer_encoding: str
    filename: str
    source: Message


@dataclass(frozen=True)
class ExtractedFile:
    uid: int
    source_filename: str
    path: Path


@dataclass
class WalkReport:
    leaves_visited: int = 0
    extracted: list[ExtractedFile] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped_too_deep: int = 0


@dataclass
class CycleResult:
    uids: tuple[int, ...] = ()
    processed: int = 0
    skipped: int = 0
    extracted: list[ExtractedFile] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    marked_seen: bool = False
