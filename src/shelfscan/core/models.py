"""Data models for the in-flight book record and the workflow screens."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

LOCATIONS = ("GRANDMALL", "DLF", "MARINAMALL", "SKYWALK", "WAREHOUSE", "GARUDA-BNGLR")
DEFAULT_LOCATION = "GRANDMALL"

CATEGORIES: dict[str, tuple[str, ...]] = {
    "FICTION": (
        "GENERAL",
        "FANTASY_ADVENTURE",
        "MYSTERY_THRILLER",
        "ROMANCE",
        "SCIENCE_FICTION",
        "HISTORICAL",
    ),
    "NON_FICTION": (
        "GENERAL",
        "BIOGRAPHY",
        "BUSINESS",
        "HISTORY",
        "SELF_HELP",
        "TRAVEL",
    ),
    "ACADEMIC": (
        "GENERAL",
        "ENGINEERING",
        "MEDICAL",
        "COMPUTER_SCIENCE",
        "COMPETITIVE_EXAMS",
    ),
    "CHILDREN": (
        "GENERAL",
        "PICTURE_BOOKS",
        "YOUNG_ADULT",
        "ACTIVITY",
    ),
}


class EntryMethod(str, Enum):
    SCAN = "scan"
    MANUAL = "manual"


class Source(str, Enum):
    REMOTE = "remote"
    MANUAL = "manual"


class CameraStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    ERROR = "error"
    SCANNING = "scanning"
    STOPPED = "stopped"


@dataclass
class BookRecord:
    isbn: str
    entry_method: EntryMethod
    title: str = ""
    author: str = ""
    title_source: Source = Source.MANUAL
    author_source: Source = Source.MANUAL
    price: str = ""
    quantity: str = "1"
    location: str = DEFAULT_LOCATION
    category: str = ""
    sub_category: str = ""


# Fields an operator may edit on the metadata screen.
EDITABLE_FIELDS = ("title", "author", "price", "quantity", "location", "category", "sub_category")


@dataclass
class MainMenu:
    pass


@dataclass
class ManualEntry:
    text: str = ""


@dataclass
class LiveScan:
    status: CameraStatus = CameraStatus.IDLE
    message: str = ""


@dataclass
class MetadataEntry:
    record: BookRecord
    loading: bool = True
    manual_title: bool = False
    manual_author: bool = False
    saving: bool = False
    saved: bool = False
    message: str = ""


ScreenState = Union[MainMenu, ManualEntry, LiveScan, MetadataEntry]


@dataclass
class CancelToken:
    """Liveness flag for one fetch or save attempt."""

    label: str = ""
    cancelled: bool = field(default=False, init=False)

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def alive(self) -> bool:
        return not self.cancelled


def screen_name(screen: ScreenState) -> str:
    return {
        MainMenu: "main_menu",
        ManualEntry: "manual_entry",
        LiveScan: "live_scan",
        MetadataEntry: "metadata_entry",
    }[type(screen)]
