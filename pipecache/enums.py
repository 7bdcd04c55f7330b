"""Shared enumerations."""

from enum import Enum


class BrowsingMode(str, Enum):
    """Which content a listing may show."""

    ALL = "All"
    SFW = "SFW"
    NSFW = "NSFW"
