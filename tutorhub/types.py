"""Enums and type aliases for TutorHub."""

from collections.abc import Callable
from datetime import datetime
from enum import StrEnum

Clock = Callable[[], datetime]


class Role(StrEnum):
    OWNER = "Owner"
    ADMIN = "Admin"
    TUTOR = "Tutor"
    PARENT = "Parent"


class ResolutionMode(StrEnum):
    """Which part of the request carries the tenant slug."""

    PATH = "path"
    HOST = "host"
    PARENT = "parent"  # path when present, otherwise host


class ConsumeFailure(StrEnum):
    MISSING = "missing"
    EXPIRED = "expired"
    INVALID = "invalid"
    FAILED = "failed"


class ActorType(StrEnum):
    STAFF = "staff"
    PARENT = "parent"
    SYSTEM = "system"
