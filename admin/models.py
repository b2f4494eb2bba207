"""
admin/models.py -- Dataclasses for administrator-managed records.

Pattern: Data class. Buildings and technician profiles are organizational
records; the identity behind a technician is an ordinary auth Account carrying
the TECHNICIAN role.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TechnicianLevel(str, Enum):
    JUNIOR = "JUNIOR"
    SENIOR = "SENIOR"
    SUPERVISOR = "SUPERVISOR"
    HEAD = "HEAD"


@dataclass
class Building:
    name: str
    code: str  # upper-case, unique
    address: str | None = None
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Technician:
    """A technician profile joined with the account fields the API shows.

    buildings lists the primary building first.
    """

    account_id: str
    employee_id: str | None = None
    department: str | None = None
    specialization: str | None = None
    level: TechnicianLevel = TechnicianLevel.JUNIOR
    id: str | None = None
    created_at: str | None = None
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    is_active: bool = True
    buildings: list[Building] = field(default_factory=list)
