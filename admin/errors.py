"""
admin/errors.py -- Refusals specific to administrator operations.

Same contract as auth/errors.py: each is a DomainError, so the API layer maps
them without knowing they exist.
"""

from __future__ import annotations

from auth.errors import DomainError


class DuplicateEmployeeIdError(DomainError):
    code = "employee_id_taken"
    message = "Employee ID is already assigned to another technician"


class DuplicateBuildingCodeError(DomainError):
    code = "building_code_taken"
    message = "Building with this code already exists"


class UnknownBuildingError(DomainError):
    code = "building_not_found"

    def __init__(self, building_id: str) -> None:
        self.building_id = building_id
        super().__init__(f"Building with ID {building_id} not found")
