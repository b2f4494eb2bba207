"""
api/routes/admin.py -- Administrator endpoints. Every route requires ADMIN.

Routes:
  POST   /admin/users                -- create an account with any role; 201
  GET    /admin/users                -- all accounts, newest first
  DELETE /admin/users/{id}           -- delete (not self, not ADMIN accounts)
  PATCH  /admin/users/{id}/status    -- activate / deactivate (ADMIN accounts cannot be deactivated)
  POST   /admin/technicians          -- TECHNICIAN account + profile + building links; 201
  GET    /admin/technicians          -- all technicians with their buildings
  POST   /admin/buildings            -- create a building (unique code); 201
  GET    /admin/buildings            -- all buildings by name

The router-level dependency runs AccessGuard with required role ADMIN, so a
missing token is 401 and a non-admin token is 403 before any handler runs.
Handlers that need the caller's identity depend on require_admin again;
FastAPI caches it per request, so the guard still runs once.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from admin.service import AdminService
from api.models import (
    BuildingMutationResponse,
    BuildingResponse,
    CreateBuildingRequest,
    CreateTechnicianRequest,
    CreateUserRequest,
    MessageResponse,
    TechnicianMutationResponse,
    TechnicianResponse,
    UserMutationResponse,
    UserResponse,
    UserStatusUpdate,
)
from auth.dependencies import require_admin
from auth.models import Claims

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


def _service(request: Request) -> AdminService:
    return request.app.state.admin_service


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserMutationResponse, status_code=201)
def create_user(request: Request, body: CreateUserRequest) -> UserMutationResponse:
    account = _service(request).create_user(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
        is_verified=body.is_verified,
        is_active=body.is_active,
    )
    return UserMutationResponse(message="User created successfully", user=UserResponse.from_account(account))


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request) -> list[UserResponse]:
    return [UserResponse.from_account(a) for a in _service(request).list_users()]


@router.delete("/users/{account_id}", response_model=MessageResponse)
def delete_user(request: Request, account_id: str, claims: Claims = Depends(require_admin)) -> MessageResponse:
    _service(request).delete_user(account_id, acting_account_id=claims.account_id)
    return MessageResponse(message="User deleted successfully")


@router.patch("/users/{account_id}/status", response_model=UserMutationResponse)
def update_user_status(request: Request, account_id: str, body: UserStatusUpdate) -> UserMutationResponse:
    """Deactivation takes effect on the account's very next request (AccessGuard re-reads it)."""
    message, account = _service(request).update_user_status(account_id, body.is_active)
    return UserMutationResponse(message=message, user=UserResponse.from_account(account))


# ---------------------------------------------------------------------------
# Technicians
# ---------------------------------------------------------------------------


@router.post("/technicians", response_model=TechnicianMutationResponse, status_code=201)
def create_technician(request: Request, body: CreateTechnicianRequest) -> TechnicianMutationResponse:
    technician = _service(request).create_technician(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        employee_id=body.employee_id,
        department=body.department,
        specialization=body.specialization,
        level=body.level,
        building_ids=body.building_ids,
    )
    return TechnicianMutationResponse(
        message="Technician created successfully",
        technician=TechnicianResponse.from_technician(technician),
    )


@router.get("/technicians", response_model=list[TechnicianResponse])
def list_technicians(request: Request) -> list[TechnicianResponse]:
    return [TechnicianResponse.from_technician(t) for t in _service(request).list_technicians()]


# ---------------------------------------------------------------------------
# Buildings
# ---------------------------------------------------------------------------


@router.post("/buildings", response_model=BuildingMutationResponse, status_code=201)
def create_building(request: Request, body: CreateBuildingRequest) -> BuildingMutationResponse:
    building = _service(request).create_building(body.name, body.code, body.address)
    return BuildingMutationResponse(
        message="Building created successfully",
        building=BuildingResponse.from_building(building),
    )


@router.get("/buildings", response_model=list[BuildingResponse])
def list_buildings(request: Request) -> list[BuildingResponse]:
    return [BuildingResponse.from_building(b) for b in _service(request).list_buildings()]
