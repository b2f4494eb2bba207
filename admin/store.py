"""
admin/store.py -- SQLAlchemy Core repository for buildings and technician profiles.

Pattern: Repository + Data Mapper, same shape as auth/store.py. AdminStore
shares the CredentialStore's engine so both repositories see one database, but
it owns a separate MetaData and never touches the credential tables -- account
fields are joined in by admin/service.py through the CredentialStore API.

UNIQUE constraints (buildings.code, technicians.account_id,
technicians.employee_id, technician_buildings pair) are the source of truth;
IntegrityError is translated to the matching DomainError.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, UniqueConstraint, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from admin.errors import DuplicateBuildingCodeError, DuplicateEmployeeIdError
from admin.models import Building, Technician, TechnicianLevel

metadata = MetaData()

_buildings = Table(
    "buildings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("code", String(20), nullable=False, unique=True),
    Column("address", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_technicians = Table(
    "technicians",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), nullable=False, unique=True),
    Column("employee_id", String(50), unique=True),
    Column("department", String(100)),
    Column("specialization", String(255)),
    Column("level", String(20), nullable=False, server_default=TechnicianLevel.JUNIOR.value),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_technician_buildings = Table(
    "technician_buildings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("technician_id", String(36), nullable=False, index=True),
    Column("building_id", String(36), nullable=False),
    Column("is_primary", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("technician_id", "building_id", name="uq_technician_building"),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class AdminStore:
    """Repository for buildings, technicians, and their building assignments.

    Usage:
        admin_store = AdminStore(credentials.engine)
        building = admin_store.create_building("Main Building", "MAIN", "Campus Main Entrance")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Buildings
    # ------------------------------------------------------------------

    def find_building_by_id(self, building_id: str) -> Building | None:
        with self.engine.connect() as conn:
            row = conn.execute(_buildings.select().where(_buildings.c.id == building_id)).fetchone()
        return _row_to_building(row) if row is not None else None

    def find_building_by_code(self, code: str) -> Building | None:
        with self.engine.connect() as conn:
            row = conn.execute(_buildings.select().where(_buildings.c.code == code.strip().upper())).fetchone()
        return _row_to_building(row) if row is not None else None

    def list_buildings(self) -> list[Building]:
        with self.engine.connect() as conn:
            rows = conn.execute(_buildings.select().order_by(_buildings.c.name.asc())).fetchall()
        return [_row_to_building(r) for r in rows]

    def create_building(self, name: str, code: str, address: str | None = None) -> Building:
        """Insert a building. Raises DuplicateBuildingCodeError on a code conflict."""
        building_id = str(uuid.uuid4())
        now = _now_iso()
        with self.engine.connect() as conn:
            try:
                conn.execute(
                    _buildings.insert().values(
                        id=building_id,
                        name=name.strip(),
                        code=code.strip().upper(),
                        address=address.strip() if address else None,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateBuildingCodeError() from exc
        created = self.find_building_by_id(building_id)
        if created is None:
            raise RuntimeError(f"building {building_id} missing after insert")
        return created

    # ------------------------------------------------------------------
    # Technicians
    # ------------------------------------------------------------------

    def find_technician_by_employee_id(self, employee_id: str) -> Technician | None:
        with self.engine.connect() as conn:
            row = conn.execute(_technicians.select().where(_technicians.c.employee_id == employee_id)).fetchone()
        return _row_to_technician(row) if row is not None else None

    def find_technician_by_account_id(self, account_id: str) -> Technician | None:
        with self.engine.connect() as conn:
            row = conn.execute(_technicians.select().where(_technicians.c.account_id == account_id)).fetchone()
        return _row_to_technician(row) if row is not None else None

    def list_technicians(self) -> list[Technician]:
        """Newest first. Building lists are NOT populated; see get_technician_buildings()."""
        with self.engine.connect() as conn:
            rows = conn.execute(_technicians.select().order_by(_technicians.c.created_at.desc())).fetchall()
        return [_row_to_technician(r) for r in rows]

    def create_technician(
        self,
        account_id: str,
        employee_id: str | None = None,
        department: str | None = None,
        specialization: str | None = None,
        level: TechnicianLevel = TechnicianLevel.JUNIOR,
    ) -> Technician:
        """Insert a profile. Raises DuplicateEmployeeIdError if employee_id is taken."""
        technician_id = str(uuid.uuid4())
        now = _now_iso()
        with self.engine.connect() as conn:
            try:
                conn.execute(
                    _technicians.insert().values(
                        id=technician_id,
                        account_id=account_id,
                        employee_id=employee_id or None,
                        department=department or None,
                        specialization=specialization or None,
                        level=level.value,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateEmployeeIdError() from exc
        created = self.find_technician_by_account_id(account_id)
        if created is None:
            raise RuntimeError(f"technician {technician_id} missing after insert")
        return created

    def assign_building(self, technician_id: str, building_id: str, is_primary: bool = False) -> None:
        """Link a technician to a building. No-op if already linked.

        Marking a building primary clears the flag on the technician's other links.
        """
        with self.engine.connect() as conn:
            existing = conn.execute(
                select(_technician_buildings.c.id).where(
                    (_technician_buildings.c.technician_id == technician_id)
                    & (_technician_buildings.c.building_id == building_id)
                )
            ).fetchone()
            if existing is not None:
                return
            if is_primary:
                conn.execute(
                    _technician_buildings.update()
                    .where(_technician_buildings.c.technician_id == technician_id)
                    .values(is_primary=0)
                )
            conn.execute(
                _technician_buildings.insert().values(
                    id=str(uuid.uuid4()),
                    technician_id=technician_id,
                    building_id=building_id,
                    is_primary=1 if is_primary else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()

    def get_technician_buildings(self, technician_id: str) -> list[Building]:
        """Buildings linked to the technician, primary first, then by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_buildings)
                .join(_technician_buildings, _buildings.c.id == _technician_buildings.c.building_id)
                .where(_technician_buildings.c.technician_id == technician_id)
                .order_by(_technician_buildings.c.is_primary.desc(), _buildings.c.name.asc())
            ).fetchall()
        return [_row_to_building(r) for r in rows]

    def delete_technician_for_account(self, account_id: str) -> bool:
        """Remove the profile (and its building links) owned by account_id, if any."""
        with self.engine.connect() as conn:
            technician_id = conn.execute(
                select(_technicians.c.id).where(_technicians.c.account_id == account_id)
            ).scalar()
            if technician_id is None:
                return False
            conn.execute(_technician_buildings.delete().where(_technician_buildings.c.technician_id == technician_id))
            conn.execute(_technicians.delete().where(_technicians.c.id == technician_id))
            conn.commit()
        return True


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_building(row) -> Building:
    return Building(
        id=row.id,
        name=row.name,
        code=row.code,
        address=row.address,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_technician(row) -> Technician:
    return Technician(
        id=row.id,
        account_id=row.account_id,
        employee_id=row.employee_id,
        department=row.department,
        specialization=row.specialization,
        level=TechnicianLevel(row.level),
        created_at=row.created_at,
    )
