"""
PostgreSQL Ward Operations.

Implements IWardOperations over the ward schema (rooms, patients,
room_assignments, vitals, staff, equipment, tasks, alerts, chat_messages).
Multi-step actions run in a single transaction; lookups use a plain
pooled connection. Expected misses (unknown room, no free bed) return a
failed ToolResult; driver errors propagate as DatabaseError.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from ...api.database import database_connection, database_transaction
from ...sync.adapters.field_mapper import ACTIVE_STORE_STATUSES, TaskFieldMapper
from ...sync.domain.entities import NewTask, TaskPriority, TaskType
from ..domain.entities import ToolResult
from ..domain.ports import IWardOperations

if TYPE_CHECKING:
    import asyncpg

    from ...sync.domain.ports import ITaskRepository

logger = logging.getLogger(__name__)

DEFAULT_VITALS = {
    "heart_rate": 75,
    "blood_pressure": "120/80",
    "temperature": 98.6,
    "oxygen_saturation": 98,
    "respiratory_rate": 16,
}

VITALS_HISTORY_LIMIT = 10

_GENDERS = {"m": "Male", "male": "Male", "f": "Female", "female": "Female"}


def normalize_gender(gender: str) -> str:
    """'m' / 'MALE' -> 'Male'; anything unrecognized becomes 'Other'."""
    return _GENDERS.get((gender or "").strip().lower(), "Other")


def _row(record) -> Optional[dict[str, Any]]:
    return dict(record) if record is not None else None


def _rows(records) -> list[dict[str, Any]]:
    return [dict(r) for r in records or []]


class PostgresWardOperations(IWardOperations):
    """asyncpg implementation of the agent's domain actions.

    Usage:
        ops = PostgresWardOperations(pool, PostgresTaskRepository(pool))
        result = await ops.find_available_room("icu")
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        task_repo: ITaskRepository,
        field_mapper: Optional[TaskFieldMapper] = None,
    ):
        self.pool = pool
        self.task_repo = task_repo
        self.mapper = field_mapper or TaskFieldMapper()

    # ============================================
    # Context lookups
    # ============================================

    async def get_room_context(self, room_identifier: str) -> ToolResult:
        async with database_connection(self.pool) as conn:
            room = await self._find_room(conn, room_identifier)
            if room is None:
                return ToolResult.fail(f"Room {room_identifier} not found")

            assignment = _row(await conn.fetchrow(
                """
                SELECT * FROM room_assignments
                WHERE room_id = $1 AND is_active = TRUE
                LIMIT 1
                """,
                room["id"],
            ))
            patient = doctor = nurse = None
            vitals: list[dict[str, Any]] = []
            if assignment is not None:
                patient = _row(await conn.fetchrow(
                    "SELECT * FROM patients WHERE id = $1", assignment["patient_id"]
                ))
                vitals = _rows(await conn.fetch(
                    """
                    SELECT * FROM vitals WHERE patient_id = $1
                    ORDER BY recorded_at DESC LIMIT $2
                    """,
                    assignment["patient_id"],
                    VITALS_HISTORY_LIMIT,
                ))
                doctor, nurse = await self._care_team(conn, assignment)

            equipment = _rows(await conn.fetch(
                "SELECT * FROM equipment WHERE current_room_id = $1", room["id"]
            ))
            tasks = _rows(await conn.fetch(
                """
                SELECT * FROM tasks
                WHERE room_id = $1 AND status = ANY($2::text[])
                ORDER BY created_at DESC
                """,
                room["id"],
                ACTIVE_STORE_STATUSES,
            ))
            alerts = _rows(await conn.fetch(
                "SELECT * FROM alerts WHERE room_id = $1 AND is_active = TRUE", room["id"]
            ))

        return ToolResult.ok(
            f"Room {room['room_number']} context retrieved",
            data={
                "room": room,
                "patient": patient,
                "assignment": assignment,
                "vitals": vitals,
                "doctor": doctor,
                "nurse": nurse,
                "equipment": equipment,
                "tasks": tasks,
                "alerts": alerts,
            },
        )

    async def get_patient_context(self, patient_identifier: str) -> ToolResult:
        async with database_connection(self.pool) as conn:
            patient = _row(await conn.fetchrow(
                "SELECT * FROM patients WHERE id::text = $1", patient_identifier
            ))
            if patient is None:
                patient = _row(await conn.fetchrow(
                    """
                    SELECT * FROM patients
                    WHERE name ILIKE $1 AND is_active = TRUE
                    ORDER BY admission_date DESC
                    LIMIT 1
                    """,
                    f"%{patient_identifier}%",
                ))
            if patient is None:
                return ToolResult.fail(f"Patient {patient_identifier} not found")

            assignment = await self._active_assignment(conn, patient["id"])
            room = doctor = nurse = None
            alerts: list[dict[str, Any]] = []
            if assignment is not None:
                room = _row(await conn.fetchrow(
                    "SELECT * FROM rooms WHERE id = $1", assignment["room_id"]
                ))
                alerts = _rows(await conn.fetch(
                    "SELECT * FROM alerts WHERE room_id = $1 AND is_active = TRUE",
                    assignment["room_id"],
                ))
                doctor, nurse = await self._care_team(conn, assignment)

            vitals = _rows(await conn.fetch(
                """
                SELECT * FROM vitals WHERE patient_id = $1
                ORDER BY recorded_at DESC LIMIT $2
                """,
                patient["id"],
                VITALS_HISTORY_LIMIT,
            ))

        return ToolResult.ok(
            f"Patient {patient['name']} context retrieved",
            data={
                "patient": patient,
                "room": room,
                "doctor": doctor,
                "nurse": nurse,
                "vitals": vitals,
                "alerts": alerts,
            },
        )

    async def get_equipment_context(self, equipment_identifier: str) -> ToolResult:
        async with database_connection(self.pool) as conn:
            equipment = _row(await conn.fetchrow(
                "SELECT * FROM equipment WHERE id::text = $1", equipment_identifier
            ))
            if equipment is None:
                equipment = _row(await conn.fetchrow(
                    "SELECT * FROM equipment WHERE name ILIKE $1 LIMIT 1",
                    f"%{equipment_identifier}%",
                ))
            if equipment is None:
                return ToolResult.fail(f"Equipment {equipment_identifier} not found")

            location = None
            if equipment.get("current_room_id") is not None:
                location = _row(await conn.fetchrow(
                    "SELECT * FROM rooms WHERE id = $1", equipment["current_room_id"]
                ))
            tasks = _rows(await conn.fetch(
                "SELECT * FROM tasks WHERE equipment_id = $1 AND status = ANY($2::text[])",
                equipment["id"],
                ACTIVE_STORE_STATUSES,
            ))

        return ToolResult.ok(
            f"Equipment {equipment.get('name', equipment_identifier)} context retrieved",
            data={"equipment": equipment, "location": location, "tasks": tasks},
        )

    async def get_hospital_context(self) -> ToolResult:
        async with database_connection(self.pool) as conn:
            rooms = _rows(await conn.fetch("SELECT * FROM rooms ORDER BY room_number"))
            patients = _rows(await conn.fetch("SELECT * FROM patients WHERE is_active = TRUE"))
            staff = _rows(await conn.fetch("SELECT * FROM staff"))
            tasks = _rows(await conn.fetch(
                "SELECT * FROM tasks WHERE status = ANY($1::text[])", ACTIVE_STORE_STATUSES
            ))
            alerts = _rows(await conn.fetch("SELECT * FROM alerts WHERE is_active = TRUE"))

        occupied = sum(1 for r in rooms if r.get("status") == "occupied")
        summary = {
            "total_rooms": len(rooms),
            "occupied_rooms": occupied,
            "available_rooms": sum(1 for r in rooms if r.get("status") == "available"),
            "occupancy_rate": round(100 * occupied / len(rooms)) if rooms else 0,
            "active_patients": len(patients),
            "online_staff": sum(1 for s in staff if s.get("is_online")),
            "active_tasks": len(tasks),
            "critical_alerts": sum(1 for a in alerts if a.get("alert_type") == "critical"),
        }
        return ToolResult.ok(
            "Hospital context retrieved",
            data={"summary": summary, "rooms": rooms, "tasks": tasks, "alerts": alerts},
        )

    async def find_available_room(self, room_type: Optional[str] = None) -> ToolResult:
        async with database_connection(self.pool) as conn:
            room = await self._first_available_room(conn, room_type)
        if room is None:
            suffix = f" of type {room_type}" if room_type else ""
            return ToolResult.fail(f"No available rooms{suffix}")
        return ToolResult.ok(f"Room {room['room_number']} is available", data=room)

    async def get_available_staff(self, role: Optional[str] = None) -> ToolResult:
        query = "SELECT * FROM staff WHERE is_online = TRUE"
        params: list[Any] = []
        if role:
            query += " AND role ILIKE $1"
            params.append(role)
        query += " ORDER BY name"

        async with database_connection(self.pool) as conn:
            staff = _rows(await conn.fetch(query, *params))

        label = f"{role} " if role else ""
        return ToolResult.ok(f"Found {len(staff)} available {label}staff", data=staff)

    # ============================================
    # Actions
    # ============================================

    async def check_in_patient(
        self,
        name: str,
        age: int,
        gender: str,
        condition: str,
        severity: str,
        room_id: Optional[str] = None,
        assigned_doctor_id: Optional[str] = None,
        assigned_nurse_id: Optional[str] = None,
    ) -> ToolResult:
        async with database_transaction(self.pool) as conn:
            if room_id:
                room = await self._find_room(conn, room_id)
                if room is None:
                    return ToolResult.fail(f"Room {room_id} not found")
                if room.get("status") != "available":
                    return ToolResult.fail(f"Room {room['room_number']} is not available")
            else:
                room = await self._first_available_room(conn)
                if room is None:
                    return ToolResult.fail("No available rooms for check-in")

            patient = dict(await conn.fetchrow(
                """
                INSERT INTO patients (name, age, gender, condition, severity, admission_date, is_active)
                VALUES ($1, $2, $3, $4, $5, NOW(), TRUE)
                RETURNING *
                """,
                name,
                age,
                normalize_gender(gender),
                condition,
                severity,
            ))

            # A new occupant starts with an empty room chat
            await self._archive_chat(conn, room["id"])
            await conn.execute(
                """
                INSERT INTO room_assignments
                    (patient_id, room_id, assigned_doctor_id, assigned_nurse_id, assigned_at, is_active)
                VALUES ($1, $2, $3, $4, NOW(), TRUE)
                """,
                patient["id"],
                room["id"],
                assigned_doctor_id,
                assigned_nurse_id,
            )
            await self._set_room_status(conn, room["id"], "occupied")
            await conn.execute(
                """
                INSERT INTO vitals
                    (patient_id, heart_rate, blood_pressure, temperature,
                     oxygen_saturation, respiratory_rate, recorded_at)
                VALUES ($1, $2, $3, $4, $5, $6, NOW())
                """,
                patient["id"],
                *DEFAULT_VITALS.values(),
            )

        logger.info(f"Checked in patient {patient['id']} to room {room['room_number']}")
        return ToolResult.ok(
            f"Successfully checked in {name} to Room {room['room_number']}",
            data={"patient": patient, "room": room},
            visualization={
                "task_type": TaskType.PATIENT_ONBOARDING.value,
                "source_room_id": None,
                "target_room_id": str(room["id"]),
            },
        )

    async def discharge_patient(self, patient_id: str) -> ToolResult:
        async with database_transaction(self.pool) as conn:
            patient = _row(await conn.fetchrow(
                "SELECT * FROM patients WHERE id::text = $1", patient_id
            ))
            if patient is None:
                return ToolResult.fail(f"Patient {patient_id} not found")

            assignment = await self._active_assignment(conn, patient["id"])
            await conn.execute(
                "UPDATE patients SET is_active = FALSE WHERE id = $1", patient["id"]
            )
            if assignment is not None:
                await self._end_assignment(conn, assignment["id"])
                await self._archive_chat(conn, assignment["room_id"])
                await self._set_room_status(conn, assignment["room_id"], "available")

        logger.info(f"Discharged patient {patient['id']}")
        room_id = str(assignment["room_id"]) if assignment is not None else None
        return ToolResult.ok(
            f"Successfully discharged {patient['name']}",
            data={"patient_id": str(patient["id"]), "room_id": room_id},
            visualization={
                "task_type": TaskType.PATIENT_DISCHARGE.value,
                "source_room_id": room_id,
                "target_room_id": None,
            },
        )

    async def transfer_patient(self, patient_id: str, target_room_id: str) -> ToolResult:
        async with database_transaction(self.pool) as conn:
            assignment = _row(await conn.fetchrow(
                """
                SELECT * FROM room_assignments
                WHERE patient_id::text = $1 AND is_active = TRUE
                LIMIT 1
                """,
                patient_id,
            ))
            if assignment is None:
                return ToolResult.fail(f"Patient {patient_id} has no active room assignment")

            target = await self._find_room(conn, target_room_id)
            if target is None:
                return ToolResult.fail(f"Room {target_room_id} not found")
            if target.get("status") != "available":
                return ToolResult.fail(f"Room {target['room_number']} is not available")

            source_room_id = assignment["room_id"]
            await self._end_assignment(conn, assignment["id"])
            await conn.execute(
                """
                INSERT INTO room_assignments
                    (patient_id, room_id, assigned_doctor_id, assigned_nurse_id, assigned_at, is_active)
                VALUES ($1, $2, $3, $4, NOW(), TRUE)
                """,
                assignment["patient_id"],
                target["id"],
                assignment.get("assigned_doctor_id"),
                assignment.get("assigned_nurse_id"),
            )
            await self._set_room_status(conn, source_room_id, "available")
            await self._set_room_status(conn, target["id"], "occupied")

        logger.info(f"Transferred patient {patient_id} to room {target['room_number']}")
        return ToolResult.ok(
            f"Successfully transferred patient to Room {target['room_number']}",
            data={"patient_id": patient_id, "source_room_id": str(source_room_id)},
            visualization={
                "task_type": TaskType.PATIENT_TRANSFER.value,
                "source_room_id": str(source_room_id),
                "target_room_id": str(target["id"]),
            },
        )

    async def create_task(
        self,
        task_type: str,
        target_room_id: str,
        source_room_id: Optional[str] = None,
        priority: str = "medium",
        title: Optional[str] = None,
        assigned_to_id: Optional[str] = None,
        equipment_id: Optional[str] = None,
    ) -> ToolResult:
        async with database_connection(self.pool) as conn:
            target = await self._find_room(conn, target_room_id)
            if target is None:
                return ToolResult.fail(f"Room {target_room_id} not found")
            source = None
            if source_room_id:
                source = await self._find_room(conn, source_room_id)
                if source is None:
                    return ToolResult.fail(f"Room {source_room_id} not found")

        new_task = NewTask(
            type=TaskType(task_type),
            target_location_id=str(target["id"]),
            title=title,
            priority=TaskPriority(priority),
            source_location_id=str(source["id"]) if source else None,
            assigned_to_id=assigned_to_id,
            equipment_id=equipment_id,
        )
        record = self.mapper.map_new_task(new_task, room_label=str(target["room_number"]))
        row = await self.task_repo.insert_task(record)
        task = self.mapper.map_to_entity(row)

        logger.info(f"Created {task_type} task {task.id} for room {target['room_number']}")
        return ToolResult.ok(
            f"Created {task.title}",
            data={"task_id": task.id, "status": task.status.value},
            visualization={
                "task_type": task.type.value,
                "source_room_id": task.source_location_id,
                "target_room_id": task.target_location_id,
                "task_id": task.id,
            },
        )

    async def update_vitals(
        self,
        patient_id: str,
        heart_rate: Optional[int] = None,
        blood_pressure: Optional[str] = None,
        temperature: Optional[float] = None,
        oxygen_saturation: Optional[int] = None,
        respiratory_rate: Optional[int] = None,
    ) -> ToolResult:
        readings = {
            "heart_rate": heart_rate,
            "blood_pressure": blood_pressure,
            "temperature": temperature,
            "oxygen_saturation": oxygen_saturation,
            "respiratory_rate": respiratory_rate,
        }
        if all(value is None for value in readings.values()):
            return ToolResult.fail("No vital signs provided")

        async with database_connection(self.pool) as conn:
            assignment = _row(await conn.fetchrow(
                """
                SELECT * FROM room_assignments
                WHERE patient_id::text = $1 AND is_active = TRUE
                LIMIT 1
                """,
                patient_id,
            ))
            if assignment is None:
                return ToolResult.fail(f"Patient {patient_id} has no active room assignment")

            vitals = dict(await conn.fetchrow(
                """
                INSERT INTO vitals
                    (patient_id, room_id, heart_rate, blood_pressure, temperature,
                     oxygen_saturation, respiratory_rate, recorded_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, NOW())
                RETURNING *
                """,
                assignment["patient_id"],
                assignment["room_id"],
                *readings.values(),
            ))

        recorded = ", ".join(k for k, v in readings.items() if v is not None)
        return ToolResult.ok(f"Updated vitals ({recorded})", data=vitals)

    async def assign_staff(
        self,
        patient_id: str,
        doctor_id: Optional[str] = None,
        nurse_id: Optional[str] = None,
    ) -> ToolResult:
        if not doctor_id and not nurse_id:
            return ToolResult.fail("Provide a doctor_id or a nurse_id to assign")

        async with database_transaction(self.pool) as conn:
            assignment = _row(await conn.fetchrow(
                """
                SELECT * FROM room_assignments
                WHERE patient_id::text = $1 AND is_active = TRUE
                LIMIT 1
                """,
                patient_id,
            ))
            if assignment is None:
                return ToolResult.fail(f"Patient {patient_id} has no active room assignment")

            # Verify every requested staff member before writing anything
            members: list[tuple[str, str, dict[str, Any]]] = []
            for column, staff_id, role in (
                ("assigned_doctor_id", doctor_id, "Doctor"),
                ("assigned_nurse_id", nurse_id, "Nurse"),
            ):
                if not staff_id:
                    continue
                member = _row(await conn.fetchrow(
                    "SELECT * FROM staff WHERE id::text = $1 AND role ILIKE $2",
                    staff_id,
                    role,
                ))
                if member is None:
                    return ToolResult.fail(f"{role} {staff_id} not found")
                members.append((column, role, member))

            assigned: dict[str, Any] = {}
            for column, role, member in members:
                await conn.execute(
                    f"UPDATE room_assignments SET {column} = $1 WHERE id = $2",
                    member["id"],
                    assignment["id"],
                )
                assigned[role.lower()] = member["name"]

        names = " and ".join(assigned.values())
        return ToolResult.ok(f"Assigned {names} to patient", data=assigned)

    async def create_alert(self, room_id: str, alert_type: str, message: str) -> ToolResult:
        async with database_connection(self.pool) as conn:
            room = await self._find_room(conn, room_id)
            if room is None:
                return ToolResult.fail(f"Room {room_id} not found")
            alert = dict(await conn.fetchrow(
                """
                INSERT INTO alerts (room_id, alert_type, message, is_active, created_at)
                VALUES ($1, $2, $3, TRUE, NOW())
                RETURNING *
                """,
                room["id"],
                alert_type,
                message,
            ))

        logger.info(f"Raised {alert_type} alert for room {room['room_number']}")
        return ToolResult.ok(f"Successfully created {alert_type} alert", data=alert)

    # ============================================
    # Helpers
    # ============================================

    @staticmethod
    async def _find_room(conn, identifier: str) -> Optional[dict[str, Any]]:
        """Resolve a room by id or by room number."""
        return _row(await conn.fetchrow(
            "SELECT * FROM rooms WHERE id::text = $1 OR room_number::text = $1 LIMIT 1",
            str(identifier),
        ))

    @staticmethod
    async def _first_available_room(conn, room_type: Optional[str] = None) -> Optional[dict[str, Any]]:
        if room_type:
            record = await conn.fetchrow(
                """
                SELECT * FROM rooms
                WHERE status = 'available' AND room_type ILIKE $1
                ORDER BY room_number LIMIT 1
                """,
                room_type,
            )
        else:
            record = await conn.fetchrow(
                "SELECT * FROM rooms WHERE status = 'available' ORDER BY room_number LIMIT 1"
            )
        return _row(record)

    @staticmethod
    async def _active_assignment(conn, patient_id: Any) -> Optional[dict[str, Any]]:
        return _row(await conn.fetchrow(
            """
            SELECT * FROM room_assignments
            WHERE patient_id = $1 AND is_active = TRUE
            LIMIT 1
            """,
            patient_id,
        ))

    @staticmethod
    async def _care_team(conn, assignment: dict[str, Any]) -> tuple[Optional[dict], Optional[dict]]:
        doctor = nurse = None
        if assignment.get("assigned_doctor_id") is not None:
            doctor = _row(await conn.fetchrow(
                "SELECT * FROM staff WHERE id = $1", assignment["assigned_doctor_id"]
            ))
        if assignment.get("assigned_nurse_id") is not None:
            nurse = _row(await conn.fetchrow(
                "SELECT * FROM staff WHERE id = $1", assignment["assigned_nurse_id"]
            ))
        return doctor, nurse

    @staticmethod
    async def _end_assignment(conn, assignment_id: Any) -> None:
        await conn.execute(
            """
            UPDATE room_assignments
            SET is_active = FALSE, discharged_at = NOW()
            WHERE id = $1
            """,
            assignment_id,
        )

    @staticmethod
    async def _set_room_status(conn, room_id: Any, status: str) -> None:
        await conn.execute("UPDATE rooms SET status = $1 WHERE id = $2", status, room_id)

    @staticmethod
    async def _archive_chat(conn, room_id: Any) -> None:
        await conn.execute(
            """
            UPDATE chat_messages
            SET is_archived = TRUE, archived_at = NOW()
            WHERE room_id = $1 AND is_archived = FALSE
            """,
            room_id,
        )
