"""
Tool Registry.

The closed set of tools the agent may call. Each ToolKind has a schema
shown to the model, a pydantic argument model, and a handler bound to a
domain-operations adapter. The registry refuses to build if any kind is
missing one of the three.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable

from ..domain.entities import ToolDefinition, ToolResult
from ..domain.ports import IWardOperations
from . import arguments as args

logger = logging.getLogger(__name__)

ToolHandler = Callable[[args.ToolArguments], Awaitable[ToolResult]]


class ToolKind(str, Enum):
    """Every tool the agent knows about."""

    GET_ROOM_CONTEXT = "get_room_context"
    GET_PATIENT_CONTEXT = "get_patient_context"
    GET_EQUIPMENT_CONTEXT = "get_equipment_context"
    GET_HOSPITAL_CONTEXT = "get_hospital_context"
    CHECK_IN_PATIENT = "check_in_patient"
    DISCHARGE_PATIENT = "discharge_patient"
    TRANSFER_PATIENT = "transfer_patient"
    CREATE_TASK = "create_task"
    UPDATE_VITALS = "update_vitals"
    ASSIGN_STAFF = "assign_staff"
    GET_AVAILABLE_STAFF = "get_available_staff"
    CREATE_ALERT = "create_alert"
    FIND_AVAILABLE_ROOM = "find_available_room"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str) -> ToolKind:
        """Resolve a tool name; anything unrecognized maps to UNKNOWN."""
        try:
            kind = cls((name or "").strip())
        except ValueError:
            return cls.UNKNOWN
        return kind

    @classmethod
    def callable_kinds(cls) -> list[ToolKind]:
        return [kind for kind in cls if kind is not cls.UNKNOWN]


# ============================================
# Argument Models
# ============================================

ARGUMENT_MODELS: dict[ToolKind, type[args.ToolArguments]] = {
    ToolKind.GET_ROOM_CONTEXT: args.RoomContextArgs,
    ToolKind.GET_PATIENT_CONTEXT: args.PatientContextArgs,
    ToolKind.GET_EQUIPMENT_CONTEXT: args.EquipmentContextArgs,
    ToolKind.GET_HOSPITAL_CONTEXT: args.NoArguments,
    ToolKind.CHECK_IN_PATIENT: args.CheckInPatientArgs,
    ToolKind.DISCHARGE_PATIENT: args.DischargePatientArgs,
    ToolKind.TRANSFER_PATIENT: args.TransferPatientArgs,
    ToolKind.CREATE_TASK: args.CreateTaskArgs,
    ToolKind.UPDATE_VITALS: args.UpdateVitalsArgs,
    ToolKind.ASSIGN_STAFF: args.AssignStaffArgs,
    ToolKind.GET_AVAILABLE_STAFF: args.AvailableStaffArgs,
    ToolKind.CREATE_ALERT: args.CreateAlertArgs,
    ToolKind.FIND_AVAILABLE_ROOM: args.FindRoomArgs,
}


# ============================================
# Tool Schemas
# ============================================

_TASK_TYPES = [
    "food_delivery",
    "patient_transfer",
    "patient_onboarding",
    "patient_discharge",
    "cleaning_request",
    "equipment_transfer",
    "staff_assignment",
    "linen_restocking",
    "medication_delivery",
    "maintenance_request",
]

TOOL_DEFINITIONS: dict[ToolKind, ToolDefinition] = {
    ToolKind.GET_ROOM_CONTEXT: ToolDefinition(
        name=ToolKind.GET_ROOM_CONTEXT.value,
        description=(
            "Get full context for a room: current patient, recent vitals, "
            "equipment, active tasks and alerts. Accepts a room id or room number."
        ),
        parameters={
            "type": "object",
            "properties": {
                "room_identifier": {
                    "type": "string",
                    "description": "Room id or room number (e.g., '101')",
                },
            },
            "required": ["room_identifier"],
        },
    ),
    ToolKind.GET_PATIENT_CONTEXT: ToolDefinition(
        name=ToolKind.GET_PATIENT_CONTEXT.value,
        description=(
            "Get full context for a patient: room, assigned doctor and nurse, "
            "vitals history. Accepts a patient id or a name."
        ),
        parameters={
            "type": "object",
            "properties": {
                "patient_identifier": {
                    "type": "string",
                    "description": "Patient id or full name",
                },
            },
            "required": ["patient_identifier"],
        },
    ),
    ToolKind.GET_EQUIPMENT_CONTEXT: ToolDefinition(
        name=ToolKind.GET_EQUIPMENT_CONTEXT.value,
        description="Get equipment details, current location and maintenance status.",
        parameters={
            "type": "object",
            "properties": {
                "equipment_identifier": {
                    "type": "string",
                    "description": "Equipment id or name",
                },
            },
            "required": ["equipment_identifier"],
        },
    ),
    ToolKind.GET_HOSPITAL_CONTEXT: ToolDefinition(
        name=ToolKind.GET_HOSPITAL_CONTEXT.value,
        description=(
            "Get a ward-wide overview: room occupancy, active tasks, "
            "unresolved alerts and staff on duty."
        ),
        parameters={"type": "object", "properties": {}},
    ),
    ToolKind.CHECK_IN_PATIENT: ToolDefinition(
        name=ToolKind.CHECK_IN_PATIENT.value,
        description=(
            "Admit a new patient. Assigns the given room or the first available "
            "one and records initial vitals."
        ),
        parameters={
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Patient full name"},
                "age": {"type": "integer", "description": "Patient age in years"},
                "gender": {"type": "string", "description": "Male, Female or Other"},
                "condition": {"type": "string", "description": "Primary condition or diagnosis"},
                "severity": {
                    "type": "string",
                    "enum": ["stable", "moderate", "critical", "recovering"],
                },
                "room_id": {"type": "string", "description": "Preferred room id (optional)"},
                "assigned_doctor_id": {"type": "string"},
                "assigned_nurse_id": {"type": "string"},
            },
            "required": ["name", "age", "gender", "condition", "severity"],
        },
        is_read_only=False,
    ),
    ToolKind.DISCHARGE_PATIENT: ToolDefinition(
        name=ToolKind.DISCHARGE_PATIENT.value,
        description="Discharge a patient and release their room.",
        parameters={
            "type": "object",
            "properties": {
                "patient_id": {"type": "string", "description": "Patient id"},
            },
            "required": ["patient_id"],
        },
        is_read_only=False,
    ),
    ToolKind.TRANSFER_PATIENT: ToolDefinition(
        name=ToolKind.TRANSFER_PATIENT.value,
        description="Move a patient to another room and create the transfer task.",
        parameters={
            "type": "object",
            "properties": {
                "patient_id": {"type": "string"},
                "target_room_id": {"type": "string", "description": "Destination room id"},
            },
            "required": ["patient_id", "target_room_id"],
        },
        is_read_only=False,
    ),
    ToolKind.CREATE_TASK: ToolDefinition(
        name=ToolKind.CREATE_TASK.value,
        description=(
            "Create a ward task such as a food delivery, cleaning or equipment move. "
            "The task appears on the live task board."
        ),
        parameters={
            "type": "object",
            "properties": {
                "task_type": {"type": "string", "enum": _TASK_TYPES},
                "target_room_id": {
                    "type": "string",
                    "description": "Room id or room number the task is for",
                },
                "source_room_id": {
                    "type": "string",
                    "description": "Origin room for transfers (optional)",
                },
                "priority": {
                    "type": "string",
                    "enum": ["low", "medium", "high", "urgent"],
                },
                "title": {"type": "string", "description": "Short title (optional)"},
                "assigned_to_id": {"type": "string"},
                "equipment_id": {"type": "string"},
            },
            "required": ["task_type", "target_room_id"],
        },
        is_read_only=False,
    ),
    ToolKind.UPDATE_VITALS: ToolDefinition(
        name=ToolKind.UPDATE_VITALS.value,
        description="Record a new set of vital signs for a patient.",
        parameters={
            "type": "object",
            "properties": {
                "patient_id": {"type": "string"},
                "heart_rate": {"type": "integer", "description": "Beats per minute"},
                "blood_pressure": {"type": "string", "description": "e.g. '120/80'"},
                "temperature": {"type": "number", "description": "Degrees Fahrenheit"},
                "oxygen_saturation": {"type": "integer", "description": "SpO2 percent"},
                "respiratory_rate": {"type": "integer", "description": "Breaths per minute"},
            },
            "required": ["patient_id"],
        },
        is_read_only=False,
    ),
    ToolKind.ASSIGN_STAFF: ToolDefinition(
        name=ToolKind.ASSIGN_STAFF.value,
        description="Assign a doctor and/or a nurse to a patient.",
        parameters={
            "type": "object",
            "properties": {
                "patient_id": {"type": "string"},
                "doctor_id": {"type": "string"},
                "nurse_id": {"type": "string"},
            },
            "required": ["patient_id"],
        },
        is_read_only=False,
    ),
    ToolKind.GET_AVAILABLE_STAFF: ToolDefinition(
        name=ToolKind.GET_AVAILABLE_STAFF.value,
        description="List active staff members, optionally filtered by role.",
        parameters={
            "type": "object",
            "properties": {
                "role": {
                    "type": "string",
                    "enum": ["doctor", "nurse", "technician", "orderly"],
                },
            },
        },
    ),
    ToolKind.CREATE_ALERT: ToolDefinition(
        name=ToolKind.CREATE_ALERT.value,
        description="Raise an alert for a room.",
        parameters={
            "type": "object",
            "properties": {
                "room_id": {"type": "string"},
                "alert_type": {"type": "string", "enum": ["critical", "warning", "info"]},
                "message": {"type": "string"},
            },
            "required": ["room_id", "alert_type", "message"],
        },
        is_read_only=False,
    ),
    ToolKind.FIND_AVAILABLE_ROOM: ToolDefinition(
        name=ToolKind.FIND_AVAILABLE_ROOM.value,
        description="Find an available room, optionally of a given type (e.g., 'icu').",
        parameters={
            "type": "object",
            "properties": {
                "room_type": {"type": "string"},
            },
        },
    ),
}


# ============================================
# Registry
# ============================================


class ToolRegistry:
    """Binds every ToolKind to a handler on a domain-operations adapter.

    Usage:
        registry = ToolRegistry(PostgresWardOperations(pool, task_repo))
        tools = registry.get_tool_definitions()
        handler = registry.handler_for(ToolKind.CREATE_TASK)
    """

    def __init__(
        self,
        operations: IWardOperations,
        overrides: dict[ToolKind, ToolHandler] | None = None,
    ):
        """Initialize the registry.

        Args:
            operations: Domain operations adapter
            overrides: Replacement handlers for specific kinds

        Raises:
            ValueError: If any callable kind lacks a handler, schema or model
        """
        self.operations = operations
        self._handlers = self._default_handlers(operations)
        self._handlers.update(overrides or {})
        self._check_complete()

    @staticmethod
    def _default_handlers(ops: IWardOperations) -> dict[ToolKind, ToolHandler]:
        return {
            ToolKind.GET_ROOM_CONTEXT: lambda a: ops.get_room_context(a.room_identifier),
            ToolKind.GET_PATIENT_CONTEXT: lambda a: ops.get_patient_context(a.patient_identifier),
            ToolKind.GET_EQUIPMENT_CONTEXT: lambda a: ops.get_equipment_context(a.equipment_identifier),
            ToolKind.GET_HOSPITAL_CONTEXT: lambda a: ops.get_hospital_context(),
            ToolKind.CHECK_IN_PATIENT: lambda a: ops.check_in_patient(**a.model_dump()),
            ToolKind.DISCHARGE_PATIENT: lambda a: ops.discharge_patient(a.patient_id),
            ToolKind.TRANSFER_PATIENT: lambda a: ops.transfer_patient(a.patient_id, a.target_room_id),
            ToolKind.CREATE_TASK: lambda a: ops.create_task(**a.model_dump()),
            ToolKind.UPDATE_VITALS: lambda a: ops.update_vitals(**a.model_dump()),
            ToolKind.ASSIGN_STAFF: lambda a: ops.assign_staff(**a.model_dump()),
            ToolKind.GET_AVAILABLE_STAFF: lambda a: ops.get_available_staff(a.role),
            ToolKind.CREATE_ALERT: lambda a: ops.create_alert(**a.model_dump()),
            ToolKind.FIND_AVAILABLE_ROOM: lambda a: ops.find_available_room(a.room_type),
        }

    def _check_complete(self) -> None:
        kinds = set(ToolKind.callable_kinds())
        missing = {
            "handler": kinds - set(self._handlers),
            "schema": kinds - set(TOOL_DEFINITIONS),
            "argument model": kinds - set(ARGUMENT_MODELS),
        }
        problems = [
            f"{what}: {sorted(k.value for k in absent)}"
            for what, absent in missing.items()
            if absent
        ]
        if problems:
            raise ValueError(f"Tool registry incomplete ({'; '.join(problems)})")

    def get_tool_definitions(self) -> list[ToolDefinition]:
        """Schemas for every callable tool, in declaration order."""
        return [TOOL_DEFINITIONS[kind] for kind in ToolKind.callable_kinds()]

    def handler_for(self, kind: ToolKind) -> ToolHandler:
        return self._handlers[kind]

    def argument_model_for(self, kind: ToolKind) -> type[args.ToolArguments]:
        return ARGUMENT_MODELS[kind]
