"""
Pydantic argument models for agent tools.

Each model validates the decoded arguments of one tool call before the
matching domain operation runs. Unknown keys are ignored.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["stable", "moderate", "critical", "recovering"]
Priority = Literal["low", "medium", "high", "urgent"]
TaskKindName = Literal[
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
StaffRole = Literal["doctor", "nurse", "technician", "orderly"]
AlertType = Literal["critical", "warning", "info"]


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class NoArguments(ToolArguments):
    pass


class RoomContextArgs(ToolArguments):
    room_identifier: str = Field(..., min_length=1)


class PatientContextArgs(ToolArguments):
    patient_identifier: str = Field(..., min_length=1)


class EquipmentContextArgs(ToolArguments):
    equipment_identifier: str = Field(..., min_length=1)


class FindRoomArgs(ToolArguments):
    room_type: Optional[str] = None


class AvailableStaffArgs(ToolArguments):
    role: Optional[StaffRole] = None


class CheckInPatientArgs(ToolArguments):
    name: str = Field(..., min_length=1)
    age: int = Field(..., ge=0, le=150)
    gender: str = Field(..., min_length=1)
    condition: str = Field(..., min_length=1)
    severity: Severity
    room_id: Optional[str] = None
    assigned_doctor_id: Optional[str] = None
    assigned_nurse_id: Optional[str] = None


class DischargePatientArgs(ToolArguments):
    patient_id: str = Field(..., min_length=1)


class TransferPatientArgs(ToolArguments):
    patient_id: str = Field(..., min_length=1)
    target_room_id: str = Field(..., min_length=1)


class CreateTaskArgs(ToolArguments):
    task_type: TaskKindName
    target_room_id: str = Field(..., min_length=1)
    source_room_id: Optional[str] = None
    priority: Priority = "medium"
    title: Optional[str] = None
    assigned_to_id: Optional[str] = None
    equipment_id: Optional[str] = None


class UpdateVitalsArgs(ToolArguments):
    patient_id: str = Field(..., min_length=1)
    heart_rate: Optional[int] = Field(default=None, ge=0, le=300)
    blood_pressure: Optional[str] = Field(default=None, pattern=r"^\d{2,3}/\d{2,3}$")
    temperature: Optional[float] = Field(default=None, ge=80, le=115)
    oxygen_saturation: Optional[int] = Field(default=None, ge=0, le=100)
    respiratory_rate: Optional[int] = Field(default=None, ge=0, le=80)


class AssignStaffArgs(ToolArguments):
    patient_id: str = Field(..., min_length=1)
    doctor_id: Optional[str] = None
    nurse_id: Optional[str] = None


class CreateAlertArgs(ToolArguments):
    room_id: str = Field(..., min_length=1)
    alert_type: AlertType
    message: str = Field(..., min_length=1, max_length=1000)
