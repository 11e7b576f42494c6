"""
Port interfaces (abstract base classes) for the agent module.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .entities import (
        CompletionResponse,
        ConversationMessage,
        StructuredCommand,
        ToolDefinition,
        ToolResult,
    )


# ============================================
# Completion Provider Interface
# ============================================


class ICompletionProvider(ABC):
    """Interface for a chat-completion service that can request tool calls.

    Implementations raise the CompletionError family:
    ClientRequestError (4xx), ServerError (5xx), NetworkError (no response)
    and MalformedResponseError (undecodable 2xx body).
    """

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[ConversationMessage],
        tools: Optional[list[ToolDefinition]] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> CompletionResponse:
        """Send one completion request to ``model``."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None


# ============================================
# Domain Operations Interface
# ============================================


class IWardOperations(ABC):
    """Domain actions the agent can take on the ward.

    Every operation returns a ToolResult describing the outcome; failures
    that are part of normal operation (unknown room, no free bed) come
    back as ``success=False`` rather than exceptions.
    """

    # --- context lookups ---

    @abstractmethod
    async def get_room_context(self, room_identifier: str) -> ToolResult:
        """Room, current patient, recent vitals, equipment, tasks and alerts."""

    @abstractmethod
    async def get_patient_context(self, patient_identifier: str) -> ToolResult:
        """Patient, room, care team and vitals history."""

    @abstractmethod
    async def get_equipment_context(self, equipment_identifier: str) -> ToolResult:
        """Equipment, location and maintenance status."""

    @abstractmethod
    async def get_hospital_context(self) -> ToolResult:
        """Ward-wide occupancy, tasks, alerts and staff summary."""

    @abstractmethod
    async def find_available_room(self, room_type: Optional[str] = None) -> ToolResult:
        """First available room, optionally of a given type."""

    @abstractmethod
    async def get_available_staff(self, role: Optional[str] = None) -> ToolResult:
        """Active staff, optionally filtered by role."""

    # --- actions ---

    @abstractmethod
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
        """Admit a patient and assign a room."""

    @abstractmethod
    async def discharge_patient(self, patient_id: str) -> ToolResult:
        """Discharge a patient and free their room."""

    @abstractmethod
    async def transfer_patient(self, patient_id: str, target_room_id: str) -> ToolResult:
        """Move a patient to another room."""

    @abstractmethod
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
        """Persist a new ward task."""

    @abstractmethod
    async def update_vitals(
        self,
        patient_id: str,
        heart_rate: Optional[int] = None,
        blood_pressure: Optional[str] = None,
        temperature: Optional[float] = None,
        oxygen_saturation: Optional[int] = None,
        respiratory_rate: Optional[int] = None,
    ) -> ToolResult:
        """Record a new vitals reading."""

    @abstractmethod
    async def assign_staff(
        self,
        patient_id: str,
        doctor_id: Optional[str] = None,
        nurse_id: Optional[str] = None,
    ) -> ToolResult:
        """Assign a doctor and/or nurse to a patient."""

    @abstractmethod
    async def create_alert(self, room_id: str, alert_type: str, message: str) -> ToolResult:
        """Raise an alert for a room."""


# ============================================
# Intent Extraction Interface
# ============================================


class IIntentExtractor(ABC):
    """Rule-based fast path that turns an utterance into a command.

    Implementations live outside this package.
    """

    @abstractmethod
    def extract(
        self,
        utterance: str,
        available_location_ids: list[str],
    ) -> Optional[StructuredCommand]:
        """Return a command, or None when the utterance is not understood."""
