"""Shared fixtures for agent tests."""

from typing import Optional

import pytest

from src.wardops.agent.domain.entities import ToolResult
from src.wardops.agent.domain.ports import IWardOperations


class RecordingWardOperations(IWardOperations):
    """In-memory IWardOperations that records every call.

    Set ``failures[name]`` to an exception to make that operation raise.
    """

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.failures: dict[str, Exception] = {}

    def _record(self, name: str, **kwargs) -> ToolResult:
        self.calls.append((name, kwargs))
        if name in self.failures:
            raise self.failures[name]
        return ToolResult.ok(f"{name} ok", data=kwargs)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def get_room_context(self, room_identifier: str) -> ToolResult:
        return self._record("get_room_context", room_identifier=room_identifier)

    async def get_patient_context(self, patient_identifier: str) -> ToolResult:
        return self._record("get_patient_context", patient_identifier=patient_identifier)

    async def get_equipment_context(self, equipment_identifier: str) -> ToolResult:
        return self._record("get_equipment_context", equipment_identifier=equipment_identifier)

    async def get_hospital_context(self) -> ToolResult:
        return self._record("get_hospital_context")

    async def find_available_room(self, room_type: Optional[str] = None) -> ToolResult:
        return self._record("find_available_room", room_type=room_type)

    async def get_available_staff(self, role: Optional[str] = None) -> ToolResult:
        return self._record("get_available_staff", role=role)

    async def check_in_patient(self, **kwargs) -> ToolResult:
        return self._record("check_in_patient", **kwargs)

    async def discharge_patient(self, patient_id: str) -> ToolResult:
        return self._record("discharge_patient", patient_id=patient_id)

    async def transfer_patient(self, patient_id: str, target_room_id: str) -> ToolResult:
        return self._record("transfer_patient", patient_id=patient_id, target_room_id=target_room_id)

    async def create_task(self, **kwargs) -> ToolResult:
        return self._record("create_task", **kwargs)

    async def update_vitals(self, **kwargs) -> ToolResult:
        return self._record("update_vitals", **kwargs)

    async def assign_staff(self, **kwargs) -> ToolResult:
        return self._record("assign_staff", **kwargs)

    async def create_alert(self, room_id: str, alert_type: str, message: str) -> ToolResult:
        return self._record("create_alert", room_id=room_id, alert_type=alert_type, message=message)


@pytest.fixture
def ward_operations():
    return RecordingWardOperations()
