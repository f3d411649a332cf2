"""Shift routes. Every call acts on the authenticated staff member's shift."""

from typing import Optional

from fastapi import APIRouter, status

from tillpoint.api.deps import CurrentStaff, ShiftLedger
from tillpoint.schemas.shift import ShiftEnd, ShiftResponse, ShiftStart

router = APIRouter()


@router.post("/start", response_model=ShiftResponse, status_code=status.HTTP_201_CREATED)
def start_shift(data: ShiftStart, staff: CurrentStaff, shifts: ShiftLedger):
    return shifts.start(staff.id, data.starting_cash, notes=data.notes)


@router.post("/end", response_model=ShiftResponse)
def end_shift(data: ShiftEnd, staff: CurrentStaff, shifts: ShiftLedger):
    return shifts.end(staff.id, data.ending_cash, notes=data.notes)


@router.get("/current", response_model=Optional[ShiftResponse])
def current_shift(staff: CurrentStaff, shifts: ShiftLedger):
    """The active shift, or null."""
    return shifts.current(staff.id)
