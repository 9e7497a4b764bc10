from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import datetime, date, time
from decimal import Decimal

from app.features.violation.model import REQUIRED_EDIT_FIELDS
from app.models.enums import ViolationStatus, DisputeStatus, VehicleType, ViolationType, PaymentMethod
from app.utils.clock import utcnow

PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"
TIME_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


class ViolationCreate(BaseModel):
    plate_number: str = Field(..., min_length=5, max_length=15)
    vehicle_type: VehicleType
    vehicle_make: Optional[str] = Field(None, max_length=50)
    vehicle_model: Optional[str] = Field(None, max_length=50)
    vehicle_color: Optional[str] = Field(None, max_length=30)
    vehicle_year: Optional[int] = None

    driver_name: str = Field(..., min_length=2, max_length=100)
    driver_license_number: Optional[str] = Field(None, min_length=5, max_length=20)
    driver_address: Optional[str] = Field(None, max_length=500)
    driver_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    driver_user_id: Optional[str] = Field(None, max_length=64)

    violation_type: ViolationType
    violation_description: str = Field(..., min_length=10, max_length=1000)
    violation_location: str = Field(..., min_length=5, max_length=200)
    violation_date: date
    violation_time: str = Field(..., pattern=TIME_PATTERN)

    base_fine: Decimal = Field(..., ge=0)
    additional_penalties: Optional[Decimal] = Field(None, ge=0)
    demerit_points: Optional[int] = Field(None, ge=0, le=100)

    evidence_photos: Optional[List[str]] = None
    witness_statements: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("vehicle_year")
    @classmethod
    def _check_vehicle_year(cls, value):
        if value is not None and not (1900 <= value <= utcnow().year + 1):
            raise ValueError("Vehicle year is out of range")
        return value

    @field_validator("violation_date")
    @classmethod
    def _check_not_future(cls, value):
        if value > utcnow().date():
            raise ValueError("Violation date cannot be in the future")
        return value


class ViolationUpdate(BaseModel):
    plate_number: Optional[str] = Field(None, min_length=5, max_length=15)
    vehicle_type: Optional[VehicleType] = None
    vehicle_make: Optional[str] = Field(None, max_length=50)
    vehicle_model: Optional[str] = Field(None, max_length=50)
    vehicle_color: Optional[str] = Field(None, max_length=30)
    vehicle_year: Optional[int] = None
    driver_name: Optional[str] = Field(None, min_length=2, max_length=100)
    driver_license_number: Optional[str] = Field(None, min_length=5, max_length=20)
    driver_address: Optional[str] = Field(None, max_length=500)
    driver_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    violation_description: Optional[str] = Field(None, min_length=10, max_length=1000)
    violation_location: Optional[str] = Field(None, min_length=5, max_length=200)
    evidence_photos: Optional[List[str]] = None
    witness_statements: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator(*REQUIRED_EDIT_FIELDS)
    @classmethod
    def _reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be empty")
        return value


class ViolationCancelRequest(BaseModel):
    cancellation_reason: str = Field(..., min_length=5, max_length=500)


class ViolationSearch(BaseModel):
    ovr_number: Optional[str] = None
    plate_number: Optional[str] = None
    driver_license_number: Optional[str] = None

    @model_validator(mode="after")
    def _require_one(self):
        if not (self.ovr_number or self.plate_number or self.driver_license_number):
            raise ValueError("Provide an OVR number, plate number or driver license number")
        return self


class ViolationResponse(BaseModel):
    id: int
    ovr_number: str
    citation_number: str
    plate_number: str
    vehicle_type: VehicleType
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_color: Optional[str] = None
    vehicle_year: Optional[int] = None
    driver_name: str
    driver_license_number: Optional[str] = None
    driver_phone: Optional[str] = None
    violation_type: ViolationType
    violation_description: str
    violation_location: str
    violation_date: datetime
    violation_time: time
    base_fine: Decimal
    additional_penalties: Decimal
    total_fine: Decimal
    late_penalty_applied: bool
    demerit_points: int
    status: ViolationStatus
    effective_status: ViolationStatus
    is_overdue: bool
    days_until_due: int
    due_date: date
    payment_deadline: datetime
    enforcer_id: str
    enforcer_name: str
    enforcer_badge_number: str
    evidence_photos: Optional[List[str]] = None
    witness_statements: Optional[List[str]] = None
    notes: Optional[str] = None
    is_disputed: bool
    dispute_reason: Optional[str] = None
    dispute_date: Optional[datetime] = None
    dispute_status: Optional[DisputeStatus] = None
    dispute_resolved_at: Optional[datetime] = None
    dispute_resolution_notes: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    payment_reference: Optional[str] = None
    payment_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    modified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_violation(cls, violation, now: Optional[datetime] = None) -> "ViolationResponse":
        """Project a Violation row, filling the fields derived from the clock."""
        data = {
            name: getattr(violation, name)
            for name in cls.model_fields
            if name not in DERIVED_FIELDS
        }
        data["effective_status"] = violation.effective_status(now)
        data["is_overdue"] = violation.is_overdue(now)
        data["days_until_due"] = violation.days_until_due(now)
        return cls(**data)


DERIVED_FIELDS = ("effective_status", "is_overdue", "days_until_due")


class ViolationQRResponse(BaseModel):
    ovr_number: str
    payload: Dict
    qr_data: Optional[str] = None


class ReminderResult(BaseModel):
    sent: int
    failed: int
    skipped: int
    total: int


class ViolationStatisticsResponse(BaseModel):
    total_violations: int
    by_status: Dict[str, int]
    overdue_violations: int
    open_disputes: int
    total_collected: Decimal
    by_type: Dict[str, int]
    period_start: Optional[date] = None
    period_end: Optional[date] = None
