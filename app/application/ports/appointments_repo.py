from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime


class AppointmentStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


class AppointmentType(str, Enum):
    GENERAL_CHECKUP = "General Health Checkup"
    BLOOD_TEST = "Blood Test"
    SECOND_OPINION = "Second Opinion Consultation"
    DENTAL_CHECKUP = "Dental Checkup"
    ROOT_CANAL = "Root Canal"
    HEART_CHECKUP = "Heart Checkup"
    ECG_TEST = "ECG Test"
    SKIN_CHECK = "Skin Examination"
    EYE_TEST = "Comprehensive Eye Exam"
    MRI_SCAN = "MRI Scan"
    COUNSELING_SESSION = "Counseling Session"
    PHYSIOTHERAPY_SESSION = "Physiotherapy Session"

    @property
    def duration_minutes(self) -> int:
        return _DURATIONS.get(self, 30)

    @classmethod
    def from_value(cls, value: str) -> "AppointmentType":
        for member in cls:
            if member.value == value or member.name == value:
                return member
        return cls.GENERAL_CHECKUP


# Every duration is a whole number of 15-minute slots
_DURATIONS = {
    AppointmentType.GENERAL_CHECKUP: 30,
    AppointmentType.BLOOD_TEST: 15,
    AppointmentType.SECOND_OPINION: 45,
    AppointmentType.DENTAL_CHECKUP: 30,
    AppointmentType.ROOT_CANAL: 90,
    AppointmentType.HEART_CHECKUP: 45,
    AppointmentType.ECG_TEST: 30,
    AppointmentType.SKIN_CHECK: 30,
    AppointmentType.EYE_TEST: 45,
    AppointmentType.MRI_SCAN: 60,
    AppointmentType.COUNSELING_SESSION: 60,
    AppointmentType.PHYSIOTHERAPY_SESSION: 60,
}


@dataclass
class AppointmentDto:
    id: str
    patient_id: str
    doctor_id: str
    date_time: datetime
    appointment_type: AppointmentType
    status: AppointmentStatus
    patient_name: str = ""
    doctor_name: str = ""
    reminder_sent_one_hour: bool = False
    reminder_sent_five_minutes: bool = False
    comments: str = ""

    @property
    def duration_minutes(self) -> int:
        return self.appointment_type.duration_minutes


class AppointmentsRepository:
    def get_by_id(self, appointment_id: str) -> Optional[AppointmentDto]:
        ...

    def find_in_window(self, status: AppointmentStatus, start: datetime, end: datetime) -> List[AppointmentDto]:
        """Appointments with the given status and start <= date_time <= end."""
        ...

    def compare_and_set(self, appointment_id: str, expected: Dict[str, Any], changes: Dict[str, Any]) -> bool:
        """Apply changes only if every expected field still holds. Returns False if it did not."""
        ...
