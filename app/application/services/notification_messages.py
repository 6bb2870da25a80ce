from typing import List

from ..ports.appointments_repo import AppointmentDto
from .notification_gateway import NotificationRequest, NotificationType


def _doctor(appt: AppointmentDto) -> str:
    return f"Dr. {appt.doctor_name}" if appt.doctor_name else "the doctor"


def _patient(appt: AppointmentDto) -> str:
    return appt.patient_name or "the patient"


def confirmation(appt: AppointmentDto) -> List[NotificationRequest]:
    return [
        NotificationRequest(
            user_id=appt.patient_id,
            title="Appointment Confirmed",
            body=f"Your appointment with {_doctor(appt)} was confirmed by the doctor!",
            type=NotificationType.CONFIRMATION,
            related_appointment_id=appt.id,
        )
    ]


def one_hour_reminder(appt: AppointmentDto) -> List[NotificationRequest]:
    return [
        NotificationRequest(
            user_id=appt.patient_id,
            title="Upcoming Appointment",
            body=f"Reminder: Your appointment with {_doctor(appt)} is in 1 hour.",
            type=NotificationType.REMINDER,
            related_appointment_id=appt.id,
        )
    ]


def five_minute_reminder(appt: AppointmentDto) -> List[NotificationRequest]:
    return [
        NotificationRequest(
            user_id=appt.patient_id,
            title="Appointment Starting Soon!",
            body=f"Your appointment with {_doctor(appt)} is starting soon!",
            type=NotificationType.REMINDER,
            related_appointment_id=appt.id,
        ),
        NotificationRequest(
            user_id=appt.doctor_id,
            title="Appointment Starting Soon!",
            body=f"Upcoming appointment with {_patient(appt)} is starting in a few minutes!",
            type=NotificationType.REMINDER,
            related_appointment_id=appt.id,
        ),
    ]


def feedback(appt: AppointmentDto) -> List[NotificationRequest]:
    return [
        NotificationRequest(
            user_id=appt.patient_id,
            title="How was your appointment?",
            body=f"Let us know how your visit with {_doctor(appt)} went!",
            type=NotificationType.FEEDBACK,
            related_appointment_id=appt.id,
        )
    ]


def auto_cancellation(appt: AppointmentDto) -> List[NotificationRequest]:
    return [
        NotificationRequest(
            user_id=appt.patient_id,
            title="Appointment Cancelled",
            body=(
                f"Your appointment with {_doctor(appt)} was cancelled due to not being confirmed by the doctor. "
                "We apologize for the inconvenience. You can contact the doctor directly to reschedule."
            ),
            type=NotificationType.CANCELLATION,
            related_appointment_id=appt.id,
        ),
        NotificationRequest(
            user_id=appt.doctor_id,
            title="Auto-Cancelled Appointment",
            body=(
                f"Your pending appointment with {_patient(appt)} was cancelled automatically. "
                "Please try to confirm appointments in time."
            ),
            type=NotificationType.CANCELLATION,
            related_appointment_id=appt.id,
        ),
    ]


def cancellation(appt: AppointmentDto, actor_id: str) -> List[NotificationRequest]:
    """Both parties hear about a manual cancellation, worded from each side."""
    if actor_id == appt.doctor_id:
        patient_body = f"Your appointment with {_doctor(appt)} was cancelled by the doctor."
        doctor_body = f"You cancelled the appointment with {_patient(appt)}."
    else:
        patient_body = f"Your appointment with {_doctor(appt)} has been cancelled."
        doctor_body = f"{_patient(appt)} just cancelled an appointment."
    return [
        NotificationRequest(
            user_id=appt.patient_id,
            title="Appointment Cancelled",
            body=patient_body,
            type=NotificationType.CANCELLATION,
            related_appointment_id=appt.id,
        ),
        NotificationRequest(
            user_id=appt.doctor_id,
            title="Appointment Cancelled",
            body=doctor_body,
            type=NotificationType.CANCELLATION,
            related_appointment_id=appt.id,
        ),
    ]
