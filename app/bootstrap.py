# Wiring of repositories, gateway and services shared by the API and the scheduler
from typing import Optional
from sqlalchemy.engine import Engine

from .application.ports.push_provider import PushProvider
from .application.services.appointments_service import AppointmentsService
from .application.services.availability_service import AvailabilityService
from .application.services.event_handlers import StatusChangeHandler
from .application.services.notification_gateway import NotificationGateway
from .application.services.state_machine import AppointmentStateMachine
from .application.services.sweeper import LifecycleSweeper, SweepWindows
from .core.config import Settings
from .infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.availability_repository_sql import SqlAvailabilityRepository
from .infrastructure.persistence.sqlalchemy.repositories.notification_repository_sql import SqlNotificationRepository
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository


def build_availability_service(engine: Engine, settings: Settings) -> AvailabilityService:
    return AvailabilityService(
        repo=SqlAvailabilityRepository(engine),
        granularity_minutes=settings.SLOT_GRANULARITY_MINUTES,
    )


def build_appointments_service(engine: Engine, settings: Settings, push: Optional[PushProvider] = None) -> AppointmentsService:
    gateway = NotificationGateway(
        inbox=SqlNotificationRepository(engine),
        push=push,
        users=SqlUserRepository(engine),
    )
    return AppointmentsService(
        repo=SqlAppointmentsRepository(engine),
        gateway=gateway,
        machine=AppointmentStateMachine(
            completion_delay_minutes=settings.COMPLETION_DELAY_MINUTES,
            confirmation_deadline_minutes=settings.CONFIRMATION_DEADLINE_MINUTES,
        ),
        availability=build_availability_service(engine, settings),
    )


def build_status_change_handler(service: AppointmentsService) -> StatusChangeHandler:
    return StatusChangeHandler(gateway=service.gateway)


def build_sweeper(service: AppointmentsService, settings: Settings) -> LifecycleSweeper:
    return LifecycleSweeper(
        service=service,
        repo=service.repo,
        windows=SweepWindows.from_settings(settings),
        max_concurrency=settings.SWEEP_MAX_CONCURRENCY,
    )
