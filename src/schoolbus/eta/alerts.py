"""
Arrival alerts for parents.

`ArrivalAlertMonitor.process_trip` is meant to run periodically (a scheduler or worker
loop) for each in-progress trip. For every stop it decides whether riders waiting there
should be told the bus is close, then hands the notices to notification sinks (SMS,
email, push). Delivery itself is the sinks' business.

A stop is notified when its ETA is within the tenant's threshold, or when the bus is
already inside the proximity radius. The same (trip, stop) is not notified twice within
the suppression window.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from schoolbus.core.cache import TTLCache
from schoolbus.domain.models import EtaError, StopEta, Trip
from schoolbus.eta.engine import EtaEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rider:
    """A student waiting at a stop, with the guardian contact to notify."""

    student_id: str
    student_name: str
    guardian_id: str
    phone: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class ArrivalNotice:
    trip_id: str
    stop_id: str
    stop_name: str
    rider: Rider
    eta_minutes: float
    is_arriving: bool
    message: str
    context: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    # "sms" or "email"; decides which contact field and which tenant toggle apply.
    channel: str

    def send(self, recipient: str, notice: ArrivalNotice) -> None: ...


def build_notification_message(
    *, bus_label: str, stop_name: str, student_name: str, eta_minutes: float, is_near_stop: bool
) -> str:
    if is_near_stop:
        return f"🚌 {bus_label} is arriving NOW at {stop_name} for {student_name}. Please be ready!"
    if eta_minutes <= 1:
        return f"🚌 {bus_label} will arrive at {stop_name} in less than 1 minute for {student_name}. Please be ready!"
    if eta_minutes <= 5:
        return f"🚌 {bus_label} will arrive at {stop_name} in {eta_minutes:g} minutes for {student_name}. Please be ready!"
    return f"🚌 {bus_label} will arrive at {stop_name} in approximately {eta_minutes:g} minutes for {student_name}."


class ArrivalAlertMonitor:
    def __init__(
        self,
        engine: EtaEngine,
        sinks: Sequence[NotificationSink] = (),
        *,
        sent_log: TTLCache | None = None,
    ):
        self._engine = engine
        self._sinks = list(sinks)
        self._sent_log = sent_log if sent_log is not None else TTLCache(default_ttl_seconds=600)

    def _recently_notified(self, trip_id: str, stop_id: str, suppression_minutes: float) -> bool:
        last = self._sent_log.get(("notified", trip_id, stop_id))
        return last is not None and (time.time() - float(last)) < suppression_minutes * 60

    def _mark_notified(self, trip_id: str, stop_id: str, ttl_minutes: float) -> None:
        self._sent_log.set(("notified", trip_id, stop_id), time.time(), ttl_seconds=ttl_minutes * 60)

    def process_trip(
        self,
        trip: Trip,
        riders_by_stop: Mapping[str, Sequence[Rider]],
        *,
        bus_label: str | None = None,
    ) -> list[ArrivalNotice]:
        """Evaluate every stop of `trip` and dispatch notices; returns the notices built."""
        settings = self._engine.settings_for(trip.tenant_id)
        if not settings.alerts.enabled:
            return []

        route_etas = self._engine.calculate_route_etas(trip)
        if isinstance(route_etas, EtaError):
            logger.warning("Failed to calculate ETAs for trip %s: %s", trip.id, route_etas.error)
            return []

        notices: list[ArrivalNotice] = []
        for stop_eta in route_etas.etas:
            notices.extend(self._process_stop(trip, stop_eta, riders_by_stop, bus_label=bus_label))

        self._engine.broadcast_eta_update(
            trip.tenant_id,
            {
                "trip_id": trip.id,
                "route_id": route_etas.route_id,
                "bus_id": route_etas.bus_id,
                "company_uuid": trip.tenant_id,
                "etas": [e.model_dump(mode="json") for e in route_etas.etas],
                "current_location": route_etas.current_location.as_dict(),
                "calculated_at": route_etas.calculated_at.isoformat(),
            },
        )
        return notices

    def _process_stop(
        self,
        trip: Trip,
        stop_eta: StopEta,
        riders_by_stop: Mapping[str, Sequence[Rider]],
        *,
        bus_label: str | None,
    ) -> list[ArrivalNotice]:
        settings = self._engine.settings_for(trip.tenant_id)
        alerts = settings.alerts
        eta_minutes = stop_eta.eta_minutes

        is_near = self._engine.is_bus_near_stop(trip.tenant_id, trip.bus_id or "", stop_eta.coordinates)
        should_notify = (0 < eta_minutes <= alerts.eta_threshold_minutes) or is_near
        if not should_notify:
            return []

        riders = list(riders_by_stop.get(stop_eta.stop_id, ()))
        if not riders:
            logger.info("No students found for stop %s on trip %s", stop_eta.stop_id, trip.id)
            return []

        if self._recently_notified(trip.id, stop_eta.stop_id, alerts.repeat_suppression_minutes):
            return []

        logger.info(
            "Sending arrival notifications for stop %s (trip=%s eta=%s near=%s students=%s)",
            stop_eta.stop_name,
            trip.id,
            eta_minutes,
            is_near,
            len(riders),
        )

        label = bus_label or trip.bus_id or "School Bus"
        notices: list[ArrivalNotice] = []
        for rider in riders:
            notice = ArrivalNotice(
                trip_id=trip.id,
                stop_id=stop_eta.stop_id,
                stop_name=stop_eta.stop_name,
                rider=rider,
                eta_minutes=eta_minutes,
                is_arriving=is_near,
                message=build_notification_message(
                    bus_label=label,
                    stop_name=stop_eta.stop_name,
                    student_name=rider.student_name,
                    eta_minutes=eta_minutes,
                    is_near_stop=is_near,
                ),
                context={
                    "student_name": rider.student_name,
                    "bus_number": label,
                    "stop_name": stop_eta.stop_name,
                    "eta_minutes": eta_minutes,
                    "is_arriving": is_near,
                    "route_name": trip.route.name if trip.route else "Unknown Route",
                },
            )
            self._dispatch(notice, sms_enabled=alerts.enable_sms, email_enabled=alerts.enable_email)
            notices.append(notice)

        self._mark_notified(trip.id, stop_eta.stop_id, alerts.notification_ttl_minutes)
        return notices

    def _dispatch(self, notice: ArrivalNotice, *, sms_enabled: bool, email_enabled: bool) -> None:
        for sink in self._sinks:
            if sink.channel == "sms":
                recipient = notice.rider.phone if sms_enabled else None
            elif sink.channel == "email":
                recipient = notice.rider.email if email_enabled else None
            else:
                recipient = notice.rider.guardian_id
            if not recipient:
                continue
            try:
                sink.send(recipient, notice)
            except Exception:
                logger.error(
                    "Failed to send %s notification to guardian %s for student %s",
                    sink.channel,
                    notice.rider.guardian_id,
                    notice.rider.student_id,
                    exc_info=True,
                )
