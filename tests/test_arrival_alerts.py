from datetime import datetime, timedelta, timezone

from schoolbus.config.overrides import TenantSettings
from schoolbus.config.settings import Settings
from schoolbus.core.cache import TTLCache
from schoolbus.core.geo import Coordinate
from schoolbus.domain.models import Position, Route, RouteStop, Trip
from schoolbus.eta.alerts import ArrivalAlertMonitor, Rider, build_notification_message
from schoolbus.eta.engine import EtaEngine
from schoolbus.ingestion.tracking import InMemoryTrackingStore
from schoolbus.routing.backend import RoutingBackend
from schoolbus.routing.models import RouteLeg, RoutingProvider


NOW = datetime(2026, 1, 5, 7, 0, tzinfo=timezone.utc)
BUS_AT = Coordinate(lat=37.0, lon=-122.0)


class _FixedLegClient:
    def route(self, origin, destination):
        return RouteLeg(duration_minutes=4.5, distance_km=2.0, provider="osrm")


class _RecordingSink:
    def __init__(self, channel: str, fail: bool = False):
        self.channel = channel
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    def send(self, recipient, notice):
        if self.fail:
            raise RuntimeError("gateway down")
        self.sent.append((recipient, notice.stop_id))


class _RecordingPublisher:
    def __init__(self):
        self.channels: list[str] = []

    def publish(self, channel, payload):
        self.channels.append(channel)


def _engine(tenants=None, publisher=None, bus_at=BUS_AT):
    settings = Settings()
    store = InMemoryTrackingStore(clock=lambda: NOW)
    store.record("t1", "bus-1", Position(coordinate=bus_at, timestamp=NOW))
    routing = RoutingBackend(settings, clients={RoutingProvider.OSRM: _FixedLegClient()}, rate_limiters={})
    return EtaEngine(
        settings, locations=store, routing=routing, tenants=tenants, publisher=publisher, clock=lambda: NOW
    )


def _trip() -> Trip:
    # Stops are 2+ km apart from the bus, so only the ETA threshold can trigger.
    stops = [
        RouteStop(id="s1", name="Oak", coordinate=Coordinate(lat=37.02, lon=-122.0), sequence=1),
        RouteStop(id="s2", name="Pine", coordinate=Coordinate(lat=37.04, lon=-122.0), sequence=2),
        RouteStop(id="s3", name="Elm", coordinate=Coordinate(lat=37.06, lon=-122.0), sequence=3),
    ]
    return Trip(
        id="trip-1",
        tenant_id="t1",
        route=Route(id="r1", name="North Loop", stops=stops),
        bus_id="bus-1",
        status="in_progress",
        started_at=NOW - timedelta(minutes=5),
    )


ANA = Rider(student_id="st-1", student_name="Ana", guardian_id="g-1", phone="+15550001", email="ana@example.com")
BEN = Rider(student_id="st-2", student_name="Ben", guardian_id="g-2", phone="+15550002")


def test_notifies_stops_within_eta_threshold():
    sms = _RecordingSink("sms")
    email = _RecordingSink("email")
    publisher = _RecordingPublisher()
    monitor = ArrivalAlertMonitor(_engine(publisher=publisher), [sms, email])

    notices = monitor.process_trip(_trip(), {"s1": [ANA], "s3": [BEN]}, bus_label="Bus 12")

    # s1 is 4.5 minutes out, s3 13.5 minutes (beyond the 10 minute threshold).
    assert [(n.stop_id, n.rider.student_id) for n in notices] == [("s1", "st-1")]
    assert notices[0].message == "🚌 Bus 12 will arrive at Oak in 4.5 minutes for Ana. Please be ready!"
    assert notices[0].is_arriving is False
    assert sms.sent == [("+15550001", "s1")]
    assert email.sent == [("ana@example.com", "s1")]
    assert "company.t1.trip.trip-1.eta" in publisher.channels


def test_same_stop_is_not_notified_twice_within_suppression_window():
    sms = _RecordingSink("sms")
    monitor = ArrivalAlertMonitor(_engine(), [sms], sent_log=TTLCache())

    assert len(monitor.process_trip(_trip(), {"s1": [ANA]})) == 1
    assert monitor.process_trip(_trip(), {"s1": [ANA]}) == []
    assert len(sms.sent) == 1


def test_bus_at_stop_triggers_arriving_notice():
    monitor = ArrivalAlertMonitor(_engine(bus_at=Coordinate(lat=37.0201, lon=-122.0)))

    notices = monitor.process_trip(_trip(), {"s1": [ANA]}, bus_label="Bus 12")
    assert len(notices) == 1
    assert notices[0].is_arriving is True
    assert "arriving NOW at Oak" in notices[0].message


def test_disabled_channels_and_failing_sinks_do_not_stop_processing():
    broken_sms = _RecordingSink("sms", fail=True)
    email = _RecordingSink("email")
    tenants = TenantSettings(Settings(), {"t1": {"alerts": {"enable_email": False}}})
    monitor = ArrivalAlertMonitor(_engine(tenants=tenants), [broken_sms, email])

    notices = monitor.process_trip(_trip(), {"s1": [ANA]})
    assert len(notices) == 1
    assert email.sent == []


def test_alerts_disabled_for_tenant():
    tenants = TenantSettings(Settings(), {"t1": {"alerts": {"enabled": False}}})
    sms = _RecordingSink("sms")
    monitor = ArrivalAlertMonitor(_engine(tenants=tenants), [sms])

    assert monitor.process_trip(_trip(), {"s1": [ANA]}) == []
    assert sms.sent == []


def test_trip_without_bus_location_sends_nothing():
    trip = _trip().model_copy(update={"bus_id": "bus-unknown"})
    monitor = ArrivalAlertMonitor(_engine(), [_RecordingSink("sms")])
    assert monitor.process_trip(trip, {"s1": [ANA]}) == []


def test_notification_messages():
    common = {"bus_label": "Bus 7", "stop_name": "Oak", "student_name": "Ana"}
    assert build_notification_message(eta_minutes=0.5, is_near_stop=False, **common) == (
        "🚌 Bus 7 will arrive at Oak in less than 1 minute for Ana. Please be ready!"
    )
    assert build_notification_message(eta_minutes=8, is_near_stop=False, **common) == (
        "🚌 Bus 7 will arrive at Oak in approximately 8 minutes for Ana."
    )
    assert build_notification_message(eta_minutes=8, is_near_stop=True, **common) == (
        "🚌 Bus 7 is arriving NOW at Oak for Ana. Please be ready!"
    )
