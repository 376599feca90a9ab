"""
Tests for the tracking event system.
"""

import logging

from termsarchive.errors import InaccessibleContentError
from termsarchive.events import EventPublisher, TrackingEvent
from termsarchive.reporting import TrackingLogger
from tests.factories import make_terms


class RecordingListener:
    def __init__(self):
        self.calls = []

    def on_snapshot_recorded(self, service_id, terms_type, document_id, snapshot_id):
        self.calls.append(("snapshot_recorded", service_id, terms_type, document_id, snapshot_id))

    def on_version_not_changed(self, service_id, terms_type):
        self.calls.append(("version_not_changed", service_id, terms_type))

    def on_something_else(self, *args):
        self.calls.append(("something_else", *args))


class TestTrackingEvent:
    def test_handler_names(self):
        assert TrackingEvent.FIRST_VERSION_RECORDED.handler_name == "on_first_version_recorded"
        assert TrackingEvent.ERROR.handler_name == "on_error"

    def test_all_events_declared(self):
        assert {event.value for event in TrackingEvent} == {
            "snapshot_recorded",
            "first_snapshot_recorded",
            "snapshot_not_changed",
            "version_recorded",
            "first_version_recorded",
            "version_not_changed",
            "tracking_started",
            "tracking_completed",
            "inaccessible_content",
            "error",
        }


class TestEventPublisher:
    def test_attach_binds_matching_methods_only(self):
        publisher = EventPublisher()
        listener = RecordingListener()
        publisher.attach(listener)

        assert publisher.listener_count(TrackingEvent.SNAPSHOT_RECORDED) == 1
        assert publisher.listener_count(TrackingEvent.VERSION_NOT_CHANGED) == 1
        assert publisher.listener_count(TrackingEvent.ERROR) == 0

    def test_emit_passes_arguments(self):
        publisher = EventPublisher()
        listener = RecordingListener()
        publisher.attach(listener)

        publisher.emit(TrackingEvent.SNAPSHOT_RECORDED, "Example", "Terms of Service", None, "abc1234")
        publisher.emit(TrackingEvent.VERSION_NOT_CHANGED, "Example", "Terms of Service")

        assert listener.calls == [
            ("snapshot_recorded", "Example", "Terms of Service", None, "abc1234"),
            ("version_not_changed", "Example", "Terms of Service"),
        ]

    def test_emit_without_listeners(self):
        EventPublisher().emit(TrackingEvent.TRACKING_STARTED, 1, 2, False)

    def test_failing_listener_does_not_stop_others(self, caplog):
        publisher = EventPublisher()
        received = []

        def failing(*args):
            raise RuntimeError("listener is broken")

        publisher.on(TrackingEvent.ERROR, failing)
        publisher.on(TrackingEvent.ERROR, lambda *args: received.append(args))

        publisher.emit(TrackingEvent.ERROR, "boom", "Example", "Terms of Service")

        assert received == [("boom", "Example", "Terms of Service")]
        assert "listener is broken" in caplog.text


class TestTrackingLogger:
    def test_every_event_has_a_handler(self):
        publisher = EventPublisher()
        publisher.attach(TrackingLogger())

        assert all(publisher.listener_count(event) == 1 for event in TrackingEvent)

    def test_logs_records_and_failures(self, caplog):
        publisher = EventPublisher()
        publisher.attach(TrackingLogger())
        terms = make_terms()

        with caplog.at_level(logging.INFO, logger="termsarchive.tracking"):
            publisher.emit(TrackingEvent.SNAPSHOT_RECORDED, "Example", "Privacy Policy", "cookies", "abc1234")
            publisher.emit(
                TrackingEvent.INACCESSIBLE_CONTENT,
                InaccessibleContentError(["Received HTTP code 404 when trying to fetch 'https://example.com'"]),
                "Example",
                "Terms of Service",
                terms,
            )

        assert "Example Privacy Policy #cookies: recorded snapshot with id abc1234" in caplog.text
        assert "Received HTTP code 404" in caplog.text
        assert caplog.records[-1].levelno == logging.WARNING
