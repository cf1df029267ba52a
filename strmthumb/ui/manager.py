import logging

from strmthumb.domain.events import CompleteEvent, FailedEvent, LogEvent, ProgressEvent
from strmthumb.infrastructure.event_bus import EventBus
from strmthumb.ui.state import UIState

logger = logging.getLogger(__name__)


class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(LogEvent, self.on_log)
        self.bus.subscribe(ProgressEvent, self.on_progress)
        self.bus.subscribe(FailedEvent, self.on_failed)
        self.bus.subscribe(CompleteEvent, self.on_complete)

    def close(self):
        self.bus.unsubscribe(LogEvent, self.on_log)
        self.bus.unsubscribe(ProgressEvent, self.on_progress)
        self.bus.unsubscribe(FailedEvent, self.on_failed)
        self.bus.unsubscribe(CompleteEvent, self.on_complete)

    def on_log(self, event: LogEvent):
        self.state.add_message(event.message, event.level)

    def on_progress(self, event: ProgressEvent):
        self.state.update_progress(event.progress)

    def on_failed(self, event: FailedEvent):
        self.state.add_failed(event.identifier)

    def on_complete(self, event: CompleteEvent):
        logger.debug(
            f"UI: batch complete processed={event.progress.processed}/{event.progress.total}, "
            f"failed={event.progress.failed}"
        )
        self.state.mark_finished(event.progress, event.failed_identifiers)
