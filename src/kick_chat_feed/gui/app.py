"""Main Qt application."""

import asyncio
import logging
import sys
from collections.abc import Callable, Coroutine

from PySide6.QtCore import QThread, Signal
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from ..__version__ import __version__
from ..chat.resolver import RoomResolver
from ..chat.session import ChatSession
from ..chat.transport import PusherTransport
from ..core.settings import Settings
from .feed_view import ChatFeedView, QtFeedSurface

logger = logging.getLogger(__name__)


class SessionWorker(QThread):
    """Worker thread that runs the chat session's asyncio event loop.

    Every ChatSession call is scheduled onto this loop so the session only
    ever runs on one thread.
    """

    # Emitted from inside the loop once it is running
    ready = Signal()

    def __init__(self, resolver: RoomResolver, parent=None):
        super().__init__(parent)
        self._resolver = resolver
        self._loop: asyncio.AbstractEventLoop | None = None

    def run(self):
        """Run the event loop until stop() is called."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self.ready.emit)
        try:
            self._loop.run_forever()
            self._loop.run_until_complete(self._shutdown())
        except Exception as e:
            logger.error(f"Session worker error: {e}")
        finally:
            self._loop.close()
            self._loop = None

    def submit(self, coro_func: Callable[[], Coroutine]) -> None:
        """Run a coroutine on the worker loop."""
        if self._loop is None:
            logger.warning("Session worker is not running")
            return
        future = asyncio.run_coroutine_threadsafe(coro_func(), self._loop)
        future.add_done_callback(self._log_failure)

    def call(self, func: Callable[..., None], *args) -> None:
        """Run a plain callable on the worker loop."""
        if self._loop is not None:
            self._loop.call_soon_threadsafe(func, *args)

    def stop(self) -> None:
        """Request the loop to stop."""
        if self._loop and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)

    async def _shutdown(self) -> None:
        """Let closed Pusher clients finish their cleanup, then close HTTP."""
        pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await self._resolver.close()

    @staticmethod
    def _log_failure(future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Session task failed: {future.exception()}")


class ChatWindow(QWidget):
    """Channel entry plus two feed panes sharing one live session."""

    def __init__(self, settings: Settings, parent: QWidget | None = None):
        super().__init__(parent)
        self.settings = settings
        self.setWindowTitle(f"Kick Chat Feed {__version__}")
        self.resize(settings.window.width, settings.window.height)
        if settings.window.x is not None and settings.window.y is not None:
            self.move(settings.window.x, settings.window.y)

        self._build_ui()

        threshold = settings.feed.pin_threshold
        self._surfaces = [QtFeedSurface(view, threshold) for view in self._views]
        self._active_pane = 0

        self._resolver = RoomResolver(settings.kick)
        self.session = ChatSession(
            self._resolver,
            PusherTransport(settings.pusher),
            self._surfaces[0],
            kick_settings=settings.kick,
        )
        self.session.state_changed.connect(self._on_state_changed)
        self.session.connected.connect(self._on_connected)

        self._pending_channel: str | None = None
        self._worker = SessionWorker(self._resolver, self)
        self._worker.ready.connect(self._on_worker_ready)
        self._worker.start()

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(6, 6, 6, 6)

        bar = QHBoxLayout()
        self._channel_input = QLineEdit(self.settings.last_channel)
        self._channel_input.setPlaceholderText("Kick channel (e.g. @xqc)")
        self._channel_input.returnPressed.connect(self.connect_channel)
        bar.addWidget(self._channel_input, 1)

        self._connect_btn = QPushButton("Connect")
        self._connect_btn.clicked.connect(self.connect_channel)
        bar.addWidget(self._connect_btn)

        self._disconnect_btn = QPushButton("Disconnect")
        self._disconnect_btn.clicked.connect(self.disconnect_channel)
        bar.addWidget(self._disconnect_btn)

        self._pane_btn = QPushButton("Pane 1")
        self._pane_btn.setToolTip("Move the live feed to the other pane")
        self._pane_btn.clicked.connect(self.switch_pane)
        bar.addWidget(self._pane_btn)
        layout.addLayout(bar)

        self._stack = QStackedWidget()
        self._views = [ChatFeedView(self.settings.feed.max_messages) for _ in range(2)]
        for view in self._views:
            self._stack.addWidget(view)
        layout.addWidget(self._stack, 1)

        self._status = QLabel("Idle")
        layout.addWidget(self._status)

    def connect_channel(self) -> None:
        raw = self._channel_input.text()
        self._worker.submit(lambda: self.session.connect(raw))

    def disconnect_channel(self) -> None:
        self._worker.call(self.session.disconnect)

    def switch_pane(self) -> None:
        self._active_pane = 1 - self._active_pane
        surface = self._surfaces[self._active_pane]
        self._stack.setCurrentIndex(self._active_pane)
        self._pane_btn.setText(f"Pane {self._active_pane + 1}")
        self._worker.call(self.session.rebind_surface, surface)

    def queue_channel(self, channel: str) -> None:
        """Connect to channel as soon as the worker loop is up."""
        self._channel_input.setText(channel)
        self._pending_channel = channel

    def _on_worker_ready(self) -> None:
        if self._pending_channel:
            self._pending_channel = None
            self.connect_channel()

    def _on_state_changed(self, state: str) -> None:
        self._status.setText(state.capitalize())

    def _on_connected(self, channel_name: str) -> None:
        self._status.setText(f"Connected to {channel_name}")
        self.settings.last_channel = channel_name

    def closeEvent(self, event: QCloseEvent) -> None:
        self.settings.window.width = self.width()
        self.settings.window.height = self.height()
        self.settings.window.x = self.x()
        self.settings.window.y = self.y()
        try:
            self.settings.save()
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")

        self._worker.call(self.session.disconnect)
        self._worker.stop()
        self._worker.wait(3000)
        super().closeEvent(event)


def run(channel: str | None = None) -> int:
    """Run the application."""
    app = QApplication.instance() or QApplication(sys.argv)
    app.setApplicationName("kick-chat-feed")
    app.setApplicationVersion(__version__)

    settings = Settings.load()
    window = ChatWindow(settings)
    window.show()

    if channel:
        window.queue_channel(channel)

    return app.exec()
