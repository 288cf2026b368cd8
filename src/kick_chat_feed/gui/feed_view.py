"""Qt chat feed view and the FeedSurface that drives it."""

import logging

from PySide6.QtCore import QObject, Qt, QUrl, Signal
from PySide6.QtGui import QImage, QTextDocument
from PySide6.QtNetwork import QNetworkAccessManager, QNetworkReply, QNetworkRequest
from PySide6.QtWidgets import QTextBrowser, QWidget

from ..chat.content import escape
from ..chat.feed import PIN_THRESHOLD, FeedSurface
from ..chat.models import RenderedMessage

logger = logging.getLogger(__name__)

EMOTE_HEIGHT = 28

FEED_STYLESHEET = """
QTextBrowser {
    background-color: #18181b;
    color: #efeff1;
    border: none;
    font-size: 13px;
}
"""

SYSTEM_COLOR = "#adadb8"
LOADING_COLOR = "#adadb8"
ERROR_COLOR = "#ff6b6b"


class ChatFeedView(QTextBrowser):
    """Read-only rich text chat feed.

    Emote images are fetched on demand and cached per view.
    """

    # top, visible, total
    scrolled = Signal(int, int, int)

    def __init__(self, max_messages: int = 500, parent: QWidget | None = None):
        super().__init__(parent)
        self.setReadOnly(True)
        self.setOpenExternalLinks(True)
        self.setStyleSheet(FEED_STYLESHEET)
        self.document().setMaximumBlockCount(max_messages)

        self._network = QNetworkAccessManager(self)
        self._network.finished.connect(self._on_image_loaded)
        self._pending_images: set[str] = set()

        scrollbar = self.verticalScrollBar()
        scrollbar.valueChanged.connect(self._on_scroll_changed)

    def _on_scroll_changed(self, value: int) -> None:
        scrollbar = self.verticalScrollBar()
        page = scrollbar.pageStep()
        self.scrolled.emit(value, page, scrollbar.maximum() + page)

    def append_html(self, html: str) -> None:
        self.append(html)

    def show_placeholder(self, html: str) -> None:
        self.setHtml(html)

    def scroll_to_bottom(self) -> None:
        scrollbar = self.verticalScrollBar()
        scrollbar.setValue(scrollbar.maximum())

    def loadResource(self, resource_type: int, url: QUrl):
        """Serve cached emote images; fetch remote ones in the background."""
        is_image = resource_type == QTextDocument.ResourceType.ImageResource.value
        if is_image and url.scheme() in ("http", "https"):
            key = url.toString()
            if key not in self._pending_images:
                self._pending_images.add(key)
                self._network.get(QNetworkRequest(url))
            return None
        return super().loadResource(resource_type, url)

    def _on_image_loaded(self, reply: QNetworkReply) -> None:
        url = reply.request().url()
        try:
            if reply.error() != QNetworkReply.NetworkError.NoError:
                logger.debug(f"Emote fetch failed for {url.toString()}: {reply.errorString()}")
                return
            image = QImage()
            if not image.loadFromData(reply.readAll()):
                return
            if image.height() > EMOTE_HEIGHT:
                image = image.scaledToHeight(
                    EMOTE_HEIGHT, Qt.TransformationMode.SmoothTransformation
                )
            self.document().addResource(QTextDocument.ResourceType.ImageResource, url, image)
            # Relayout so images that were blank pick up the new resource
            self.document().markContentsDirty(0, self.document().characterCount())
            scrollbar = self.verticalScrollBar()
            if scrollbar.value() >= scrollbar.maximum() - PIN_THRESHOLD:
                self.scroll_to_bottom()
        finally:
            reply.deleteLater()


class _FeedBridge(QObject):
    """Carries surface calls from the event loop thread to the GUI thread."""

    html_appended = Signal(str)
    placeholder_shown = Signal(str)
    cleared = Signal()
    scroll_requested = Signal()


class QtFeedSurface(FeedSurface):
    """FeedSurface rendering into a ChatFeedView."""

    def __init__(self, view: ChatFeedView, pin_threshold: int = PIN_THRESHOLD):
        super().__init__(pin_threshold)
        self.view = view
        self._bridge = _FeedBridge()
        self._bridge.html_appended.connect(view.append_html)
        self._bridge.placeholder_shown.connect(view.show_placeholder)
        self._bridge.cleared.connect(view.clear)
        self._bridge.scroll_requested.connect(view.scroll_to_bottom)
        view.scrolled.connect(self.on_scroll)

    def scroll_to_bottom(self) -> None:
        self._bridge.scroll_requested.emit()

    def _render_message(self, message: RenderedMessage) -> None:
        self._bridge.html_appended.emit(
            f'<span style="color:{message.color.to_hex()}; font-weight:bold;">'
            f"{escape(message.display_name)}:</span> {message.html_content}"
        )

    def _render_notice(self, text: str) -> None:
        self._bridge.html_appended.emit(
            f'<span style="color:{SYSTEM_COLOR}; font-style:italic;">{escape(text)}</span>'
        )

    def _render_clear(self) -> None:
        self._bridge.cleared.emit()

    def _render_placeholder(self, text: str, is_error: bool) -> None:
        color = ERROR_COLOR if is_error else LOADING_COLOR
        self._bridge.placeholder_shown.emit(
            f'<div style="color:{color};" align="center">{escape(text)}</div>'
        )
