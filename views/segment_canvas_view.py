"""Canvas displaying the engine frame and forwarding pointer/touch input."""

from __future__ import annotations

from typing import List, Optional

import numpy as np
from PyQt6.QtCore import QEvent, QRectF, Qt, pyqtSignal
from PyQt6.QtGui import QColor, QImage, QMouseEvent, QPainter
from PyQt6.QtWidgets import QFrame

from config.constants import CANVAS_BACKGROUND, CANVAS_FOREGROUND
from services.pointer_resolver import CanvasRect, PointerSample


class SegmentCanvasView(QFrame):
    """Paints the current RGBA frame (aspect preserved) and emits pointer samples."""

    pointer_moved = pyqtSignal(object, object)  # PointerSample, CanvasRect
    pointer_left = pyqtSignal()
    clicked = pyqtSignal(object, object)
    touch_moved = pyqtSignal(object, object)  # list[PointerSample], CanvasRect
    touch_released = pyqtSignal(object, object)

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self._image: Optional[QImage] = None
        self._interactive: bool = True
        self._busy_message: Optional[str] = None
        self._last_touches: List[PointerSample] = []
        self.setMouseTracking(True)
        self.setAttribute(Qt.WidgetAttribute.WA_AcceptTouchEvents, True)
        self.setMinimumSize(320, 240)
        self.setStyleSheet(f"background-color: {CANVAS_BACKGROUND}; color: {CANVAS_FOREGROUND};")
        self.setCursor(Qt.CursorShape.PointingHandCursor)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def set_frame(self, frame: Optional[np.ndarray]) -> None:
        """Display an (H, W, 4) uint8 RGBA frame, or clear the canvas."""
        if frame is None or frame.size == 0:
            self._image = None
        else:
            rgba = np.ascontiguousarray(frame, dtype=np.uint8)
            h, w = rgba.shape[:2]
            qimage = QImage(rgba.data, w, h, w * 4, QImage.Format.Format_RGBA8888)
            self._image = qimage.copy()
        self.update()

    def set_interactive(self, enabled: bool) -> None:
        """Disable hit-testing while a load or a texture mutation is running."""
        self._interactive = bool(enabled)
        self.setCursor(
            Qt.CursorShape.PointingHandCursor if self._interactive else Qt.CursorShape.BusyCursor
        )

    def set_busy_message(self, message: Optional[str]) -> None:
        self._busy_message = message
        self.update()

    def canvas_rect(self) -> CanvasRect:
        """On-screen rectangle of the image, in widget coordinates."""
        target = self._target_rect()
        return CanvasRect(target.left(), target.top(), target.width(), target.height())

    # ------------------------------------------------------------------ #
    # Painting
    # ------------------------------------------------------------------ #
    def _target_rect(self) -> QRectF:
        if self._image is None or self._image.width() == 0 or self._image.height() == 0:
            return QRectF(0, 0, 0, 0)
        scale = min(self.width() / self._image.width(), self.height() / self._image.height())
        w = self._image.width() * scale
        h = self._image.height() * scale
        return QRectF((self.width() - w) / 2.0, (self.height() - h) / 2.0, w, h)

    def paintEvent(self, event) -> None:
        super().paintEvent(event)
        painter = QPainter(self)
        if self._image is not None:
            painter.drawImage(self._target_rect(), self._image)
        if self._busy_message:
            painter.fillRect(self.rect(), QColor(0, 0, 0, 153))
            painter.setPen(QColor(CANVAS_FOREGROUND))
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, self._busy_message)
        painter.end()

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #
    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        if self._interactive:
            self.pointer_moved.emit(self._sample(event), self.canvas_rect())
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        if self._interactive and event.button() == Qt.MouseButton.LeftButton:
            self.clicked.emit(self._sample(event), self.canvas_rect())
        super().mouseReleaseEvent(event)

    def leaveEvent(self, event) -> None:
        self.pointer_left.emit()
        super().leaveEvent(event)

    def event(self, event) -> bool:
        etype = event.type()
        if etype in (QEvent.Type.TouchBegin, QEvent.Type.TouchUpdate):
            if self._interactive:
                self._last_touches = self._touch_samples(event)
                self.touch_moved.emit(self._last_touches, self.canvas_rect())
            event.accept()
            return True
        if etype == QEvent.Type.TouchEnd:
            if self._interactive:
                self.touch_released.emit(self._last_touches, self.canvas_rect())
            self._last_touches = []
            event.accept()
            return True
        if etype == QEvent.Type.TouchCancel:
            self._last_touches = []
            self.pointer_left.emit()
            event.accept()
            return True
        return super().event(event)

    @staticmethod
    def _sample(event: QMouseEvent) -> PointerSample:
        pos = event.position()
        return PointerSample(pos.x(), pos.y())

    @staticmethod
    def _touch_samples(event) -> List[PointerSample]:
        return [PointerSample(p.position().x(), p.position().y()) for p in event.points()]
