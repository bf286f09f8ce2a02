import logging
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtGui import QAction, QCursor
from PyQt6.QtWidgets import (
    QFileDialog,
    QHBoxLayout,
    QMainWindow,
    QMenu,
    QMessageBox,
    QWidget,
)

from config.constants import BUNDLE_FILE_FILTER, TEXTURE_FILE_FILTER, TEXTURE_SAMPLES
from controllers.session_controller import SessionController
from models.segment import Segment
from services.engine import RenderingEngine
from services.errors import ConcurrentMutation, InvalidTextureParams, SessionNotReady
from views.segment_canvas_view import SegmentCanvasView
from views.texture_panel_view import TexturePanelView


class _SessionBridge(QObject):
    """Relaie les callbacks du worker moteur vers le thread GUI (connexions en file)."""

    state_changed = pyqtSignal()
    segment_selected = pyqtSignal(object)
    error_raised = pyqtSignal(object)


class MasterController:
    """Coordinates the session controller and the Qt views without embedding business logic."""

    def __init__(self, engine: RenderingEngine, main_window: Optional[QMainWindow] = None) -> None:
        self.logger = logging.getLogger(__name__)
        self.main_window = main_window or QMainWindow()
        self.main_window.setWindowTitle("Texture Visualizer")
        self.main_window.resize(1280, 800)

        self._bridge = _SessionBridge()
        self.session = SessionController(
            engine,
            logger=self.logger,
            on_state_changed=self._bridge.state_changed.emit,
            on_segment_selected=self._bridge.segment_selected.emit,
            on_error=self._bridge.error_raised.emit,
        )

        self.texture_panel = TexturePanelView()
        self.canvas_view = SegmentCanvasView()
        central = QWidget()
        layout = QHBoxLayout(central)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(16)
        layout.addWidget(self.texture_panel)
        layout.addWidget(self.canvas_view, 1)
        self.main_window.setCentralWidget(central)

        self._cards_key: Optional[tuple] = None
        self._warned_index_map = None

        self._connect_actions()
        self._connect_signals()
        self._refresh_views()

    def _connect_actions(self) -> None:
        """Wire menu actions to controller handlers."""
        file_menu = self.main_window.menuBar().addMenu("&Fichier")
        open_action = QAction("Ouvrir un bundle…", self.main_window)
        open_action.triggered.connect(self._on_open_bundle)
        file_menu.addAction(open_action)
        quit_action = QAction("Quitter", self.main_window)
        quit_action.triggered.connect(self._on_quit)
        file_menu.addAction(quit_action)

    def _connect_signals(self) -> None:
        """Wire view and session signals to controller handlers."""
        self._bridge.state_changed.connect(self._refresh_views)
        self._bridge.segment_selected.connect(self._on_segment_selected)
        self._bridge.error_raised.connect(self._on_error)

        self.canvas_view.pointer_moved.connect(self.session.pointer_move)
        self.canvas_view.pointer_left.connect(self.session.pointer_leave)
        self.canvas_view.clicked.connect(self.session.click)
        self.canvas_view.touch_moved.connect(self.session.touch_move)
        self.canvas_view.touch_released.connect(self.session.touch_click)

        self.texture_panel.texture_update_requested.connect(self._on_texture_update)
        self.texture_panel.texture_remove_requested.connect(self._on_texture_remove)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def run(self) -> None:
        self.main_window.show()

    def load_bundle_file(self, path: str) -> None:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            self.logger.error("Lecture du bundle impossible: %s", exc)
            QMessageBox.critical(self.main_window, "Bundle", f"Lecture impossible:\n{exc}")
            return
        self.logger.info("Bundle sélectionné: %s", path)
        self.session.load_bundle(data)

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #
    def _on_open_bundle(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self.main_window, "Ouvrir un bundle", "", BUNDLE_FILE_FILTER)
        if path:
            self.load_bundle_file(path)

    def _on_segment_selected(self, segment: Segment) -> None:
        """Propose the texture choices for the clicked segment, then apply."""
        menu = QMenu(self.main_window)
        upload = menu.addAction("Upload Texture…")
        samples = {}
        for sample in TEXTURE_SAMPLES:
            sample_path = Path(sample["path"])
            if sample_path.exists():
                samples[menu.addAction(sample_path.name)] = sample
        chosen = menu.exec(QCursor.pos())
        if chosen is None:
            return

        if chosen is upload:
            path, _ = QFileDialog.getOpenFileName(
                self.main_window, "Sélectionner une texture", "", TEXTURE_FILE_FILTER
            )
            if not path:
                return
            scale = 1.0
        else:
            path = samples[chosen]["path"]
            scale = float(samples[chosen]["scale"])

        try:
            image_bytes = Path(path).read_bytes()
        except OSError as exc:
            QMessageBox.warning(self.main_window, "Texture", f"Lecture impossible:\n{exc}")
            return
        self.logger.info("Texture %s sur le segment %d (%s)", path, segment.segment_id, segment.class_name)
        self._guarded(
            lambda: self.session.apply_texture(image_bytes, scale, segment_id=segment.segment_id)
        )

    def _on_texture_update(self, texture_id: int, field_name: str, value: float) -> None:
        self._guarded(lambda: self.session.update_texture_field(texture_id, field_name, value))

    def _on_texture_remove(self, texture_id: int) -> None:
        self._guarded(lambda: self.session.remove_texture(texture_id))

    def _guarded(self, action) -> None:
        try:
            action()
        except ConcurrentMutation as exc:
            self.logger.info("%s", exc)
            self.main_window.statusBar().showMessage("Une opération de texture est déjà en cours.", 3000)
        except (InvalidTextureParams, SessionNotReady) as exc:
            self.main_window.statusBar().showMessage(str(exc), 5000)

    def _on_error(self, exc: Exception) -> None:
        self.logger.error("Erreur de session: %s", exc)
        QMessageBox.warning(self.main_window, type(exc).__name__, str(exc))
        self._refresh_views()

    def _refresh_views(self) -> None:
        """Push the session state to the views."""
        session = self.session
        self.canvas_view.set_interactive(session.interaction_enabled)
        self.canvas_view.set_busy_message(session.busy_message)
        self.canvas_view.set_frame(session.render())
        self.texture_panel.setEnabled(session.interaction_enabled)
        self.texture_panel.set_hovered_name(session.hovered_class_name)
        index_map = session.index_map
        cards_key = (session.image_version, index_map is not None)
        if cards_key != self._cards_key:
            self._cards_key = cards_key
            self.texture_panel.set_cards(session.texture_view_models(), bundle_loaded=cards_key[1])
        if index_map is not None and index_map is not self._warned_index_map:
            self._warned_index_map = index_map
            warning = session.load_warning
            if warning:
                self.main_window.statusBar().showMessage(warning, 8000)

    def shutdown(self) -> None:
        """Explicit teardown of the session (stops the engine worker)."""
        self.session.close()

    def _on_quit(self) -> None:
        self.shutdown()
        self.main_window.close()
