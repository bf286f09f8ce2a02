"""Sidebar: hovered segment, applied textures and their sliders."""

from __future__ import annotations

from typing import Dict, List

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtWidgets import (
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QScrollArea,
    QSlider,
    QVBoxLayout,
    QWidget,
)

from models.texture import TextureCardModel, TextureFieldModel


class _FieldSlider(QWidget):
    """Float slider on top of an integer QSlider (value = min + pos * step)."""

    committed = pyqtSignal(str, float)

    def __init__(self, field: TextureFieldModel, parent=None) -> None:
        super().__init__(parent)
        self._field = field
        self._title = QLabel(field.label)
        self._value_label = QLabel()
        self._slider = QSlider(Qt.Orientation.Horizontal)
        self._slider.setRange(0, self._position(field.maximum))
        self._slider.setValue(self._position(field.value))
        self._update_label(self._slider.value())

        header = QHBoxLayout()
        header.setContentsMargins(0, 0, 0, 0)
        header.addWidget(self._title)
        header.addStretch(1)
        header.addWidget(self._value_label)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addLayout(header)
        layout.addWidget(self._slider)

        self._slider.valueChanged.connect(self._on_value_changed)
        self._slider.sliderReleased.connect(self._commit)

    def _position(self, value: float) -> int:
        return int(round((value - self._field.minimum) / self._field.step))

    def _value(self, position: int) -> float:
        value = self._field.minimum + position * self._field.step
        return round(min(self._field.maximum, max(self._field.minimum, value)), 6)

    def _update_label(self, position: int) -> None:
        self._value_label.setText(f"{self._value(position):.2f}")

    def _on_value_changed(self, position: int) -> None:
        self._update_label(position)
        # Clavier / molette : pas de sliderReleased
        if not self._slider.isSliderDown():
            self._commit()

    def _commit(self) -> None:
        self.committed.emit(self._field.name, self._value(self._slider.value()))


class TexturePanelView(QWidget):
    """Lists applied textures; edits are emitted, never applied locally."""

    texture_update_requested = pyqtSignal(int, str, float)
    texture_remove_requested = pyqtSignal(int)

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self.setMinimumWidth(260)
        self.setMaximumWidth(320)

        self._hover_label = QLabel()
        self._hover_label.setTextFormat(Qt.TextFormat.RichText)
        self._title = QLabel("<b>Textures</b>")
        self._placeholder = QLabel()

        self._cards_host = QWidget()
        self._cards_layout = QVBoxLayout(self._cards_host)
        self._cards_layout.setContentsMargins(0, 0, 0, 0)
        self._cards_layout.addStretch(1)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(self._cards_host)

        layout = QVBoxLayout(self)
        layout.addWidget(self._hover_label)
        layout.addWidget(self._title)
        layout.addWidget(self._placeholder)
        layout.addWidget(scroll, 1)

        self._cards: Dict[int, QGroupBox] = {}
        self.set_hovered_name("none")
        self.set_cards([], bundle_loaded=False)

    def set_hovered_name(self, name: str) -> None:
        self._hover_label.setText(f"Hovering: <b>{name}</b>")

    def set_cards(self, cards: List[TextureCardModel], *, bundle_loaded: bool) -> None:
        """Rebuild every card from the engine catalog (no incremental merge)."""
        for box in self._cards.values():
            self._cards_layout.removeWidget(box)
            box.deleteLater()
        self._cards.clear()

        if not bundle_loaded:
            self._placeholder.setText("Load a bundle and click a segment")
        elif not cards:
            self._placeholder.setText("No textures yet")
        self._placeholder.setVisible(not bundle_loaded or not cards)

        for card in cards:
            box = self._build_card(card)
            self._cards_layout.insertWidget(self._cards_layout.count() - 1, box)
            self._cards[card.texture_id] = box

    def _build_card(self, card: TextureCardModel) -> QGroupBox:
        box = QGroupBox(card.title)
        layout = QVBoxLayout(box)
        remove = QPushButton("Remove")
        remove.clicked.connect(lambda _=False, tid=card.texture_id: self.texture_remove_requested.emit(tid))
        layout.addWidget(remove, alignment=Qt.AlignmentFlag.AlignRight)
        for field in card.fields:
            slider = _FieldSlider(field, parent=box)
            slider.committed.connect(
                lambda name, value, tid=card.texture_id: self.texture_update_requested.emit(tid, name, value)
            )
            layout.addWidget(slider)
        return box
