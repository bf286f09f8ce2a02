import threading

import numpy as np
import pytest

from controllers.session_controller import SessionController
from models.session_model import SessionStatus
from models.texture import TextureUpdate
from services.engine import coerce_textures
from services.errors import (
    BundleLoadError,
    CatalogRefreshError,
    ConcurrentMutation,
    EngineMutationFailure,
    InvalidTextureParams,
    SessionNotReady,
    VisualizerError,
)
from services.pointer_resolver import CanvasRect, PointerSample
from tests.fakes import FakeEngine, ManualWorker
from utils.async_worker import ThreadedAsyncWorker

RECT = CanvasRect(0, 0, 4, 2)
ON_WALL = PointerSample(0.5, 0.5)  # pixel 0
OFF_WALL = PointerSample(3.5, 1.5)  # pixel 7


def test_load_builds_ready_session(loaded_session, engine):
    session = loaded_session
    assert session.status is SessionStatus.READY
    assert session.image_size == (4, 2)
    assert [s.class_name for s in session.segments] == ["wall"]
    assert session.index_map.segment_at(5) == 1
    assert session.textures == []
    assert session.interaction_enabled
    assert session.busy_message is None
    assert session.load_warning is None
    assert engine.calls == [("load", b"bundle")]


def test_failed_load_leaves_empty_session(session, errors):
    session.load_bundle(b"malformed!")
    assert session.status is SessionStatus.EMPTY
    assert session.index_map is None
    assert session.segments == []
    assert session.textures == []
    assert session.render() is None
    assert isinstance(errors[0], BundleLoadError)


def test_failed_reload_discards_previous_session(loaded_session, errors):
    loaded_session.apply_texture(b"img", segment_id=1)
    assert loaded_session.textures

    loaded_session.load_bundle(b"malformed again")

    assert loaded_session.status is SessionStatus.EMPTY
    assert loaded_session.textures == []
    assert loaded_session.catalog.textures == []
    assert loaded_session.index_map is None
    assert isinstance(errors[-1], BundleLoadError)


def test_hover_wall_scenario(loaded_session):
    assert loaded_session.pointer_move(ON_WALL, RECT) == 1
    assert loaded_session.hovered_class_name == "wall"
    assert loaded_session.pointer_move(OFF_WALL, RECT) is None
    assert loaded_session.hovered_segment_id is None
    assert loaded_session.hovered_class_name == "none"


def test_pointer_leave_clears_hover(loaded_session):
    loaded_session.pointer_move(ON_WALL, RECT)
    loaded_session.pointer_leave()
    assert loaded_session.hovered_segment_id is None


def test_pointer_leave_keeps_selection(loaded_session):
    loaded_session.pointer_move(ON_WALL, RECT)
    loaded_session.click(ON_WALL, RECT)
    loaded_session.pointer_leave()
    assert loaded_session.hovered_segment_id is None
    assert loaded_session.selected_segment_id == 1


def test_touch_uses_primary_contact(loaded_session):
    assert loaded_session.touch_move([ON_WALL, OFF_WALL], RECT) == 1
    assert loaded_session.touch_move([], RECT) is None
    assert loaded_session.hovered_segment_id is None


def test_click_on_hovered_segment_selects_it(engine):
    selected = []
    session = SessionController(engine, worker=ManualWorker(), on_segment_selected=selected.append)
    session.load_bundle(b"bundle")
    session.worker.run_all()

    assert session.click(ON_WALL, RECT) is None  # rien de survolé
    session.pointer_move(ON_WALL, RECT)
    assert session.click(OFF_WALL, RECT) is None
    assert session.click(ON_WALL, RECT) == 1
    assert session.selected_segment_id == 1
    assert selected[0].segment_id == 1


def test_apply_texture_round_trip(loaded_session, engine):
    session = loaded_session
    session.pointer_move(ON_WALL, RECT)
    session.click(ON_WALL, RECT)
    version = session.image_version

    assert session.apply_texture(b"img", scale=1.5)

    assert session.textures == coerce_textures(engine.get_textures())
    assert session.textures[0].scale == 1.5
    assert engine.mutation_calls()[0][1] == [0, 1, 4, 5]
    assert session.image_version > version
    assert session.hovered_segment_id is None
    assert not session.is_mutating
    # le nouveau buffer moteur est affiché
    assert tuple(session.render()[0, 0]) == (0, 0, 0, 255)


def test_apply_without_selection_is_a_no_op(loaded_session, engine):
    assert loaded_session.apply_texture(b"img") is False
    assert engine.mutation_calls() == []


def test_second_apply_while_pending_raises(engine):
    worker = ManualWorker()
    session = SessionController(engine, worker=worker)
    session.load_bundle(b"bundle")
    worker.run_all()

    session.apply_texture(b"first", segment_id=1)
    assert session.is_mutating
    assert session.busy_message == "Applying texture…"
    assert not session.interaction_enabled
    with pytest.raises(ConcurrentMutation):
        session.apply_texture(b"second", segment_id=1)
    with pytest.raises(ConcurrentMutation):
        session.remove_texture(1)

    worker.run_all()
    assert [c[2] for c in engine.mutation_calls()] == [b"first"]
    assert len(session.textures) == 1
    assert not session.is_mutating


def test_refresh_finishing_mid_mutation_keeps_session_busy(engine):
    worker = ManualWorker()
    session = SessionController(engine, worker=worker)
    session.load_bundle(b"bundle")
    worker.run_all()

    session.refresh()
    session.apply_texture(b"img", segment_id=1)
    worker.run_next()  # seul le refresh a abouti

    assert session.catalog.is_pending
    assert session.is_mutating
    assert session.busy_message == "Applying texture…"
    assert not session.interaction_enabled
    assert session.click(ON_WALL, RECT) is None

    worker.run_all()
    assert not session.is_mutating
    assert len(session.textures) == 1


def test_click_ignored_while_mutating(engine):
    worker = ManualWorker()
    selected = []
    session = SessionController(engine, worker=worker, on_segment_selected=selected.append)
    session.load_bundle(b"bundle")
    worker.run_all()
    session.pointer_move(ON_WALL, RECT)
    session.apply_texture(b"first", segment_id=1)

    assert session.click(ON_WALL, RECT) is None
    assert session.pointer_move(OFF_WALL, RECT) == 1  # survol figé pendant la mutation
    assert selected == []


def test_input_disabled_while_loading(engine):
    worker = ManualWorker()
    session = SessionController(engine, worker=worker)
    session.load_bundle(b"bundle")

    assert session.is_loading
    assert session.busy_message == "Loading bundle…"
    assert not session.interaction_enabled
    assert session.pointer_move(ON_WALL, RECT) is None
    with pytest.raises(SessionNotReady):
        session.apply_texture(b"img", segment_id=1)


def test_engine_failure_returns_to_idle(loaded_session, engine, errors):
    loaded_session.apply_texture(b"img", segment_id=1)
    before = loaded_session.textures

    engine.fail_next_mutation = RuntimeError("rejected")
    loaded_session.update_texture(1, TextureUpdate(scale=3.0))

    assert loaded_session.textures == before
    assert not loaded_session.is_mutating
    assert isinstance(errors[-1], EngineMutationFailure)


def test_update_and_remove_follow_engine(loaded_session, engine):
    loaded_session.apply_texture(b"img", segment_id=1)
    loaded_session.update_texture_field(1, "rotation", -90)
    assert loaded_session.textures[0].rotation == -90.0
    assert engine.mutation_calls()[-1] == ("update_texture", 1, {"rotation": -90.0})

    loaded_session.remove_texture(1)
    assert loaded_session.textures == []


def test_out_of_range_update_never_reaches_engine(loaded_session, engine):
    loaded_session.apply_texture(b"img", segment_id=1)
    with pytest.raises(InvalidTextureParams):
        loaded_session.update_texture_field(1, "scale", 0.0)
    with pytest.raises(InvalidTextureParams):
        loaded_session.update_texture_field(1, "name", 2)
    assert len(engine.mutation_calls()) == 1
    assert not loaded_session.is_mutating


def test_reload_discards_pending_mutation_result(engine):
    worker = ManualWorker()
    session = SessionController(engine, worker=worker)
    session.load_bundle(b"bundle")
    worker.run_all()
    session.apply_texture(b"img", segment_id=1)

    session.load_bundle(b"bundle-2")
    assert session.status is SessionStatus.LOADING
    assert not session.is_mutating
    worker.run_all()

    assert session.status is SessionStatus.READY
    assert session.textures == []  # le moteur a rechargé
    assert not session.is_mutating


def test_render_highlights_hovered_segment(loaded_session):
    plain = loaded_session.render()
    assert plain.flags.writeable is False
    buffer = loaded_session.model.base_buffer
    np.testing.assert_array_equal(plain.reshape(-1), buffer.pixels)

    loaded_session.pointer_move(ON_WALL, RECT)
    highlighted = loaded_session.render()
    assert tuple(highlighted[0, 1]) == (6, 130, 120, 255)
    assert tuple(highlighted[1, 3]) == tuple(plain[1, 3])
    # la frame précédente n'est pas modifiée
    np.testing.assert_array_equal(plain.reshape(-1), buffer.pixels)

    loaded_session.pointer_leave()
    np.testing.assert_array_equal(loaded_session.render(), plain)


def test_out_of_bounds_segment_is_not_hoverable(errors):
    engine = FakeEngine(segments=[
        {"segment_id": 1, "mask": [0, 1], "class_name": "wall"},
        {"segment_id": 2, "mask": [2, 3, 42], "class_name": "broken"},
    ])
    session = SessionController(engine, worker=ManualWorker(), on_error=errors.append)
    session.load_bundle(b"bundle")
    session.worker.run_all()

    assert session.status is SessionStatus.READY
    assert session.index_map.rejected_segments == (2,)
    assert "2" in session.load_warning
    assert session.pointer_move(PointerSample(2.5, 0.5), RECT) is None
    assert session.pointer_move(ON_WALL, RECT) == 1
    assert errors == []


def test_refresh_pulls_external_changes(loaded_session, engine):
    engine.textures = [{"id": 8, "name": 1, "rotation": 0, "scale": 1, "offset_x": 0.5, "offset_y": 0}]
    done = []
    loaded_session.refresh(on_done=lambda: done.append(True))
    assert done == [True]
    assert [t.id for t in loaded_session.textures] == [8]


def test_texture_view_models(loaded_session):
    loaded_session.apply_texture(b"img", segment_id=1)
    cards = loaded_session.texture_view_models()
    assert cards[0].title == "Texture #1"
    names = [f.name for f in cards[0].fields]
    assert names == ["rotation", "scale", "offset_x", "offset_y"]
    scale = cards[0].fields[1]
    assert (scale.minimum, scale.maximum, scale.step) == (0.2, 5.0, 0.05)


def test_close_tears_down(loaded_session):
    loaded_session.close()
    assert loaded_session.status is SessionStatus.EMPTY
    assert loaded_session.render() is None
    with pytest.raises(SessionNotReady):
        loaded_session.load_bundle(b"bundle")


def test_state_listener_is_notified(engine):
    calls = []
    session = SessionController(engine, worker=ManualWorker(), on_state_changed=lambda: calls.append(1))
    session.load_bundle(b"bundle")
    assert len(calls) == 1
    session.worker.run_all()
    assert len(calls) == 2
    session.pointer_move(ON_WALL, RECT)
    session.pointer_move(ON_WALL, RECT)
    assert len(calls) == 3


def test_threaded_session_rejects_concurrent_apply():
    engine = FakeEngine()
    engine.gate = threading.Event()
    worker = ThreadedAsyncWorker("session-test")
    session = SessionController(engine, worker=worker)
    loaded = threading.Event()
    done = threading.Event()
    try:
        session.load_bundle(b"bundle", on_loaded=loaded.set)
        assert loaded.wait(5)

        session.apply_texture(b"first", segment_id=1, on_done=done.set)
        with pytest.raises(ConcurrentMutation):
            session.apply_texture(b"second", segment_id=1)
        engine.gate.set()
        assert done.wait(5)
    finally:
        session.close()
        worker.stop()

    assert len(engine.mutation_calls()) == 1


def test_buffer_read_failure_after_apply_is_a_domain_error(loaded_session, engine, errors):
    version = loaded_session.image_version
    engine.fail_get_output_buffer = True

    assert loaded_session.apply_texture(b"img", segment_id=1)

    assert isinstance(errors[-1], CatalogRefreshError)
    assert isinstance(errors[-1], VisualizerError)
    assert isinstance(errors[-1].__cause__, RuntimeError)
    assert not loaded_session.is_mutating
    # la texture appliquée par le moteur est bien visible dans le panneau
    assert len(loaded_session.textures) == 1
    assert len(loaded_session.texture_view_models()) == 1
    assert loaded_session.image_version > version
