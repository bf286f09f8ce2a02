import logging

import numpy as np
import pytest

from config.constants import NO_SEGMENT
from models.segment import Segment
from services.errors import OutOfBoundsMask
from services.index_map_service import build_index_map, check_mask_bounds


def test_disjoint_segments_resolve_to_their_own_ids():
    segments = [
        Segment(1, [0, 1, 4, 5], "wall"),
        Segment(2, {2, 3}, "floor"),
        Segment(7, np.array([7], dtype=np.uint32), "door"),
    ]
    index_map = build_index_map(segments, 4, 2)

    for seg in segments:
        for idx in seg.mask:
            assert index_map.segment_at(int(idx)) == seg.segment_id
    assert index_map.segment_at(6) is None
    assert int(index_map.table[6]) == NO_SEGMENT
    assert index_map.rejected_segments == ()
    assert index_map.overlap_count == 0


def test_table_is_dense_and_read_only():
    index_map = build_index_map([Segment(3, [0], "x")], 3, 3)
    assert index_map.table.shape == (9,)
    assert index_map.table.dtype == np.int32
    assert index_map.as_image().shape == (3, 3)
    with pytest.raises(ValueError):
        index_map.table[1] = 3


def test_out_of_bounds_segment_is_rejected_not_clipped(caplog):
    segments = [Segment(1, [0, 1], "wall"), Segment(2, [2, 8], "bad"), Segment(3, [-1, 3], "neg")]
    with caplog.at_level(logging.WARNING):
        index_map = build_index_map(segments, 4, 2)

    assert index_map.rejected_segments == (2, 3)
    # aucun pixel du segment fautif n'est écrit, même ceux dans l'image
    assert index_map.segment_at(2) is None
    assert index_map.segment_at(3) is None
    assert index_map.segment_at(0) == 1
    assert "Masque ignoré" in caplog.text


def test_strict_mode_raises_out_of_bounds():
    with pytest.raises(OutOfBoundsMask) as info:
        build_index_map([Segment(5, [0, 100], "bad")], 4, 2, strict=True)
    assert info.value.segment_id == 5
    assert info.value.bad_indices == 1
    assert info.value.example == 100


def test_overlap_is_last_write_wins_and_counted(caplog):
    segments = [Segment(1, [0, 1, 2], "a"), Segment(2, [2, 3], "b")]
    with caplog.at_level(logging.WARNING):
        index_map = build_index_map(segments, 4, 1)
    assert index_map.segment_at(2) == 2
    assert index_map.overlap_count == 1
    assert "recouvre" in caplog.text

    reversed_map = build_index_map(list(reversed(segments)), 4, 1)
    assert reversed_map.segment_at(2) == 1


def test_check_mask_bounds_accepts_empty_mask():
    check_mask_bounds(Segment(1, [], "empty"), 0)


def test_negative_dimensions_are_rejected():
    with pytest.raises(ValueError):
        build_index_map([], -1, 2)


def test_duplicate_segment_ids_are_reported(caplog):
    segments = [Segment(4, [0, 1], "left"), Segment(4, [2, 3], "right")]
    with caplog.at_level(logging.WARNING):
        index_map = build_index_map(segments, 4, 1)
    assert index_map.segment_at(0) == 4
    assert index_map.segment_at(3) == 4
    assert "Segment id 4 en double" in caplog.text
