"""Tests for record access and field decoding."""

import math

import numpy as np
import pytest

from gs360_SplatMerge import (
    HeaderParseError,
    MissingScaleFieldError,
    parse_ply_header,
    read_position,
    read_scale_magnitude,
    record_positions,
    record_scale_magnitudes,
    record_view,
    voxel_keys,
)


def test_read_position():
    record = np.array([1.5, -2.0, 3.25, 9.0], dtype="<f4").tobytes()
    assert read_position(record) == (1.5, -2.0, 3.25)


def test_read_scale_magnitude_uses_largest_log_scale():
    logs = [math.log(0.5), math.log(2.0), math.log(0.1)]
    record = np.array([0.0, 0.0, 0.0, 7.0] + logs, dtype="<f4").tobytes()

    assert read_scale_magnitude(record, 16) == pytest.approx(2.0, rel=1e-6)


def test_read_scale_magnitude_ignores_nan_component():
    record = np.array([np.nan, math.log(0.5), math.log(0.01)], dtype="<f4").tobytes()

    assert read_scale_magnitude(record, 0) == pytest.approx(0.5, rel=1e-6)


def test_record_scale_magnitudes_ignore_nan_components():
    logs = np.array(
        [
            [np.nan, math.log(0.5), math.log(0.01)],
            [math.log(0.02), np.nan, np.nan],
            [np.nan, np.nan, np.nan],
        ],
        dtype="<f4",
    )
    records = np.frombuffer(logs.tobytes(), dtype=np.uint8).reshape(3, 12)
    mags = record_scale_magnitudes(records, 0)

    np.testing.assert_allclose(mags[:2], [0.5, 0.02], rtol=1e-6)
    assert np.isnan(mags[2])


def test_record_view_is_zero_copy(write_splat_ply):
    path = write_splat_ply("a.ply", [[0, 0, 0], [1, 2, 3], [4, 5, 6]])
    data = path.read_bytes()
    schema = parse_ply_header(data)
    records = record_view(data, schema)

    assert records.shape == (3, 68)
    assert records[1].tobytes() == data[schema.header_len + 68 : schema.header_len + 136]
    assert read_position(records[2].tobytes()) == (4.0, 5.0, 6.0)


def test_record_positions(write_splat_ply):
    xyz = np.array([[0.25, -1.0, 8.0], [1.0, 2.0, 3.0]], dtype=np.float32)
    data = write_splat_ply("a.ply", xyz).read_bytes()
    schema = parse_ply_header(data)

    np.testing.assert_array_equal(record_positions(record_view(data, schema)), xyz)


def test_record_scale_magnitudes(write_splat_ply):
    logs = np.log(np.array([[0.05, 0.01, 0.02], [0.3, 1.5, 0.2]], dtype=np.float32))
    data = write_splat_ply("a.ply", [[0, 0, 0], [1, 1, 1]], log_scale=logs).read_bytes()
    schema = parse_ply_header(data)
    mags = record_scale_magnitudes(record_view(data, schema), schema.scale_offset)

    np.testing.assert_allclose(mags, [0.05, 1.5], rtol=1e-6)


def test_record_scale_magnitudes_without_scale_field(write_xyz_rgb_ply):
    data = write_xyz_rgb_ply("a.ply", [[0, 0, 0]]).read_bytes()
    schema = parse_ply_header(data)

    with pytest.raises(MissingScaleFieldError):
        record_scale_magnitudes(record_view(data, schema), schema.scale_offset)


def test_record_scale_magnitudes_scale_field_past_record_end():
    records = np.zeros((2, 16), dtype=np.uint8)
    with pytest.raises(MissingScaleFieldError, match="no room"):
        record_scale_magnitudes(records, 12)


def test_record_positions_requires_xyz():
    with pytest.raises(HeaderParseError, match="too small"):
        record_positions(np.zeros((1, 8), dtype=np.uint8))


def test_record_positions_empty():
    assert record_positions(np.zeros((0, 12), dtype=np.uint8)).shape == (0, 3)


class TestVoxelKeys:
    def test_floor_division(self):
        xyz = np.array([[-0.1, 0.49, 0.5], [1.0, -1.0, 2.74]], dtype=np.float32)
        keys = voxel_keys(xyz, 0.5)

        np.testing.assert_array_equal(keys, [[-1, 0, 1], [2, -2, 5]])

    def test_non_finite_coordinates(self):
        xyz = np.array([[np.nan, np.inf, -np.inf]], dtype=np.float32)
        keys = voxel_keys(xyz, 0.5)

        np.testing.assert_array_equal(keys, [[0, 2**31 - 1, -(2**31)]])

    @pytest.mark.parametrize("size", [0.0, -1.0, float("nan")])
    def test_invalid_size(self, size):
        with pytest.raises(ValueError):
            voxel_keys(np.zeros((1, 3), dtype=np.float32), size)
