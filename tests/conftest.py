"""Shared pytest fixtures for the splat merge tests."""

import numpy as np
import pytest
from plyfile import PlyData, PlyElement


# Layout of a typical 3DGS training output (68-byte records).
SPLAT_DTYPE = [
    ("x", "f4"),
    ("y", "f4"),
    ("z", "f4"),
    ("nx", "f4"),
    ("ny", "f4"),
    ("nz", "f4"),
    ("f_dc_0", "f4"),
    ("f_dc_1", "f4"),
    ("f_dc_2", "f4"),
    ("opacity", "f4"),
    ("scale_0", "f4"),
    ("scale_1", "f4"),
    ("scale_2", "f4"),
    ("rot_0", "f4"),
    ("rot_1", "f4"),
    ("rot_2", "f4"),
    ("rot_3", "f4"),
]

# Plain colored point cloud (15-byte records, no scale).
XYZ_RGB_DTYPE = [
    ("x", "f4"),
    ("y", "f4"),
    ("z", "f4"),
    ("red", "u1"),
    ("green", "u1"),
    ("blue", "u1"),
]


def _write_ply(path, arr):
    el = PlyElement.describe(arr, "vertex")
    PlyData([el], text=False, byte_order="<").write(str(path))
    return path


@pytest.fixture
def write_splat_ply(tmp_path):
    """Factory writing a 3DGS-style PLY with the given positions.

    log_scale may be one value per point or an (N, 3) array of log scales.
    """

    def _write(name, xyz, log_scale=None):
        xyz = np.asarray(xyz, dtype=np.float32).reshape(-1, 3)
        arr = np.zeros(xyz.shape[0], dtype=SPLAT_DTYPE)
        arr["x"] = xyz[:, 0]
        arr["y"] = xyz[:, 1]
        arr["z"] = xyz[:, 2]
        arr["opacity"] = 1.0
        arr["rot_0"] = 1.0
        # Distinct per-point payload so records can be told apart.
        arr["f_dc_0"] = np.arange(xyz.shape[0], dtype=np.float32)
        if log_scale is not None:
            ls = np.asarray(log_scale, dtype=np.float32)
            if ls.ndim == 1:
                ls = np.repeat(ls[:, None], 3, axis=1)
            arr["scale_0"] = ls[:, 0]
            arr["scale_1"] = ls[:, 1]
            arr["scale_2"] = ls[:, 2]
        return _write_ply(tmp_path / name, arr)

    return _write


@pytest.fixture
def write_xyz_rgb_ply(tmp_path):
    """Factory writing an XYZ+RGB PLY without scale attributes."""

    def _write(name, xyz, dtype=None):
        xyz = np.asarray(xyz, dtype=np.float32).reshape(-1, 3)
        arr = np.zeros(xyz.shape[0], dtype=dtype or XYZ_RGB_DTYPE)
        arr["x"] = xyz[:, 0]
        arr["y"] = xyz[:, 1]
        arr["z"] = xyz[:, 2]
        return _write_ply(tmp_path / name, arr)

    return _write


@pytest.fixture
def ply_records():
    """Return (schema, raw record bytes) of a PLY file on disk."""
    from gs360_SplatMerge import parse_ply_header

    def _read(path):
        data = path.read_bytes()
        schema = parse_ply_header(data)
        return schema, data[schema.header_len :]

    return _read
