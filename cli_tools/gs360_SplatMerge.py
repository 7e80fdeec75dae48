#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Merge two 3DGS splat PLY files into a single binary little-endian PLY.

Both inputs are memory-mapped and addressed record by record; the vertex
records that are kept are copied verbatim behind the first input's header
with an updated vertex count. Two selection modes are available:

- voxel: per voxel cell, keep only the points of the denser input
  (ties go to input 1), so overlapping captures are not duplicated.
- scale: keep splats whose largest scale is below the threshold from
  input 1 and the remaining (large) splats from input 2.

Either input may be "-" to run the selection on a single file.

Dependencies: numpy, plyfile
    pip install numpy plyfile
"""


from __future__ import annotations
import argparse
import math
import os
import sys
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from plyfile import PlyData, PlyParseError

MODE_CHOICES = ("voxel", "scale")
DEFAULT_MODE = "voxel"
DEFAULT_VOXEL_SIZE = 0.5
DEFAULT_THRESHOLD = 0.1
ABSENT_INPUT = "-"

# Byte width of every PLY scalar type name.
PLY_TYPE_SIZES: Dict[str, int] = {
    "char": 1,
    "int8": 1,
    "uchar": 1,
    "uint8": 1,
    "short": 2,
    "int16": 2,
    "ushort": 2,
    "uint16": 2,
    "int": 4,
    "int32": 4,
    "uint": 4,
    "uint32": 4,
    "float": 4,
    "float32": 4,
    "double": 8,
    "float64": 8,
}

POSITION_BYTES = 12
SCALE_BYTES = 12
SCAN_CHUNK = 4096
WRITE_CHUNK_RECORDS = 1 << 18

_INT32_MIN = float(np.iinfo(np.int32).min)
_INT32_MAX = float(np.iinfo(np.int32).max)


# ------------------------------ Errors ------------------------------


class PlyMergeError(ValueError):
    """Base class for every failure of a merge run."""


class PlyIOError(PlyMergeError):
    """An input could not be opened or mapped, or the output not written."""


class HeaderParseError(PlyMergeError):
    """The PLY header is malformed or describes an unsupported layout."""


class SchemaMismatchError(PlyMergeError):
    """Both inputs are present but their vertex record strides differ."""


class MissingScaleFieldError(PlyMergeError):
    """Scale mode was requested for an input without scale_0..2 fields."""


class InvalidConfigurationError(PlyMergeError):
    """The run configuration cannot be executed."""


# ------------------------------ Utilities ------------------------------


def _fmt3(a) -> str:
    """Format a coordinate triple for logging.

    Args:
        a: Iterable with three numeric entries.

    Returns:
        Compact string representation of the first three values.
    """
    return f"({float(a[0]):.6g}, {float(a[1]):.6g}, {float(a[2]):.6g})"


@dataclass
class PointCloudStats:
    """Statistics derived from a point cloud bounding volume.

    Attributes:
        count: Number of points in the cloud.
        xyz_min: Minimum coordinates along each axis.
        xyz_max: Maximum coordinates along each axis.
        extent: Length of the bounding box along each axis.
        volume: Volume of the bounding box in cubic units.
    """

    count: int
    xyz_min: np.ndarray
    xyz_max: np.ndarray
    extent: np.ndarray
    volume: float


def compute_point_cloud_stats(xyz: np.ndarray) -> PointCloudStats:
    """Compute bounding box statistics for a point cloud.

    Non-finite coordinates are ignored for the bounding box but still
    counted as points.

    Args:
        xyz: Array of shape (N, 3) containing point coordinates.

    Returns:
        Aggregated statistics for the provided points.
    """
    n = int(xyz.shape[0])
    finite = xyz[np.all(np.isfinite(xyz), axis=1)]
    if finite.shape[0] == 0:
        zeros = np.zeros(3, dtype=np.float32)
        return PointCloudStats(n, zeros, zeros, zeros, 0.0)

    xyz_min = np.asarray(finite.min(axis=0), dtype=np.float32)
    xyz_max = np.asarray(finite.max(axis=0), dtype=np.float32)
    extent = np.maximum(xyz_max - xyz_min, 1e-9)
    volume = float(extent[0] * extent[1] * extent[2])
    return PointCloudStats(n, xyz_min, xyz_max, extent, volume)


def print_point_cloud_stats(label: str, stats: PointCloudStats) -> None:
    print(
        f"[aabb] {label}: points={stats.count:,}  min={_fmt3(stats.xyz_min)}  "
        f"max={_fmt3(stats.xyz_max)}  extent={_fmt3(stats.extent)}  "
        f"volume~{stats.volume:.6g}"
    )


def _resolve_path(path: str) -> str:
    if path == ABSENT_INPUT:
        return path
    full_path = os.path.expanduser(path)
    if not os.path.isabs(full_path):
        full_path = os.path.abspath(full_path)
    return full_path


# ------------------------------ Header ------------------------------


@dataclass
class PlySchema:
    """Byte layout of a binary PLY file discovered from its header.

    Attributes:
        header_len: Byte offset where the vertex records begin.
        vertex_count: Number of vertex records.
        stride: Size of one vertex record in bytes.
        raw_header: Header text, one line per declaration, LF terminated.
        scale_offset: Byte offset of the scale_0 field inside a record, or
            None when the file has no scale attributes.
        fmt: Declared PLY format.
        properties: Ordered (type, name) pairs of the vertex element.
    """

    header_len: int
    vertex_count: int
    stride: int
    raw_header: str
    scale_offset: Optional[int] = None
    fmt: Optional[str] = None
    properties: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def data_len(self) -> int:
        return self.vertex_count * self.stride


def _find_newline(buf, start: int) -> int:
    """Return the index of the next LF byte at or after start, or -1."""
    size = len(buf)
    pos = start
    while pos < size:
        chunk = bytes(buf[pos : pos + SCAN_CHUNK])
        hit = chunk.find(b"\n")
        if hit >= 0:
            return pos + hit
        pos += len(chunk)
    return -1


def parse_ply_header(buf) -> PlySchema:
    """Parse the text header at the start of a PLY byte buffer.

    The header is walked with an explicit byte cursor so that the offset of
    the first vertex record is exact for both LF and CRLF terminated
    headers. Lines are decoded as UTF-8. Blank lines before and between
    declarations are skipped; the binary
    section starts right after the terminator of the end_header line.

    Args:
        buf: Bytes-like object or uint8 array holding the whole file.

    Returns:
        Schema describing the vertex record layout.

    Raises:
        HeaderParseError: If the header is malformed, declares something
            other than binary little-endian fixed-size vertex records, or
            the data section is shorter than the header announces.
    """
    size = len(buf)
    cursor = 0
    lines: List[str] = []
    fmt: Optional[str] = None
    vertex_count: Optional[int] = None
    stride = 0
    scale_offset: Optional[int] = None
    properties: List[Tuple[str, str]] = []
    element: Optional[str] = None

    while cursor < size and int(buf[cursor]) in (0x0A, 0x0D):
        cursor += 1
    while True:
        if cursor >= size:
            raise HeaderParseError("end_header not found before end of data")
        end = _find_newline(buf, cursor)
        if end < 0:
            end = size
        raw = bytes(buf[cursor:end])
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise HeaderParseError(
                f"unreadable header line at byte {cursor}"
            ) from exc
        cursor = min(end + 1, size)

        if not lines and line.strip() != "ply":
            raise HeaderParseError("missing 'ply' magic line")
        lines.append(line)
        if line.strip() == "end_header":
            break
        while cursor < size and int(buf[cursor]) in (0x0A, 0x0D):
            cursor += 1

        tokens = line.split()
        if not tokens:
            continue
        keyword = tokens[0]
        if keyword == "format":
            fmt = tokens[1] if len(tokens) > 1 else ""
            if fmt != "binary_little_endian":
                raise HeaderParseError(
                    f"unsupported PLY format: {fmt or '<missing>'} "
                    "(only binary_little_endian can be merged)"
                )
        elif tokens[:2] == ["element", "vertex"]:
            try:
                vertex_count = int(tokens[-1])
            except ValueError as exc:
                raise HeaderParseError(
                    f"invalid vertex count in '{line}'"
                ) from exc
            if vertex_count < 0:
                raise HeaderParseError(f"invalid vertex count in '{line}'")
            element = "vertex"
        elif keyword == "element":
            # Empty elements carry no bytes and are tolerated.
            if len(tokens) < 3 or tokens[2] != "0":
                raise HeaderParseError(
                    f"unsupported element '{line}'; only vertex records "
                    "can be merged"
                )
            element = tokens[1]
        elif keyword == "property":
            if element is None:
                raise HeaderParseError(f"property outside an element: '{line}'")
            if element != "vertex":
                continue
            if len(tokens) >= 2 and tokens[1] == "list":
                raise HeaderParseError(
                    f"list properties are not supported: '{line}'"
                )
            if len(tokens) < 3:
                raise HeaderParseError(f"malformed property line: '{line}'")
            type_name, name = tokens[1], tokens[2]
            width = PLY_TYPE_SIZES.get(type_name)
            if width is None:
                raise HeaderParseError(f"unsupported PLY type: {type_name}")
            if name.endswith("scale_0"):
                scale_offset = stride
            stride += width
            properties.append((type_name, name))

    if fmt is None:
        raise HeaderParseError("PLY format not found")
    if vertex_count is None:
        raise HeaderParseError("no 'element vertex' declaration")

    schema = PlySchema(
        header_len=cursor,
        vertex_count=vertex_count,
        stride=stride,
        raw_header="".join(f"{ln}\n" for ln in lines),
        scale_offset=scale_offset,
        fmt=fmt,
        properties=properties,
    )
    available = size - schema.header_len
    if schema.data_len > available:
        raise HeaderParseError(
            f"vertex data truncated: header announces {schema.data_len:,} "
            f"bytes ({vertex_count:,} x {stride}), file holds {available:,}"
        )
    return schema


# ------------------------------ Records ------------------------------


def record_view(buf, schema: PlySchema) -> np.ndarray:
    """Return a zero-copy (vertex_count, stride) uint8 view of the records."""
    return np.ndarray(
        shape=(schema.vertex_count, schema.stride),
        dtype=np.uint8,
        buffer=buf,
        offset=schema.header_len,
    )


def read_position(record) -> Tuple[float, float, float]:
    """Decode x, y, z from the first 12 bytes of one record.

    Args:
        record: Raw bytes of a single vertex record.

    Returns:
        Position as a tuple of three floats.
    """
    xyz = np.frombuffer(record, dtype="<f4", count=3)
    return float(xyz[0]), float(xyz[1]), float(xyz[2])


def read_scale_magnitude(record, scale_offset: int) -> float:
    """Decode the largest splat extent of one record.

    The three scale fields store natural logarithms, so the magnitude is
    exp(max(scale_0, scale_1, scale_2)). NaN components are ignored unless
    all three are NaN.

    Args:
        record: Raw bytes of a single vertex record.
        scale_offset: Byte offset of scale_0 inside the record.

    Returns:
        Scale magnitude as a float.
    """
    logs = np.frombuffer(record, dtype="<f4", count=3, offset=scale_offset)
    with np.errstate(over="ignore"):
        return float(np.exp(np.fmax.reduce(logs)))


def _float3_columns(records: np.ndarray, offset: int) -> np.ndarray:
    cols = np.ascontiguousarray(records[:, offset : offset + 12])
    return cols.view("<f4").reshape(-1, 3).astype(np.float32, copy=False)


def record_positions(records: np.ndarray) -> np.ndarray:
    """Decode the positions of all records.

    Args:
        records: (N, stride) uint8 record view.

    Returns:
        Array of shape (N, 3) with float32 coordinates.

    Raises:
        HeaderParseError: If a record is too short to hold x, y, z.
    """
    if records.shape[1] < POSITION_BYTES:
        raise HeaderParseError(
            f"record stride {records.shape[1]} is too small for x, y, z"
        )
    return _float3_columns(records, 0)


def record_scale_magnitudes(
    records: np.ndarray, scale_offset: Optional[int]
) -> np.ndarray:
    """Decode the scale magnitude of all records.

    Args:
        records: (N, stride) uint8 record view.
        scale_offset: Byte offset of scale_0 inside a record.

    Returns:
        Array of shape (N,) with float32 magnitudes.

    Raises:
        MissingScaleFieldError: If there is no scale field, or its three
            floats do not fit inside the record.
    """
    if scale_offset is None:
        raise MissingScaleFieldError("no property ending in 'scale_0'")
    if scale_offset + SCALE_BYTES > records.shape[1]:
        raise MissingScaleFieldError(
            f"scale_0 at byte {scale_offset} leaves no room for three "
            f"floats in a {records.shape[1]}-byte record"
        )
    logs = _float3_columns(records, scale_offset)
    with np.errstate(over="ignore"):
        return np.exp(np.fmax.reduce(logs, axis=1))


@dataclass
class PlySource:
    """A memory-mapped input file and its parsed layout."""

    path: str
    buffer: np.ndarray
    schema: PlySchema

    @property
    def records(self) -> np.ndarray:
        return record_view(self.buffer, self.schema)


def open_ply_source(path: str) -> Optional[PlySource]:
    """Map a PLY file read-only and parse its header.

    Args:
        path: File path, or ABSENT_INPUT for a missing input.

    Returns:
        The mapped source, or None for ABSENT_INPUT.

    Raises:
        PlyIOError: If the file cannot be opened or mapped.
        HeaderParseError: If the header cannot be parsed.
    """
    if path == ABSENT_INPUT:
        return None
    try:
        if os.path.getsize(path) == 0:
            raise HeaderParseError(f"{path}: empty file")
        buf = np.memmap(path, dtype=np.uint8, mode="r")
    except OSError as exc:
        raise PlyIOError(f"cannot open {path}: {exc}") from exc
    try:
        schema = parse_ply_header(buf)
    except HeaderParseError as exc:
        raise HeaderParseError(f"{path}: {exc}") from exc
    return PlySource(path, buf, schema)


def resolve_layout(
    src1: Optional[PlySource], src2: Optional[PlySource]
) -> Tuple[int, str]:
    """Pick the record stride and header template for the output.

    Only the stride has to agree between the inputs; differing property
    lists are reported but accepted.

    Returns:
        Tuple of record stride and the header text to rewrite.

    Raises:
        InvalidConfigurationError: If both inputs are absent.
        SchemaMismatchError: If both inputs exist with different strides.
    """
    if src1 is None and src2 is None:
        raise InvalidConfigurationError("both inputs cannot be '-'")
    if src1 is not None and src2 is not None:
        s1, s2 = src1.schema, src2.schema
        if s1.stride != s2.stride:
            raise SchemaMismatchError(
                f"stride mismatch: {src1.path} has {s1.stride}-byte records, "
                f"{src2.path} has {s2.stride}-byte records"
            )
        if s1.properties != s2.properties:
            print(
                "[warn] property lists differ with equal stride; "
                "records of input 2 are written with the header of input 1"
            )
        return s1.stride, s1.raw_header
    src = src1 if src1 is not None else src2
    return src.schema.stride, src.schema.raw_header


# ------------------------------ Selection ------------------------------


def voxel_keys(xyz: np.ndarray, voxel_size: float) -> np.ndarray:
    """Compute integer voxel keys for each point.

    Keys are floor(coordinate / voxel_size) evaluated in float32 and
    saturated to the int32 range; NaN coordinates map to 0.

    Args:
        xyz: Array of shape (N, 3) with point coordinates.
        voxel_size: Voxel edge length.

    Returns:
        Integer keys of shape (N, 3).

    Raises:
        ValueError: If voxel_size is not strictly positive.
    """
    if not voxel_size > 0:
        raise ValueError("voxel must be > 0")
    cells = np.floor(xyz.astype(np.float32, copy=False) / np.float32(voxel_size))
    cells = cells.astype(np.float64)
    cells = np.nan_to_num(cells, nan=0.0, posinf=_INT32_MAX, neginf=_INT32_MIN)
    return np.clip(cells, _INT32_MIN, _INT32_MAX).astype(np.int64)


def _empty_indices() -> np.ndarray:
    return np.empty(0, dtype=np.int64)


def select_by_voxel_density(
    xyz1: Optional[np.ndarray],
    xyz2: Optional[np.ndarray],
    voxel_size: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Keep, per voxel, the points of whichever input is denser there.

    Input 1 keeps a point when its voxel count is >= the count of input 2
    in the same voxel; input 2 keeps a point only when its count is
    strictly greater. Every occupied voxel is therefore served by exactly
    one input. A missing input has zero density everywhere.

    Args:
        xyz1: Positions of input 1, or None when absent.
        xyz2: Positions of input 2, or None when absent.
        voxel_size: Voxel edge length.

    Returns:
        Ascending record indices to keep from input 1 and from input 2.
    """
    empty_keys = np.empty((0, 3), dtype=np.int64)
    keys1 = voxel_keys(xyz1, voxel_size) if xyz1 is not None else empty_keys
    keys2 = voxel_keys(xyz2, voxel_size) if xyz2 is not None else empty_keys
    n1 = keys1.shape[0]
    all_keys = np.concatenate([keys1, keys2], axis=0)
    if all_keys.shape[0] == 0:
        print(f"[voxel] size={voxel_size:.6g}  no points")
        return _empty_indices(), _empty_indices()

    # Shared key table; one density column per input.
    uniq, inv = np.unique(all_keys, axis=0, return_inverse=True)
    inv = inv.reshape(-1)
    k = uniq.shape[0]
    inv1 = inv[:n1]
    inv2 = inv[n1:]
    dens1 = np.bincount(inv1, minlength=k)
    dens2 = np.bincount(inv2, minlength=k)

    kept1 = np.flatnonzero(dens1[inv1] >= dens2[inv1])
    kept2 = np.flatnonzero(dens2[inv2] > dens1[inv2])

    contested = int(np.count_nonzero((dens1 > 0) & (dens2 > 0)))
    print(
        f"[voxel] size={voxel_size:.6g}  voxels={k:,}  "
        f"input1={int(np.count_nonzero(dens1)):,}  "
        f"input2={int(np.count_nonzero(dens2)):,}  shared={contested:,}"
    )
    return kept1.astype(np.int64, copy=False), kept2.astype(np.int64, copy=False)


def select_by_scale(
    mags1: Optional[np.ndarray],
    mags2: Optional[np.ndarray],
    threshold: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Split two clouds by splat scale magnitude.

    Input 1 keeps splats with magnitude < threshold, input 2 keeps splats
    with magnitude >= threshold. NaN magnitudes fail both tests.

    Args:
        mags1: Scale magnitudes of input 1, or None when absent.
        mags2: Scale magnitudes of input 2, or None when absent.
        threshold: Scale threshold, compared in float32.

    Returns:
        Ascending record indices to keep from input 1 and from input 2.
    """
    thr = np.float32(threshold)
    kept1 = np.flatnonzero(mags1 < thr) if mags1 is not None else _empty_indices()
    kept2 = np.flatnonzero(mags2 >= thr) if mags2 is not None else _empty_indices()
    print(
        f"[scale] threshold={threshold:.6g}  "
        f"small={kept1.size:,}  large={kept2.size:,}"
    )
    return kept1.astype(np.int64, copy=False), kept2.astype(np.int64, copy=False)


# ------------------------------ Write ------------------------------


def render_header(raw_header: str, vertex_count: int) -> bytes:
    """Return the header bytes with the vertex count replaced."""
    out = []
    for line in raw_header.splitlines():
        if line.split()[:2] == ["element", "vertex"]:
            out.append(f"element vertex {vertex_count}")
        else:
            out.append(line)
    return "".join(f"{ln}\n" for ln in out).encode("utf-8")


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def write_merged_ply(
    path: str,
    raw_header: str,
    selections: Sequence[Tuple[np.ndarray, np.ndarray]],
) -> int:
    """Write the kept records of every input behind a rewritten header.

    The file is assembled under a temporary name in the destination
    directory and renamed into place only once fully written.

    Args:
        path: Destination path for the PLY file.
        raw_header: Header text of the template input.
        selections: (records, kept_indices) pairs in output order.

    Returns:
        Number of records written.

    Raises:
        PlyIOError: If the output cannot be created or written.
    """
    total = sum(int(kept.size) for _, kept in selections)
    out_dir = os.path.dirname(path) or "."
    try:
        fd, tmp_path = tempfile.mkstemp(
            prefix=".splatmerge-", suffix=".ply", dir=out_dir
        )
    except OSError as exc:
        raise PlyIOError(f"cannot create output in {out_dir}: {exc}") from exc

    try:
        with os.fdopen(fd, "wb") as fp:
            fp.write(render_header(raw_header, total))
            for records, kept in selections:
                for start in range(0, kept.size, WRITE_CHUNK_RECORDS):
                    rows = kept[start : start + WRITE_CHUNK_RECORDS]
                    fp.write(records[rows].tobytes())
        os.chmod(tmp_path, 0o666 & ~_current_umask())
        os.replace(tmp_path, path)
    except OSError as exc:
        _discard(tmp_path)
        raise PlyIOError(f"failed to write {path}: {exc}") from exc
    except BaseException:
        _discard(tmp_path)
        raise
    return total


def verify_output(path: str, expected: int) -> None:
    """Re-read a written PLY with plyfile and check its vertex count.

    Raises:
        PlyMergeError: If the file cannot be read back or the count differs.
    """
    try:
        ply = PlyData.read(path)
        count = ply["vertex"].count
    except (PlyParseError, KeyError, OSError) as exc:
        raise PlyMergeError(f"verification failed for {path}: {exc}") from exc
    if count != expected:
        raise PlyMergeError(
            f"verification failed for {path}: {count:,} vertices, "
            f"expected {expected:,}"
        )


# ------------------------------ Merge ------------------------------


@dataclass
class MergeConfig:
    """Parameters of one merge run.

    Attributes:
        input1: Path of the first input, or ABSENT_INPUT.
        input2: Path of the second input, or ABSENT_INPUT.
        output: Destination path; None runs the selection only.
        mode: 'voxel' or 'scale'.
        voxel_size: Voxel edge length for voxel mode.
        threshold: Scale magnitude threshold for scale mode.
        verify: Re-read the output with plyfile after writing.
    """

    input1: str
    input2: str
    output: Optional[str] = None
    mode: str = DEFAULT_MODE
    voxel_size: float = DEFAULT_VOXEL_SIZE
    threshold: float = DEFAULT_THRESHOLD
    verify: bool = False

    def validate(self) -> None:
        if self.input1 == ABSENT_INPUT and self.input2 == ABSENT_INPUT:
            raise InvalidConfigurationError("both inputs cannot be '-'")
        if self.mode not in MODE_CHOICES:
            raise InvalidConfigurationError(
                f"unknown mode '{self.mode}' "
                f"(expected one of {', '.join(MODE_CHOICES)})"
            )
        if not (math.isfinite(self.voxel_size) and self.voxel_size > 0):
            raise InvalidConfigurationError("--voxel-size must be > 0")
        if not math.isfinite(self.threshold):
            raise InvalidConfigurationError("--threshold must be finite")


@dataclass
class MergeResult:
    """Outcome of a merge run."""

    kept1: np.ndarray
    kept2: np.ndarray
    output: Optional[str] = None

    @property
    def total(self) -> int:
        return int(self.kept1.size + self.kept2.size)


def _scale_magnitudes(src: Optional[PlySource], label: str) -> Optional[np.ndarray]:
    if src is None:
        return None
    try:
        return record_scale_magnitudes(src.records, src.schema.scale_offset)
    except MissingScaleFieldError as exc:
        raise MissingScaleFieldError(
            f"no scale in {label} ({src.path}): {exc}"
        ) from exc


def merge_splat_files(config: MergeConfig) -> MergeResult:
    """Select records from up to two PLY files and write their union.

    Args:
        config: Run parameters.

    Returns:
        Kept indices of both inputs and the written path.

    Raises:
        PlyMergeError: On any failure; no output file is left behind.
    """
    config.validate()
    src1 = open_ply_source(config.input1)
    src2 = open_ply_source(config.input2)
    stride, header_template = resolve_layout(src1, src2)

    xyz: Dict[str, Optional[np.ndarray]] = {}
    for label, src in (("input1", src1), ("input2", src2)):
        if src is None:
            print(f"[load] {label}: absent")
            xyz[label] = None
            continue
        schema = src.schema
        scale_note = (
            f"scale_0@{schema.scale_offset}"
            if schema.scale_offset is not None
            else "no scale"
        )
        print(
            f"[load] {label}: {src.path}  points={schema.vertex_count:,}  "
            f"stride={schema.stride}  header={schema.header_len}B  {scale_note}"
        )
        xyz[label] = record_positions(src.records)
        print_point_cloud_stats(label, compute_point_cloud_stats(xyz[label]))

    if config.mode == "voxel":
        kept1, kept2 = select_by_voxel_density(
            xyz["input1"], xyz["input2"], config.voxel_size
        )
    else:
        kept1, kept2 = select_by_scale(
            _scale_magnitudes(src1, "input1"),
            _scale_magnitudes(src2, "input2"),
            config.threshold,
        )

    kept_parts = [
        pts[kept]
        for pts, kept in ((xyz["input1"], kept1), (xyz["input2"], kept2))
        if pts is not None
    ]
    kept_xyz = np.concatenate(kept_parts, axis=0)
    print_point_cloud_stats("kept", compute_point_cloud_stats(kept_xyz))
    print(
        f"[merge] input1 kept={kept1.size:,}  input2 kept={kept2.size:,}  "
        f"stride={stride}"
    )

    result = MergeResult(kept1, kept2)
    if config.output is None:
        print("[info] --output not provided; selection only.")
        return result

    selections = [
        (src.records, kept)
        for src, kept in ((src1, kept1), (src2, kept2))
        if src is not None
    ]
    total = write_merged_ply(config.output, header_template, selections)
    if config.verify:
        try:
            verify_output(config.output, total)
        except PlyMergeError:
            _discard(config.output)
            raise
        print(f"[verify] {config.output}  vertices={total:,}  ok")
    print(f"[save] {config.output}  points={total:,}  (binary little-endian)")
    result.output = config.output
    return result


# ------------------------------ CLI ------------------------------


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the gs360_SplatMerge CLI.

    Args:
        argv: Optional argument vector to parse instead of sys.argv.

    Returns:
        Process exit code.
    """
    ap = argparse.ArgumentParser(
        prog="gs360_SplatMerge",
        description=(
            "Merge two 3DGS splat PLY files (voxel density or scale "
            "threshold selection, raw record copy)"
        ),
    )
    ap.add_argument(
        "-i",
        "--input1",
        required=True,
        help=f"First input PLY file ('{ABSENT_INPUT}' for none)",
    )
    ap.add_argument(
        "-j",
        "--input2",
        required=True,
        help=f"Second input PLY file ('{ABSENT_INPUT}' for none)",
    )
    ap.add_argument(
        "-o",
        "--output",
        default=None,
        help=(
            "Output PLY (binary little-endian). "
            "Omit to only report the selection."
        ),
    )
    ap.add_argument(
        "-m",
        "--mode",
        choices=MODE_CHOICES,
        default=DEFAULT_MODE,
        help=(
            "Selection mode: "
            "voxel=keep the denser input per voxel (ties go to input 1), "
            "scale=small splats from input 1, large splats from input 2."
        ),
    )
    ap.add_argument(
        "-v",
        "--voxel-size",
        type=float,
        default=DEFAULT_VOXEL_SIZE,
        help="Voxel edge length for --mode voxel.",
    )
    ap.add_argument(
        "-t",
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help="Scale magnitude threshold, exp(max(scale_0..2)), for --mode scale.",
    )
    ap.add_argument(
        "--verify",
        action="store_true",
        help="Re-read the written PLY and check its vertex count.",
    )
    args = ap.parse_args(argv)

    config = MergeConfig(
        input1=_resolve_path(args.input1),
        input2=_resolve_path(args.input2),
        output=_resolve_path(args.output) if args.output else None,
        mode=args.mode,
        voxel_size=args.voxel_size,
        threshold=args.threshold,
        verify=args.verify,
    )
    try:
        result = merge_splat_files(config)
    except PlyMergeError as exc:
        print(f"[ERR] {exc}", file=sys.stderr)
        return 1

    if result.output is not None:
        print(f"Success: {result.total} splats saved to {result.output}")
    else:
        print(f"Success: {result.total} splats selected")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
