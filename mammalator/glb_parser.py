"""Read back a skinned GLB: hierarchy, rest-pose TRS, IBMs, skin buffers."""

import json
import struct
from dataclasses import dataclass

import numpy as np

from mammalator.glb_writer import CHUNK_BIN, CHUNK_JSON, GLB_MAGIC
from mammalator.transforms import trs_to_mat4

# glTF component type → (struct fmt, byte size)
_COMP = {
    5120: ("b", 1),
    5121: ("B", 1),
    5122: ("h", 2),
    5123: ("H", 2),
    5125: ("I", 4),
    5126: ("f", 4),
}

# glTF type → element count
_TYPE_COUNT = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT2": 4,
    "MAT3": 9,
    "MAT4": 16,
}


@dataclass
class SkinnedGLB:
    json_tree: dict
    bin_buffer: bytes
    joint_names: list
    parent_indices: list  # parent index per joint (-1 for root)
    rest_local_trs: list  # [(t, r_xyzw, s), ...] per joint
    rest_world_matrices: np.ndarray  # (N, 4, 4)
    inverse_bind_matrices: np.ndarray  # (N, 4, 4)
    positions: np.ndarray  # (V, 3)
    normals: np.ndarray  # (V, 3)
    joints: np.ndarray  # (V, 4) int
    weights: np.ndarray  # (V, 4)
    faces: np.ndarray  # (F, 3)


def _read_accessor(gltf: dict, buf: bytes, acc_idx: int) -> np.ndarray:
    """Read a glTF accessor into a numpy array (float64, or int64 for ints)."""
    acc = gltf["accessors"][acc_idx]
    bv = gltf["bufferViews"][acc["bufferView"]]
    fmt, _ = _COMP[acc["componentType"]]
    count = acc["count"]
    n_components = _TYPE_COUNT[acc["type"]]
    byte_offset = bv.get("byteOffset", 0) + acc.get("byteOffset", 0)

    total = count * n_components
    data = struct.unpack_from(f"<{total}{fmt}", buf, byte_offset)
    dtype = np.float64 if fmt == "f" else np.int64
    return np.array(data, dtype=dtype).reshape(count, n_components)


def parse_skinned_glb(path) -> SkinnedGLB:
    """Parse a single-mesh, single-skin GLB as written by ``glb_writer``."""
    with open(path, "rb") as f:
        raw = f.read()

    # --- GLB header ---
    magic, version, total_len = struct.unpack_from("<III", raw, 0)
    assert magic == GLB_MAGIC, f"Not a GLB file: {path}"
    assert total_len == len(raw), f"GLB length mismatch: header {total_len}, file {len(raw)}"

    # --- JSON chunk ---
    json_len, json_type = struct.unpack_from("<II", raw, 12)
    assert json_type == CHUNK_JSON
    gltf = json.loads(raw[20:20 + json_len].decode("utf-8"))

    # --- BIN chunk ---
    bin_offset = 20 + json_len
    bin_len, bin_type = struct.unpack_from("<II", raw, bin_offset)
    assert bin_type == CHUNK_BIN
    bin_buffer = raw[bin_offset + 8:bin_offset + 8 + bin_len]

    # --- Skin ---
    skin = gltf["skins"][0]
    joint_node_indices = skin["joints"]
    nodes = gltf["nodes"]
    joint_names = [nodes[ni].get("name", f"joint_{ni}") for ni in joint_node_indices]
    node_to_sjidx = {ni: si for si, ni in enumerate(joint_node_indices)}

    child_to_parent_node = {}
    for ni, node in enumerate(nodes):
        for ci in node.get("children", []):
            child_to_parent_node[ci] = ni
    parent_indices = [
        node_to_sjidx.get(child_to_parent_node.get(ni, -1), -1)
        for ni in joint_node_indices
    ]

    rest_local_trs = []
    for ni in joint_node_indices:
        node = nodes[ni]
        rest_local_trs.append((
            list(node.get("translation", [0.0, 0.0, 0.0])),
            list(node.get("rotation", [0.0, 0.0, 0.0, 1.0])),
            list(node.get("scale", [1.0, 1.0, 1.0])),
        ))

    # Joints are written parents-first, so one pass suffices
    n_joints = len(joint_node_indices)
    rest_world = np.zeros((n_joints, 4, 4), dtype=np.float64)
    for si in range(n_joints):
        local = trs_to_mat4(*rest_local_trs[si])
        pi = parent_indices[si]
        assert pi < si, f"joint {si} listed before its parent {pi}"
        rest_world[si] = local if pi < 0 else rest_world[pi] @ local

    ibms = _read_accessor(gltf, bin_buffer, skin["inverseBindMatrices"])
    ibms = ibms.reshape(n_joints, 4, 4).transpose(0, 2, 1)  # column-major → row-major

    prim = gltf["meshes"][0]["primitives"][0]
    attrs = prim["attributes"]
    return SkinnedGLB(
        json_tree=gltf,
        bin_buffer=bin_buffer,
        joint_names=joint_names,
        parent_indices=parent_indices,
        rest_local_trs=rest_local_trs,
        rest_world_matrices=rest_world,
        inverse_bind_matrices=ibms,
        positions=_read_accessor(gltf, bin_buffer, attrs["POSITION"]),
        normals=_read_accessor(gltf, bin_buffer, attrs["NORMAL"]),
        joints=_read_accessor(gltf, bin_buffer, attrs["JOINTS_0"]),
        weights=_read_accessor(gltf, bin_buffer, attrs["WEIGHTS_0"]),
        faces=_read_accessor(gltf, bin_buffer, prim["indices"]).reshape(-1, 3),
    )
