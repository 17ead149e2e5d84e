"""Write a skinned mesh as a self-contained GLB (glTF 2.0 binary)."""

import json
import struct
from pathlib import Path

import numpy as np

GLB_MAGIC = 0x46546C67
GLB_VERSION = 2
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942

FLOAT = 5126
UNSIGNED_SHORT = 5123
UNSIGNED_INT = 5125

ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963


def _pad4(raw: bytes, fill: bytes = b"\x00") -> bytes:
    return raw + fill * ((4 - len(raw) % 4) % 4)


def build_gltf(skinned):
    """glTF json tree + binary buffer for ``skinned``.

    Node 0 is the mesh, nodes 1..N the bones (node = bone index + 1).
    JOINTS_0/WEIGHTS_0 are VEC4 with the unused slots zeroed.
    """
    geo = skinned.geometry
    n_verts = len(geo.positions)
    n_bones = len(skinned.bones)

    bin_parts = []
    buffer_views = []
    accessors = []

    def _append_data(data: np.ndarray, acc_type: str, comp_type: int, target=None,
                     with_bounds: bool = False):
        """Append data to the buffer.  Returns the index of the new accessor."""
        raw = data.tobytes()
        byte_offset = sum(len(p) for p in bin_parts)
        bin_parts.append(_pad4(raw))

        view = {"buffer": 0, "byteOffset": byte_offset, "byteLength": len(raw)}
        if target is not None:
            view["target"] = target
        buffer_views.append(view)

        acc_entry = {
            "bufferView": len(buffer_views) - 1,
            "componentType": comp_type,
            "count": int(data.shape[0]),
            "type": acc_type,
        }
        # POSITION requires min/max for glTF validation
        if with_bounds:
            acc_entry["min"] = data.min(axis=0).tolist()
            acc_entry["max"] = data.max(axis=0).tolist()
        accessors.append(acc_entry)
        return len(accessors) - 1

    joints = np.zeros((n_verts, 4), dtype=np.uint16)
    joints[:, :2] = geo.skin_indices
    weights = np.zeros((n_verts, 4), dtype=np.float32)
    weights[:, :2] = geo.skin_weights

    pos_acc = _append_data(geo.positions.astype(np.float32), "VEC3", FLOAT,
                           ARRAY_BUFFER, with_bounds=True)
    nrm_acc = _append_data(geo.normals.astype(np.float32), "VEC3", FLOAT, ARRAY_BUFFER)
    jnt_acc = _append_data(joints, "VEC4", UNSIGNED_SHORT, ARRAY_BUFFER)
    wgt_acc = _append_data(weights, "VEC4", FLOAT, ARRAY_BUFFER)
    idx_acc = _append_data(geo.faces.astype(np.uint32).reshape(-1), "SCALAR",
                           UNSIGNED_INT, ELEMENT_ARRAY_BUFFER)
    # glTF stores matrices column-major
    ibm = np.ascontiguousarray(
        skinned.inverse_bind_matrices.transpose(0, 2, 1)
    ).astype(np.float32).reshape(n_bones, 16)
    ibm_acc = _append_data(ibm, "MAT4", FLOAT)

    bone_nodes = []
    children = {i: [] for i in range(n_bones)}
    roots = []
    for i, bone in enumerate(skinned.bones):
        if bone["parent"] < 0:
            roots.append(i + 1)
        else:
            children[bone["parent"]].append(i + 1)
    for i, bone in enumerate(skinned.bones):
        node = {
            "name": bone["name"],
            "translation": [float(v) for v in bone["pos"]],
            "rotation": [float(v) for v in bone["rotq"]],
        }
        if children[i]:
            node["children"] = children[i]
        bone_nodes.append(node)

    r, g, b, a = (c / 255.0 for c in skinned.material)
    gltf = {
        "asset": {"version": "2.0", "generator": "mammalator"},
        "scene": 0,
        "scenes": [{"nodes": [0] + roots}],
        "nodes": [{"name": skinned.name, "mesh": 0, "skin": 0}] + bone_nodes,
        "meshes": [{
            "name": skinned.name,
            "primitives": [{
                "attributes": {
                    "POSITION": pos_acc,
                    "NORMAL": nrm_acc,
                    "JOINTS_0": jnt_acc,
                    "WEIGHTS_0": wgt_acc,
                },
                "indices": idx_acc,
                "material": 0,
            }],
        }],
        "materials": [{
            "name": f"{skinned.name}_skin",
            "pbrMetallicRoughness": {
                "baseColorFactor": [r, g, b, a],
                "metallicFactor": 0.0,
                "roughnessFactor": 0.9,
            },
        }],
        "skins": [{
            "name": f"{skinned.name}_skeleton",
            "joints": list(range(1, n_bones + 1)),
            "skeleton": roots[0] if roots else 1,
            "inverseBindMatrices": ibm_acc,
        }],
        "bufferViews": buffer_views,
        "accessors": accessors,
    }

    bin_buffer = b"".join(bin_parts)
    gltf["buffers"] = [{"byteLength": len(bin_buffer)}]
    return gltf, bin_buffer


def pack_glb(gltf: dict, bin_buffer: bytes) -> bytes:
    json_bytes = _pad4(json.dumps(gltf, separators=(",", ":")).encode("utf-8"), b" ")
    bin_buffer = _pad4(bin_buffer)

    # Header: 12 bytes, JSON chunk: 8 + len, BIN chunk: 8 + len
    total_length = 12 + 8 + len(json_bytes) + 8 + len(bin_buffer)
    return b"".join([
        struct.pack("<III", GLB_MAGIC, GLB_VERSION, total_length),
        struct.pack("<II", len(json_bytes), CHUNK_JSON),
        json_bytes,
        struct.pack("<II", len(bin_buffer), CHUNK_BIN),
        bin_buffer,
    ])


def write_skinned_glb(skinned, output_path) -> Path:
    gltf, bin_buffer = build_gltf(skinned)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(pack_glb(gltf, bin_buffer))
    return output_path
