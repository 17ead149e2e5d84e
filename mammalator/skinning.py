"""Turn the composed solid back into renderer-ready skinned geometry."""

import logging
from dataclasses import dataclass, field

import numpy as np
import trimesh

from mammalator import tunnel
from mammalator.errors import SkinDataError

log = logging.getLogger(__name__)


@dataclass
class SkinGeometry:
    positions: np.ndarray  # (V, 3)
    normals: np.ndarray  # (V, 3)
    faces: np.ndarray  # (F, 3)
    skin_indices: np.ndarray  # (V, 2) bone indices
    skin_weights: np.ndarray  # (V, 2) summing to 1
    part_ids: np.ndarray = None  # (V,) anchor bone of the part each vertex came from


@dataclass
class SkinnedMesh:
    """Finished mesh + bone hierarchy.  Geometry is never modified afterwards."""

    name: str
    geometry: SkinGeometry
    bones: list  # BoneGraph.hierarchy() records
    inverse_bind_matrices: np.ndarray  # (N, 4, 4)
    material: list = field(default_factory=lambda: [200, 200, 200, 255])  # RGBA 0-255

    @property
    def positions(self):
        return self.geometry.positions

    @property
    def normals(self):
        return self.geometry.normals

    @property
    def faces(self):
        return self.geometry.faces

    @property
    def skin_indices(self):
        return self.geometry.skin_indices

    @property
    def skin_weights(self):
        return self.geometry.skin_weights

    @property
    def bone_count(self) -> int:
        return len(self.bones)


def _part_blends(part_ids, distances, parts):
    """Blend of every vertex recomputed from its part's stop sequence."""
    indices = np.zeros((len(part_ids), 2), dtype=np.int64)
    weights = np.zeros((len(part_ids), 2), dtype=np.float64)
    for part in np.unique(part_ids):
        if int(part) not in parts:
            raise SkinDataError(f"vertices reference unknown part {int(part)}")
        mask = part_ids == part
        indices[mask], weights[mask] = parts[int(part)].weights_at(distances[mask])
    return indices, weights


def _weight_on(indices, weights, bones):
    """Total weight each row puts on ``bones`` (one bone per row)."""
    return (weights * (indices == bones[:, np.newaxis])).sum(axis=1)


def _blends_disagree(indices, weights, expected_indices, expected_weights, atol=1e-4):
    on_a = _weight_on(indices, weights, expected_indices[:, 0])
    on_b = _weight_on(indices, weights, expected_indices[:, 1])
    single = expected_indices[:, 0] == expected_indices[:, 1]
    ok_a = np.isclose(on_a, np.where(single, 1.0, expected_weights[:, 0]), atol=atol)
    ok_b = single | np.isclose(on_b, expected_weights[:, 1], atol=atol)
    return ~(ok_a & ok_b)


def unpack(mesh: trimesh.Trimesh, bone_count: int, parts=None) -> SkinGeometry:
    """Decode the tunneled UV of ``mesh`` into two-bone skin buffers.

    With ``parts`` (anchor bone index -> ``StopSequence``, as kept by
    ``csg.Solid``), every vertex whose decoded blend differs from what its
    part's stops give at its distance is replaced by the latter.  Those are
    the vertices a boolean operation created by interpolation.

    Boolean operations leave no usable normals behind, so vertex normals are
    recomputed from the composed faces.
    """
    attrs = mesh.vertex_attributes
    if parts is None:
        indices, weights = tunnel.decode(attrs["skin_uv"], bone_count=bone_count)
        part_ids = None
    else:
        # seam vertices may decode to anything; the range is checked after repair
        indices, weights = tunnel.decode(attrs["skin_uv"])
        part_ids = np.asarray(attrs["skin_part"], dtype=np.int64)
        expected_indices, expected_weights = _part_blends(
            part_ids, np.asarray(attrs["skin_distance"], dtype=np.float64), parts
        )
        stale = _blends_disagree(indices, weights, expected_indices, expected_weights)
        if stale.any():
            log.debug(f"re-derived {int(stale.sum())} of {len(stale)} vertex blends "
                      f"from their parts")
        indices[stale] = expected_indices[stale]
        weights[stale] = expected_weights[stale]
        if len(indices) and (indices.min() < 0 or indices.max() >= bone_count):
            raise SkinDataError(f"skin data references bones outside [0, {bone_count})")

    normals = np.asarray(mesh.vertex_normals, dtype=np.float64)
    return SkinGeometry(
        positions=np.asarray(mesh.vertices, dtype=np.float64),
        normals=normals,
        faces=np.asarray(mesh.faces, dtype=np.int64),
        skin_indices=indices,
        skin_weights=weights,
        part_ids=part_ids,
    )


def make_skinned_mesh(solid, graph, material=None, name: str = "mammal") -> SkinnedMesh:
    """Render ``solid`` to a mesh and attach skin data and the bone hierarchy."""
    mesh = solid.to_mesh()
    geometry = unpack(mesh, len(graph), parts=solid.parts)
    log.info(f"{name}: {len(geometry.positions)} vertices, {len(geometry.faces)} faces, "
             f"{len(graph)} bones")
    skinned = SkinnedMesh(
        name=name,
        geometry=geometry,
        bones=graph.hierarchy(),
        inverse_bind_matrices=graph.inverse_bind_matrices(),
    )
    if material is not None:
        skinned.material = list(material)
    return skinned


def skin_vertices(positions, skin_indices, skin_weights, bone_matrices, inverse_bind_matrices):
    """Two-bone linear blend skinning.

    Each vertex is transformed by ``bone_matrix @ inverse_bind`` of both of its
    bones and the results are summed by weight; at the rest pose this is the
    identity.
    """
    positions = np.asarray(positions, dtype=np.float64)
    skin_mats = np.einsum("nij,njk->nik", bone_matrices, inverse_bind_matrices)  # (N, 4, 4)
    homo = np.hstack([positions, np.ones((len(positions), 1))])  # (V, 4)
    out = np.zeros((len(positions), 3), dtype=np.float64)
    for slot in range(skin_indices.shape[1]):
        mats = skin_mats[skin_indices[:, slot]]  # (V, 4, 4)
        moved = np.einsum("vij,vj->vi", mats, homo)[:, :3]
        out += skin_weights[:, slot:slot + 1] * moved
    return out
