"""Boolean composition of body-part solids via manifold3d.

Manifold keeps per-vertex properties through its boolean operations.  Where
two solids intersect it creates new vertices and fills in their properties by
interpolating across the source triangle.  That is harmless for quantities that
are affine over a triangle, but not for the tunneled UV (see
``mammalator.tunnel``): interpolating between ``(a, 0)`` and ``(c, 0)`` lands
on whatever bone index lies in between.

So each vertex carries ``[x, y, z, u, v, part, distance]``:

- ``u, v``: the tunneled two-bone blend.
- ``part``: the index of the part's anchor bone, constant over a part.
- ``distance``: how far along the part's extrusion the vertex sits, affine over
  every triangle, so it interpolates exactly.

A ``Solid`` remembers the stop sequence of every part it is made of, which is
enough to recompute the blend of any vertex the boolean created.

A ``Solid`` is consumed by any operation it takes part in; using it again is a
bug in the build sequence and raises ``SolidConsumedError``.
"""

import logging
from functools import reduce

import manifold3d
import numpy as np
import trimesh

from mammalator import tunnel
from mammalator.errors import ConfigurationError, DegenerateGeometryError, SolidConsumedError

log = logging.getLogger(__name__)

NUM_PROP = 7  # x, y, z, u, v, part, distance


class Solid:
    def __init__(self, manifold: "manifold3d.Manifold", name: str = "solid", parts=None):
        status = manifold.status()
        if status != manifold3d.Error.NoError:
            raise DegenerateGeometryError(f"{name}: manifold rejected the geometry ({status})")
        self._manifold = manifold
        self.name = name
        self.parts = dict(parts or {})  # anchor bone index -> StopSequence
        self.consumed = False

    @classmethod
    def from_mesh(cls, mesh: trimesh.Trimesh, name: str = "solid", part=None,
                  stops=None) -> "Solid":
        """Solid from a closed, skinned extrusion mesh.

        ``part`` / ``stops`` default to the ``skin_part`` / ``skin_stops`` the
        extrusion left in ``mesh.metadata``.
        """
        part = mesh.metadata.get("skin_part") if part is None else part
        stops = mesh.metadata.get("skin_stops") if stops is None else stops
        if part is None or stops is None:
            raise ConfigurationError(f"{name}: mesh has no skin part or stop sequence")

        attrs = mesh.vertex_attributes
        uv = tunnel.encode(attrs["skin_indices"], attrs["skin_weights"])
        n_verts = len(mesh.vertices)
        props = np.hstack([
            np.asarray(mesh.vertices, dtype=np.float64),
            uv,
            np.full((n_verts, 1), float(part)),
            np.asarray(attrs["skin_distance"], dtype=np.float64).reshape(n_verts, 1),
        ])
        mesh_gl = manifold3d.Mesh(
            vert_properties=props.astype(np.float32),
            tri_verts=np.asarray(mesh.faces, dtype=np.uint32),
        )
        return cls(manifold3d.Manifold(mesh_gl), name=name, parts={int(part): stops})

    @property
    def manifold(self) -> "manifold3d.Manifold":
        self._check_live()
        return self._manifold

    def _check_live(self):
        if self.consumed:
            raise SolidConsumedError(f"{self.name} was already consumed by a boolean operation")

    def _consume(self) -> "manifold3d.Manifold":
        self._check_live()
        self.consumed = True
        return self._manifold

    def is_empty(self) -> bool:
        return self.manifold.is_empty()

    def to_mesh(self) -> trimesh.Trimesh:
        """Concrete mesh; per-vertex ``skin_uv``, ``skin_part``, ``skin_distance``."""
        out = self.manifold.to_mesh()
        props = np.asarray(out.vert_properties, dtype=np.float64)
        if props.ndim != 2 or props.shape[1] < NUM_PROP:
            raise DegenerateGeometryError(
                f"{self.name}: expected {NUM_PROP} vertex properties, got {props.shape}"
            )
        return trimesh.Trimesh(
            vertices=props[:, :3],
            faces=np.asarray(out.tri_verts, dtype=np.int64),
            vertex_attributes={
                "skin_uv": props[:, 3:5],
                "skin_part": np.rint(props[:, 5]).astype(np.int64),
                "skin_distance": props[:, 6],
            },
            process=False,
        )


def _merge_parts(a: Solid, b: Solid) -> dict:
    parts = dict(a.parts)
    for key, stops in b.parts.items():
        if parts.setdefault(key, stops) is not stops:
            raise ConfigurationError(
                f"{a.name} and {b.name} both contain a part anchored at bone {key}"
            )
    return parts


def _combine(a: Solid, b: Solid, op: str) -> Solid:
    if a is b:
        raise SolidConsumedError(f"{a.name} cannot be combined with itself")
    a._check_live()
    b._check_live()
    parts = _merge_parts(a, b)
    left = a._consume()
    right = b._consume()
    result = left + right if op == "union" else left - right
    name = f"({a.name} {'∪' if op == 'union' else '-'} {b.name})"
    solid = Solid(result, name=name, parts=parts)
    if op == "union" and result.is_empty() and not (left.is_empty() and right.is_empty()):
        raise DegenerateGeometryError(f"{name}: union of non-empty solids is empty")
    log.debug(f"{op}: {name} -> {result.num_vert()} vertices")
    return solid


def union(a: Solid, b: Solid) -> Solid:
    return _combine(a, b, "union")


def subtract(a: Solid, b: Solid) -> Solid:
    return _combine(a, b, "subtract")


def union_all(solids) -> Solid:
    """Strict left fold: ((s0 ∪ s1) ∪ s2) ∪ ..."""
    solids = list(solids)
    if not solids:
        raise ConfigurationError("union_all needs at least one solid")
    return reduce(union, solids)
