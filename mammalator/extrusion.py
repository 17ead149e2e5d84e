"""Boned extrusion: straight prism extrusion tagged with per-vertex skin data.

Extrusion happens along +Z in extrusion-local space.  Every vertex of a ring
sits at the same distance along the extrusion, so the whole ring shares one
``BoneBlend`` from the stop sequence.  The vertex density along the axis is
what makes the bone blending read as smooth rather than faceted.

Bones point along +Y, so the finished mesh is rotated +Z → +Y and then moved
into body space by the world transform of the first (anchor) bone.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import trimesh
from shapely.geometry import Polygon
from shapely.geometry.polygon import orient

from mammalator.config import CURVE_SEGMENTS, SAMPLE_DENSITY
from mammalator.errors import ConfigurationError
from mammalator.weights import StopSequence, chain_extent

log = logging.getLogger(__name__)

# Extrusion runs along +Z, bone space along +Y: -90 deg around X.
Z_TO_Y = trimesh.transformations.rotation_matrix(-np.pi / 2, [1, 0, 0])


# ---------------------------------------------------------------------------
# Cross-section shapes
# ---------------------------------------------------------------------------

def _quadratic_curve(p0, p1, p2, segments: int) -> np.ndarray:
    """Points on a quadratic Bezier, start included, end excluded."""
    t = (np.arange(segments, dtype=np.float64) / segments)[:, np.newaxis]
    p0, p1, p2 = (np.asarray(p, dtype=np.float64) for p in (p0, p1, p2))
    return (1 - t) ** 2 * p0 + 2 * (1 - t) * t * p1 + t ** 2 * p2


@dataclass(frozen=True)
class EllipseShape:
    """Oval cross-section built from four quadratic curves."""

    h_radius: float
    v_radius: float
    center: tuple = (0.0, 0.0)

    def to_polygon(self, curve_segments: int = CURVE_SEGMENTS) -> Polygon:
        if self.h_radius <= 0 or self.v_radius <= 0:
            raise ConfigurationError(
                f"Ellipse radii must be positive (got {self.h_radius}, {self.v_radius})"
            )
        if curve_segments < 1:
            raise ConfigurationError(f"curve_segments must be >= 1 (got {curve_segments})")
        h, v = self.h_radius, self.v_radius
        quadrants = [
            ((0, v), (h, v), (h, 0)),
            ((h, 0), (h, -v), (0, -v)),
            ((0, -v), (-h, -v), (-h, 0)),
            ((-h, 0), (-h, v), (0, v)),
        ]
        points = np.concatenate(
            [_quadratic_curve(p0, p1, p2, curve_segments) for p0, p1, p2 in quadrants]
        )
        points += np.asarray(self.center, dtype=np.float64)
        return orient(Polygon(points), sign=1.0)


def ellipse_profile(h_radius: float, v_radius: float,
                    curve_segments: int = CURVE_SEGMENTS, center=(0.0, 0.0)) -> Polygon:
    """Counter-clockwise elliptical profile polygon."""
    return EllipseShape(h_radius, v_radius, tuple(center)).to_polygon(curve_segments)


def _profile_ring(profile) -> np.ndarray:
    """Validated CCW (n, 2) ring of a convex profile polygon."""
    if not isinstance(profile, Polygon):
        raise ConfigurationError(f"Profile must be a shapely Polygon, got {type(profile).__name__}")
    if profile.is_empty or not profile.is_valid or profile.interiors:
        raise ConfigurationError("Profile must be a valid polygon without holes")
    hull = profile.convex_hull
    if hull.area - profile.area > 1e-9 * max(hull.area, 1e-12):
        raise ConfigurationError("Profile must be convex")
    ring = np.asarray(orient(profile, sign=1.0).exterior.coords, dtype=np.float64)[:-1]
    if len(ring) < 3:
        raise ConfigurationError("Profile needs at least 3 points")
    return ring


# ---------------------------------------------------------------------------
# Skin data generation
# ---------------------------------------------------------------------------

class BoneUVGenerator:
    """Per-vertex bone blends for an extrusion, driven by a stop sequence.

    Hooks mirror the three places an extruder emits vertices: the top cap
    (where the extrusion starts, distance 0), the bottom cap (distance
    ``length``) and the side walls, one quad row per step.  The caps are
    constant across all their vertices, so they are computed once.
    """

    def __init__(self, stops: StopSequence, length: float):
        self.stops = stops
        self.length = float(length)
        self._top = stops.weight_at(0.0)
        self._bottom = stops.weight_at(self.length)

    def generate_top_uv(self):
        return self._top

    def generate_bottom_uv(self):
        return self._bottom

    def generate_side_wall_uv(self, step_index: int, steps: int):
        """(near, far) blends for the quad row between step and step + 1."""
        near = self.stops.weight_at(step_index / steps * self.length)
        far = self.stops.weight_at((step_index + 1) / steps * self.length)
        return near, far


# ---------------------------------------------------------------------------
# Extrusion
# ---------------------------------------------------------------------------

def extrude_profile(profile: Polygon, depth: float, steps: int,
                    uv_generator: BoneUVGenerator) -> trimesh.Trimesh:
    """Extrude a convex profile along +Z into a closed, shared-vertex mesh.

    Vertices are laid out ring by ring (ring k at z = k / steps * depth), caps
    are fans over the first and last ring.  Skin data lands in
    ``vertex_attributes['skin_indices']`` / ``['skin_weights']``, the distance
    along the extrusion in ``['skin_distance']``.
    """
    if depth <= 0:
        raise ConfigurationError(f"Extrusion depth must be positive (got {depth})")
    if steps < 1:
        raise ConfigurationError(f"Extrusion needs at least one step (got {steps})")

    ring = _profile_ring(profile)
    n = len(ring)
    n_rings = steps + 1

    vertices = np.zeros((n_rings * n, 3), dtype=np.float64)
    vertices[:, :2] = np.tile(ring, (n_rings, 1))
    vertices[:, 2] = np.repeat(np.linspace(0.0, depth, n_rings), n)

    # Side walls: quad (a, b, c, d) between ring k and k + 1, outward for CCW rings
    i = np.arange(n)
    j = (i + 1) % n
    base = (np.arange(steps) * n)[:, np.newaxis]
    a = (base + i).ravel()
    b = (base + j).ravel()
    c = (base + n + j).ravel()
    d = (base + n + i).ravel()
    walls = np.concatenate([np.stack([a, b, c], axis=1), np.stack([a, c, d], axis=1)])

    m = np.arange(1, n - 1)
    top = np.stack([np.zeros_like(m), m + 1, m], axis=1)  # faces -Z
    last = steps * n
    bottom = np.stack([np.full_like(m, last), last + m, last + m + 1], axis=1)  # faces +Z

    faces = np.concatenate([walls, top, bottom]).astype(np.int64)

    ring_indices = np.zeros((n_rings, 2), dtype=np.int64)
    ring_weights = np.zeros((n_rings, 2), dtype=np.float64)

    def _put(k, blend):
        ring_indices[k] = (blend.index_a, blend.index_b)
        ring_weights[k] = (blend.weight_a, blend.weight_b)

    for step in range(steps):
        near, far = uv_generator.generate_side_wall_uv(step, steps)
        _put(step, near)
        _put(step + 1, far)
    _put(0, uv_generator.generate_top_uv())
    _put(steps, uv_generator.generate_bottom_uv())

    return trimesh.Trimesh(
        vertices=vertices,
        faces=faces,
        vertex_attributes={
            "skin_indices": np.repeat(ring_indices, n, axis=0),
            "skin_weights": np.repeat(ring_weights, n, axis=0),
            "skin_distance": vertices[:, 2].copy(),
        },
        process=False,
    )


def step_count(total_length: float, sample_density: float = SAMPLE_DENSITY) -> int:
    """Longitudinal steps so that rings are at most ``sample_density`` apart."""
    return max(1, int(math.ceil(total_length / sample_density - 1e-9)))


def extrude(shape, stops: StopSequence, total_length: float,
            curve_segments: int = CURVE_SEGMENTS,
            sample_density: float = SAMPLE_DENSITY) -> trimesh.Trimesh:
    """Extrude ``shape`` (shapely Polygon or EllipseShape) in extrusion space."""
    profile = shape.to_polygon(curve_segments) if isinstance(shape, EllipseShape) else shape
    steps = step_count(total_length, sample_density)
    mesh = extrude_profile(profile, total_length, steps,
                           BoneUVGenerator(stops, total_length))
    mesh.metadata["skin_stops"] = stops
    log.debug(f"extruded {len(mesh.vertices)} vertices over {steps} steps "
              f"({total_length:.4f} long, bones {sorted(stops.bone_indices)})")
    return mesh


def place_into_bone_space(mesh: trimesh.Trimesh, anchor_bone, graph) -> trimesh.Trimesh:
    """Rotate +Z → +Y, then apply the anchor bone's world transform (in place)."""
    mesh.apply_transform(graph.world_transform(anchor_bone) @ Z_TO_Y)
    return mesh


def extrude_bones(graph, shape, bones, length: float, feather_bone=None,
                  feather_length: float = 0.0,
                  curve_segments: int = CURVE_SEGMENTS) -> trimesh.Trimesh:
    """Extrude a skin over a bone chain and position it at the first bone.

    The extrusion is a straight one; the bones must already be lined up with
    it.  ``feather_bone`` pre-blends the start of the extrusion toward a bone
    outside the chain (e.g. the spine above a leg) over ``feather_length``.
    """
    for bone in list(bones) + ([feather_bone] if feather_bone is not None else []):
        if not graph.owns(bone):
            raise ConfigurationError(f"Bone {getattr(bone, 'name', bone)!r} is not in this graph")

    stops = StopSequence.for_bones(bones, feather_bone, feather_length)
    extent = chain_extent(bones)
    if not math.isclose(extent, length, rel_tol=1e-6, abs_tol=1e-9):
        raise ConfigurationError(
            f"Bone chain {[b.name for b in bones]} covers {extent:.6f} but the "
            f"extrusion is {length:.6f} long"
        )

    mesh = extrude(shape, stops, length, curve_segments)
    # the anchor bone identifies this part once solids are combined
    mesh.metadata["skin_part"] = bones[0].index
    return place_into_bone_space(mesh, bones[0], graph)
