"""Body parts: each one places its bones and produces a CSG solid.

Parts:
- Torso
- Legs

The torso is the core of the hierarchy.  Bones mimic reality with a spine just
below the surface at the top of the torso:

- Root/anchor bone: the spine at the withers.
- One spine bone per leg pair.  It owns the part of the torso around it, with
  transitions into the next spine bone.
- Three bones per leg, hung off the matching spine bone.  The torso decides
  where the hip joint goes but leaves creating the leg bones to the leg, which
  also feathers the top of its skin into the spine bone so there is no seam.

The horse stands on the y=0 floor with its withers at z=0 and its head looking
along -Z.  It extends along +Z and is mirror-symmetric across x=0.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from mammalator import csg
from mammalator.config import (
    LEG_FEATHER_RATIO,
    LEG_TRANSITION_RATIO,
    LOWER_LEG_RATIO,
    SPINE_TRANSITION_RATIO,
    UPPER_LEG_RATIO,
)
from mammalator.errors import ConfigurationError
from mammalator.extrusion import EllipseShape, extrude_bones
from mammalator.transforms import IDENTITY_QUAT, quat_from_axis_angle

log = logging.getLogger(__name__)

# Bones point +Y; a quarter turn around +X swings a bone's +Y onto its
# parent's +Z.  Used both for root (+Y → +Z, along the body) and for legs
# (+Z of the spine is world -Y, i.e. groundward).
QUARTER_TURN_X = tuple(quat_from_axis_angle([1, 0, 0], np.pi / 2))


@dataclass(frozen=True)
class LegPairSpec:
    radius: float


@dataclass(frozen=True)
class LegSpec:
    radius: float
    overall_length: float  # includes everything, the foot too
    foot_length: float


@dataclass(frozen=True)
class TorsoSpec:
    length: float
    height: float
    width: float
    skin_depth: float  # how far under the dorsal surface the spine runs
    leg_length: float  # floor to torso bottom
    foot_length: float
    leg_pairs: tuple = field(default_factory=tuple)


@dataclass
class LegPair:
    index: int
    left: "Leg"
    right: "Leg"
    left_joint_offset: np.ndarray
    right_joint_offset: np.ndarray
    spine_position: np.ndarray  # relative to the previous spine bone (or root)
    spine_bone: object = None


class Leg:
    """A leg walking along -Z, straight down from its hip joint.

    Bones / segments, top to bottom:
    - Upper leg, entirely that bone
    - Knee: quick linear transition between upper and lower leg
    - Lower leg, entirely that bone
    - Ankle: like the knee, a quick transition
    - Foot, with a hard end (no transition)
    """

    def __init__(self, name: str, spec: LegSpec):
        if spec.radius <= 0:
            raise ConfigurationError(f"Leg {name!r}: radius must be positive")
        if not 0 <= spec.foot_length < spec.overall_length:
            raise ConfigurationError(
                f"Leg {name!r}: foot length {spec.foot_length} must be within "
                f"[0, overall length {spec.overall_length})"
            )
        self.name = name
        self.radius = spec.radius
        self.overall_length = spec.overall_length
        self.foot_length = spec.foot_length
        self.bones = []

    @property
    def leg_length(self) -> float:
        """Length of everything above the foot."""
        return self.overall_length - self.foot_length

    def add_bones(self, graph, spine_bone, joint_offset) -> list:
        leg_length = self.leg_length
        upper_len = leg_length * UPPER_LEG_RATIO
        lower_len = leg_length * LOWER_LEG_RATIO
        joint_len = leg_length * LEG_TRANSITION_RATIO

        upper = graph.add_bone(
            f"{self.name}-upper-leg",
            parent=spine_bone,
            position=joint_offset,
            rotation=QUARTER_TURN_X,
            length=upper_len,
            transition=joint_len,
        )
        # Children continue straight down their parent's +Y; joints sit in the
        # middle of the transition they bend.
        lower = graph.add_bone(
            f"{self.name}-lower-leg",
            parent=upper,
            position=(0.0, upper_len + joint_len / 2, 0.0),
            rotation=IDENTITY_QUAT,
            length=lower_len,
            transition=joint_len,
        )
        foot = graph.add_bone(
            f"{self.name}-foot",
            parent=lower,
            position=(0.0, joint_len / 2 + lower_len + joint_len / 2, 0.0),
            # the foot wants to be tangent to the ground eventually
            rotation=IDENTITY_QUAT,
            length=self.foot_length,
            transition=0.0,
        )
        self.bones = [upper, lower, foot]
        return self.bones

    def create_mesh(self, graph, spine_bone, joint_offset):
        """Add the leg bones and extrude the leg skin over them."""
        bones = self.add_bones(graph, spine_bone, joint_offset)
        mesh = extrude_bones(
            graph,
            EllipseShape(self.radius, self.radius),
            bones,
            self.overall_length,
            feather_bone=spine_bone,
            feather_length=self.leg_length * LEG_FEATHER_RATIO,
        )
        log.debug(f"{self.name}: {len(mesh.vertices)} vertices")
        return mesh

    def create_csg(self, graph, spine_bone, joint_offset) -> "csg.Solid":
        return csg.Solid.from_mesh(self.create_mesh(graph, spine_bone, joint_offset),
                                   name=self.name)


class Torso:
    """Extruded oval body, the root of the bone hierarchy (quadrupeds and up)."""

    def __init__(self, spec: TorsoSpec):
        if not spec.leg_pairs:
            raise ConfigurationError("Torso needs at least one leg pair")
        for attr in ("length", "height", "width", "leg_length"):
            if getattr(spec, attr) <= 0:
                raise ConfigurationError(f"Torso {attr} must be positive")
        if not 0 <= 2 * spec.skin_depth < min(spec.length, spec.height):
            raise ConfigurationError(f"Torso skin depth {spec.skin_depth} too large")

        self.spec = spec
        self.length = spec.length
        self.height = spec.height
        self.width = spec.width
        self.skin_depth = spec.skin_depth
        self.leg_length = spec.leg_length

        half_height = spec.height / 2
        half_width = spec.width / 2
        torso_top = spec.leg_length + spec.height
        self.spine_top = torso_top - spec.skin_depth
        self.root_position = np.array([0.0, self.spine_top, spec.skin_depth])

        n_pairs = len(spec.leg_pairs)
        spine_length = spec.length - spec.skin_depth * 2
        # Bone space: spine bones run along their own +Y
        spine_delta = np.array([0.0, spine_length / (n_pairs - 1), 0.0]) if n_pairs > 1 \
            else np.zeros(3)

        leg_spec_base = dict(
            overall_length=spec.leg_length + half_height,
            foot_length=spec.foot_length,
        )
        self.leg_pairs = []
        for i, pair in enumerate(spec.leg_pairs):
            if pair.radius * 2 > spec.width:
                raise ConfigurationError(f"Leg pair {i}: legs wider than the torso")
            leg_spec = LegSpec(radius=pair.radius, **leg_spec_base)
            x_offset = half_width - pair.radius
            # In world space hips are displaced in X/Y, but the spine is rotated
            # from +Y to +Z, so in spine-bone space that is X/Z.
            z_offset = self.spine_top - (spec.leg_length + half_height)
            self.leg_pairs.append(LegPair(
                index=i,
                left=Leg(f"legs{i}-left", leg_spec),
                right=Leg(f"legs{i}-right", leg_spec),
                left_joint_offset=np.array([-x_offset, 0.0, z_offset]),
                right_joint_offset=np.array([x_offset, 0.0, z_offset]),
                spine_position=spine_delta.copy() if i else np.zeros(3),
            ))

    def add_bones(self, graph) -> list:
        """Root plus one chained spine bone per leg pair; returns the spine bones."""
        root = graph.add_bone(
            "root",
            position=self.root_position,
            # point the bone's +Y along the body's +Z
            rotation=QUARTER_TURN_X,
        )
        n_pairs = len(self.leg_pairs)
        segment = self.length / n_pairs

        spine_bones = []
        parent = root
        for pair in self.leg_pairs:
            last = pair.index == n_pairs - 1
            transition = 0.0 if last else segment * SPINE_TRANSITION_RATIO
            parent = pair.spine_bone = graph.add_bone(
                f"spine{pair.index}",
                parent=parent,
                position=pair.spine_position,
                rotation=IDENTITY_QUAT,
                length=segment - transition,
                transition=transition,
            )
            spine_bones.append(parent)
        return spine_bones

    def create_torso_mesh(self, graph):
        spine_bones = self.add_bones(graph)
        # Profile y maps to world y; drop the oval so its top is skin_depth
        # above the spine.
        shape = EllipseShape(
            self.width / 2,
            self.height / 2,
            center=(0.0, -(self.height / 2 - self.skin_depth)),
        )
        return extrude_bones(graph, shape, spine_bones, self.length)

    def create_csg(self, graph) -> "csg.Solid":
        """torso ∪ leg(0, left) ∪ leg(0, right) ∪ leg(1, left) ∪ ..."""
        solids = [csg.Solid.from_mesh(self.create_torso_mesh(graph), name="torso")]
        for pair in self.leg_pairs:
            solids.append(pair.left.create_csg(graph, pair.spine_bone, pair.left_joint_offset))
            solids.append(pair.right.create_csg(graph, pair.spine_bone, pair.right_joint_offset))
        log.info(f"torso: {len(self.leg_pairs)} leg pair(s), {len(graph)} bones")
        return csg.union_all(solids)
