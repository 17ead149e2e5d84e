"""Append-only bone hierarchy with rest-pose transform composition.

Bones follow the skinned-mesh convention: a bone's position is the joint it
rotates around (relative to its parent) and the bone itself points along its
local +Y axis.  ``length`` / ``transition`` only matter for extrusion
weighting: a bone fully owns ``length`` of an extrusion and then blends into the
next bone of the chain over ``transition``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from mammalator.errors import ConfigurationError
from mammalator.transforms import IDENTITY_QUAT, qmul, trs_to_mat4

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bone:
    name: str
    index: int
    parent: int  # parent bone index, -1 for a root
    position: tuple  # (x, y, z) relative to the parent joint
    rotation: tuple  # unit quaternion, xyzw
    length: float = 0.0
    transition: float = 0.0

    @property
    def is_root(self) -> bool:
        return self.parent < 0


class BoneGraph:
    """Owns every bone of one build.  Indices are assigned in insertion order."""

    def __init__(self):
        self._bones = []
        self._by_name = {}

    def __len__(self):
        return len(self._bones)

    def __iter__(self):
        return iter(self._bones)

    def __getitem__(self, index: int) -> Bone:
        return self._bones[index]

    @property
    def bones(self) -> list:
        return list(self._bones)

    def find(self, name: str) -> Bone:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"No bone named {name!r}") from None

    def owns(self, bone) -> bool:
        """True if ``bone`` is the record this graph stored at its index."""
        return (
            isinstance(bone, Bone)
            and 0 <= bone.index < len(self._bones)
            and self._bones[bone.index] is bone
        )

    def add_bone(
        self,
        name: str,
        parent: Optional[Bone] = None,
        position=(0.0, 0.0, 0.0),
        rotation=IDENTITY_QUAT,
        length: float = 0.0,
        transition: float = 0.0,
    ) -> Bone:
        """Register a bone and return the stored record.

        ``parent`` must be a bone previously returned by this graph; forward
        references and foreign bones are rejected.
        """
        if parent is not None and not self.owns(parent):
            raise ConfigurationError(
                f"Bone {name!r}: parent {getattr(parent, 'name', parent)!r} "
                f"is not registered in this graph"
            )
        if name in self._by_name:
            raise ConfigurationError(f"Duplicate bone name {name!r}")
        if length < 0 or transition < 0:
            raise ConfigurationError(
                f"Bone {name!r}: length/transition must be >= 0 "
                f"(got {length}, {transition})"
            )

        pos = np.asarray(position, dtype=np.float64).reshape(3)
        rot = np.asarray(rotation, dtype=np.float64).reshape(4)
        norm = np.linalg.norm(rot)
        if abs(norm - 1.0) > 1e-6:
            raise ConfigurationError(
                f"Bone {name!r}: rotation must be a unit quaternion (|q|={norm:.6f})"
            )

        bone = Bone(
            name=name,
            index=len(self._bones),
            parent=parent.index if parent is not None else -1,
            position=tuple(float(v) for v in pos),
            rotation=tuple(float(v) for v in rot),
            length=float(length),
            transition=float(transition),
        )
        self._bones.append(bone)
        self._by_name[name] = bone
        log.debug(f"bone {bone.index}: {name} (parent {bone.parent})")
        return bone

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def local_transform(self, bone: Bone) -> np.ndarray:
        """Rotation composed with translation, scale fixed at 1."""
        return trs_to_mat4(bone.position, bone.rotation)

    def world_transform(self, bone: Bone) -> np.ndarray:
        """Rest-pose world matrix, O(depth): world(parent) @ local(bone)."""
        local = self.local_transform(bone)
        if bone.is_root:
            return local
        return self.world_transform(self._bones[bone.parent]) @ local

    def world_rotation(self, bone: Bone) -> np.ndarray:
        """Rest-pose world rotation (xyzw)."""
        rot = np.asarray(bone.rotation, dtype=np.float64)
        if bone.is_root:
            return rot
        return qmul(self.world_rotation(self._bones[bone.parent]), rot)

    def world_transforms(self) -> np.ndarray:
        """(N, 4, 4) world matrices for all bones in one top-down pass.

        Parents always precede children (no forward references), so insertion
        order is a topological order.
        """
        world = np.zeros((len(self._bones), 4, 4), dtype=np.float64)
        for bone in self._bones:
            local = self.local_transform(bone)
            if bone.is_root:
                world[bone.index] = local
            else:
                world[bone.index] = world[bone.parent] @ local
        return world

    def inverse_bind_matrices(self) -> np.ndarray:
        """(N, 4, 4) inverses of the rest-pose world matrices."""
        return np.linalg.inv(self.world_transforms())

    def hierarchy(self) -> list:
        """Plain per-bone records (parent index, name, pos, rotq) for renderers."""
        return [
            {
                "parent": bone.parent,
                "name": bone.name,
                "pos": list(bone.position),
                "rotq": list(bone.rotation),
            }
            for bone in self._bones
        ]
