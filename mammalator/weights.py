"""Bone weighting along an extrusion axis.

Weighting works like a linear gradient with a finite set of colors: each stop
pins the weighting fully to one bone at one distance along the extrusion.
Between two stops naming the same bone nothing blends; between stops naming
different bones the weight hands off linearly from one to the other.
"""

from typing import NamedTuple

import numpy as np

from mammalator.errors import ConfigurationError


class Stop(NamedTuple):
    bone_index: int
    offset: float  # distance, not ratio, along the whole extrusion


class BoneBlend(NamedTuple):
    index_a: int
    weight_a: float
    index_b: int
    weight_b: float

    @property
    def is_blend(self) -> bool:
        return self.index_a != self.index_b and self.weight_b > 0.0


class StopSequence:
    """Immutable, validated list of stops with non-decreasing offsets.

    Equal offsets are allowed and form a hard edge between two bones.
    """

    def __init__(self, stops):
        stops = tuple(Stop(int(b), float(o)) for b, o in stops)
        if not stops:
            raise ConfigurationError("StopSequence needs at least one stop")
        for i, stop in enumerate(stops):
            if stop.bone_index < 0:
                raise ConfigurationError(f"Stop {i}: negative bone index {stop.bone_index}")
            if i and stop.offset < stops[i - 1].offset:
                raise ConfigurationError(
                    f"Stop {i}: offset {stop.offset} decreases "
                    f"(previous {stops[i - 1].offset})"
                )
        self._stops = stops

    @classmethod
    def for_bones(cls, bones, feather_bone=None, feather_length: float = 0.0):
        """Stops for a chain of bones extruded one after another.

        Each bone gets a stop at both ends of its pure region; the bone's
        transition is just extra distance before the next bone's first stop, so
        interpolation happens there.  A feather bone pins distance 0 and pushes
        the first bone's first stop out to ``feather_length``.
        """
        if not bones:
            raise ConfigurationError("Cannot build stops for an empty bone chain")

        stops = []
        first_offset = 0.0
        if feather_bone is not None:
            stops.append((feather_bone.index, 0.0))
            first_offset = float(feather_length)

        total = 0.0
        for i, bone in enumerate(bones):
            stops.append((bone.index, first_offset if i == 0 else total))
            total += bone.length
            stops.append((bone.index, total))
            total += bone.transition
        return cls(stops)

    @property
    def stops(self) -> tuple:
        return self._stops

    @property
    def bone_indices(self) -> set:
        return {s.bone_index for s in self._stops}

    def __len__(self):
        return len(self._stops)

    def __iter__(self):
        return iter(self._stops)

    def weight_at(self, distance: float) -> BoneBlend:
        """Blend of at most two bones at ``distance``; weights sum to 1.

        Linear scan for the bracketing stops.  An exact offset match treats that
        stop as both ends; distances outside the stops clamp to the boundary
        stop.
        """
        stops = self._stops
        prev_stop = stops[0]
        next_stop = stops[0]
        for stop in stops:
            next_stop = stop
            if stop.offset == distance:
                prev_stop = stop
                break
            if stop.offset > distance:
                break
            # (important for when we run off the end, distance-wise)
            prev_stop = stop

        if prev_stop.bone_index == next_stop.bone_index:
            return BoneBlend(prev_stop.bone_index, 1.0, prev_stop.bone_index, 0.0)

        ratio = (distance - prev_stop.offset) / (next_stop.offset - prev_stop.offset)
        return BoneBlend(prev_stop.bone_index, 1.0 - ratio, next_stop.bone_index, ratio)

    def weights_at(self, distances):
        """Vectorised ``weight_at``: (n, 2) indices and (n, 2) weights."""
        distances = np.asarray(distances, dtype=np.float64).ravel()
        indices = np.zeros((len(distances), 2), dtype=np.int64)
        weights = np.zeros((len(distances), 2), dtype=np.float64)
        for i, d in enumerate(distances):
            blend = self.weight_at(float(d))
            indices[i] = (blend.index_a, blend.index_b)
            weights[i] = (blend.weight_a, blend.weight_b)
        return indices, weights


def chain_extent(bones) -> float:
    """Extrusion distance covered by a bone chain (lengths + transitions)."""
    return float(sum(b.length + b.transition for b in bones))
