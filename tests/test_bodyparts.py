import unittest
from pathlib import Path
import sys

import numpy as np


# Allow `import mammalator.*` from repo root.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from mammalator.bodyparts import QUARTER_TURN_X, Leg, LegPairSpec, LegSpec, Torso, TorsoSpec
from mammalator.errors import ConfigurationError
from mammalator.skeleton import BoneGraph
from mammalator.weights import chain_extent


def _torso_spec(*radii, **overrides):
    dims = dict(length=1.5, height=0.75, width=0.4, skin_depth=0.01,
                leg_length=0.75, foot_length=0.1)
    dims.update(overrides)
    return TorsoSpec(leg_pairs=tuple(LegPairSpec(r) for r in radii), **dims)


class TestLeg(unittest.TestCase):
    def setUp(self) -> None:
        self.graph = BoneGraph()
        self.root = self.graph.add_bone("root", rotation=QUARTER_TURN_X)
        self.leg = Leg("leg", LegSpec(radius=0.05, overall_length=0.75, foot_length=0.1))

    def test_bone_lengths(self) -> None:
        upper, lower, foot = self.leg.add_bones(self.graph, self.root, (0.0, 0.0, 0.0))
        np.testing.assert_allclose([upper.length, lower.length, foot.length],
                                   [0.325, 0.195, 0.1])
        np.testing.assert_allclose([upper.transition, lower.transition, foot.transition],
                                   [0.065, 0.065, 0.0])
        self.assertAlmostEqual(chain_extent([upper, lower, foot]), 0.75)
        self.assertEqual([b.name for b in self.leg.bones],
                         ["leg-upper-leg", "leg-lower-leg", "leg-foot"])

    def test_leg_hangs_down(self) -> None:
        _, lower, foot = self.leg.add_bones(self.graph, self.root, (0.0, 0.0, 0.0))
        np.testing.assert_allclose(self.graph.world_transform(foot)[:3, 3],
                                   [0.0, -0.6175, 0.0], atol=1e-9)
        self.assertLess(self.graph.world_transform(lower)[1, 3], 0.0)

    def test_mesh_spans_overall_length(self) -> None:
        mesh = self.leg.create_mesh(self.graph, self.root, (0.0, 0.0, 0.0))
        self.assertAlmostEqual(mesh.bounds[0][1], -0.75)
        self.assertAlmostEqual(mesh.bounds[1][1], 0.0)
        # the top of the leg feathers into the parent bone
        top = np.isclose(mesh.vertices[:, 1], 0.0)
        np.testing.assert_array_equal(
            np.unique(mesh.vertex_attributes["skin_indices"][top]), [self.root.index]
        )

    def test_rejects_bad_foot_length(self) -> None:
        with self.assertRaises(ConfigurationError):
            Leg("leg", LegSpec(radius=0.05, overall_length=0.75, foot_length=0.75))
        with self.assertRaises(ConfigurationError):
            Leg("leg", LegSpec(radius=0.05, overall_length=0.75, foot_length=-0.1))

    def test_rejects_bad_radius(self) -> None:
        with self.assertRaises(ConfigurationError):
            Leg("leg", LegSpec(radius=0.0, overall_length=0.75, foot_length=0.1))


class TestTorso(unittest.TestCase):
    def test_spine_bone_count(self) -> None:
        graph = BoneGraph()
        spine = Torso(_torso_spec(0.05, 0.1)).add_bones(graph)
        self.assertEqual(len(graph), 3)
        self.assertEqual([b.name for b in spine], ["spine0", "spine1"])
        self.assertEqual(graph[0].name, "root")
        self.assertEqual(spine[1].parent, spine[0].index)

    def test_single_pair(self) -> None:
        graph = BoneGraph()
        Torso(_torso_spec(0.05)).add_bones(graph)
        self.assertEqual(len(graph), 2)

    def test_spine_runs_along_body(self) -> None:
        graph = BoneGraph()
        spine = Torso(_torso_spec(0.05, 0.1)).add_bones(graph)
        first = graph.world_transform(spine[0])[:3, 3]
        second = graph.world_transform(spine[1])[:3, 3]
        np.testing.assert_allclose(first, [0.0, 1.49, 0.01], atol=1e-9)
        np.testing.assert_allclose(second - first, [0.0, 0.0, 1.48], atol=1e-9)

    def test_last_spine_bone_has_no_transition(self) -> None:
        graph = BoneGraph()
        spine = Torso(_torso_spec(0.05, 0.1)).add_bones(graph)
        self.assertAlmostEqual(spine[0].transition, 0.15)
        self.assertAlmostEqual(spine[0].length, 0.6)
        self.assertEqual(spine[1].transition, 0.0)
        self.assertAlmostEqual(spine[1].length, 0.75)

    def test_mirrored_joints(self) -> None:
        torso = Torso(_torso_spec(0.05, 0.1))
        for pair, radius in zip(torso.leg_pairs, (0.05, 0.1)):
            np.testing.assert_allclose(pair.left_joint_offset * [-1, 1, 1],
                                       pair.right_joint_offset)
            self.assertAlmostEqual(pair.right_joint_offset[0], 0.2 - radius)
            self.assertEqual(pair.left.name, f"legs{pair.index}-left")
            self.assertEqual(pair.right.name, f"legs{pair.index}-right")

    def test_hip_height(self) -> None:
        graph = BoneGraph()
        torso = Torso(_torso_spec(0.05, 0.1))
        torso.add_bones(graph)
        pair = torso.leg_pairs[0]
        upper, _, _ = pair.left.add_bones(graph, pair.spine_bone, pair.left_joint_offset)
        hip = graph.world_transform(upper)[:3, 3]
        self.assertAlmostEqual(hip[1], 0.75 + 0.375)
        self.assertAlmostEqual(hip[0], -0.15)

    def test_torso_mesh_top_is_flush(self) -> None:
        graph = BoneGraph()
        mesh = Torso(_torso_spec(0.05, 0.1)).create_torso_mesh(graph)
        self.assertAlmostEqual(mesh.bounds[1][1], 1.5)
        self.assertAlmostEqual(mesh.bounds[0][1], 0.75)
        self.assertTrue(mesh.is_watertight)

    def test_rejects_missing_leg_pairs(self) -> None:
        with self.assertRaises(ConfigurationError):
            Torso(_torso_spec())

    def test_rejects_legs_wider_than_torso(self) -> None:
        with self.assertRaises(ConfigurationError):
            Torso(_torso_spec(0.3))

    def test_rejects_non_positive_dimensions(self) -> None:
        with self.assertRaises(ConfigurationError):
            Torso(_torso_spec(0.05, height=0.0))


if __name__ == "__main__":
    unittest.main()
