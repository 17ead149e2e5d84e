import unittest
from pathlib import Path
import sys

import numpy as np
import trimesh
from shapely.geometry import Polygon


# Allow `import mammalator.*` from repo root.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from mammalator import csg, tunnel
from mammalator.bodyparts import LegPairSpec, Torso, TorsoSpec
from mammalator.errors import ConfigurationError, DegenerateGeometryError, SolidConsumedError
from mammalator.extrusion import BoneUVGenerator, extrude_profile
from mammalator.skeleton import BoneGraph
from mammalator.skinning import unpack
from mammalator.weights import StopSequence


def _box_mesh(bone: int, offset=(0.0, 0.0, 0.0), size: float = 1.0):
    square = Polygon([(0, 0), (size, 0), (size, size), (0, size)])
    stops = StopSequence([(bone, 0.0)])
    mesh = extrude_profile(square, size, 2, BoneUVGenerator(stops, size))
    mesh.apply_translation(offset)
    return mesh


def _box(bone: int, offset=(0.0, 0.0, 0.0), size: float = 1.0, name: str = "box"):
    return csg.Solid.from_mesh(_box_mesh(bone, offset, size), name=name, part=bone,
                               stops=StopSequence([(bone, 0.0)]))


class TestSolidLifecycle(unittest.TestCase):
    def test_operands_are_consumed(self) -> None:
        a = _box(0, name="a")
        b = _box(1, offset=(0.5, 0.0, 0.0), name="b")
        result = csg.union(a, b)
        self.assertTrue(a.consumed)
        self.assertTrue(b.consumed)
        self.assertFalse(result.is_empty())
        with self.assertRaises(SolidConsumedError):
            a.to_mesh()
        with self.assertRaises(SolidConsumedError):
            csg.union(result, b)

    def test_consumed_right_operand_leaves_left_intact(self) -> None:
        a = _box(0, name="a")
        b = _box(1, name="b")
        csg.union(b, _box(2, offset=(3.0, 0.0, 0.0)))
        with self.assertRaises(SolidConsumedError):
            csg.union(a, b)
        self.assertFalse(a.consumed)

    def test_union_with_itself_raises(self) -> None:
        a = _box(0)
        with self.assertRaises(SolidConsumedError):
            csg.union(a, a)

    def test_union_all_needs_input(self) -> None:
        with self.assertRaises(ConfigurationError):
            csg.union_all([])

    def test_open_mesh_is_rejected(self) -> None:
        mesh = _box_mesh(0)
        open_mesh = trimesh.Trimesh(
            vertices=mesh.vertices,
            faces=mesh.faces[:-1],
            vertex_attributes=dict(mesh.vertex_attributes),
            process=False,
        )
        with self.assertRaises(DegenerateGeometryError):
            csg.Solid.from_mesh(open_mesh, part=0, stops=StopSequence([(0, 0.0)]))

    def test_mesh_without_part_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            csg.Solid.from_mesh(_box_mesh(0))

    def test_parts_with_the_same_anchor_cannot_combine(self) -> None:
        a = _box(3)
        b = _box(3, offset=(0.5, 0.0, 0.0))
        with self.assertRaises(ConfigurationError):
            csg.union(a, b)
        self.assertFalse(a.consumed)
        self.assertFalse(b.consumed)


class TestBooleans(unittest.TestCase):
    def test_subtract_removes_volume(self) -> None:
        result = csg.subtract(_box(0, size=2.0), _box(1, offset=(1.0, 1.0, 1.0), size=2.0))
        self.assertAlmostEqual(result.to_mesh().volume, 7.0, places=4)

    def test_union_volume(self) -> None:
        result = csg.union(_box(0), _box(1, offset=(0.5, 0.0, 0.0)))
        self.assertAlmostEqual(result.to_mesh().volume, 1.5, places=4)

    def test_disjoint_union_keeps_bone_ids(self) -> None:
        result = csg.union_all([_box(2), _box(5, offset=(10.0, 0.0, 0.0))])
        mesh = result.to_mesh()
        indices, weights = tunnel.decode(mesh.vertex_attributes["skin_uv"], bone_count=6)
        near = mesh.vertices[:, 0] < 5.0
        np.testing.assert_array_equal(np.unique(indices[near]), [2])
        np.testing.assert_array_equal(np.unique(indices[~near]), [5])
        np.testing.assert_allclose(weights[:, 0], 1.0)
        np.testing.assert_array_equal(np.unique(mesh.vertex_attributes["skin_part"][near]), [2])
        self.assertEqual(set(result.parts), {2, 5})

    def test_torso_and_legs_share_seam_vertices(self) -> None:
        spec = TorsoSpec(length=1.5, height=0.75, width=0.4, skin_depth=0.01,
                         leg_length=0.75, foot_length=0.1,
                         leg_pairs=(LegPairSpec(0.05),))
        graph = BoneGraph()
        torso = Torso(spec)
        meshes = [torso.create_torso_mesh(graph)]
        pair = torso.leg_pairs[0]
        meshes.append(pair.left.create_mesh(graph, pair.spine_bone, pair.left_joint_offset))
        meshes.append(pair.right.create_mesh(graph, pair.spine_bone, pair.right_joint_offset))

        solid = csg.union_all(
            csg.Solid.from_mesh(m, name=str(i)) for i, m in enumerate(meshes)
        )
        mesh = solid.to_mesh()
        distinct = np.unique(np.round(mesh.vertices, 6), axis=0)
        self.assertLessEqual(len(distinct), sum(len(m.vertices) for m in meshes))
        self.assertGreater(mesh.volume, 0.0)
        geo = unpack(mesh, len(graph), parts=solid.parts)
        self.assertEqual(geo.skin_indices.max(), len(graph) - 1)
        for part, stops in solid.parts.items():
            on_part = geo.part_ids == part
            self.assertTrue(on_part.any())
            self.assertLessEqual(set(np.unique(geo.skin_indices[on_part]).tolist()),
                                 stops.bone_indices)


if __name__ == "__main__":
    unittest.main()
