import unittest
from pathlib import Path
import sys

import numpy as np
import trimesh


# Allow `import mammalator.*` from repo root.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from mammalator import tunnel
from mammalator.errors import SkinDataError
from mammalator.skinning import skin_vertices, unpack
from mammalator.weights import StopSequence

STOPS = StopSequence([(0, 0.0), (0, 1.0), (1, 2.0), (1, 3.0)])


def _skinned_triangle(uv, distances, part=0):
    return trimesh.Trimesh(
        vertices=[[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
        faces=[[0, 1, 2]],
        vertex_attributes={
            "skin_uv": np.asarray(uv, dtype=np.float64),
            "skin_part": np.full(3, part),
            "skin_distance": np.asarray(distances, dtype=np.float64),
        },
        process=False,
    )


class TestUnpack(unittest.TestCase):
    def test_decodes_without_parts(self) -> None:
        mesh = _skinned_triangle([[0.0, 0.0], [0.5, 1.5], [1.0, 0.0]], [0.5, 1.5, 2.5])
        geo = unpack(mesh, bone_count=2)
        np.testing.assert_array_equal(geo.skin_indices, [[0, 0], [0, 1], [1, 1]])
        np.testing.assert_allclose(geo.skin_weights, [[1.0, 0.0], [0.5, 0.5], [1.0, 0.0]])
        self.assertIsNone(geo.part_ids)

    def test_interpolated_uv_is_rederived_from_the_part(self) -> None:
        # halfway between (0, 0) and (2, 0): decodes as bone 1 alone
        mesh = _skinned_triangle([[0.0, 0.0], [1.0, 0.0], [1.0, 0.0]], [0.5, 1.5, 2.5])
        geo = unpack(mesh, bone_count=3, parts={0: STOPS})
        np.testing.assert_array_equal(geo.skin_indices, [[0, 0], [0, 1], [1, 1]])
        np.testing.assert_allclose(geo.skin_weights, [[1.0, 0.0], [0.5, 0.5], [1.0, 0.0]])
        np.testing.assert_array_equal(geo.part_ids, [0, 0, 0])

    def test_foreign_bone_is_replaced(self) -> None:
        mesh = _skinned_triangle([[4.0, 0.0], [0.0, 0.0], [1.0, 0.0]], [0.25, 0.75, 2.75])
        geo = unpack(mesh, bone_count=5, parts={0: STOPS})
        self.assertEqual(geo.skin_indices[0].tolist(), [0, 0])

    def test_consistent_vertices_keep_their_decoded_blend(self) -> None:
        uv = tunnel.encode([[0, 0], [0, 1], [1, 1]], [[1.0, 0.0], [0.25, 0.75], [1.0, 0.0]])
        mesh = _skinned_triangle(uv.astype(np.float32), [0.5, 1.75, 2.5])
        geo = unpack(mesh, bone_count=2, parts={0: STOPS})
        np.testing.assert_allclose(geo.skin_weights[1], [0.25, 0.75], atol=1e-5)

    def test_unknown_part_raises(self) -> None:
        mesh = _skinned_triangle([[0.0, 0.0]] * 3, [0.0, 0.0, 0.0], part=7)
        with self.assertRaises(SkinDataError):
            unpack(mesh, bone_count=2, parts={0: STOPS})


class TestSkinVertices(unittest.TestCase):
    def test_blends_two_bone_transforms(self) -> None:
        moved = np.eye(4)
        moved[:3, 3] = (0.0, 2.0, 0.0)
        bones = np.stack([np.eye(4), moved])
        ibms = np.stack([np.eye(4), np.eye(4)])
        out = skin_vertices([[1.0, 0.0, 0.0]], np.array([[0, 1]]), np.array([[0.25, 0.75]]),
                            bones, ibms)
        np.testing.assert_allclose(out, [[1.0, 1.5, 0.0]])


if __name__ == "__main__":
    unittest.main()
