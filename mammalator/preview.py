"""Debug preview: the mesh colored by dominant bone, plus joint spheres and
bone cylinders, as a trimesh.Scene."""

import numpy as np
import trimesh

# Cycled per bone index
_PALETTE = np.array([
    [0, 0, 255, 255],
    [0, 180, 0, 255],
    [255, 0, 0, 255],
    [135, 206, 235, 255],
    [0, 255, 255, 255],
    [128, 0, 128, 255],
    [255, 192, 203, 255],
    [255, 165, 0, 255],
    [255, 255, 0, 255],
    [128, 128, 128, 255],
], dtype=np.uint8)


def bone_colors(n_bones: int) -> np.ndarray:
    return _PALETTE[np.arange(n_bones) % len(_PALETTE)]


def dominant_bones(skin_indices, skin_weights) -> np.ndarray:
    """Per-vertex index of the heavier of the two bones."""
    heavier = np.argmax(skin_weights, axis=1)
    return skin_indices[np.arange(len(skin_indices)), heavier]


def _bone_transform(start, end):
    """4x4 transform for a unit Z-cylinder to span start→end, or None."""
    direction = end - start
    length = np.linalg.norm(direction)
    if length < 1e-10:
        return None
    mat = trimesh.geometry.align_vectors([0, 0, 1], direction / length)
    mat[:3, 2] *= length
    mat[:3, 3] = (start + end) / 2.0
    return mat


def build_preview_scene(skinned, joint_radius: float = 0.02) -> trimesh.Scene:
    scene = trimesh.Scene()
    colors = bone_colors(skinned.bone_count)

    geo = skinned.geometry
    body = trimesh.Trimesh(vertices=geo.positions, faces=geo.faces, process=False)
    body.visual.vertex_colors = colors[dominant_bones(geo.skin_indices, geo.skin_weights)]
    scene.add_geometry(body, node_name=skinned.name, geom_name=f"{skinned.name}_geom")

    # Rest-pose joint positions are the translation part of the bind matrices
    joint_pos = np.linalg.inv(skinned.inverse_bind_matrices)[:, :3, 3]
    for i, bone in enumerate(skinned.bones):
        sphere = trimesh.creation.icosphere(subdivisions=1, radius=joint_radius)
        sphere.visual.face_colors = colors[i]
        transform = np.eye(4)
        transform[:3, 3] = joint_pos[i]
        scene.add_geometry(sphere, node_name=f"joint_{bone['name']}",
                           geom_name=f"joint_{i}_geom", transform=transform)

        parent = bone["parent"]
        if parent < 0:
            continue
        transform = _bone_transform(joint_pos[parent], joint_pos[i])
        if transform is None:
            continue
        cylinder = trimesh.creation.cylinder(radius=joint_radius * 0.3, height=1.0, sections=8)
        cylinder.visual.face_colors = colors[parent]
        scene.add_geometry(cylinder, node_name=f"bone_{parent}_{i}",
                           geom_name=f"bone_{parent}_{i}_geom", transform=transform)
    return scene


def write_preview_glb(skinned, output_path, joint_radius: float = 0.02):
    scene = build_preview_scene(skinned, joint_radius)
    data = scene.export(file_type="glb")
    with open(output_path, "wb") as f:
        f.write(data)
    return output_path
