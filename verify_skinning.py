#!/usr/bin/env python3
"""Check a skinned .glb written by make_mammal.py.

- weights of every vertex sum to 1 and reference existing joints
- rest-pose linear blend skinning reproduces the stored vertex positions
- inverse bind matrices invert the rest-pose joint hierarchy

Usage:
    python verify_skinning.py output/horse.glb
"""

import argparse
import sys
from pathlib import Path

import numpy as np

from mammalator.glb_parser import parse_skinned_glb
from mammalator.skinning import skin_vertices


def verify(path, tol=1e-4):
    """Returns a list of failure messages (empty when the file checks out)."""
    glb = parse_skinned_glb(path)
    n_joints = len(glb.joint_names)
    failures = []

    weight_err = np.abs(glb.weights.sum(axis=1) - 1.0).max()
    print(f"  {n_joints} joints, {len(glb.positions)} vertices, {len(glb.faces)} faces")
    print(f"  max |sum(weights) - 1| = {weight_err:.2e}")
    if weight_err > tol:
        failures.append(f"weights do not sum to 1 (max error {weight_err:.2e})")

    if glb.joints.min() < 0 or glb.joints.max() >= n_joints:
        failures.append(f"joint indices outside [0, {n_joints})")
        return failures

    ibm_err = np.abs(
        np.einsum("nij,njk->nik", glb.rest_world_matrices, glb.inverse_bind_matrices)
        - np.eye(4)
    ).max()
    print(f"  max |world @ ibm - I| = {ibm_err:.2e}")
    if ibm_err > tol:
        failures.append(f"inverse bind matrices do not match the rest pose ({ibm_err:.2e})")

    skinned = skin_vertices(glb.positions, glb.joints[:, :2], glb.weights[:, :2],
                            glb.rest_world_matrices, glb.inverse_bind_matrices)
    pos_err = np.linalg.norm(skinned - glb.positions, axis=1).max()
    print(f"  max rest-pose skinning error = {pos_err:.2e}")
    if pos_err > tol:
        failures.append(f"rest-pose skinning moves vertices (max {pos_err:.2e})")
    return failures


def main():
    parser = argparse.ArgumentParser(description="Verify a skinned mammal .glb")
    parser.add_argument("glb", nargs="+", help="GLB file(s) to check")
    parser.add_argument("--tol", type=float, default=1e-4, help="Tolerance (default: 1e-4)")
    args = parser.parse_args()

    bad = 0
    for p in args.glb:
        p = Path(p)
        if not p.exists():
            print(f"Error: {p} not found", file=sys.stderr)
            bad += 1
            continue
        print(f"{p}:")
        failures = verify(p, args.tol)
        for msg in failures:
            print(f"FAIL: {p.name}: {msg}", file=sys.stderr)
        if failures:
            bad += 1
        else:
            print(f"OK: {p.name}")

    if bad:
        sys.exit(1)


if __name__ == "__main__":
    main()
