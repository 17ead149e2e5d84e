#!/usr/bin/env python3
"""CLI: Build procedurally skinned mammal meshes and write them as .glb files."""

import argparse
import logging
import sys
from pathlib import Path

from mammalator.errors import MammalatorError
from mammalator.glb_writer import write_skinned_glb
from mammalator.preview import write_preview_glb
from mammalator.species import SPECIES, build_species

log = logging.getLogger("make_mammal")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Build a skinned mammal mesh and write it as .glb"
    )
    parser.add_argument("species", nargs="+", choices=SPECIES, help="Species to build")
    parser.add_argument("--scale", type=float, default=1.0,
                        help="Multiply every dimension (default: 1.0)")
    parser.add_argument("--color", type=str, default=None,
                        help="Color name from config.yaml (default: species color)")
    parser.add_argument("--output-dir", type=str, default="./output",
                        help="Output directory for .glb files")
    parser.add_argument("--preview", action="store_true",
                        help="Also write <species>_preview.glb with joints and bone colors")
    parser.add_argument("--overwrite", action="store_true",
                        help="Overwrite existing .glb files")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s | %(message)s")

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    failed = 0
    for name in args.species:
        out_path = output_dir / f"{name}.glb"
        if out_path.exists() and not args.overwrite:
            print(f"Skipping {name} ({out_path} exists, use --overwrite)")
            continue
        try:
            skinned = build_species(name, material=args.color, scale=args.scale)
        except MammalatorError as e:
            log.error(f"{name}: build failed: {e}")
            failed += 1
            continue

        write_skinned_glb(skinned, out_path)
        print(f"OK: {out_path} ({skinned.bone_count} bones, "
              f"{len(skinned.positions)} vertices)")
        if args.preview:
            preview_path = output_dir / f"{name}_preview.glb"
            write_preview_glb(skinned, preview_path, joint_radius=0.02 * args.scale)
            print(f"OK: {preview_path}")

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
