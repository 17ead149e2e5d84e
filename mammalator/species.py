"""Species factories: configured dimensions → skinned mesh.

Base horse size:
- Torso: 1.5m long, 0.75m high, 0.4m wide
- Legs: 0.75m from the bottom of the torso; they extend up to the middle of
  the torso since the torso is not a cuboid.
"""

import logging

from mammalator.bodyparts import LegPairSpec, Torso, TorsoSpec
from mammalator.config import COLOR_NAME_TO_RGBA, SPECIES_SPECS
from mammalator.errors import ConfigurationError
from mammalator.skeleton import BoneGraph
from mammalator.skinning import make_skinned_mesh

log = logging.getLogger(__name__)

SPECIES = list(SPECIES_SPECS.keys())

_LINEAR_FIELDS = ("length", "height", "width", "skin_depth", "leg_length", "foot_length")


def resolve_material(material, default=None) -> list:
    """Color name, RGBA list (0-255) or None → RGBA list."""
    if material is None:
        material = default if default is not None else "gray"
    if isinstance(material, str):
        try:
            return list(COLOR_NAME_TO_RGBA[material])
        except KeyError:
            raise ConfigurationError(
                f"Unknown color {material!r} (known: {sorted(COLOR_NAME_TO_RGBA)})"
            ) from None
    rgba = [int(c) for c in material]
    if len(rgba) == 3:
        rgba.append(255)
    if len(rgba) != 4 or any(c < 0 or c > 255 for c in rgba):
        raise ConfigurationError(f"Material must be RGB(A) in 0-255, got {material!r}")
    return rgba


def torso_spec(name: str, scale: float = 1.0) -> TorsoSpec:
    """Configured torso spec for a species, every length multiplied by ``scale``."""
    if name not in SPECIES_SPECS:
        raise ConfigurationError(f"Unknown species {name!r} (known: {SPECIES})")
    if not scale > 0:
        raise ConfigurationError(f"Scale must be positive, got {scale}")
    raw = SPECIES_SPECS[name]
    try:
        dims = {key: float(raw[key]) * scale for key in _LINEAR_FIELDS}
        pairs = tuple(LegPairSpec(radius=float(p["radius"]) * scale) for p in raw["leg_pairs"])
    except (KeyError, TypeError) as e:
        raise ConfigurationError(f"Species {name!r} is misconfigured: {e}") from e
    return TorsoSpec(leg_pairs=pairs, **dims)


def build_species(name: str, material=None, scale: float = 1.0):
    """Build the skinned mesh of a configured species."""
    spec = torso_spec(name, scale)
    rgba = resolve_material(material, SPECIES_SPECS[name].get("color"))

    graph = BoneGraph()
    torso = Torso(spec)
    solid = torso.create_csg(graph)
    log.info(f"{name}: composed {len(graph)} bones at scale {scale}")
    return make_skinned_mesh(solid, graph, material=rgba, name=name)


def build_horse(material=None, scale: float = 1.0):
    return build_species("horse", material=material, scale=scale)
