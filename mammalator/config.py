import yaml
from pathlib import Path

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

with open(_CONFIG_PATH) as f:
    _cfg = yaml.safe_load(f)

SAMPLE_DENSITY = float(_cfg["extrusion"]["sample_density"])
CURVE_SEGMENTS = int(_cfg["extrusion"]["curve_segments"])

TUNNEL_EPSILON = float(_cfg["tunnel"]["epsilon"])

SPINE_TRANSITION_RATIO = float(_cfg["spine"]["transition_ratio"])

# Fractions of (overall leg length - foot length)
UPPER_LEG_RATIO = float(_cfg["leg"]["upper_ratio"])
LOWER_LEG_RATIO = float(_cfg["leg"]["lower_ratio"])
LEG_TRANSITION_RATIO = float(_cfg["leg"]["joint_transition_ratio"])
LEG_FEATHER_RATIO = float(_cfg["leg"]["feather_ratio"])

# Species name → raw dimension dict, in config order
SPECIES_SPECS = dict(_cfg["species"])

# Named color → RGBA (0-255)
COLOR_NAME_TO_RGBA = {name: list(rgba) for name, rgba in _cfg["color_map"].items()}
