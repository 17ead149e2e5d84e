"""Tunnel two-bone skin data through a 2-channel UV coordinate.

A two-bone blend is four numbers, but the weights sum to 1 and
indices are integers, so each coordinate stores a bone index in its integer part
and the *other* slot's weight in its fractional part:

    blending:      (a + w_b, b + w_a)
    single bone:   (a, 0)

Decoding floors for the indices and renormalises the fractions.  A fraction of
exactly 1 would roll into the integer part, so fractions are kept at most
``1 - TUNNEL_EPSILON`` (the solid library stores float32).

The encoding is only valid at the vertices it was written to.  A value
interpolated between two encodings decodes to unrelated bones, so vertices
created by a boolean operation are re-derived from their part (see
``mammalator.skinning.unpack``).
"""

import numpy as np

from mammalator.config import TUNNEL_EPSILON
from mammalator.errors import SkinDataError


def encode(indices: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """(n, 2) bone indices + (n, 2) weights → (n, 2) tunneled UV."""
    indices = np.asarray(indices).reshape(-1, 2)
    weights = np.asarray(weights, dtype=np.float64).reshape(-1, 2)

    a = indices[:, 0].astype(np.float64)
    b = indices[:, 1].astype(np.float64)
    frac_a = np.clip(weights[:, 0], 0.0, 1.0 - TUNNEL_EPSILON)
    frac_b = np.clip(weights[:, 1], 0.0, 1.0 - TUNNEL_EPSILON)

    blending = (indices[:, 0] != indices[:, 1]) & (weights[:, 1] > 0.0)

    uv = np.zeros((len(indices), 2), dtype=np.float64)
    uv[:, 0] = np.where(blending, a + frac_b, a)
    uv[:, 1] = np.where(blending, b + frac_a, 0.0)
    return uv


def encode_blend(blend) -> tuple:
    """Tunneled (u, v) for a single ``BoneBlend``."""
    uv = encode(
        [[blend.index_a, blend.index_b]],
        [[blend.weight_a, blend.weight_b]],
    )
    return float(uv[0, 0]), float(uv[0, 1])


def decode(uv: np.ndarray, bone_count: int = None):
    """Tunneled UV → ((n, 2) int indices, (n, 2) weights summing to 1).

    With ``bone_count``, any decoded index outside ``[0, bone_count)`` means
    the encoding is broken and raises ``SkinDataError``.
    """
    uv = np.asarray(uv, dtype=np.float64).reshape(-1, 2)
    whole = np.floor(uv)
    frac = uv - whole
    indices = whole.astype(np.int64)

    # u's fraction weighs v's bone and vice versa
    w_a = frac[:, 1]
    w_b = frac[:, 0]
    total = w_a + w_b

    single = total <= 1e-12
    safe_total = np.where(single, 1.0, total)
    weights = np.stack([w_a / safe_total, w_b / safe_total], axis=-1)
    weights[single] = (1.0, 0.0)
    indices[single, 1] = indices[single, 0]

    if bone_count is not None and len(indices):
        bad = (indices < 0) | (indices >= bone_count)
        if bad.any():
            rows = np.nonzero(bad.any(axis=1))[0]
            raise SkinDataError(
                f"{len(rows)} vertices decode to bone indices outside "
                f"[0, {bone_count}); first: uv={uv[rows[0]].tolist()} "
                f"→ {indices[rows[0]].tolist()}"
            )

    return indices, weights
