"""Translation offset estimation by stacked linear least squares.

For a fixed offset ``t`` between the two tracking frames, every pair of
samples (i, j) and each device's orientation Q = R^T gives

    (Qj - Qi) t = Qj (ref_j - target_j) - Qi (ref_i - target_i)

because the lever arm between the rigidly attached devices is constant in
either device's local frame and cancels out of the difference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..math3d.rotation import m_to_cm
from .message_sink import MessageSink
from .pose import Sample

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TranslationFit:
    translation_cm: np.ndarray
    rank: int
    singular_values: np.ndarray
    # inf when the system is rank deficient.
    condition_number: float


def build_translation_system(samples: Sequence[Sample]) -> tuple[np.ndarray, np.ndarray]:
    """Stack the per-pair equations into coefficients (m, 3) and constants (m,)."""
    coefficients = []
    constants = []
    for i in range(len(samples)):
        si = samples[i]
        di = si.ref.trans - si.target.trans
        for j in range(i):
            sj = samples[j]
            dj = sj.ref.trans - sj.target.trans
            for Qi, Qj in (
                (si.ref.rot.T, sj.ref.rot.T),
                (si.target.rot.T, sj.target.rot.T),
            ):
                coefficients.append(Qj - Qi)
                constants.append(Qj @ dj - Qi @ di)

    if not coefficients:
        return np.zeros((0, 3), dtype=np.float64), np.zeros(0, dtype=np.float64)
    return (
        np.concatenate(coefficients, axis=0).astype(np.float64, copy=False),
        np.concatenate(constants, axis=0).astype(np.float64, copy=False),
    )


def solve_translation(samples: Sequence[Sample]) -> TranslationFit:
    """Minimum-norm least squares; never fails on a rank-deficient system."""
    coefficients, constants = build_translation_system(samples)
    if coefficients.shape[0] == 0:
        return TranslationFit(
            translation_cm=np.zeros(3, dtype=np.float64),
            rank=0,
            singular_values=np.zeros(0, dtype=np.float64),
            condition_number=float("inf"),
        )

    trans, _, rank, sv = np.linalg.lstsq(coefficients, constants, rcond=None)
    rank = int(rank)
    if rank < 3 or float(sv[-1]) <= 0.0:
        cond = float("inf")
    else:
        cond = float(sv[0] / sv[-1])
    return TranslationFit(
        translation_cm=m_to_cm(trans),
        rank=rank,
        singular_values=np.asarray(sv, dtype=np.float64),
        condition_number=cond,
    )


def calibrate_translation(samples: Sequence[Sample], messages: MessageSink) -> np.ndarray:
    """Return the translation offset [x, y, z] in centimeters."""
    fit = solve_translation(samples)
    if fit.rank < 3:
        logger.warning(
            "[CAL] translation system is rank deficient (rank=%d), result is a best effort",
            fit.rank,
        )
    messages.message("Translation system condition number: %.3g\n" % fit.condition_number)

    t = fit.translation_cm
    messages.message("Calibrated translation x=%.2f y=%.2f z=%.2f\n" % (t[0], t[1], t[2]))
    return t
