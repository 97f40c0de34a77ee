"""Global alignment of script lines against transcript units."""

import logging

import numpy as np

from script_aligner.constants import MATCH_WEIGHT, MATCH_BASELINE, GAP_LINE, GAP_UNIT
from script_aligner.models import (
    AlignmentResult,
    Match,
    NormalizedText,
    SkipLine,
    SkipUnit,
)
from script_aligner.text import similarity, is_good_match

logger = logging.getLogger(__name__)

# Backtrack directions
_DIAG, _UP, _LEFT = 0, 1, 2


def _similarity_matrix(lines: list[NormalizedText], units: list[NormalizedText]) -> np.ndarray:
    sims = np.zeros((len(lines), len(units)), dtype=np.float64)
    for i, line in enumerate(lines):
        for j, unit in enumerate(units):
            sims[i, j] = similarity(line, unit)
    return sims


def align_lines_to_units(
    lines: list[NormalizedText],
    units: list[NormalizedText],
    match_weight: float = MATCH_WEIGHT,
    baseline: float = MATCH_BASELINE,
    gap_line: float = GAP_LINE,
    gap_unit: float = GAP_UNIT,
) -> AlignmentResult:
    """Needleman-Wunsch alignment between ordered lines and ordered units.

    A diagonal step scores (sim - baseline) * match_weight; skipping a line
    costs gap_line, skipping a unit costs gap_unit. Ties prefer the diagonal,
    then skip-line, then skip-unit. Only matches that pass the acceptance
    gate end up in unit_to_line.
    """
    n = len(lines)
    m = len(units)
    sims = _similarity_matrix(lines, units)

    dp = np.zeros((n + 1, m + 1), dtype=np.float64)
    direction = np.zeros((n + 1, m + 1), dtype=np.uint8)

    for i in range(1, n + 1):
        dp[i, 0] = dp[i - 1, 0] - gap_line
        direction[i, 0] = _UP
    for j in range(1, m + 1):
        dp[0, j] = dp[0, j - 1] - gap_unit
        direction[0, j] = _LEFT

    for i in range(1, n + 1):
        for j in range(1, m + 1):
            best = dp[i - 1, j - 1] + (sims[i - 1, j - 1] - baseline) * match_weight
            best_dir = _DIAG
            skip_line = dp[i - 1, j] - gap_line
            if skip_line > best:
                best, best_dir = skip_line, _UP
            skip_unit = dp[i, j - 1] - gap_unit
            if skip_unit > best:
                best, best_dir = skip_unit, _LEFT
            dp[i, j] = best
            direction[i, j] = best_dir

    ops = []
    i, j = n, m
    while i > 0 or j > 0:
        d = direction[i, j]
        if i > 0 and j > 0 and d == _DIAG:
            ops.append(Match(line_index=i - 1, unit_index=j - 1, sim=float(sims[i - 1, j - 1])))
            i -= 1
            j -= 1
        elif i > 0 and (j == 0 or d == _UP):
            ops.append(SkipLine(line_index=i - 1))
            i -= 1
        else:
            ops.append(SkipUnit(unit_index=j - 1))
            j -= 1
    ops.reverse()

    unit_to_line: list[int | None] = [None] * m
    rejected = 0
    for op in ops:
        if not isinstance(op, Match):
            continue
        if is_good_match(op.sim, len(lines[op.line_index].norm), len(units[op.unit_index].norm)):
            unit_to_line[op.unit_index] = op.line_index
        else:
            rejected += 1

    accepted = sum(1 for li in unit_to_line if li is not None)
    logger.debug("Aligned %d lines x %d units: %d matches accepted, %d rejected by gate",
                 n, m, accepted, rejected)
    return AlignmentResult(ops=ops, unit_to_line=unit_to_line)
