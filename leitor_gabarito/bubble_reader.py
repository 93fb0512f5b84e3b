"""Amostragem das células do modelo sobre a imagem alinhada."""

from __future__ import annotations

import math
from typing import Dict, List, Sequence

import cv2  # type: ignore
import numpy as np

from leitor_gabarito.alignment import GeometricTransform
from leitor_gabarito.scanner_input import PixelBuffer
from leitor_gabarito.template import ANSWERS_FIELD, Point, SheetTemplate


# Célula cuja região mapeada sai da imagem
UNREADABLE = -1.0

# Peso da escuridão média; o restante vem da fração de pixels abaixo do Otsu
GRAY_WEIGHT = 0.3


def cell_corners(center: Point, size: Point, inset: float) -> np.ndarray:
    cx, cy = center
    hw = size[0] * (0.5 - inset)
    hh = size[1] * (0.5 - inset)
    return np.array(
        [[cx - hw, cy - hh], [cx + hw, cy - hh], [cx + hw, cy + hh], [cx - hw, cy + hh]],
        dtype=np.float64,
    )


def measure_cell(
    gray: np.ndarray,
    transform: GeometricTransform,
    center: Point,
    size: Point,
    inset: float,
) -> float:
    """Nível de preenchimento em [0, 1] de uma célula, ou ``UNREADABLE``."""

    h, w = gray.shape
    polygon = transform.transform_points(cell_corners(center, size, inset))
    xs, ys = polygon[:, 0], polygon[:, 1]
    if xs.min() < 0 or ys.min() < 0 or xs.max() > w - 1 or ys.max() > h - 1:
        return UNREADABLE

    x0, y0 = int(math.floor(xs.min())), int(math.floor(ys.min()))
    x1, y1 = int(math.ceil(xs.max())) + 1, int(math.ceil(ys.max())) + 1
    region = gray[y0:y1, x0:x1]
    mask = np.zeros(region.shape, dtype=np.uint8)
    local = np.round(polygon - (x0, y0)).astype(np.int32)
    cv2.fillConvexPoly(mask, local, 255)

    pixels = region[mask > 0]
    if pixels.size == 0:
        return UNREADABLE

    darkness = float(255.0 - pixels.astype(np.float32).mean()) / 255.0
    dark_fraction = float(np.count_nonzero(pixels <= transform.threshold_level)) / pixels.size
    score = GRAY_WEIGHT * darkness + (1.0 - GRAY_WEIGHT) * dark_fraction
    return min(max(score, 0.0), 1.0)


def sample(
    buffer: PixelBuffer,
    transform: GeometricTransform,
    template: SheetTemplate,
) -> Dict[str, List[List[float]]]:
    """Pontua todas as células do modelo.

    Campos numéricos: uma lista por coluna de dígito. Respostas (chave
    ``"leitura"``): uma lista por questão, com uma pontuação por alternativa.
    """

    gray = buffer.gray
    inset = template.cell_inset
    scores: Dict[str, List[List[float]]] = {}

    for numeric in template.numeric_fields:
        scores[numeric.name] = [
            [measure_cell(gray, transform, c, numeric.cell_size, inset) for c in column]
            for column in numeric.column_centers()
        ]

    answers = template.answers
    scores[ANSWERS_FIELD] = [
        [measure_cell(gray, transform, c, answers.cell_size, inset) for c in row]
        for row in answers.row_centers()
    ]
    return scores


def unreadable_ratio(groups: Sequence[Sequence[float]]) -> float:
    total = sum(len(g) for g in groups)
    if total == 0:
        return 0.0
    bad = sum(1 for g in groups for s in g if s == UNREADABLE)
    return bad / total


__all__ = ["GRAY_WEIGHT", "UNREADABLE", "cell_corners", "measure_cell", "sample", "unreadable_ratio"]
