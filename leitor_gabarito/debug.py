"""Arquivos de depuração: sobreposição PNG e pontuações em TXT.

Só são gerados quando o leitor recebe um ``debug_dir``. Uma falha ao gravar
não interfere na leitura.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import cv2  # type: ignore
import numpy as np

from leitor_gabarito.alignment import GeometricTransform
from leitor_gabarito.bubble_reader import UNREADABLE, cell_corners
from leitor_gabarito.scanner_input import PixelBuffer
from leitor_gabarito.template import ANSWERS_FIELD, SheetTemplate


logger = logging.getLogger(__name__)

_COLOR_ANCHOR = (0, 0, 255)
_COLOR_MARKED = (0, 180, 0)
_COLOR_EMPTY = (160, 160, 160)
_COLOR_UNREADABLE = (0, 0, 255)


def draw_overlay(
    buffer: PixelBuffer,
    transform: GeometricTransform,
    template: SheetTemplate,
    scores: Dict[str, List[List[float]]],
) -> np.ndarray:
    """Desenha marcadores e células mapeadas sobre a imagem (BGR)."""

    image = cv2.cvtColor(buffer.gray, cv2.COLOR_GRAY2BGR)
    for x, y in transform.anchors:
        cv2.circle(image, (int(round(x)), int(round(y))), 12, _COLOR_ANCHOR, 2)

    groups = [
        (numeric.name, numeric.column_centers(), numeric.cell_size)
        for numeric in template.numeric_fields
    ]
    groups.append((ANSWERS_FIELD, template.answers.row_centers(), template.answers.cell_size))

    for name, centers, size in groups:
        for group_centers, group_scores in zip(centers, scores[name]):
            for center, score in zip(group_centers, group_scores):
                if score == UNREADABLE:
                    color = _COLOR_UNREADABLE
                elif score >= template.mark_threshold:
                    color = _COLOR_MARKED
                else:
                    color = _COLOR_EMPTY
                poly = transform.transform_points(cell_corners(center, size, template.cell_inset))
                cv2.polylines(image, [np.round(poly).astype(np.int32)], True, color, 1)
    return image


def write_scores(out_dir: Path, scores: Dict[str, List[List[float]]]) -> None:
    for name, groups in scores.items():
        lines = [f"{name}"]
        for idx, group in enumerate(groups):
            values = " ".join(f"{s:.4f}" for s in group)
            lines.append(f"{idx + 1:03d}: {values}")
        (out_dir / f"scores_{name}.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")


def dump(
    out_dir: Path,
    buffer: PixelBuffer,
    transform: GeometricTransform,
    template: SheetTemplate,
    scores: Dict[str, List[List[float]]],
) -> None:
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        write_scores(out_dir, scores)
        overlay = draw_overlay(buffer, transform, template, scores)
        overlay_path = out_dir / "overlay.png"
        if not cv2.imwrite(str(overlay_path), overlay):
            logger.warning("OpenCV não gravou %s", overlay_path)
    except (OSError, cv2.error) as exc:
        logger.warning("Não foi possível gravar depuração em %s: %s", out_dir, exc)


__all__ = ["draw_overlay", "dump", "write_scores"]
