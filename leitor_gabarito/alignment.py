"""Localização da folha mediante os quatro marcadores de canto."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import cv2  # type: ignore
import numpy as np

from leitor_gabarito.errors import SheetDistortedError, SheetNotDetectedError
from leitor_gabarito.scanner_input import PixelBuffer
from leitor_gabarito.template import Point, SheetTemplate


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocatorSettings:
    blur_kernel: int = 5
    min_area_ratio: float = 0.0003
    max_area_ratio: float = 0.02
    aspect_ratio_range: Tuple[float, float] = (0.6, 1.6)
    # área do contorno / área do retângulo mínimo (círculos ficam em ~0.785)
    min_fill_ratio: float = 0.85
    # fração de pixels escuros dentro do contorno
    min_ink_ratio: float = 0.7
    # área interna branca mínima para considerar o marcador vazado
    hole_area_ratio: float = 0.05
    # molduras vazadas (caixas de campo) não são marcadores
    max_hole_ratio: float = 0.5
    max_anchor_area_ratio: float = 4.0
    max_side_ratio: float = 1.35
    max_corner_angle_deviation_deg: float = 25.0


@dataclass(frozen=True)
class Anchor:
    center: Point
    area: float
    has_hole: bool


@dataclass(frozen=True)
class GeometricTransform:
    """Homografia do espaço normalizado da folha para pixels da imagem.

    ``threshold_level`` é o nível de Otsu usado para encontrar os marcadores;
    a amostragem das células usa a mesma base de binarização.
    """

    matrix: np.ndarray
    inverse: np.ndarray
    anchors: Tuple[Point, Point, Point, Point]
    threshold_level: float

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
        return cv2.perspectiveTransform(pts, self.matrix).reshape(-1, 2)

    def transform_point(self, point: Point) -> Point:
        px, py = self.transform_points(np.array([point]))[0]
        return float(px), float(py)

    def inverse_point(self, point: Point) -> Point:
        pts = np.asarray([point], dtype=np.float64).reshape(-1, 1, 2)
        px, py = cv2.perspectiveTransform(pts, self.inverse).reshape(2)
        return float(px), float(py)


def preprocess_gray(gray: np.ndarray, settings: LocatorSettings) -> Tuple[float, np.ndarray]:
    """Suaviza e binariza com Otsu; tinta fica em 255."""

    k = max(settings.blur_kernel, 1) | 1
    blur = cv2.GaussianBlur(gray, (k, k), 0) if k > 1 else gray
    level, thresh = cv2.threshold(blur, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    return float(level), thresh


def detect_anchors(thresh: np.ndarray, settings: LocatorSettings) -> List[Anchor]:
    h, w = thresh.shape
    min_area = settings.min_area_ratio * w * h
    max_area = settings.max_area_ratio * w * h
    aspect_min, aspect_max = settings.aspect_ratio_range

    contours, hierarchy = cv2.findContours(thresh, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_SIMPLE)
    if hierarchy is None:
        return []
    hierarchy = hierarchy[0]

    anchors: List[Anchor] = []
    for idx, cnt in enumerate(contours):
        if hierarchy[idx][3] != -1:
            continue
        area = cv2.contourArea(cnt)
        if not min_area <= area <= max_area:
            continue

        (cx, cy), (rw, rh), _ = cv2.minAreaRect(cnt)
        if rw <= 0 or rh <= 0:
            continue
        aspect = rw / rh
        if not aspect_min <= aspect <= aspect_max:
            continue
        if area / (rw * rh) < settings.min_fill_ratio:
            continue

        peri = cv2.arcLength(cnt, True)
        approx = cv2.approxPolyDP(cnt, 0.04 * peri, True)
        if not 4 <= len(approx) <= 6:
            continue

        hole_area = 0.0
        child = hierarchy[idx][2]
        while child != -1:
            hole_area += cv2.contourArea(contours[child])
            child = hierarchy[child][0]

        if hole_area > settings.max_hole_ratio * area:
            continue

        x, y, bw, bh = cv2.boundingRect(cnt)
        mask = np.zeros((bh, bw), dtype=np.uint8)
        cv2.drawContours(mask, [cnt - np.array([x, y])], -1, 255, thickness=-1)
        ink = cv2.countNonZero(cv2.bitwise_and(thresh[y : y + bh, x : x + bw], mask))
        ink_ratio = ink / max(cv2.countNonZero(mask), 1)
        if ink_ratio + hole_area / area < settings.min_ink_ratio:
            continue

        anchors.append(
            Anchor(
                center=(float(cx), float(cy)),
                area=float(area),
                has_hole=hole_area >= settings.hole_area_ratio * area,
            )
        )

    anchors.sort(key=lambda a: (a.center[1], a.center[0]))
    return anchors


def order_corners(anchors: Sequence[Anchor]) -> List[Anchor]:
    """Escolhe TL, TR, BR, BL pelos extremos de x+y e x-y.

    Um único marcador vazado indica o canto superior esquerdo da folha e
    permite ler imagens giradas de 90, 180 ou 270 graus.
    """

    if len(anchors) < 4:
        raise SheetNotDetectedError(f"Marcadores encontrados: {len(anchors)} (esperado 4)")

    tl = min(anchors, key=lambda a: a.center[0] + a.center[1])
    br = max(anchors, key=lambda a: a.center[0] + a.center[1])
    tr = max(anchors, key=lambda a: a.center[0] - a.center[1])
    bl = min(anchors, key=lambda a: a.center[0] - a.center[1])
    corners = [tl, tr, br, bl]
    if len({id(a) for a in corners}) < 4:
        raise SheetNotDetectedError("Marcadores insuficientes para os quatro cantos")

    keyed = [i for i, a in enumerate(corners) if a.has_hole]
    if len(keyed) > 1:
        raise SheetDistortedError("Mais de um marcador de orientação")
    if keyed:
        k = keyed[0]
        corners = corners[k:] + corners[:k]
    return corners


def _check_quadrilateral(points: np.ndarray, settings: LocatorSettings) -> None:
    edges = [points[(i + 1) % 4] - points[i] for i in range(4)]
    crosses = [
        float(edges[i][0] * edges[(i + 1) % 4][1] - edges[i][1] * edges[(i + 1) % 4][0])
        for i in range(4)
    ]
    if not (all(c > 0 for c in crosses) or all(c < 0 for c in crosses)):
        raise SheetDistortedError("Marcadores não formam um quadrilátero convexo")

    lengths = [float(np.hypot(*e)) for e in edges]
    for a, b in ((lengths[0], lengths[2]), (lengths[1], lengths[3])):
        if min(a, b) <= 0 or max(a, b) / min(a, b) > settings.max_side_ratio:
            raise SheetDistortedError("Lados opostos com comprimentos inconsistentes")

    for i in range(4):
        u = -edges[(i - 1) % 4]
        v = edges[i]
        cos_angle = float(np.dot(u, v)) / (lengths[(i - 1) % 4] * lengths[i])
        angle = math.degrees(math.acos(max(-1.0, min(1.0, cos_angle))))
        if abs(angle - 90.0) > settings.max_corner_angle_deviation_deg:
            raise SheetDistortedError(f"Ângulo de canto fora da tolerância: {angle:.1f}")


def compute_alignment(
    template: SheetTemplate,
    corners: Sequence[Anchor],
    threshold_level: float,
    image_size: Tuple[int, int],
    settings: LocatorSettings,
) -> GeometricTransform:
    areas = [a.area for a in corners]
    if max(areas) / min(areas) > settings.max_anchor_area_ratio:
        raise SheetDistortedError("Marcadores com tamanhos inconsistentes")

    dst = np.array([a.center for a in corners], dtype=np.float32)
    _check_quadrilateral(dst.astype(np.float64), settings)

    src = np.array(template.fiducials, dtype=np.float32)
    matrix = cv2.getPerspectiveTransform(src, dst)
    if not np.all(np.isfinite(matrix)) or abs(np.linalg.det(matrix)) < 1e-12:
        raise SheetDistortedError("Transformação não inversível")
    try:
        inverse = np.linalg.inv(matrix)
    except np.linalg.LinAlgError as exc:
        raise SheetDistortedError("Transformação não inversível") from exc

    matrix.setflags(write=False)
    inverse.setflags(write=False)
    transform = GeometricTransform(
        matrix=matrix,
        inverse=inverse,
        anchors=tuple(a.center for a in corners),
        threshold_level=threshold_level,
    )

    width, height = image_size
    for name, rects in template.field_regions().items():
        for x0, y0, x1, y1 in rects:
            corners_norm = np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=np.float64)
            w_row = corners_norm @ matrix[2, :2] + matrix[2, 2]
            if np.any(w_row <= 0):
                raise SheetDistortedError(f"Campo {name} projetado atrás do horizonte")
            mapped = transform.transform_points(corners_norm)
            if np.any(mapped[:, 0] < 0) or np.any(mapped[:, 0] >= width) or np.any(mapped[:, 1] < 0) or np.any(mapped[:, 1] >= height):
                raise SheetDistortedError(f"Campo {name} fora dos limites da imagem")

    return transform


def locate(
    buffer: PixelBuffer,
    template: SheetTemplate,
    settings: LocatorSettings | None = None,
) -> GeometricTransform:
    settings = settings or LocatorSettings()
    level, thresh = preprocess_gray(buffer.gray, settings)
    anchors = detect_anchors(thresh, settings)
    logger.debug("Otsu=%.1f, %d candidatos a marcador", level, len(anchors))

    corners = order_corners(anchors)
    logger.debug("Marcadores TL/TR/BR/BL: %s", [a.center for a in corners])
    return compute_alignment(template, corners, level, (buffer.width, buffer.height), settings)


__all__ = [
    "Anchor",
    "GeometricTransform",
    "LocatorSettings",
    "compute_alignment",
    "detect_anchors",
    "locate",
    "order_corners",
    "preprocess_gray",
]
