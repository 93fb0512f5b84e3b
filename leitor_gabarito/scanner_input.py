"""Carga e normalização de imagens escaneadas.

Aceita um caminho no sistema de arquivos (formato pelo conteúdo ou, se
irreconhecível, pela extensão) ou um buffer em memória com a indicação
explícita do formato. O resultado é sempre um ``PixelBuffer`` em tons de
cinza de 8 bits, a única representação usada pelas etapas seguintes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Dict, Tuple

import cv2  # type: ignore
import fitz  # PyMuPDF
import numpy as np

from leitor_gabarito.errors import (
    DecodeFailureError,
    SourceUnavailableError,
    UnsupportedFormatError,
)


logger = logging.getLogger(__name__)


_FORMAT_ALIASES: Dict[str, str] = {
    "png": "png",
    "jpg": "jpeg",
    "jpeg": "jpeg",
    "jpe": "jpeg",
    "bmp": "bmp",
    "dib": "bmp",
    "tif": "tiff",
    "tiff": "tiff",
    "webp": "webp",
    "pbm": "pnm",
    "pgm": "pnm",
    "ppm": "pnm",
    "pnm": "pnm",
    "pdf": "pdf",
}

_MAGIC: Tuple[Tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"\xff\xd8\xff", "jpeg"),
    (b"II*\x00", "tiff"),
    (b"MM\x00*", "tiff"),
    (b"%PDF", "pdf"),
    (b"BM", "bmp"),
)


@dataclass(frozen=True)
class LoaderSettings:
    pdf_dpi: int = 150
    min_side_px: int = 64


@dataclass(frozen=True)
class PixelBuffer:
    """Imagem em memória, somente leitura, com dimensões explícitas."""

    pixels: np.ndarray
    width: int
    height: int
    channels: int
    stride: int

    def __post_init__(self) -> None:
        if self.stride < self.width * self.channels:
            raise ValueError("stride menor que width * channels")
        expected = (self.height, self.width) if self.channels == 1 else (self.height, self.width, self.channels)
        if self.pixels.shape != expected:
            raise ValueError(f"Forma {self.pixels.shape} incompatível com {expected}")

    @classmethod
    def from_gray(cls, gray: np.ndarray) -> "PixelBuffer":
        pixels = np.ascontiguousarray(gray, dtype=np.uint8)
        pixels.setflags(write=False)
        height, width = pixels.shape
        return cls(pixels=pixels, width=width, height=height, channels=1, stride=pixels.strides[0])

    @property
    def gray(self) -> np.ndarray:
        return self.pixels

    def contains(self, x: float, y: float) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height


def normalize_format(name: str) -> str:
    """Converte uma indicação de formato ("PNG", ".jpg", "tif") no nome canônico."""

    key = name.strip().lower().lstrip(".")
    try:
        return _FORMAT_ALIASES[key]
    except KeyError:
        raise UnsupportedFormatError(f"Formato não suportado: {name!r}") from None


def sniff_format(data: bytes) -> str | None:
    """Reconhece o contêiner pelos bytes iniciais."""

    for magic, fmt in _MAGIC:
        if data.startswith(magic):
            return fmt
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    if len(data) >= 3 and data[0:1] == b"P" and data[1:2] in b"123456" and data[2:3].isspace():
        return "pnm"
    return None


def _jpeg_end(data: bytes) -> int:
    """Posição logo após o EOI da imagem principal.

    Percorre os segmentos até o SOS, de modo que miniaturas EXIF não contam;
    bytes anexados depois do EOI (comuns em fotos de celular) são ignorados.
    """

    pos = 2
    n = len(data)
    while pos + 4 <= n:
        if data[pos] != 0xFF:
            raise DecodeFailureError("JPEG corrompido: segmento inválido")
        marker = data[pos + 1]
        if marker == 0xFF:
            pos += 1
            continue
        if marker == 0xD9:
            return pos + 2
        if marker == 0x01 or 0xD0 <= marker <= 0xD7:
            pos += 2
            continue
        seg_len = int.from_bytes(data[pos + 2 : pos + 4], "big")
        if marker == 0xDA:
            eoi = data.find(b"\xff\xd9", pos + 2 + seg_len)
            if eoi == -1:
                break
            return eoi + 2
        pos += 2 + seg_len
    raise DecodeFailureError("JPEG truncado: marcador EOI ausente")


def _png_end(data: bytes) -> int:
    pos = 8
    n = len(data)
    while pos + 8 <= n:
        length = int.from_bytes(data[pos : pos + 4], "big")
        end = pos + 12 + length
        if data[pos + 4 : pos + 8] == b"IEND" and end <= n:
            return end
        pos = end
    raise DecodeFailureError("PNG truncado: bloco IEND ausente")


def _strip_trailer(fmt: str, data: bytes) -> bytes:
    # Alguns decodificadores devolvem imagens parciais para arquivos truncados
    if fmt == "jpeg":
        return data[: _jpeg_end(data)]
    if fmt == "png":
        return data[: _png_end(data)]
    return data


def _decode_raster(data: bytes) -> np.ndarray:
    encoded = np.frombuffer(data, dtype=np.uint8)
    try:
        image = cv2.imdecode(encoded, cv2.IMREAD_UNCHANGED)
    except cv2.error as exc:
        raise DecodeFailureError(f"Falha ao decodificar imagem: {exc}") from exc
    if image is None or image.size == 0:
        raise DecodeFailureError("Falha ao decodificar imagem")
    return image


def _render_pdf(data: bytes, dpi: int) -> np.ndarray:
    """Rasteriza a primeira página do PDF em tons de cinza."""

    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise DecodeFailureError(f"PDF inválido: {exc}") from exc

    with doc:
        if doc.page_count < 1:
            raise DecodeFailureError("PDF sem páginas")
        if doc.page_count > 1:
            logger.warning("PDF com %d páginas; apenas a primeira é lida", doc.page_count)
        zoom = dpi / 72
        try:
            pix = doc[0].get_pixmap(matrix=fitz.Matrix(zoom, zoom), colorspace=fitz.csGRAY, alpha=False)
        except (RuntimeError, ValueError) as exc:
            raise DecodeFailureError(f"Falha ao renderizar PDF: {exc}") from exc
        arr = np.frombuffer(pix.samples, dtype=np.uint8)
        return arr.reshape(pix.h, pix.stride)[:, : pix.w].copy()


def to_gray8(image: np.ndarray) -> np.ndarray:
    """Normaliza profundidade e canais para cinza de 8 bits.

    Imagens com alfa são compostas sobre fundo branco antes da conversão.
    """

    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)

    if image.ndim == 2:
        return image
    if image.ndim != 3:
        raise DecodeFailureError(f"Dimensões de imagem inesperadas: {image.shape}")

    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 4:
        alpha = image[:, :, 3:4].astype(np.float32) / 255.0
        bgr = image[:, :, :3].astype(np.float32)
        image = (bgr * alpha + 255.0 * (1.0 - alpha)).round().astype(np.uint8)
        channels = 3
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    raise DecodeFailureError(f"Número de canais não suportado: {channels}")


def decode(fmt: str, data: bytes, settings: LoaderSettings) -> PixelBuffer:
    sniffed = sniff_format(data)
    if sniffed is not None and sniffed != fmt:
        raise DecodeFailureError(f"Conteúdo {sniffed} não corresponde ao formato {fmt}")
    data = _strip_trailer(fmt, data)

    if fmt == "pdf":
        image = _render_pdf(data, settings.pdf_dpi)
    else:
        image = _decode_raster(data)

    gray = to_gray8(image)
    height, width = gray.shape
    if min(height, width) < settings.min_side_px:
        raise DecodeFailureError(f"Imagem pequena demais: {width}x{height}")

    logger.debug("Imagem %s decodificada: %dx%d", fmt, width, height)
    return PixelBuffer.from_gray(gray)


def load_path(path: str | PathLike, settings: LoaderSettings | None = None) -> PixelBuffer:
    settings = settings or LoaderSettings()
    p = Path(path)
    if not p.is_file():
        raise SourceUnavailableError(f"Imagem não encontrada: {p}")
    try:
        data = p.read_bytes()
    except OSError as exc:
        raise SourceUnavailableError(f"Não foi possível ler a imagem: {p}") from exc
    if not data:
        raise SourceUnavailableError(f"Arquivo vazio: {p}")

    # O conteúdo vale mais que a extensão: arquivos enviados costumam vir renomeados
    fmt = sniff_format(data) or _FORMAT_ALIASES.get(p.suffix.lower().lstrip("."))
    if fmt is None:
        raise UnsupportedFormatError(f"Formato não reconhecido: {p}")
    return decode(fmt, data, settings)


def load_bytes(
    format_hint: str,
    data: bytes | bytearray | memoryview,
    length: int | None = None,
    settings: LoaderSettings | None = None,
) -> PixelBuffer:
    """Decodifica um buffer em memória.

    ``length`` limita a janela lida de ``data``; o buffer do chamador é
    copiado e nunca retido além desta chamada.
    """

    settings = settings or LoaderSettings()
    view = memoryview(data)
    if view.ndim != 1 or view.format != "B":
        view = view.cast("B")
    if length is not None:
        if length < 0:
            raise SourceUnavailableError(f"Comprimento inválido: {length}")
        view = view[:length]
    if view.nbytes == 0:
        raise SourceUnavailableError("Buffer de imagem vazio")

    fmt = normalize_format(format_hint)
    return decode(fmt, view.tobytes(), settings)


__all__ = [
    "LoaderSettings",
    "PixelBuffer",
    "decode",
    "load_bytes",
    "load_path",
    "normalize_format",
    "sniff_format",
    "to_gray8",
]
