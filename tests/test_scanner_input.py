from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import cv2
import fitz
import numpy as np

from leitor_gabarito.errors import (
    DecodeFailureError,
    ErrorKind,
    SourceUnavailableError,
    UnsupportedFormatError,
)
from leitor_gabarito.scanner_input import (
    LoaderSettings,
    load_bytes,
    load_path,
    normalize_format,
    sniff_format,
    to_gray8,
)

from synthetic import encode, render_sheet


class TestFormats(unittest.TestCase):
    def test_aliases(self) -> None:
        self.assertEqual(normalize_format("JPG"), "jpeg")
        self.assertEqual(normalize_format(".jpeg"), "jpeg")
        self.assertEqual(normalize_format(" tif "), "tiff")
        self.assertEqual(normalize_format("png"), "png")

    def test_unknown_hint(self) -> None:
        with self.assertRaises(UnsupportedFormatError) as ctx:
            normalize_format("gif")
        self.assertEqual(ctx.exception.kind, ErrorKind.UNSUPPORTED_FORMAT)

    def test_sniff(self) -> None:
        gray = np.full((80, 80), 200, dtype=np.uint8)
        self.assertEqual(sniff_format(encode(gray, ".png")), "png")
        self.assertEqual(sniff_format(encode(gray, ".jpg")), "jpeg")
        self.assertEqual(sniff_format(encode(gray, ".bmp")), "bmp")
        self.assertEqual(sniff_format(b"%PDF-1.7\n"), "pdf")
        self.assertIsNone(sniff_format(b"hello world"))


class TestLoadBytes(unittest.TestCase):
    def setUp(self) -> None:
        self.sheet = render_sheet()

    def test_png_is_loaded_as_gray(self) -> None:
        buffer = load_bytes("png", encode(self.sheet))
        self.assertEqual(buffer.channels, 1)
        self.assertEqual((buffer.height, buffer.width), self.sheet.shape)
        self.assertGreaterEqual(buffer.stride, buffer.width * buffer.channels)
        self.assertTrue(np.array_equal(buffer.gray, self.sheet))
        self.assertFalse(buffer.gray.flags.writeable)

    def test_color_is_normalized(self) -> None:
        color = cv2.cvtColor(self.sheet, cv2.COLOR_GRAY2BGR)
        buffer = load_bytes("jpg", encode(color, ".jpg"))
        self.assertEqual(buffer.channels, 1)
        self.assertEqual(buffer.gray.ndim, 2)

    def test_alpha_is_composited_on_white(self) -> None:
        rgba = np.zeros((100, 100, 4), dtype=np.uint8)
        rgba[:, :, 3] = 0
        buffer = load_bytes("png", encode(rgba))
        self.assertEqual(int(buffer.gray.min()), 255)

    def test_sixteen_bit_is_scaled(self) -> None:
        deep = np.full((100, 100), 65535, dtype=np.uint16)
        buffer = load_bytes("png", encode(deep))
        self.assertEqual(int(buffer.gray.max()), 255)

    def test_empty_buffer(self) -> None:
        with self.assertRaises(SourceUnavailableError):
            load_bytes("png", b"")
        with self.assertRaises(SourceUnavailableError):
            load_bytes("png", encode(self.sheet), length=0)

    def test_empty_buffer_checked_before_format(self) -> None:
        with self.assertRaises(SourceUnavailableError):
            load_bytes("gif", b"")

    def test_unsupported_hint(self) -> None:
        with self.assertRaises(UnsupportedFormatError):
            load_bytes("gif", encode(self.sheet))

    def test_truncated_png(self) -> None:
        data = encode(self.sheet)
        with self.assertRaises(DecodeFailureError):
            load_bytes("png", data[: len(data) // 2])

    def test_length_bounds_the_view(self) -> None:
        data = encode(self.sheet)
        with self.assertRaises(DecodeFailureError):
            load_bytes("png", data, length=len(data) // 3)
        buffer = load_bytes("png", data + b"\x00" * 16, length=len(data))
        self.assertEqual(buffer.width, self.sheet.shape[1])

    def test_truncated_jpeg(self) -> None:
        data = encode(self.sheet, ".jpg")
        with self.assertRaises(DecodeFailureError):
            load_bytes("jpeg", data[: len(data) // 2])

    def test_truncated_jpeg_with_embedded_end_marker(self) -> None:
        # segmento APP1 com um EOI dentro, como uma miniatura EXIF
        payload = b"Exif\x00\x00" + b"\xff\xd8\xff\xd9"
        app1 = b"\xff\xe1" + (len(payload) + 2).to_bytes(2, "big") + payload
        data = encode(self.sheet, ".jpg")
        data = data[:2] + app1 + data[2:]
        with self.assertRaises(DecodeFailureError):
            load_bytes("jpeg", data[: len(data) // 2])

    def test_bytes_after_end_marker_are_ignored(self) -> None:
        for ext, fmt in ((".jpg", "jpeg"), (".png", "png")):
            with self.subTest(fmt=fmt):
                data = encode(self.sheet, ext) + b"SEFT" + b"\x00" * 4096
                buffer = load_bytes(fmt, data)
                self.assertEqual((buffer.height, buffer.width), self.sheet.shape)

    def test_garbage_bytes(self) -> None:
        with self.assertRaises(DecodeFailureError):
            load_bytes("png", b"isto nao e uma imagem" * 10)

    def test_hint_disagrees_with_content(self) -> None:
        with self.assertRaises(DecodeFailureError):
            load_bytes("png", encode(self.sheet, ".jpg"))

    def test_tiny_image(self) -> None:
        with self.assertRaises(DecodeFailureError):
            load_bytes("png", encode(np.zeros((10, 10), dtype=np.uint8)))

    def test_bytearray_and_memoryview(self) -> None:
        data = encode(self.sheet)
        self.assertEqual(load_bytes("png", bytearray(data)).width, self.sheet.shape[1])
        self.assertEqual(load_bytes("png", memoryview(data)).width, self.sheet.shape[1])

    def test_pdf_first_page(self) -> None:
        doc = fitz.open()
        page = doc.new_page(width=300, height=400)
        page.insert_image(page.rect, stream=encode(self.sheet))
        pdf = doc.tobytes()
        doc.close()

        buffer = load_bytes("pdf", pdf, settings=LoaderSettings(pdf_dpi=100))
        self.assertEqual(buffer.channels, 1)
        self.assertAlmostEqual(buffer.width, 300 * 100 / 72, delta=1)

    def test_corrupt_pdf(self) -> None:
        with self.assertRaises(DecodeFailureError):
            load_bytes("pdf", b"%PDF-1.7\nlixo sem estrutura")


class TestLoadPath(unittest.TestCase):
    def test_missing_file(self) -> None:
        with self.assertRaises(SourceUnavailableError):
            load_path("arquivo_que_nao_existe.png")

    def test_directory_is_not_a_source(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(SourceUnavailableError):
                load_path(td)

    def test_format_from_extension_and_content(self) -> None:
        sheet = render_sheet()
        with tempfile.TemporaryDirectory() as td:
            named = Path(td) / "folha.png"
            named.write_bytes(encode(sheet))
            self.assertEqual(load_path(named).width, sheet.shape[1])

            unnamed = Path(td) / "folha"
            unnamed.write_bytes(encode(sheet))
            self.assertEqual(load_path(unnamed).width, sheet.shape[1])

    def test_content_wins_over_extension(self) -> None:
        sheet = render_sheet()
        with tempfile.TemporaryDirectory() as td:
            misnamed = Path(td) / "foto.png"
            misnamed.write_bytes(encode(sheet, ".jpg"))
            buffer = load_path(misnamed)
        self.assertEqual((buffer.height, buffer.width), sheet.shape)

    def test_unrecognized_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "teste.txt"
            path.write_text("apenas texto", encoding="utf-8")
            with self.assertRaises(UnsupportedFormatError):
                load_path(path)

    def test_empty_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "vazio.png"
            path.write_bytes(b"")
            with self.assertRaises(SourceUnavailableError):
                load_path(path)


class TestToGray8(unittest.TestCase):
    def test_single_channel_3d(self) -> None:
        image = np.full((5, 5, 1), 7, dtype=np.uint8)
        self.assertEqual(to_gray8(image).shape, (5, 5))

    def test_float_image(self) -> None:
        image = np.linspace(0.0, 1.0, 25, dtype=np.float32).reshape(5, 5)
        gray = to_gray8(image)
        self.assertEqual(gray.dtype, np.uint8)
        self.assertEqual(int(gray.max()), 255)


if __name__ == "__main__":
    unittest.main()
