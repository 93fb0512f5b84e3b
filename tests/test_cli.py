from __future__ import annotations

import contextlib
import io
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import pandas as pd

from leitor_gabarito.cli import main
from leitor_gabarito.omr_system import TEMPLATE_ENV_VAR, default_reader

from synthetic import encode, render_sheet


class TestCli(unittest.TestCase):
    def run_main(self, argv: list[str]) -> tuple[int, str]:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = main(argv)
        return code, out.getvalue()

    def test_usage(self) -> None:
        for argv in ([], ["--json"], ["--desconhecida", "x.png"]):
            with self.subTest(argv=argv):
                code, out = self.run_main(argv)
                self.assertEqual(code, 1)
                self.assertIn("Uso:", out)

    def test_reads_and_exports(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            image = Path(td) / "0001.png"
            image.write_bytes(encode(render_sheet(answers="abcde" * 4)))
            json_path = Path(td) / "leituras.json"
            csv_path = Path(td) / "leituras.csv"
            debug_dir = Path(td) / "_debug"

            code, out = self.run_main(
                [str(image), "--json", str(json_path), "--csv", str(csv_path), "--debug-dir", str(debug_dir)]
            )

            self.assertEqual(code, 0)
            self.assertIn("leitura=abcdeabcdeabcdeabcde", out)
            data = json.loads(json_path.read_text(encoding="utf-8"))
            self.assertEqual(data[0]["id_prova"], 372)
            self.assertEqual(len(pd.read_csv(csv_path)), 1)
            overlays = list(debug_dir.glob("0001-*/overlay.png"))
            self.assertEqual(len(overlays), 1)

    def test_repeated_image_keeps_one_row_each(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            image = Path(td) / "0001.png"
            image.write_bytes(encode(render_sheet()))
            csv_path = Path(td) / "leituras.csv"
            code, _ = self.run_main([str(image), str(image), "--csv", str(csv_path)])
            rows = pd.read_csv(csv_path)
        self.assertEqual(code, 0)
        self.assertEqual(list(rows["arquivo"]), [str(image), str(image)])

    def test_invalid_template_is_reported(self) -> None:
        default_reader.cache_clear()
        try:
            with mock.patch.dict(os.environ, {TEMPLATE_ENV_VAR: "/nao/existe.json"}):
                code, out = self.run_main(["0001.png"])
        finally:
            default_reader.cache_clear()
        self.assertEqual(code, 1)
        self.assertIn("Modelo inválido", out)

    def test_failed_read_returns_two(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            code, out = self.run_main([str(Path(td) / "nao-existe.png")])
        self.assertEqual(code, 2)
        self.assertIn("erro=1", out)


if __name__ == "__main__":
    unittest.main()
