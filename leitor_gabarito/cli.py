"""Linha de comando para ler gabaritos e inspecionar a depuração."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from leitor_gabarito.exporter import export_to_csv, export_to_json
from leitor_gabarito.models import Reading
from leitor_gabarito.omr_system import GabaritoReader, default_reader


_OPTIONS = ("--json", "--csv", "--debug-dir")


def _print_usage() -> None:
    print(
        "Uso:\n"
        "  python -m leitor_gabarito.cli IMAGEM [IMAGEM ...] [--json ARQ] [--csv ARQ] [--debug-dir DIR]\n\n"
        "Exemplo:\n"
        "  python -m leitor_gabarito.cli img/0001.png img/0002.png --csv leituras.csv --debug-dir _debug\n\n"
        "Com --debug-dir, cada imagem gera uma pasta com overlay.png e scores_*.txt."
    )


def _parse_args(argv: Sequence[str]) -> tuple[List[str], Dict[str, str]] | None:
    images: List[str] = []
    options: Dict[str, str] = {}
    args = list(argv)
    while args:
        arg = args.pop(0)
        if arg in _OPTIONS:
            if not args:
                return None
            options[arg] = args.pop(0)
        elif arg.startswith("-"):
            return None
        else:
            images.append(arg)
    if not images:
        return None
    return images, options


def main(argv: Sequence[str] | None = None) -> int:
    parsed = _parse_args(sys.argv[1:] if argv is None else argv)
    if parsed is None:
        _print_usage()
        return 1
    images, options = parsed

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    try:
        base = default_reader()
    except (OSError, ValueError) as exc:
        print(f"Modelo inválido: {exc}")
        return 1
    if "--debug-dir" in options:
        reader = GabaritoReader(template=base.template, debug_dir=options["--debug-dir"])
    else:
        reader = base

    readings: List[Tuple[str, Reading]] = []
    for image in images:
        reading = reader.read_path(image)
        readings.append((image, reading))
        line = f"{image}: erro={reading.erro} id_prova={reading.id_prova} id_participante={reading.id_participante} leitura={reading.leitura}"
        if reading.message:
            line += f" ({reading.message})"
        print(line)

    if "--json" in options:
        export_to_json(Path(options["--json"]), readings)
    if "--csv" in options:
        export_to_csv(Path(options["--csv"]), readings)

    return 0 if all(r.ok for _, r in readings) else 2


if __name__ == "__main__":  # pragma: no cover - ponto de entrada
    sys.exit(main())
