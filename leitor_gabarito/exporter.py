"""Exportadores simples a JSON e CSV."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Mapping, Tuple, Union

import pandas as pd

from leitor_gabarito.models import Reading


# Pares (arquivo, leitura) em ordem; o mesmo arquivo pode aparecer mais de uma vez
Readings = Union[Mapping[str, Reading], Iterable[Tuple[str, Reading]]]


def to_records(readings: Readings) -> List[dict]:
    """Uma linha por leitura, com a mensagem de erro quando houver."""

    pairs = readings.items() if isinstance(readings, Mapping) else readings
    return [
        {"arquivo": str(arquivo), **reading.to_dict(), "mensagem": reading.message}
        for arquivo, reading in pairs
    ]


def export_to_json(path: str | Path, readings: Readings) -> None:
    data = to_records(readings)
    Path(path).write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def export_to_csv(path: str | Path, readings: Readings) -> None:
    df = pd.DataFrame(
        to_records(readings),
        columns=["arquivo", "erro", "id_prova", "id_participante", "leitura", "mensagem"],
    )
    df.to_csv(path, index=False)


__all__ = ["Readings", "export_to_csv", "export_to_json", "to_records"]
