"""Decodificação dos blocos numéricos de identificação (prova e participante)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple


# Valor devolvido ao chamador quando o campo não pôde ser lido
AMBIGUOUS_ID = -1


@dataclass(frozen=True)
class AmbiguousMark:
    """Campo numérico sem leitura única.

    ``blank_columns`` não têm marca; ``conflict_columns`` têm mais de uma.
    """

    blank_columns: Tuple[int, ...] = ()
    conflict_columns: Tuple[int, ...] = ()


def decode_numeric(
    scores: Sequence[Sequence[float]],
    ncols: int,
    threshold: float = 0.45,
    digit_values: Sequence[int] = tuple(range(10)),
) -> int | AmbiguousMark:
    """Uma marca por coluna; os dígitos são concatenados na ordem das colunas.

    Qualquer coluna em branco ou com dupla marcação invalida o campo inteiro:
    nunca se devolve um número parcial.
    """

    if len(scores) != ncols:
        raise ValueError(f"Esperadas {ncols} colunas, recebidas {len(scores)}")

    digits: List[str] = []
    blanks: List[int] = []
    conflicts: List[int] = []
    for col, column in enumerate(scores):
        if len(column) != len(digit_values):
            raise ValueError(f"Coluna {col} com {len(column)} células")
        marked = [row for row, score in enumerate(column) if score >= threshold]
        if not marked:
            blanks.append(col)
        elif len(marked) > 1:
            conflicts.append(col)
        else:
            digits.append(str(digit_values[marked[0]]))

    if blanks or conflicts:
        return AmbiguousMark(blank_columns=tuple(blanks), conflict_columns=tuple(conflicts))
    return int("".join(digits))


def id_value(decoded: int | AmbiguousMark) -> int:
    return AMBIGUOUS_ID if isinstance(decoded, AmbiguousMark) else decoded


__all__ = ["AMBIGUOUS_ID", "AmbiguousMark", "decode_numeric", "id_value"]
