"""Leitor de respostas: uma letra por questão."""

from __future__ import annotations

from typing import List, Sequence


def marked_options(scores: Sequence[float], threshold: float) -> List[int]:
    return [idx for idx, score in enumerate(scores) if score >= threshold]


def decode_answers(
    scores_by_row: Sequence[Sequence[float]],
    alphabet: str = "abcde",
    threshold: float = 0.45,
    blank: str = "-",
    double: str = "X",
) -> str:
    """Converte as pontuações por questão na string de leitura.

    Cada questão contribui com exatamente um caractere, na ordem do modelo:
    a letra da única alternativa marcada, ``blank`` sem marca ou ``double``
    com mais de uma marca.
    """

    chars: List[str] = []
    for q, scores in enumerate(scores_by_row):
        if len(scores) != len(alphabet):
            raise ValueError(f"Questão {q + 1} com {len(scores)} alternativas")
        marked = marked_options(scores, threshold)
        if not marked:
            chars.append(blank)
        elif len(marked) > 1:
            chars.append(double)
        else:
            chars.append(alphabet[marked[0]])
    return "".join(chars)


__all__ = ["decode_answers", "marked_options"]
