"""Correção de uma leitura contra o gabarito oficial da prova."""

from __future__ import annotations

from dataclasses import dataclass

from leitor_gabarito.id_reader import AMBIGUOUS_ID
from leitor_gabarito.models import Reading
from leitor_gabarito.template import DEFAULT_TEMPLATE


@dataclass(frozen=True)
class Grade:
    acertos: int
    nota: float


def grade(leitura: str, gabarito: str, peso_questao: float, alphabet: str = DEFAULT_TEMPLATE.alphabet) -> Grade:
    """Conta acertos questão a questão.

    Só letras do alfabeto contam; branco, dupla marcação e qualquer outro
    caractere nunca são acerto. A comparação ignora maiúsculas.
    """

    valid = set(alphabet.casefold())
    acertos = sum(
        1
        for resposta, correta in zip(leitura.casefold(), gabarito.casefold())
        if resposta in valid and resposta == correta
    )
    return Grade(acertos=acertos, nota=round(acertos * peso_questao, 2))


def grade_reading(
    reading: Reading,
    gabarito: str,
    peso_questao: float,
    alphabet: str = DEFAULT_TEMPLATE.alphabet,
) -> Grade:
    """Sem prova identificada ou sem leitura, a nota é zero."""

    if reading.leitura is None or reading.id_prova == AMBIGUOUS_ID:
        return Grade(acertos=0, nota=0.0)
    return grade(reading.leitura, gabarito, peso_questao, alphabet)


__all__ = ["Grade", "grade", "grade_reading"]
