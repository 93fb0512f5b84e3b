"""Registro de leitura devolvido pelas funções de entrada.

O resultado é uma união etiquetada: ``ReadingSuccess`` sempre carrega os três
campos; ``ReadingFailure`` carrega apenas o tipo de erro. As duas variantes
expõem a mesma forma fixa (``erro``, ``id_prova``, ``id_participante``,
``leitura``) para quem só precisa do registro plano.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from leitor_gabarito.errors import ErrorKind
from leitor_gabarito.id_reader import AMBIGUOUS_ID


@dataclass(frozen=True)
class ReadingSuccess:
    """Leitura completa. Identificadores podem valer ``-1`` se ambíguos."""

    id_prova: int
    id_participante: int
    leitura: str

    ok = True

    @property
    def erro(self) -> int:
        return int(ErrorKind.SUCCESS)

    @property
    def message(self) -> str | None:
        return None

    def to_dict(self) -> dict:
        """Devolve o registro no formato plano de quatro campos."""

        return {
            "erro": self.erro,
            "id_prova": self.id_prova,
            "id_participante": self.id_participante,
            "leitura": self.leitura,
        }


@dataclass(frozen=True)
class ReadingFailure:
    kind: ErrorKind

    ok = False

    def __post_init__(self) -> None:
        if self.kind is ErrorKind.SUCCESS:
            raise ValueError("Falha não pode ter o código de sucesso")

    @property
    def erro(self) -> int:
        return int(self.kind)

    @property
    def id_prova(self) -> int:
        return AMBIGUOUS_ID

    @property
    def id_participante(self) -> int:
        return AMBIGUOUS_ID

    @property
    def leitura(self) -> None:
        return None

    @property
    def message(self) -> str | None:
        return self.kind.message

    def to_dict(self) -> dict:
        return {
            "erro": self.erro,
            "id_prova": self.id_prova,
            "id_participante": self.id_participante,
            "leitura": None,
        }


Reading = Union[ReadingSuccess, ReadingFailure]


__all__ = ["Reading", "ReadingFailure", "ReadingSuccess"]
