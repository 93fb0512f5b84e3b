"""Códigos de erro da leitura e exceções internas do pipeline.

Os códigos inteiros são estáveis: são o que chega ao chamador no campo
``erro`` do registro de leitura.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorKind(IntEnum):
    SUCCESS = 0
    SOURCE_UNAVAILABLE = 1
    UNSUPPORTED_FORMAT = 2
    DECODE_FAILURE = 3
    SHEET_NOT_DETECTED = 4
    SHEET_DISTORTED = 5
    INTERNAL_FAULT = 9

    @property
    def message(self) -> str | None:
        return _MESSAGES[self]


_MESSAGES = {
    ErrorKind.SUCCESS: None,
    ErrorKind.SOURCE_UNAVAILABLE: "Imagem inexistente, ilegível ou vazia",
    ErrorKind.UNSUPPORTED_FORMAT: "Formato de imagem não suportado",
    ErrorKind.DECODE_FAILURE: "Dados de imagem corrompidos ou truncados",
    ErrorKind.SHEET_NOT_DETECTED: "Marcadores do gabarito não encontrados",
    ErrorKind.SHEET_DISTORTED: "Imprecisão ou erro na identificação da área de leitura",
    ErrorKind.INTERNAL_FAULT: "Erro fatal durante a leitura",
}


class ReadingError(Exception):
    """Falha fatal de uma etapa do pipeline.

    Nunca atravessa as funções de entrada: ``omr_system`` converte a exceção
    em um registro de falha com o código de ``kind``.
    """

    kind: ErrorKind = ErrorKind.INTERNAL_FAULT


class SourceUnavailableError(ReadingError):
    """Caminho inexistente ou ilegível, ou buffer vazio."""

    kind = ErrorKind.SOURCE_UNAVAILABLE


class UnsupportedFormatError(ReadingError):
    """Extensão ou formato informado não reconhecido."""

    kind = ErrorKind.UNSUPPORTED_FORMAT


class DecodeFailureError(ReadingError):
    """Bytes corrompidos, truncados ou que não correspondem ao formato."""

    kind = ErrorKind.DECODE_FAILURE


class SheetNotDetectedError(ReadingError):
    """Menos marcadores de alinhamento do que o modelo exige."""

    kind = ErrorKind.SHEET_NOT_DETECTED


class SheetDistortedError(ReadingError):
    """Marcadores geometricamente inconsistentes ou células ilegíveis demais."""

    kind = ErrorKind.SHEET_DISTORTED


__all__ = [
    "ErrorKind",
    "ReadingError",
    "SourceUnavailableError",
    "UnsupportedFormatError",
    "DecodeFailureError",
    "SheetNotDetectedError",
    "SheetDistortedError",
]
