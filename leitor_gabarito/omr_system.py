"""Leitor de gabaritos completo.

Encadeia carga da imagem, localização da folha, amostragem das células e
decodificação dos campos, e compõe o registro final. Nenhuma exceção sai
das funções de entrada: toda falha vira um ``ReadingFailure`` com o código
correspondente.
"""

from __future__ import annotations

import hashlib
import logging
import os
from functools import lru_cache
from os import PathLike
from pathlib import Path
from typing import Callable, Iterable, List, Mapping

from leitor_gabarito import debug
from leitor_gabarito.alignment import LocatorSettings, locate
from leitor_gabarito.answers_reader import decode_answers
from leitor_gabarito.bubble_reader import sample, unreadable_ratio
from leitor_gabarito.errors import ErrorKind, ReadingError
from leitor_gabarito.id_reader import AmbiguousMark, decode_numeric, id_value
from leitor_gabarito.models import Reading, ReadingFailure, ReadingSuccess
from leitor_gabarito.scanner_input import LoaderSettings, PixelBuffer, load_bytes, load_path
from leitor_gabarito.template import ANSWERS_FIELD, DEFAULT_TEMPLATE, SheetTemplate, load_template


logger = logging.getLogger(__name__)

TEMPLATE_ENV_VAR = "LEITOR_GABARITO_TEMPLATE"


def compose(
    id_prova: int | AmbiguousMark | None,
    id_participante: int | AmbiguousMark | None,
    leitura: str | None,
    failure: ErrorKind | None = None,
    unreadable: Mapping[str, float] | None = None,
    max_unreadable_ratio: float = 1.0,
) -> Reading:
    """Aplica a prioridade de erros e monta o registro de uma só vez.

    Falha de etapa vence tudo; em seguida, excesso de células ilegíveis em
    qualquer campo; ambiguidade de identificador nunca é fatal.
    """

    distorted = sorted(
        name for name, ratio in (unreadable or {}).items() if ratio > max_unreadable_ratio
    )
    if failure is not None and failure is not ErrorKind.SUCCESS:
        reading: Reading = ReadingFailure(failure)
    elif distorted:
        logger.warning("Células ilegíveis demais em: %s", ", ".join(distorted))
        reading = ReadingFailure(ErrorKind.SHEET_DISTORTED)
    elif id_prova is None or id_participante is None or leitura is None:
        reading = ReadingFailure(ErrorKind.INTERNAL_FAULT)
    else:
        reading = ReadingSuccess(
            id_prova=id_value(id_prova),
            id_participante=id_value(id_participante),
            leitura=leitura,
        )
    return reading


class GabaritoReader:
    """Leitor sem estado entre chamadas; seguro para uso concorrente."""

    def __init__(
        self,
        template: SheetTemplate | None = None,
        loader_settings: LoaderSettings | None = None,
        locator_settings: LocatorSettings | None = None,
        debug_dir: str | Path | None = None,
    ) -> None:
        self.template = template or DEFAULT_TEMPLATE
        self.loader_settings = loader_settings or LoaderSettings()
        self.locator_settings = locator_settings or LocatorSettings()
        self.debug_dir = Path(debug_dir) if debug_dir is not None else None

    def read_path(self, path: str | PathLike) -> Reading:
        if not isinstance(path, (str, PathLike)):
            raise TypeError("Esperado um caminho (str ou PathLike) para a imagem")
        return self._run(lambda: load_path(path, self.loader_settings), str(path))

    def read_bytes(
        self,
        format_hint: str,
        data: bytes | bytearray | memoryview,
        length: int | None = None,
    ) -> Reading:
        if not isinstance(format_hint, str):
            raise TypeError("Esperado o formato da imagem como str")
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError("Esperados os dados da imagem como bytes")
        if length is not None and (isinstance(length, bool) or not isinstance(length, int)):
            raise TypeError("length deve ser int")
        return self._run(
            lambda: load_bytes(format_hint, data, length, self.loader_settings),
            f"<memória:{format_hint}>",
        )

    def read_many(self, paths: Iterable[str | PathLike]) -> List[Reading]:
        return [self.read_path(p) for p in paths]

    def _run(self, load: Callable[[], PixelBuffer], label: str) -> Reading:
        try:
            reading = self._pipeline(load, label)
        except ReadingError as exc:
            logger.info("Leitura de %s falhou: %s (%s)", label, exc.kind.name, exc)
            reading = compose(None, None, None, failure=exc.kind)
        except Exception:
            logger.exception("Erro interno ao ler %s", label)
            reading = compose(None, None, None, failure=ErrorKind.INTERNAL_FAULT)
        return reading

    def _pipeline(self, load: Callable[[], PixelBuffer], label: str) -> Reading:
        template = self.template
        buffer = load()
        transform = locate(buffer, template, self.locator_settings)
        scores = sample(buffer, transform, template)

        if self.debug_dir is not None:
            # arquivos homônimos de pastas diferentes não se sobrescrevem
            stem = Path(label).stem if not label.startswith("<") else "memoria"
            digest = hashlib.sha1(buffer.pixels.tobytes()).hexdigest()[:8]
            debug.dump(self.debug_dir / f"{stem}-{digest}", buffer, transform, template, scores)

        decoded = {
            numeric.name: decode_numeric(
                scores[numeric.name],
                numeric.columns,
                template.mark_threshold,
                numeric.digit_values,
            )
            for numeric in template.numeric_fields
        }
        leitura = decode_answers(
            scores[ANSWERS_FIELD],
            template.alphabet,
            template.mark_threshold,
            template.blank_char,
            template.double_char,
        )
        for name, value in decoded.items():
            if isinstance(value, AmbiguousMark):
                logger.debug("Campo %s ambíguo: %s", name, value)

        reading = compose(
            decoded[template.id_prova.name],
            decoded[template.id_participante.name],
            leitura,
            unreadable={name: unreadable_ratio(groups) for name, groups in scores.items()},
            max_unreadable_ratio=template.max_unreadable_ratio,
        )
        logger.info(
            "Leitura de %s: erro=%d id_prova=%d id_participante=%d leitura=%s",
            label,
            reading.erro,
            reading.id_prova,
            reading.id_participante,
            reading.leitura,
        )
        return reading


@lru_cache(maxsize=None)
def default_reader() -> GabaritoReader:
    """Leitor compartilhado pelas funções de módulo, criado na primeira chamada."""

    template_path = os.environ.get(TEMPLATE_ENV_VAR)
    template = load_template(template_path) if template_path else DEFAULT_TEMPLATE
    return GabaritoReader(template=template)


def _shared_reader() -> GabaritoReader | None:
    # Modelo configurado inválido vira falha no registro, nunca exceção
    try:
        return default_reader()
    except (OSError, ValueError):
        logger.exception("Modelo de %s inválido: %s", TEMPLATE_ENV_VAR, os.environ.get(TEMPLATE_ENV_VAR))
        return None


def read_image_path(path: str | PathLike) -> Reading:
    reader = _shared_reader()
    if reader is None:
        return compose(None, None, None, failure=ErrorKind.INTERNAL_FAULT)
    return reader.read_path(path)


def read_image_data(
    format_hint: str,
    data: bytes | bytearray | memoryview,
    length: int | None = None,
) -> Reading:
    reader = _shared_reader()
    if reader is None:
        return compose(None, None, None, failure=ErrorKind.INTERNAL_FAULT)
    return reader.read_bytes(format_hint, data, length)


def read_many(paths: Iterable[str | PathLike]) -> List[Reading]:
    reader = _shared_reader()
    if reader is None:
        return [compose(None, None, None, failure=ErrorKind.INTERNAL_FAULT) for _ in paths]
    return reader.read_many(paths)


__all__ = [
    "GabaritoReader",
    "TEMPLATE_ENV_VAR",
    "compose",
    "default_reader",
    "read_image_data",
    "read_image_path",
    "read_many",
]
