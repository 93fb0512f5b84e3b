"""Configuração de modelo (template) da folha de respostas.

O modelo descreve a geometria lógica do gabarito num espaço normalizado cujo
quadrado unitário tem como cantos os centros dos quatro marcadores de
alinhamento: TL=(0, 0), TR=(1, 0), BR=(1, 1) e BL=(0, 1). Todas as posições
de células (dígitos dos identificadores e alternativas das questões) são
dadas nesse espaço e levadas para pixels pela homografia calculada em
``alignment``.

O modelo é imutável e validado na construção; ``DEFAULT_TEMPLATE`` é criado
uma única vez e compartilhado por referência entre leituras.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Tuple


Point = Tuple[float, float]
Rect = Tuple[float, float, float, float]

ANSWERS_FIELD = "leitura"

UNIT_SQUARE_CORNERS: Tuple[Point, Point, Point, Point] = (
    (0.0, 0.0),
    (1.0, 0.0),
    (1.0, 1.0),
    (0.0, 1.0),
)


def _rect_around(points: Iterable[Point], size: Point) -> Rect:
    xs, ys = zip(*points)
    hw, hh = size[0] / 2, size[1] / 2
    return (min(xs) - hw, min(ys) - hh, max(xs) + hw, max(ys) + hh)


def _rects_overlap(a: Rect, b: Rect) -> bool:
    return a[0] < b[2] and b[0] < a[2] and a[1] < b[3] and b[1] < a[3]


@dataclass(frozen=True)
class NumericField:
    """Bloco de identificação numérica: uma coluna por dígito, 10 linhas.

    ``digit_values`` mapeia a linha (de cima para baixo) para o dígito
    impresso. Se a folha tiver o 9 em cima, use ``(9, 8, ..., 0)``.
    """

    name: str
    origin: Point
    columns: int
    column_pitch: float
    row_pitch: float
    cell_size: Point
    digit_values: Tuple[int, ...] = tuple(range(10))

    def column_centers(self) -> List[List[Point]]:
        """Centros ideais agrupados por coluna, na ordem de ``digit_values``."""

        ox, oy = self.origin
        return [
            [
                (ox + col * self.column_pitch, oy + row * self.row_pitch)
                for row in range(len(self.digit_values))
            ]
            for col in range(self.columns)
        ]

    def extent(self) -> Rect:
        return _rect_around(
            (p for column in self.column_centers() for p in column), self.cell_size
        )


@dataclass(frozen=True)
class AnswerGrid:
    """Matriz de respostas em blocos de questões lado a lado.

    A questão ``q`` (base 0) fica no bloco ``q // questions_per_block``; as
    alternativas de cada questão são lidas na horizontal.
    """

    origin: Point
    blocks: int
    questions_per_block: int
    options: int
    option_pitch: float
    row_pitch: float
    block_offset: float
    cell_size: Point

    @property
    def questions(self) -> int:
        return self.blocks * self.questions_per_block

    def row_centers(self) -> List[List[Point]]:
        """Centros ideais por questão, em ordem de questão."""

        base_x, base_y = self.origin
        rows: List[List[Point]] = []
        for block in range(self.blocks):
            x_base = base_x + block * self.block_offset
            for q in range(self.questions_per_block):
                y = base_y + q * self.row_pitch
                rows.append([(x_base + opt * self.option_pitch, y) for opt in range(self.options)])
        return rows

    def block_extents(self) -> List[Rect]:
        rows = self.row_centers()
        per_block = self.questions_per_block
        return [
            _rect_around(
                (p for row in rows[b * per_block : (b + 1) * per_block] for p in row),
                self.cell_size,
            )
            for b in range(self.blocks)
        ]


def _default_id_prova() -> NumericField:
    return NumericField(
        name="id_prova",
        origin=(0.10, 0.10),
        columns=3,
        column_pitch=0.06,
        row_pitch=0.034,
        cell_size=(0.04, 0.026),
    )


def _default_id_participante() -> NumericField:
    return NumericField(
        name="id_participante",
        origin=(0.40, 0.10),
        columns=5,
        column_pitch=0.06,
        row_pitch=0.034,
        cell_size=(0.04, 0.026),
    )


def _default_answers() -> AnswerGrid:
    return AnswerGrid(
        origin=(0.12, 0.50),
        blocks=2,
        questions_per_block=10,
        options=5,
        option_pitch=0.065,
        row_pitch=0.045,
        block_offset=0.45,
        cell_size=(0.04, 0.03),
    )


@dataclass(frozen=True)
class SheetTemplate:
    """Geometria e política de decisão de uma versão da folha."""

    version: str = "gabarito-20q-v1"
    fiducials: Tuple[Point, Point, Point, Point] = UNIT_SQUARE_CORNERS
    id_prova: NumericField = field(default_factory=_default_id_prova)
    id_participante: NumericField = field(default_factory=_default_id_participante)
    answers: AnswerGrid = field(default_factory=_default_answers)

    # Política de decisão
    alphabet: str = "abcde"
    blank_char: str = "-"
    double_char: str = "X"
    mark_threshold: float = 0.45

    # Fração de cada lado da célula descartada na amostragem
    cell_inset: float = 0.2
    # Fração máxima de células ilegíveis por campo antes de rejeitar a folha
    max_unreadable_ratio: float = 0.2

    def __post_init__(self) -> None:
        self._validate()

    @property
    def answer_row_count(self) -> int:
        return self.answers.questions

    @property
    def numeric_fields(self) -> Tuple[NumericField, NumericField]:
        return (self.id_prova, self.id_participante)

    def field_regions(self) -> Dict[str, List[Rect]]:
        """Retângulos (espaço normalizado) ocupados por cada campo."""

        return {
            self.id_prova.name: [self.id_prova.extent()],
            self.id_participante.name: [self.id_participante.extent()],
            ANSWERS_FIELD: self.answers.block_extents(),
        }

    def _validate(self) -> None:
        if len(self.fiducials) != 4:
            raise ValueError("O modelo precisa de exatamente 4 marcadores")
        for numeric in self.numeric_fields:
            if numeric.columns < 1 or not numeric.digit_values:
                raise ValueError(f"Campo {numeric.name} sem células")
            if sorted(numeric.digit_values) != list(range(len(numeric.digit_values))):
                raise ValueError(f"digit_values inválido em {numeric.name}")
        if self.answers.questions < 1 or self.answers.options < 1:
            raise ValueError("Campo de respostas sem células")
        names = {self.id_prova.name, self.id_participante.name, ANSWERS_FIELD}
        if len(names) != 3:
            raise ValueError("Nomes de campo repetidos")
        if len(self.alphabet) != self.answers.options or len(set(self.alphabet)) != len(self.alphabet):
            raise ValueError("O alfabeto deve ter uma letra distinta por alternativa")
        for char in (self.blank_char, self.double_char):
            if len(char) != 1 or char in self.alphabet:
                raise ValueError(f"Caractere reservado inválido: {char!r}")
        if self.blank_char == self.double_char:
            raise ValueError("Caracteres de branco e dupla marcação devem diferir")
        if not 0.0 < self.mark_threshold < 1.0:
            raise ValueError("mark_threshold deve estar em (0, 1)")
        if not 0.0 <= self.cell_inset < 0.5:
            raise ValueError("cell_inset deve estar em [0, 0.5)")
        if not 0.0 <= self.max_unreadable_ratio <= 1.0:
            raise ValueError("max_unreadable_ratio deve estar em [0, 1]")

        xs = [p[0] for p in self.fiducials]
        ys = [p[1] for p in self.fiducials]
        bounds = (min(xs), min(ys), max(xs), max(ys))
        flat = [(name, rect) for name, rects in self.field_regions().items() for rect in rects]
        for name, rect in flat:
            if rect[0] < bounds[0] or rect[1] < bounds[1] or rect[2] > bounds[2] or rect[3] > bounds[3]:
                raise ValueError(f"Campo {name} fora da área dos marcadores")
        for i, (name_a, rect_a) in enumerate(flat):
            for name_b, rect_b in flat[i + 1 :]:
                if _rects_overlap(rect_a, rect_b):
                    raise ValueError(f"Campos sobrepostos: {name_a} e {name_b}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SheetTemplate":
        data = dict(data)
        kwargs: dict = {}
        for key in ("id_prova", "id_participante"):
            if key in data:
                raw = dict(data.pop(key))
                raw["origin"] = tuple(raw["origin"])
                raw["cell_size"] = tuple(raw["cell_size"])
                if "digit_values" in raw:
                    raw["digit_values"] = tuple(raw["digit_values"])
                kwargs[key] = NumericField(**raw)
        if "answers" in data:
            raw = dict(data.pop("answers"))
            raw["origin"] = tuple(raw["origin"])
            raw["cell_size"] = tuple(raw["cell_size"])
            kwargs["answers"] = AnswerGrid(**raw)
        if "fiducials" in data:
            kwargs["fiducials"] = tuple(tuple(p) for p in data.pop("fiducials"))
        kwargs.update(data)
        return cls(**kwargs)


def load_template(path: str | Path) -> SheetTemplate:
    """Carrega um modelo versionado a partir de um arquivo JSON."""

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    try:
        return SheetTemplate.from_dict(data)
    except (TypeError, KeyError) as exc:
        raise ValueError(f"Modelo inválido em {path}: {exc}") from exc


DEFAULT_TEMPLATE = SheetTemplate()


__all__ = [
    "ANSWERS_FIELD",
    "AnswerGrid",
    "DEFAULT_TEMPLATE",
    "NumericField",
    "Point",
    "Rect",
    "SheetTemplate",
    "UNIT_SQUARE_CORNERS",
    "load_template",
]
