from __future__ import annotations

import unittest

import numpy as np

from leitor_gabarito.alignment import GeometricTransform, locate
from leitor_gabarito.bubble_reader import UNREADABLE, measure_cell, sample, unreadable_ratio
from leitor_gabarito.scanner_input import PixelBuffer
from leitor_gabarito.template import ANSWERS_FIELD, DEFAULT_TEMPLATE

from synthetic import render_sheet


def scaling_transform(sx: float, sy: float, level: float = 128.0) -> GeometricTransform:
    matrix = np.array([[sx, 0, 0], [0, sy, 0], [0, 0, 1]], dtype=np.float64)
    return GeometricTransform(
        matrix=matrix,
        inverse=np.linalg.inv(matrix),
        anchors=((0.0, 0.0), (sx, 0.0), (sx, sy), (0.0, sy)),
        threshold_level=level,
    )


class TestSample(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        image = render_sheet(
            id_prova="372",
            id_participante="01234",
            answers=["a", "", "bd"] + ["e"] * 17,
        )
        cls.image = image
        cls.buffer = PixelBuffer.from_gray(image)
        cls.transform = locate(cls.buffer, DEFAULT_TEMPLATE)
        cls.scores = sample(cls.buffer, cls.transform, DEFAULT_TEMPLATE)

    def test_shape_follows_template(self) -> None:
        self.assertEqual(len(self.scores["id_prova"]), 3)
        self.assertEqual(len(self.scores["id_participante"]), 5)
        self.assertTrue(all(len(col) == 10 for col in self.scores["id_prova"]))
        self.assertEqual(len(self.scores[ANSWERS_FIELD]), 20)

    def test_scores_are_bounded(self) -> None:
        for groups in self.scores.values():
            for group in groups:
                for score in group:
                    self.assertGreaterEqual(score, 0.0)
                    self.assertLessEqual(score, 1.0)

    def test_marked_cells_score_high(self) -> None:
        threshold = DEFAULT_TEMPLATE.mark_threshold
        id_prova = self.scores["id_prova"]
        self.assertGreater(id_prova[0][3], threshold)
        self.assertGreater(id_prova[1][7], threshold)
        self.assertLess(id_prova[0][4], threshold)

        answers = self.scores[ANSWERS_FIELD]
        self.assertGreater(answers[0][0], threshold)
        self.assertTrue(all(s < threshold for s in answers[1]))
        self.assertGreater(answers[2][1], threshold)
        self.assertGreater(answers[2][3], threshold)

    def test_input_not_mutated(self) -> None:
        self.assertTrue(np.array_equal(self.buffer.gray, self.image))

    def test_unreadable_outside_buffer(self) -> None:
        # espaço normalizado mapeado para além da borda direita
        small = PixelBuffer.from_gray(np.full((200, 100), 255, dtype=np.uint8))
        transform = scaling_transform(150.0, 150.0)
        inside = measure_cell(small.gray, transform, (0.2, 0.2), (0.1, 0.1), 0.2)
        outside = measure_cell(small.gray, transform, (0.9, 0.2), (0.1, 0.1), 0.2)
        self.assertEqual(inside, 0.0)
        self.assertEqual(outside, UNREADABLE)

    def test_fully_dark_cell(self) -> None:
        dark = np.zeros((200, 200), dtype=np.uint8)
        score = measure_cell(dark, scaling_transform(200.0, 200.0), (0.5, 0.5), (0.2, 0.2), 0.2)
        self.assertAlmostEqual(score, 1.0)

    def test_unreadable_ratio(self) -> None:
        self.assertEqual(unreadable_ratio([[0.1, UNREADABLE], [UNREADABLE, 0.9]]), 0.5)
        self.assertEqual(unreadable_ratio([]), 0.0)


if __name__ == "__main__":
    unittest.main()
