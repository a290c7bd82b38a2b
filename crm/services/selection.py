"""
Estrategias para elegir un candidato en las asignaciones automáticas.

No hay cursor round-robin persistido: cada asignación es un
sorteo nuevo. Los tests inyectan una estrategia determinista.
"""

import random
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


class SelectionStrategy(ABC):
    """Elige un elemento de una lista no vacía."""

    @abstractmethod
    def pick_one(self, candidates: Sequence[T]) -> T:
        ...


class RandomSelection(SelectionStrategy):
    """Sorteo uniforme (comportamiento de producción)."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def pick_one(self, candidates: Sequence[T]) -> T:
        if not candidates:
            raise ValueError("No hay candidatos para elegir")
        return self._rng.choice(list(candidates))
