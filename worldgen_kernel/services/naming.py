"""Naming services — a syllable-based generator usable when no external namer is wired in."""

import random
from typing import Dict, List, Optional, Set

from worldgen_kernel.models.world import EntityDraft

DEFAULT_SYLLABLES = [
    "ar", "bel", "cor", "dan", "el", "fen", "gar", "hal", "is", "jor",
    "kal", "lor", "mar", "nor", "or", "pel", "quin", "ras", "sol", "tor",
    "ul", "vel", "wen", "xan", "yr", "zor",
]


class SyllableNameGenerator:
    """
    Builds names from syllable pools, optionally per culture.
    Names are unique within one generator instance.
    """

    def __init__(
        self,
        syllables_by_culture: Optional[Dict[str, List[str]]] = None,
        rng: Optional[random.Random] = None,
        min_syllables: int = 2,
        max_syllables: int = 3,
    ):
        self.syllables_by_culture = syllables_by_culture or {}
        self.rng = rng or random.Random()
        self.min_syllables = min_syllables
        self.max_syllables = max_syllables
        self._used: Set[str] = set()

    def generate(self, draft: EntityDraft) -> str:
        pool = self.syllables_by_culture.get(draft.culture or "", DEFAULT_SYLLABLES)
        for _ in range(20):
            count = self.rng.randint(self.min_syllables, self.max_syllables)
            name = "".join(self.rng.choice(pool) for _ in range(count)).capitalize()
            if name not in self._used:
                self._used.add(name)
                return name
        # Pool exhausted for this length; disambiguate with a counter
        name = f"{name} {len(self._used) + 1}"
        self._used.add(name)
        return name
