"""System Selector — per-system modifiers for the current era."""

from typing import Dict, List

MIN_SYSTEM_MODIFIER = 0.2
MAX_SYSTEM_MODIFIER = 2.0


class SystemSelector:
    """
    Era modifier per system, defaulting to 1.0.
    Exactly 0 disables a system; anything else is clamped to [0.2, 2.0].
    """

    def calculate_system_modifiers(
        self, systems: List, era_modifiers: Dict[str, float]
    ) -> Dict[str, float]:
        return {s.id: self.modifier_for(s.id, era_modifiers) for s in systems}

    def modifier_for(self, system_id: str, era_modifiers: Dict[str, float]) -> float:
        modifier = era_modifiers.get(system_id, 1.0)
        if modifier == 0:
            return 0.0
        return max(MIN_SYSTEM_MODIFIER, min(MAX_SYSTEM_MODIFIER, modifier))
