"""
Contract Enforcer — runtime policing of component contracts.

Evaluates whether a template may run (enabled_by, saturation), ties new
entities to their ancestors (lineage), and reports effects that stray from
what a component declared (affects, tag limits).

Behavioral Contract:
- Gating checks return a ContractCheck; they never raise
- Saturation blocks a template only when every kind it produces is saturated
- Lineage relationships are created through the GraphStore API only; an ancestor
  lookup that raises skips that entity
- Affects and tag checks produce warnings; they never undo work
"""

import logging
from typing import Dict, List, Optional, Tuple

from worldgen_kernel.governance.tags import MAX_TAGS, MIN_TAGS, TagHealthAnalyzer
from worldgen_kernel.models.config import EngineConfig
from worldgen_kernel.models.contracts import EntityOperatorRegistry
from worldgen_kernel.models.execution import ContractCheck
from worldgen_kernel.models.world import Entity

logger = logging.getLogger(__name__)

RELATIONSHIP_OVERSHOOT = 1.2
CAPACITY_MULTIPLIER = 10


def estimate_capacity(registry: EntityOperatorRegistry) -> int:
    """Conservative upper bound on how many entities a registry's primary creators can make."""
    return sum(c.target_count for c in registry.creators if c.primary) * CAPACITY_MULTIPLIER


class ContractEnforcer:
    """Applies declared contracts at runtime."""

    def __init__(
        self,
        config: EngineConfig,
        tag_analyzer: Optional[TagHealthAnalyzer] = None,
    ):
        self.config = config
        self.tags = tag_analyzer or TagHealthAnalyzer(config.tag_registry)

    # --- Gating ---

    def check_enabled_by(self, component, view) -> ContractCheck:
        contract = getattr(component, "contract", None)
        if contract is None or contract.enabled_by is None:
            return ContractCheck(allowed=True)
        enabled_by = contract.enabled_by

        for gate in enabled_by.pressures:
            value = view.get_pressure(gate.name)
            if value < gate.threshold:
                return ContractCheck(
                    allowed=False,
                    reason=f"Pressure '{gate.name}' at {value:.1f}, needs {gate.threshold}",
                )

        for requirement in enabled_by.entity_counts:
            count = view.count_entities(kind=requirement.kind, subtype=requirement.subtype)
            label = requirement.kind + (f":{requirement.subtype}" if requirement.subtype else "")
            if count < requirement.min:
                return ContractCheck(
                    allowed=False,
                    reason=f"Needs at least {requirement.min} {label}, found {count}",
                )
            if requirement.max is not None and count >= requirement.max:
                return ContractCheck(
                    allowed=False,
                    reason=f"{label} at maximum ({count}/{requirement.max})",
                )

        if enabled_by.era and view.era_id not in enabled_by.era:
            return ContractCheck(
                allowed=False,
                reason=f"Not enabled in era '{view.era_id}'",
            )

        if enabled_by.custom is not None:
            try:
                met = enabled_by.custom(view)
            except Exception as e:
                logger.warning("Custom precondition of %s raised: %s", component.id, e)
                return ContractCheck(allowed=False, reason=f"Custom precondition failed: {e}")
            if not met:
                return ContractCheck(allowed=False, reason="Custom precondition not met")

        return ContractCheck(allowed=True)

    def _registry_for(self, kind: str, subtype: Optional[str]) -> Optional[EntityOperatorRegistry]:
        if subtype:
            registry = self.config.get_registry(kind, subtype)
            if registry is not None:
                return registry
        return self.config.get_registry(kind)

    def check_saturation(self, template, view) -> ContractCheck:
        metadata = getattr(template, "metadata", None)
        if metadata is None or not metadata.produces.entity_kinds:
            return ContractCheck(allowed=True)

        saturated = []
        for produced in metadata.produces.entity_kinds:
            registry = self._registry_for(produced.kind, produced.subtype)
            if registry is None or registry.expected_distribution is None:
                return ContractCheck(allowed=True)
            count = view.count_entities(kind=registry.kind, subtype=registry.subtype)
            threshold = (
                registry.expected_distribution.target_count
                * self.config.saturation_multiplier
            )
            if count < threshold:
                return ContractCheck(allowed=True)
            saturated.append(f"{registry.key} ({count}/{threshold:g})")

        return ContractCheck(
            allowed=False,
            reason="Saturated: " + ", ".join(saturated),
        )

    # --- Lineage ---

    def enforce_lineage(self, store, view, entity_ids: List[str]) -> int:
        """Connect each new entity to its ancestor when its registry declares lineage."""
        added = 0
        for entity_id in entity_ids:
            entity = store.get_entity(entity_id)
            if entity is None:
                continue
            registry = self._registry_for(entity.kind, entity.subtype)
            if registry is None or registry.lineage is None:
                continue
            lineage = registry.lineage
            try:
                ancestor = lineage.find_ancestor(view, entity)
            except Exception as e:
                logger.warning("Lineage lookup for %s failed: %s", entity.id, e)
                continue
            if ancestor is None or ancestor.id == entity.id:
                continue
            distance = store.rng.uniform(
                lineage.distance_range.min, lineage.distance_range.max
            )
            if store.add_relationship(
                lineage.relationship_kind, entity.id, ancestor.id, distance=distance
            ):
                added += 1
        return added

    # --- Effects ---

    def validate_affects(
        self,
        component,
        created: List[Tuple[str, str]],
        relationships_created: int,
        pressure_changes: Optional[Dict[str, float]] = None,
    ) -> List[str]:
        """Compare actual effects with declared affects; returns warning messages."""
        contract = getattr(component, "contract", None)
        if contract is None:
            return []
        warnings = []

        for affect in contract.affects.entities:
            if affect.operation != "create" or affect.count is None:
                continue
            n = sum(
                1 for kind, subtype in created
                if kind == affect.kind and (affect.subtype is None or subtype == affect.subtype)
            )
            if n < affect.count.min or (
                affect.count.max is not None and n > affect.count.max
            ):
                warnings.append(
                    f"{component.id} created {n} {affect.kind}, declared "
                    f"{affect.count.min}..{affect.count.max if affect.count.max is not None else '*'}"
                )

        declared_max = [
            a.count.max for a in contract.affects.relationships
            if a.count is not None and a.count.max is not None
        ]
        if declared_max:
            limit = sum(declared_max) * RELATIONSHIP_OVERSHOOT
            if relationships_created > limit:
                warnings.append(
                    f"{component.id} created {relationships_created} relationships, "
                    f"declared at most {sum(declared_max)}"
                )

        for affect in contract.affects.pressures:
            if affect.delta is None or not pressure_changes:
                continue
            actual = pressure_changes.get(affect.name)
            if actual is None or actual == 0 or affect.delta == 0:
                continue
            if (actual > 0) != (affect.delta > 0):
                warnings.append(
                    f"{component.id} moved pressure '{affect.name}' by {actual:+.1f}, "
                    f"declared {affect.delta:+.1f}"
                )
        return warnings

    # --- Tags ---

    def check_tag_saturation(self, entities: List[Entity], view) -> List[str]:
        """Warn when new entities push a registered tag past its max_usage."""
        if not self.tags.has_registry:
            return []
        usage = self.tags.usage_counts(view.get_entities())
        warnings = []
        for tag in sorted({self.tags.normalize(t) for e in entities for t in e.tags}):
            definition = self.tags.get_definition(tag)
            if definition is None or definition.max_usage is None:
                continue
            if usage.get(tag, 0) > definition.max_usage:
                warnings.append(
                    f"Tag '{tag}' used {usage[tag]} times, max {definition.max_usage}"
                )
        return warnings

    def check_tag_orphans(self, entities: List[Entity]) -> List[str]:
        if not self.tags.has_registry:
            return []
        orphans = sorted({
            self.tags.normalize(t) for e in entities for t in e.tags
            if not self.tags.is_registered(t)
        })
        return [f"Tag '{t}' is not in the tag registry" for t in orphans]

    def check_tag_coverage(self, entity: Entity) -> Optional[str]:
        """Report an entity carrying fewer than MIN_TAGS or more than MAX_TAGS tags."""
        if MIN_TAGS <= len(entity.tags) <= MAX_TAGS:
            return None
        return f"{entity.id} has {len(entity.tags)} tags, expected {MIN_TAGS}-{MAX_TAGS}"

    def validate_tag_taxonomy(self, entity: Entity) -> List[str]:
        return [
            f"{entity.id}: tag '{a}' conflicts with '{b}'"
            for a, b in self.tags.find_conflicts(entity.tags)
        ]

    # --- Diagnostics ---

    def get_diagnostic(self, template, view) -> str:
        """Human-readable explanation of whether a template can run right now."""
        lines = [f"Template '{template.id}':"]
        enabled = self.check_enabled_by(template, view)
        lines.append(
            "  enabled_by: ok" if enabled.allowed else f"  enabled_by: blocked ({enabled.reason})"
        )
        saturation = self.check_saturation(template, view)
        lines.append(
            "  saturation: ok" if saturation.allowed else f"  saturation: blocked ({saturation.reason})"
        )
        try:
            applicable = template.can_apply(view)
        except Exception as e:
            lines.append(f"  can_apply: error ({e})")
        else:
            lines.append(f"  can_apply: {'yes' if applicable else 'no'}")
        return "\n".join(lines)
