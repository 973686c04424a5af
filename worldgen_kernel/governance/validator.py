"""
Framework Validator — static checks over an EngineConfig before any tick runs.

Behavioral Contract:
- Returns a ValidationResult; valid is False iff at least one error was found
- Errors are fatal to engine construction; warnings are informational
- Never mutates the configuration
"""

from typing import List, Set

from worldgen_kernel.governance.enforcer import estimate_capacity
from worldgen_kernel.governance.tags import TagHealthAnalyzer
from worldgen_kernel.models.config import EngineConfig
from worldgen_kernel.models.contracts import ComponentPurpose
from worldgen_kernel.models.execution import ValidationResult
from worldgen_kernel.models.pressure import Pressure, PressureComponentRef

BUILTIN_REF_PREFIXES = ("time", "formula", "relationship", "tag", "entity")
PROMINENCE_SUM_TOLERANCE = 0.01
EQUILIBRIUM_LOW_SLACK = 0.8
EQUILIBRIUM_HIGH_SLACK = 1.2
ACHIEVABILITY_RATIO = 0.5


class FrameworkValidator:
    """Static coverage, pressure, equilibrium, achievability and contract checks."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self._errors: List[str] = []
        self._warnings: List[str] = []

    @property
    def template_ids(self) -> Set[str]:
        return {t.id for t in self.config.templates}

    @property
    def system_ids(self) -> Set[str]:
        return {s.id for s in self.config.systems}

    @property
    def pressure_ids(self) -> Set[str]:
        return {p.id for p in self.config.pressures}

    def validate(self) -> ValidationResult:
        self._errors = []
        self._warnings = []

        self._check_eras()
        self._check_coverage()
        self._check_pressures()
        self._check_equilibrium()
        self._check_achievability()
        self._check_contracts()
        self._check_feedback_loops()
        self._check_tag_registry()

        return ValidationResult(
            valid=not self._errors,
            errors=self._errors,
            warnings=self._warnings,
        )

    # --- Eras ---

    def _check_eras(self) -> None:
        if not self.config.eras:
            self._errors.append("No eras configured")
        if self.config.epochs_per_era < 1:
            self._errors.append("epochs_per_era must be at least 1")
        seen = set()
        for era in self.config.eras:
            if era.id in seen:
                self._errors.append(f"Era id '{era.id}' is declared twice")
            seen.add(era.id)
            for template_id in era.template_weights:
                if template_id not in self.template_ids:
                    self._warnings.append(
                        f"Era '{era.id}' weights unknown template '{template_id}'"
                    )
            for system_id in era.system_modifiers:
                if system_id not in self.system_ids:
                    self._warnings.append(
                        f"Era '{era.id}' modifies unknown system '{system_id}'"
                    )

    # --- Coverage ---

    def _check_coverage(self) -> None:
        registries = self.config.entity_registries
        if not registries:
            self._warnings.append("No entity registries configured; coverage cannot be checked")
            return

        covered = set()
        for registry in registries:
            covered.add(registry.kind)
            if not registry.creators:
                self._errors.append(f"Entity kind '{registry.key}' has no creators")
            for creator in registry.creators:
                if creator.template_id not in self.template_ids:
                    self._errors.append(
                        f"Registry '{registry.key}' references unknown template "
                        f"'{creator.template_id}'"
                    )
            for modifier in registry.modifiers:
                if modifier.system_id not in self.system_ids:
                    self._errors.append(
                        f"Registry '{registry.key}' references unknown system "
                        f"'{modifier.system_id}'"
                    )

        for kind in self.config.domain.kind_names():
            if kind not in covered:
                self._warnings.append(f"Entity kind '{kind}' has no registry")

    # --- Pressures ---

    def _check_pressures(self) -> None:
        for pressure in self.config.pressures:
            contract = pressure.contract
            if contract is None:
                self._warnings.append(f"Pressure '{pressure.id}' has no contract")
                continue
            if not contract.sources:
                self._errors.append(f"Pressure '{pressure.id}' has no sources")
            if not contract.sinks:
                self._errors.append(
                    f"Pressure '{pressure.id}' has no sinks and will saturate at 100!"
                )
            for ref in contract.sources + contract.sinks:
                self._check_ref(pressure, ref.component)
            for effect in contract.affects:
                self._check_ref(pressure, effect.component)

    def _check_ref(self, pressure: Pressure, component: str) -> None:
        prefix, _, name = component.partition(".")
        if prefix in BUILTIN_REF_PREFIXES:
            return
        known = {
            "template": self.template_ids,
            "system": self.system_ids,
            "pressure": self.pressure_ids,
        }.get(prefix)
        if known is None:
            self._errors.append(
                f"Pressure '{pressure.id}' references '{component}' with unknown prefix"
            )
        elif name not in known:
            self._errors.append(
                f"Pressure '{pressure.id}' references missing {prefix} '{name}'"
            )

    # --- Equilibrium ---

    def _check_equilibrium(self) -> None:
        for pressure in self.config.pressures:
            if pressure.contract is None or pressure.contract.equilibrium is None:
                continue
            low, high = pressure.contract.equilibrium.expected_range
            if low < 0 or high > 100 or low >= high:
                self._errors.append(
                    f"Pressure '{pressure.id}' has invalid equilibrium range [{low}, {high}]"
                )
                continue
            if pressure.decay <= 0:
                continue

            inflow = _sum_deltas(pressure.contract.sources)
            outflow = sum(abs(d) for d in _deltas(pressure.contract.sinks))
            predicted = (inflow - outflow) / pressure.decay
            if predicted < low * EQUILIBRIUM_LOW_SLACK or predicted > high * EQUILIBRIUM_HIGH_SLACK:
                self._warnings.append(
                    f"Pressure '{pressure.id}' predicted equilibrium {predicted:.1f} "
                    f"outside expected range [{low}, {high}]"
                )

    # --- Achievability ---

    def _check_achievability(self) -> None:
        for registry in self.config.entity_registries:
            expected = registry.expected_distribution
            if expected is None:
                continue
            capacity = estimate_capacity(registry)
            if capacity < expected.target_count * ACHIEVABILITY_RATIO:
                self._warnings.append(
                    f"Registry '{registry.key}' targets {expected.target_count} but "
                    f"its creators can produce about {capacity}"
                )
            if expected.prominence_distribution:
                total = sum(expected.prominence_distribution.values())
                if abs(total - 1.0) > PROMINENCE_SUM_TOLERANCE:
                    self._errors.append(
                        f"Registry '{registry.key}' prominence distribution sums to "
                        f"{total:.3f}, expected 1.0"
                    )

    # --- Contracts ---

    def _check_contracts(self) -> None:
        kinds = set(self.config.domain.kind_names())

        for template in self.config.templates:
            contract = getattr(template, "contract", None)
            if contract is None:
                self._warnings.append(f"Template '{template.id}' has no contract")
                continue
            if contract.purpose not in (
                ComponentPurpose.ENTITY_CREATION,
                ComponentPurpose.RELATIONSHIP_CREATION,
            ):
                self._warnings.append(
                    f"Template '{template.id}' declares purpose '{contract.purpose.value}'"
                )
            self._check_contract_refs(f"Template '{template.id}'", contract, kinds)

        for system in self.config.systems:
            contract = getattr(system, "contract", None)
            if contract is None:
                self._warnings.append(f"System '{system.id}' has no contract")
                continue
            if contract.purpose == ComponentPurpose.ENTITY_CREATION:
                self._errors.append(
                    f"System '{system.id}' declares entity creation; only templates create entities"
                )
            self._check_contract_refs(f"System '{system.id}'", contract, kinds)

    def _check_contract_refs(self, label: str, contract, kinds: Set[str]) -> None:
        if contract.enabled_by is not None:
            for gate in contract.enabled_by.pressures:
                if gate.name not in self.pressure_ids:
                    self._errors.append(f"{label} is gated on unknown pressure '{gate.name}'")
            for requirement in contract.enabled_by.entity_counts:
                if requirement.kind not in kinds:
                    self._errors.append(
                        f"{label} requires unknown entity kind '{requirement.kind}'"
                    )
        for affect in contract.affects.entities:
            if affect.kind not in kinds:
                self._errors.append(f"{label} affects unknown entity kind '{affect.kind}'")
        for affect in contract.affects.pressures:
            if affect.name not in self.pressure_ids:
                self._errors.append(f"{label} affects unknown pressure '{affect.name}'")

    # --- Feedback loops and tags ---

    def _check_feedback_loops(self) -> None:
        seen = set()
        for loop in self.config.feedback_loops:
            if loop.id in seen:
                self._errors.append(f"Feedback loop id '{loop.id}' is declared twice")
            seen.add(loop.id)

    def _check_tag_registry(self) -> None:
        analyzer = TagHealthAnalyzer(self.config.tag_registry)
        for definition in self.config.tag_registry:
            for other in definition.conflicts_with:
                if not analyzer.is_registered(other):
                    self._warnings.append(
                        f"Tag '{definition.tag}' conflicts with unregistered tag '{other}'"
                    )


def _deltas(refs: List[PressureComponentRef]) -> List[float]:
    return [r.delta for r in refs if r.delta is not None]


def _sum_deltas(refs: List[PressureComponentRef]) -> float:
    return sum(_deltas(refs))
