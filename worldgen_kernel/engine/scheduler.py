"""
Engine Scheduler — the epoch loop that grows and simulates a world.

Each epoch:
  growth phase → N simulation ticks → era special rules → pressure update
  → prune/consolidate → statistics (+ feedback-loop validation every 5th epoch)

Behavioral Contract:
- Construction validates the configuration and refuses to build on errors
- All world mutation goes through the GraphStore; components see a GraphView
- A failing template, system, era rule or pressure is logged and skipped
- Termination: tick limit first, then all eras having run their epochs
- Enrichment never blocks the loop; run() joins it before producing output
"""

import asyncio
import logging
import math
import random
from typing import Dict, Iterable, List, Optional, Union

from worldgen_kernel.diagnostics.warning_log import WarningLog
from worldgen_kernel.engine.emitter import NullEmitter
from worldgen_kernel.engine.tasks import PendingTaskRegistry
from worldgen_kernel.execution.fabric import ExecutionFabric, clamp_pressure
from worldgen_kernel.governance.enforcer import ContractEnforcer
from worldgen_kernel.governance.tags import TagHealthAnalyzer
from worldgen_kernel.governance.validator import FrameworkValidator
from worldgen_kernel.homeostasis.feedback import FeedbackAnalyzer
from worldgen_kernel.homeostasis.population import PopulationTracker
from worldgen_kernel.homeostasis.weights import DynamicWeightCalculator
from worldgen_kernel.models.config import EngineConfig, Era
from worldgen_kernel.models.events import (
    CompleteEvent,
    EpochStartEvent,
    EpochStatsEvent,
    ErrorEvent,
    GrowthPhaseEvent,
    LogEvent,
    PopulationReportEvent,
    ProgressEvent,
    SystemHealthEvent,
    TagHealthEvent,
    TemplateUsageEvent,
    ValidationEvent,
)
from worldgen_kernel.models.execution import TemplateApplication
from worldgen_kernel.models.statistics import EpochStats, SimulationStatistics
from worldgen_kernel.models.world import Entity, HistoryEvent, Prominence, Relationship
from worldgen_kernel.selection.sampling import diversity_penalty, pick_random, weighted_random
from worldgen_kernel.selection.systems import SystemSelector
from worldgen_kernel.selection.templates import TemplateSelector
from worldgen_kernel.services.enrichment import EnrichmentCoordinator
from worldgen_kernel.statistics.collector import StatisticsCollector
from worldgen_kernel.statistics.distribution import DistributionTracker
from worldgen_kernel.world_model.store import GraphStore
from worldgen_kernel.world_model.view import GraphView

logger = logging.getLogger(__name__)

FORGOTTEN_AGE = 50
FORGOTTEN_MIN_CONNECTIONS = 2
MORTAL_AGE = 80
DEATH_CHANCE = 0.3
FEEDBACK_INTERVAL = 5
PRESSURE_SMOOTHING = 15.0
MIN_GROWTH_SCALING = 0.1
SHORTFALL_MARGIN = 0.1
MAX_DISTRIBUTION_NUDGE = 5.0
GROWTH_WINDOW = 20
GROWTH_RATE_LIMIT = 30
GROWTH_RATE_MIN_SAMPLES = 10
AGGRESSIVE_SYSTEM_LIMIT = 500
AGGRESSIVE_RECHECK_TICKS = 20


class FrameworkValidationError(Exception):
    """Raised at construction when the configuration fails validation."""

    def __init__(self, errors: List[str]):
        super().__init__(
            "Framework validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )
        self.errors = errors


class WorldEngine:
    """
    Drives a world through its eras.

    States:
      READY → (step)* → FINISHED
    Hosts either await run() or call step() until it returns False and then finish().
    """

    def __init__(
        self,
        config: EngineConfig,
        initial_state: Optional[Iterable[Union[Entity, dict]]] = None,
        naming_service=None,
        enrichment_service=None,
        image_service=None,
        emitter=None,
        warning_log: Optional[WarningLog] = None,
    ):
        self.config = config
        self.emitter = emitter or NullEmitter()
        self.warning_log = warning_log or WarningLog()
        self.rng = random.Random(config.seed)

        self.validation = FrameworkValidator(config).validate()
        self.emitter.emit(ValidationEvent(
            status="success" if self.validation.valid else "failed",
            errors=self.validation.errors,
            warnings=self.validation.warnings,
        ))
        if not self.validation.valid:
            raise FrameworkValidationError(self.validation.errors)
        for warning in self.validation.warnings:
            logger.info("Validation warning: %s", warning)

        self.tasks = PendingTaskRegistry()
        self.store = GraphStore(
            naming_service=naming_service,
            task_registry=self.tasks,
            overlap_radius=config.overlap_radius,
            rng=self.rng,
            on_warning=lambda message: self._warn(message, "naming"),
        )
        self.view = GraphView(self.store)
        self.fabric = ExecutionFabric(self.store, self.view)
        self.tag_analyzer = TagHealthAnalyzer(config.tag_registry)
        self.enforcer = ContractEnforcer(config, self.tag_analyzer)
        self.statistics = StatisticsCollector()
        self.system_selector = SystemSelector()

        targets = config.distribution_targets
        self.distribution_tracker = DistributionTracker(targets) if targets else None
        self.template_selector = (
            TemplateSelector(targets, self.distribution_tracker) if targets else None
        )
        self.population = PopulationTracker(config.domain, targets, config.pressures)
        self.weights = DynamicWeightCalculator()
        self.feedback = FeedbackAnalyzer(config.feedback_loops, config)
        self.enrichment = EnrichmentCoordinator(
            self.store,
            self.tasks,
            service=enrichment_service,
            image_service=image_service,
            batch_size=config.enrichment_batch_size,
            max_entity_enrichments=config.max_entity_enrichments,
            on_warning=lambda message: self._warn(message, "enrichment"),
        )

        for pressure in config.pressures:
            self.store.pressures[pressure.id] = clamp_pressure(pressure.value)

        self.current_epoch = 0
        self.template_run_counts: Dict[str, int] = {t.id: 0 for t in config.templates}
        self.max_runs_per_template = math.ceil(20 * config.scale_factor ** 1.5)
        self.stop_reason: Optional[str] = None
        self.last_deviation: Optional[float] = None

        self._finished = False
        self._growth_window: List[int] = []
        self._system_totals: Dict[str, int] = {}
        self._aggressive_warned_at: Dict[str, int] = {}

        self.store.current_era = self.current_era
        self._load_initial_state(initial_state or [])

    # --- Era / termination ---

    @property
    def total_epochs(self) -> int:
        return len(self.config.eras) * self.config.epochs_per_era

    @property
    def current_era(self) -> Era:
        index = min(
            self.current_epoch // self.config.epochs_per_era,
            len(self.config.eras) - 1,
        )
        return self.config.eras[index]

    @property
    def finished(self) -> bool:
        return self._finished

    def _excessive_growth(self) -> bool:
        limit = self.config.target_entities_per_kind * 10 * self.config.scale_factor
        return self.store.get_entity_count() >= limit

    def get_stop_reason(self) -> Optional[str]:
        """Why the run should stop now, or None while it should go on."""
        if self.store.tick >= self.config.max_ticks:
            return "max_ticks"
        if self.current_epoch >= self.total_epochs:
            if self._excessive_growth():
                return "eras_complete_excessive_growth"
            return "eras_complete"
        return None

    def should_continue(self) -> bool:
        return not self._finished and self.get_stop_reason() is None

    # --- Host control ---

    async def step(self) -> bool:
        """Run one epoch if any remain. Returns whether more remain."""
        if not self.should_continue():
            return False
        await self._run_epoch()
        self.current_epoch += 1
        return self.should_continue()

    async def run(self) -> dict:
        """Run to termination and return the exported world."""
        try:
            self._emit_progress("running")
            while await self.step():
                self._emit_progress("running")
            return await self.finish()
        except Exception as e:
            self.emitter.emit(ErrorEvent(message=str(e), phase="run", tick=self.store.tick))
            raise

    def run_sync(self) -> dict:
        return asyncio.run(self.run())

    async def finish(self) -> dict:
        """Join background work, emit final diagnostics and return the export."""
        if not self._finished:
            await self.finalize_enrichments()
            self.stop_reason = self.get_stop_reason() or "stopped"
            self._finished = True
            self._emit_final_reports()
            self._emit_progress("finished")
            logger.info(
                "World complete (%s): %d entities, %d relationships, tick %d",
                self.stop_reason,
                self.store.get_entity_count(),
                self.store.get_relationship_count(),
                self.store.tick,
            )
            self.emitter.emit(CompleteEvent(
                reason=self.stop_reason,
                tick=self.store.tick,
                epochs=self.current_epoch,
                entities=self.store.get_entity_count(),
                relationships=self.store.get_relationship_count(),
                history_events=len(self.store.history),
            ))
        return self.export_state()

    async def finalize_enrichments(self) -> None:
        self.enrichment.flush_all()
        await self.tasks.join()
        await self.enrichment.generate_mythic_images()

    # --- Seed ---

    def _load_initial_state(self, initial_state: Iterable[Union[Entity, dict]]) -> None:
        links = []
        for item in initial_state:
            entity = item if isinstance(item, Entity) else Entity.model_validate(item)
            links.extend(entity.links)
            self.store.load_entity(
                entity.model_copy(update={"links": [], "created_at": 0, "updated_at": 0})
            )

        by_name = {e.name: e.id for e in self.store.get_entities()}
        for link in links:
            src = link.src if self.store.has_entity(link.src) else by_name.get(link.src)
            dst = link.dst if self.store.has_entity(link.dst) else by_name.get(link.dst)
            if src is None or dst is None:
                self._warn(f"Seed link {link.kind} {link.src} -> {link.dst} is unresolved", "seed")
                continue
            self.store.add_relationship(link.kind, src, dst, strength=link.strength)

        self.store.history.append(HistoryEvent(
            tick=0,
            era=self.current_era.id,
            type="special",
            description="World initialized",
            entities_created=[e.id for e in self.store.get_entities()],
        ))

    # --- Epoch ---

    async def _run_epoch(self) -> None:
        era = self.current_era
        if self.store.current_era is None or self.store.current_era.id != era.id:
            self._log("info", f"Era transition: {era.name}", era=era.id)
        self.store.current_era = era
        self.emitter.emit(EpochStartEvent(
            epoch=self.current_epoch, era_id=era.id, era_name=era.name, tick=self.store.tick,
        ))

        entities_before = self.store.get_entity_count()
        relationships_before = self.store.get_relationship_count()

        growth_target = self.calculate_growth_target()
        await self._run_growth_phase(era, growth_target)

        for _ in range(self.config.simulation_ticks_per_growth):
            if self.store.tick >= self.config.max_ticks:
                break
            await self._run_simulation_tick(era)
            self.store.tick += 1

        if era.special_rules is not None:
            try:
                era.special_rules(self.store)
            except Exception as e:
                self._warn(f"Era {era.id} special rules failed: {e}", "era_error", era.id)

        self.update_pressures(era)
        self.prune_and_consolidate()
        self.enrichment.flush_all()

        self._record_epoch(era, growth_target, entities_before, relationships_before)
        if self.current_epoch > 0 and self.current_epoch % FEEDBACK_INTERVAL == 0:
            self._validate_feedback()

    def calculate_growth_target(self) -> int:
        scale = self.config.scale_factor
        low = math.ceil(3 * scale)
        high = math.ceil(25 * scale)

        remaining = 0
        for kind in self.config.domain.kind_names():
            count = self.view.count_entities(kind=kind)
            remaining += max(0, self.config.target_entities_per_kind - count)
        if remaining == 0:
            return low

        epochs_remaining = max(1, self.total_epochs - self.current_epoch)
        base = math.ceil(remaining / epochs_remaining)
        jittered = math.floor(base * (0.7 + self.rng.random() * 0.6))
        return max(low, min(high, jittered))

    # --- Growth ---

    def _base_template_weights(self, era: Era) -> Dict[str, float]:
        if self.template_selector is not None:
            return self.template_selector.calculate_weights(
                self.view, self.config.templates, era.template_weights
            )
        return {
            t.id: max(0.0, era.template_weights.get(t.id, 1.0))
            for t in self.config.templates
        }

    def is_template_eligible(self, template) -> bool:
        if self.template_run_counts.get(template.id, 0) >= self.max_runs_per_template:
            return False
        if not self.enforcer.check_enabled_by(template, self.view).allowed:
            return False
        if not self.enforcer.check_saturation(template, self.view).allowed:
            return False
        try:
            return bool(template.can_apply(self.view))
        except Exception as e:
            self._warn(f"Template {template.id} can_apply failed: {e}", "template_error", template.id)
            return False

    async def _run_growth_phase(self, era: Era, target: int) -> None:
        templates = self.config.templates
        metrics = self.population.update(self.view)
        adjustments = self.weights.calculate_all_weights(
            templates, self._base_template_weights(era), metrics
        )

        created = 0
        applied = 0
        attempts = 0
        max_attempts = max(1, math.ceil(target * 10 * self.config.scale_factor))
        while created < target and attempts < max_attempts:
            attempts += 1
            eligible = [t for t in templates if self.is_template_eligible(t)]
            if not eligible:
                self._log("debug", "No eligible templates", epoch=self.current_epoch)
                break

            weights = [
                adjustments[t.id].adjusted_weight
                * diversity_penalty(self.template_run_counts[t.id])
                for t in eligible
            ]
            template = weighted_random(eligible, weights, self.rng)
            if template is None:
                template = pick_random(eligible, self.rng)

            try:
                candidates = template.find_targets(self.view)
            except Exception as e:
                self._warn(f"Template {template.id} find_targets failed: {e}", "template_error", template.id)
                continue
            if not candidates:
                continue

            application = await self._apply_template(template, pick_random(candidates, self.rng))
            if application is not None and application.entity_ids:
                created += len(application.entity_ids)
                applied += 1

        self.emitter.emit(GrowthPhaseEvent(
            epoch=self.current_epoch,
            target=target,
            entities_created=created,
            templates_applied=applied,
            attempts=attempts,
        ))

    async def _apply_template(self, template, target) -> Optional[TemplateApplication]:
        result, error = await self.fabric.expand_template(template, target)
        if error is not None:
            self.statistics.record_template_application(template.id, success=False)
            self._warn(f"Template {template.id} failed: {error}", "template_error", template.id)
            return None

        try:
            application = self.fabric.apply_template_result(template.id, result)
        except Exception as e:
            self.statistics.record_template_application(template.id, success=False)
            self._warn(f"Template {template.id} result failed to apply: {e}", "template_error", template.id)
            return None
        if not application.success:
            self.statistics.record_template_application(template.id, success=False)
            self._warn(
                f"Template {template.id} result rejected: {application.error}",
                "template_error",
                template.id,
            )
            return application

        lineage_added = self.enforcer.enforce_lineage(
            self.store, self.view, application.entity_ids
        )

        warnings = list(application.warnings)
        new_entities = []
        for entity_id in application.entity_ids:
            entity = self.store.get_entity(entity_id)
            new_entities.append(entity)
            coverage = self.enforcer.check_tag_coverage(entity)
            if coverage:
                warnings.append(coverage)
            warnings.extend(self.enforcer.validate_tag_taxonomy(entity))
        warnings.extend(self.enforcer.check_tag_saturation(new_entities, self.view))
        warnings.extend(self.enforcer.check_tag_orphans(new_entities))
        warnings.extend(self.enforcer.validate_affects(
            template,
            [(e.kind, e.subtype) for e in new_entities],
            len(application.relationships) + lineage_added,
        ))
        for warning in warnings:
            self._warn(warning, "contract", template.id)

        self.store.history.append(HistoryEvent(
            tick=self.store.tick,
            era=self.current_era.id,
            type="growth",
            description=application.description or f"{template.name} applied",
            entities_created=application.entity_ids,
            relationships_created=application.relationships,
        ))

        if application.entity_ids:
            self.template_run_counts[template.id] = self.template_run_counts.get(template.id, 0) + 1
            self.statistics.record_template_application(template.id)
            self.enrichment.queue_entities(application.entity_ids)
        return application

    # --- Simulation ---

    async def _run_simulation_tick(self, era: Era) -> None:
        remaining = self.config.relationship_budget
        created: List[Relationship] = []
        modified: List[str] = []
        descriptions: List[str] = []

        for system in self.config.systems:
            modifier = self.system_selector.modifier_for(system.id, era.system_modifiers)
            if modifier == 0:
                self.statistics.record_system_skipped(system.id)
                continue

            result, error = await self.fabric.run_system(system, modifier)
            if error is not None:
                self.statistics.record_system_execution(system.id, success=False)
                self._warn(f"System {system.id} failed: {error}", "system_error", system.id)
                continue

            try:
                execution = self.fabric.apply_system_result(system.id, modifier, result, remaining)
            except Exception as e:
                self.statistics.record_system_execution(system.id, success=False)
                self._warn(f"System {system.id} result failed to apply: {e}", "system_error", system.id)
                continue
            for warning in execution.warnings:
                self._warn(warning, "system_error", system.id)
            if remaining is not None:
                remaining = max(0, remaining - len(execution.relationships))
            if execution.relationships_dropped:
                self._warn(
                    f"BUDGET: {system.id} dropped {execution.relationships_dropped} "
                    f"relationships at tick {self.store.tick}",
                    "budget",
                    system.id,
                )

            self.statistics.record_system_execution(
                system.id,
                success=True,
                relationships_created=len(execution.relationships),
                entities_modified=len(execution.entities_modified),
            )
            for warning in self.enforcer.validate_affects(
                system, [], len(execution.relationships), execution.pressure_changes
            ):
                self._warn(warning, "contract", system.id)
            self._track_system_output(system.id, len(execution.relationships))

            created.extend(execution.relationships)
            modified.extend(execution.entities_modified)
            if execution.description and (execution.relationships or execution.entities_modified):
                descriptions.append(execution.description)

        if created or modified:
            self.store.history.append(HistoryEvent(
                tick=self.store.tick,
                era=era.id,
                type="simulation",
                description="; ".join(descriptions) or "Simulation tick",
                relationships_created=created,
                entities_modified=list(dict.fromkeys(modified)),
            ))
        self.enrichment.queue_notable_relationships(created)
        self._monitor_relationship_growth(len(created))

    def _track_system_output(self, system_id: str, count: int) -> None:
        total = self._system_totals.get(system_id, 0) + count
        self._system_totals[system_id] = total
        if total <= AGGRESSIVE_SYSTEM_LIMIT:
            return
        last = self._aggressive_warned_at.get(system_id)
        if last is None or self.store.tick - last > AGGRESSIVE_RECHECK_TICKS:
            self._aggressive_warned_at[system_id] = self.store.tick
            self._warn(
                f"System {system_id} has created {total} relationships",
                "aggressive_system",
                system_id,
            )

    def _monitor_relationship_growth(self, count: int) -> None:
        self._growth_window.append(count)
        if len(self._growth_window) > GROWTH_WINDOW:
            self._growth_window.pop(0)
        if len(self._growth_window) < GROWTH_RATE_MIN_SAMPLES:
            return
        average = sum(self._growth_window) / len(self._growth_window)
        if average > GROWTH_RATE_LIMIT:
            self._warn(
                f"Relationship growth averaging {average:.1f}/tick over "
                f"{len(self._growth_window)} ticks",
                "growth_rate",
            )

    # --- Pressures ---

    def update_pressures(self, era: Era) -> None:
        nudges = self._distribution_nudges()
        for pressure in self.config.pressures:
            current = self.store.pressures.get(pressure.id, 0.0)
            try:
                growth = pressure.growth(self.view)
            except Exception as e:
                self._warn(f"Pressure {pressure.id} growth failed: {e}", "pressure_error", pressure.id)
                growth = 0.0

            scaling = max(MIN_GROWTH_SCALING, 1 - (current / 100) ** 2)
            era_modifier = era.pressure_modifiers.get(pressure.id, 1.0)
            delta = (growth * scaling - pressure.decay) * era_modifier + nudges.get(pressure.id, 0.0)
            delta = max(-PRESSURE_SMOOTHING, min(PRESSURE_SMOOTHING, delta))
            self.store.pressures[pressure.id] = clamp_pressure(current + delta)

    def _distribution_nudges(self) -> Dict[str, float]:
        """Extra pressure for pressures that enable templates producing short kinds."""
        if self.distribution_tracker is None:
            return {}
        era_id = self.current_era.id
        state = self.distribution_tracker.measure_state(self.view)
        deviation = self.distribution_tracker.calculate_deviation(state, era_id)
        self.last_deviation = deviation.overall

        threshold = self.config.distribution_targets.tuning.convergence_threshold
        if deviation.entity_kind.score <= threshold:
            return {}
        shortfalls = self.distribution_tracker.get_under_represented_kinds(
            state, era_id, margin=SHORTFALL_MARGIN
        )
        if not shortfalls:
            return {}

        produced_by = {}
        for template in self.config.templates:
            metadata = getattr(template, "metadata", None)
            if metadata is not None:
                produced_by[template.id] = {p.kind for p in metadata.produces.entity_kinds}

        nudges: Dict[str, float] = {}
        for pressure in self.config.pressures:
            if pressure.contract is None:
                continue
            for effect in pressure.contract.affects:
                prefix, _, name = effect.component.partition(".")
                if prefix != "template":
                    continue
                for kind in produced_by.get(name, ()):
                    if kind in shortfalls:
                        nudge = min(shortfalls[kind] * 20, MAX_DISTRIBUTION_NUDGE)
                        nudges[pressure.id] = max(nudges.get(pressure.id, 0.0), nudge)
        return nudges

    # --- Pruning ---

    def prune_and_consolidate(self) -> None:
        """Soft-retire neglected entities; never deletes anything."""
        tick = self.store.tick
        for entity in self.store.get_entities():
            age = tick - entity.created_at
            if (
                entity.prominence != Prominence.FORGOTTEN
                and age > FORGOTTEN_AGE
                and self.store.count_relationships_for(entity.id) < FORGOTTEN_MIN_CONNECTIONS
            ):
                self.store.update_entity(entity.id, {"prominence": Prominence.FORGOTTEN})

            if (
                entity.kind in self.config.mortal_kinds
                and entity.status == "alive"
                and age > MORTAL_AGE
                and self.rng.random() < DEATH_CHANCE
            ):
                start = entity.temporal.start_tick if entity.temporal else entity.created_at
                self.store.update_entity(entity.id, {
                    "status": "dead",
                    "temporal": {"start_tick": start, "end_tick": tick},
                })

    # --- Statistics and diagnostics ---

    def _record_epoch(
        self, era: Era, growth_target: int, entities_before: int, relationships_before: int
    ) -> None:
        by_kind: Dict[str, int] = {}
        for entity in self.store.get_entities():
            by_kind[entity.kind] = by_kind.get(entity.kind, 0) + 1
        entities = self.store.get_entity_count()
        relationships = self.store.get_relationship_count()

        stats = EpochStats(
            epoch=self.current_epoch,
            tick=self.store.tick,
            era=era.id,
            entities=entities,
            relationships=relationships,
            entities_by_kind=by_kind,
            pressures=dict(self.store.pressures),
            entities_created=entities - entities_before,
            relationships_created=max(0, relationships - relationships_before),
            growth_target=growth_target,
            deviation=self.last_deviation,
        )
        self.statistics.record_epoch(stats)
        self.emitter.emit(EpochStatsEvent(
            epoch=stats.epoch,
            era=stats.era,
            entities=stats.entities,
            relationships=stats.relationships,
            entities_by_kind=stats.entities_by_kind,
            pressures=stats.pressures,
            entities_created=stats.entities_created,
            relationships_created=stats.relationships_created,
        ))

    def _validate_feedback(self) -> None:
        metrics = self.population.get_metrics()
        results = self.feedback.validate_all(metrics)
        broken = self.feedback.get_broken_loops(results)
        for result in broken:
            findings = self.feedback.generate_detailed_diagnostics(result)
            detail = f" ({'; '.join(findings)})" if findings else ""
            self._warn(f"Feedback loop {result.loop_id} broken: {result.reason}{detail}", "feedback")

        self.emitter.emit(PopulationReportEvent(
            summary=self.population.get_summary().model_dump(),
            outliers=self.population.get_outliers(),
            broken_loops=[r.loop_id for r in broken],
        ))

    def _emit_final_reports(self) -> None:
        self.population.update(self.view)
        self.emitter.emit(PopulationReportEvent(
            summary=self.population.get_summary().model_dump(),
            outliers=self.population.get_outliers(),
        ))

        usage = self.statistics.template_usage
        self.emitter.emit(TemplateUsageEvent(
            usage=usage,
            unused=[t.id for t in self.config.templates if t.id not in usage],
        ))

        report = self.tag_analyzer.analyze(self.store.get_entities())
        self.emitter.emit(TagHealthEvent(
            coverage_ratio=report.coverage_ratio,
            orphan_tags=report.orphan_tags,
            oversaturated_tags=report.oversaturated_tags,
            conflicts=len(report.conflicts),
        ))

        stats = self.statistics.generate_statistics(self.view, self.store.tick)
        self.emitter.emit(SystemHealthEvent(systems={
            system_id: health.model_dump(exclude={"system_id"})
            for system_id, health in stats.system_health.items()
        }))

    def _emit_progress(self, phase: str) -> None:
        self.emitter.emit(ProgressEvent(
            phase=phase,
            tick=self.store.tick,
            max_ticks=self.config.max_ticks,
            epoch=self.current_epoch,
            total_epochs=self.total_epochs,
            entities=self.store.get_entity_count(),
            relationships=self.store.get_relationship_count(),
        ))

    def _log(self, level: str, message: str, **context) -> None:
        logger.log(logging.getLevelName(level.upper()), message)
        self.emitter.emit(LogEvent(level=level, message=message, context=context))

    def _warn(self, message: str, category: str, source: Optional[str] = None) -> None:
        self.warning_log.append(self.store.tick, category, message, source)
        self.statistics.record_warning(category, source)
        self._log("warning", message, category=category, source=source)

    # --- Export ---

    def export_state(self) -> dict:
        """JSON-serialisable snapshot of the world and its timeline."""
        snapshot = self.store.snapshot()
        return {
            "metadata": {
                "tick": self.store.tick,
                "epoch": self.current_epoch,
                "era": self.current_era.id,
                "entity_count": len(snapshot["entities"]),
                "relationship_count": len(snapshot["relationships"]),
                "historical_relationship_count": len(snapshot["historical_relationships"]),
                "history_events": len(self.store.history),
                "stop_reason": self.stop_reason,
            },
            "hard_state": snapshot["entities"],
            "relationships": snapshot["relationships"],
            "historical_relationships": snapshot["historical_relationships"],
            "pressures": snapshot["pressures"],
            "history": [h.model_dump(mode="json") for h in self.store.history],
            "lore_records": [r.model_dump(mode="json") for r in self.store.lore_records],
            "distribution_metrics": self._distribution_metrics(),
        }

    def _distribution_metrics(self) -> Optional[dict]:
        if self.distribution_tracker is None:
            return None
        state = self.distribution_tracker.measure_state(self.view)
        deviation = self.distribution_tracker.calculate_deviation(state, self.current_era.id)
        return {
            "state": state.model_dump(mode="json"),
            "deviation": deviation.model_dump(mode="json"),
            "targets": self.config.distribution_targets.model_dump(mode="json", by_alias=True),
        }

    def export_statistics(self) -> SimulationStatistics:
        return self.statistics.generate_statistics(
            self.view, self.store.tick, final_deviation=self.last_deviation
        )

    def status(self) -> dict:
        return {
            "tick": self.store.tick,
            "epoch": self.current_epoch,
            "total_epochs": self.total_epochs,
            "era": self.current_era.id,
            "entities": self.store.get_entity_count(),
            "relationships": self.store.get_relationship_count(),
            "pressures": dict(self.store.pressures),
            "finished": self._finished,
            "stop_reason": self.stop_reason or self.get_stop_reason(),
            "pending_tasks": self.tasks.pending,
        }
