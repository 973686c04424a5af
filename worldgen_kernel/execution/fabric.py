"""
Execution Fabric — invokes growth templates and simulation systems and applies
what they return to the Graph Store.

Behavioral Contract:
- A component that raises never takes the run down; the failure is reported
  in a structured outcome instead
- Hooks may return plain results, dicts or awaitables
- A template result whose entity payloads cannot be created (missing coordinates,
  no name source, an id already taken or repeated within the result) is rejected
  before any mutation
- Entity changes the Graph Store rejects are reported as warnings, not raised
- Pending references resolve only to entities created by the same result
- Relationships count only when the Graph Store accepted them
- Pressure changes are clamped to [0, 100]
"""

import inspect
import logging
from typing import Any, Dict, List, Optional, Tuple

from worldgen_kernel.models.execution import (
    SystemExecution,
    SystemResult,
    TemplateApplication,
    TemplateResult,
)
from worldgen_kernel.models.world import PENDING_REF_PREFIX, Relationship, RelationshipDraft
from worldgen_kernel.world_model.store import GraphStore, GraphStoreError
from worldgen_kernel.world_model.view import GraphView

logger = logging.getLogger(__name__)


class ComponentExecutionError(Exception):
    """Raised when a component returns something that is not a valid result."""
    pass


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def clamp_pressure(value: float) -> float:
    return max(0.0, min(100.0, value))


class ExecutionFabric:
    """Dispatches template and system hooks and writes their results to the graph."""

    def __init__(self, store: GraphStore, view: Optional[GraphView] = None):
        self.store = store
        self.view = view or GraphView(store)

    # --- Templates ---

    async def expand_template(
        self, template, target
    ) -> Tuple[Optional[TemplateResult], Optional[str]]:
        try:
            raw = await _resolve(template.expand(self.view, target))
            return self._coerce(raw, TemplateResult, template.id), None
        except Exception as e:
            logger.warning("Template %s failed to expand: %s", template.id, e)
            return None, str(e)

    def apply_template_result(
        self, template_id: str, result: TemplateResult
    ) -> TemplateApplication:
        problem = self._check_drafts(result)
        if problem:
            return TemplateApplication(
                template_id=template_id,
                success=False,
                description=result.description,
                error=problem,
            )

        created: List[str] = []
        try:
            for draft in result.entities:
                created.append(self.store.create_entity(draft))
        except GraphStoreError as e:
            return TemplateApplication(
                template_id=template_id,
                success=False,
                entity_ids=created,
                description=result.description,
                error=str(e),
            )

        warnings: List[str] = []
        relationships = self._add_relationships(
            result.relationships, created, warnings, source=template_id
        )
        return TemplateApplication(
            template_id=template_id,
            success=True,
            entity_ids=created,
            relationships=relationships,
            description=result.description,
            warnings=warnings,
        )

    def _check_drafts(self, result: TemplateResult) -> Optional[str]:
        seen = set()
        for index, draft in enumerate(result.entities):
            label = f"entity #{index} ({draft.kind}:{draft.subtype})"
            if draft.coordinates is None:
                return f"{label} has no coordinates"
            if not draft.name and self.store.naming_service is None:
                return f"{label} has no name and no naming service is configured"
            if draft.id and self.store.has_entity(draft.id):
                return f"{label} reuses existing id {draft.id}"
            if draft.id and draft.id in seen:
                return f"{label} repeats id {draft.id} within the same result"
            if draft.id:
                seen.add(draft.id)
        return None

    # --- Systems ---

    async def run_system(
        self, system, modifier: float
    ) -> Tuple[Optional[SystemResult], Optional[str]]:
        try:
            raw = await _resolve(system.apply(self.view, modifier))
            return self._coerce(raw, SystemResult, system.id), None
        except Exception as e:
            logger.warning("System %s failed: %s", system.id, e)
            return None, str(e)

    def apply_system_result(
        self,
        system_id: str,
        modifier: float,
        result: SystemResult,
        budget: Optional[int] = None,
    ) -> SystemExecution:
        drafts = result.relationships_added
        dropped = 0
        if budget is not None and len(drafts) > budget:
            dropped = len(drafts) - max(0, budget)
            drafts = drafts[: max(0, budget)]

        warnings: List[str] = []
        relationships = self._add_relationships(drafts, [], warnings, source=system_id)

        modified = []
        for modification in result.entities_modified:
            if self.store.update_entity(modification.id, modification.changes):
                modified.append(modification.id)
            else:
                warnings.append(f"{system_id}: change to {modification.id} was rejected")

        applied: Dict[str, float] = {}
        for pressure_id, delta in result.pressure_changes.items():
            if pressure_id not in self.store.pressures:
                continue
            before = self.store.pressures[pressure_id]
            after = clamp_pressure(before + delta)
            self.store.pressures[pressure_id] = after
            applied[pressure_id] = after - before

        return SystemExecution(
            system_id=system_id,
            success=True,
            modifier=modifier,
            relationships=relationships,
            relationships_dropped=dropped,
            entities_modified=modified,
            pressure_changes=applied,
            description=result.description,
            warnings=warnings,
        )

    # --- Shared ---

    def _add_relationships(
        self,
        drafts: List[RelationshipDraft],
        created: List[str],
        warnings: List[str],
        source: str,
    ) -> List[Relationship]:
        added = []
        for draft in drafts:
            src = self._resolve_ref(draft.src, created)
            dst = self._resolve_ref(draft.dst, created)
            if src is None or dst is None:
                warnings.append(
                    f"{source}: unresolved reference in {draft.kind} {draft.src} -> {draft.dst}"
                )
                continue
            if self.store.add_relationship(
                draft.kind,
                src,
                dst,
                strength=draft.strength,
                distance=draft.distance,
                category=draft.category,
            ):
                added.extend(self.store.get_relationships(kind=draft.kind, src=src, dst=dst))
        return added

    def _resolve_ref(self, ref: str, created: List[str]) -> Optional[str]:
        if not ref.startswith(PENDING_REF_PREFIX):
            return ref
        try:
            return created[int(ref[len(PENDING_REF_PREFIX):])]
        except (ValueError, IndexError):
            return None

    def _coerce(self, raw: Any, model, component_id: str):
        if isinstance(raw, model):
            return raw
        if isinstance(raw, dict):
            return model.model_validate(raw)
        raise ComponentExecutionError(
            f"{component_id} returned {type(raw).__name__}, expected {model.__name__}"
        )
