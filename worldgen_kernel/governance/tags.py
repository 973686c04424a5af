"""Tag taxonomy — registry lookups, conflict detection and end-of-run tag health."""

from typing import Dict, Iterable, List, Optional, Tuple

from worldgen_kernel.models.config import TagDefinition
from worldgen_kernel.models.execution import TagHealthReport
from worldgen_kernel.models.world import Entity

MIN_TAGS = 3
MAX_TAGS = 5


class TagHealthAnalyzer:
    """Answers taxonomy questions against the configured tag registry."""

    def __init__(self, registry: Optional[List[TagDefinition]] = None):
        self._definitions: Dict[str, TagDefinition] = {
            d.tag: d for d in registry or []
        }

    @property
    def has_registry(self) -> bool:
        return bool(self._definitions)

    def normalize(self, tag: str) -> str:
        """Map parameterised tags such as ``name:Aldric`` onto a ``name:*`` definition."""
        if tag in self._definitions:
            return tag
        prefix, sep, _ = tag.partition(":")
        if sep and f"{prefix}:*" in self._definitions:
            return f"{prefix}:*"
        return tag

    def get_definition(self, tag: str) -> Optional[TagDefinition]:
        return self._definitions.get(self.normalize(tag))

    def is_registered(self, tag: str) -> bool:
        return self.get_definition(tag) is not None

    def find_conflicts(self, tags: Iterable[str]) -> List[Tuple[str, str]]:
        present = {self.normalize(t) for t in tags}
        conflicts = []
        for tag in sorted(present):
            definition = self._definitions.get(tag)
            if definition is None:
                continue
            for other in definition.conflicts_with:
                if other in present and (other, tag) not in conflicts:
                    conflicts.append((tag, other))
        return conflicts

    def usage_counts(self, entities: Iterable[Entity]) -> Dict[str, int]:
        usage: Dict[str, int] = {}
        for entity in entities:
            for tag in entity.tags:
                key = self.normalize(tag)
                usage[key] = usage.get(key, 0) + 1
        return usage

    def analyze(self, entities: List[Entity]) -> TagHealthReport:
        usage = self.usage_counts(entities)
        under = [e.id for e in entities if len(e.tags) < MIN_TAGS]
        over = [e.id for e in entities if len(e.tags) > MAX_TAGS]
        conflicts = []
        for entity in entities:
            for a, b in self.find_conflicts(entity.tags):
                conflicts.append(f"{entity.id}: {a} conflicts with {b}")

        orphans = []
        if self.has_registry:
            orphans = sorted(tag for tag in usage if tag not in self._definitions)
        oversaturated = sorted(
            tag for tag, count in usage.items()
            if tag in self._definitions
            and self._definitions[tag].max_usage is not None
            and count > self._definitions[tag].max_usage
        )

        total = len(entities)
        covered = total - len(under) - len(over)
        return TagHealthReport(
            total_entities=total,
            coverage_ratio=covered / total if total else 1.0,
            under_tagged=under,
            over_tagged=over,
            orphan_tags=orphans,
            oversaturated_tags=oversaturated,
            conflicts=conflicts,
            usage=usage,
        )
