"""Rule-based conflict detection between proposed changes and org metadata."""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Any

from config_advisor.integrations.salesforce.client import MetadataClient
from config_advisor.models.enums import (
    ConflictSeverity,
    ConflictType,
    NamingConvention,
    RecommendationCategory,
    RecommendationImpact,
    RecommendationType,
)
from config_advisor.schemas.changes import ChangeSet, ProposedField
from config_advisor.schemas.recommendation import Conflict, Recommendation
from config_advisor.services.patterns import detect_naming_convention

logger = logging.getLogger(__name__)

RESERVED_WORDS = frozenset(
    {
        "account",
        "case",
        "contact",
        "lead",
        "opportunity",
        "product",
        "user",
        "task",
        "event",
        "note",
        "id",
        "name",
        "type",
        "status",
        "date",
        "currency",
        "percent",
        "formula",
        "master",
        "detail",
        "limit",
        "offset",
        "order",
        "by",
        "where",
        "select",
        "from",
        "and",
        "or",
        "not",
    }
)
RISK_SCORES: dict[ConflictSeverity, int] = {
    ConflictSeverity.critical: 90,
    ConflictSeverity.high: 70,
    ConflictSeverity.medium: 40,
    ConflictSeverity.low: 20,
}
SEVERITY_RANK: dict[ConflictSeverity, int] = {
    ConflictSeverity.critical: 4,
    ConflictSeverity.high: 3,
    ConflictSeverity.medium: 2,
    ConflictSeverity.low: 1,
}
SIMILARITY_THRESHOLD = 0.7
CONFLICT_CONFIDENCE = 0.95

CUSTOM_REFERENCE_RE = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*__c)\b")
STANDARD_REFERENCE_RE = re.compile(
    r"\b(Id|Name|CreatedDate|CreatedById|LastModifiedDate|LastModifiedById|OwnerId|RecordTypeId)\b"
)
CREATE_ACTIONS = {None, "", "create", "add", "new"}


def extract_field_references(formula: str) -> list[str]:
    refs: list[str] = []
    for match in [*CUSTOM_REFERENCE_RE.findall(formula or ""), *STANDARD_REFERENCE_RE.findall(formula or "")]:
        if match not in refs:
            refs.append(match)
    return refs


def levenshtein_distance(left: str, right: str) -> int:
    if len(left) < len(right):
        left, right = right, left
    previous = list(range(len(right) + 1))
    for i, lch in enumerate(left, start=1):
        current = [i]
        for j, rch in enumerate(right, start=1):
            cost = 0 if lch == rch else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def string_similarity(left: str, right: str) -> float:
    longer = max(len(left), len(right))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(left, right)) / longer


def _base_name(name: str) -> str:
    return re.sub(r"__c$", "", name or "", flags=re.IGNORECASE).lower()


def _make_conflict(
    conflict_type: ConflictType,
    severity: ConflictSeverity,
    *,
    message: str,
    details: str,
    resolution: str,
    affected: list[str],
    actions: list[str],
) -> Conflict:
    return Conflict(
        type=conflict_type,
        severity=severity,
        message=message,
        details=details,
        resolution=resolution,
        affected_components=affected,
        suggested_actions=actions,
        risk_score=RISK_SCORES[severity],
    )


def prioritize_conflicts(conflicts: list[Conflict]) -> list[Conflict]:
    return sorted(conflicts, key=lambda c: (-SEVERITY_RANK[c.severity], -c.risk_score))


def _find_cycles(graph: dict[str, list[str]], starts: list[str]) -> list[list[str]]:
    """Depth-first search from each start node; returns each distinct cycle once as a closed path."""
    cycles: list[list[str]] = []
    seen: set[frozenset[str]] = set()

    def visit(node: str, path: list[str], on_path: set[str]) -> None:
        for nxt in graph.get(node, []):
            if nxt in on_path:
                cycle = path[path.index(nxt) :] + [nxt]
                key = frozenset(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)
                continue
            if nxt in graph:
                on_path.add(nxt)
                path.append(nxt)
                visit(nxt, path, on_path)
                path.pop()
                on_path.discard(nxt)

    for start in starts:
        visit(start, [start], {start})
    return cycles


class ConflictDetector:
    def __init__(self, metadata: MetadataClient | None = None) -> None:
        self.metadata = metadata

    def detect_conflicts(
        self,
        org_id: str,
        proposed_changes: dict[str, Any] | ChangeSet | None,
        existing_metadata: dict[str, Any] | None = None,
        *,
        naming_convention: NamingConvention | None = None,
    ) -> list[Conflict]:
        changes = proposed_changes if isinstance(proposed_changes, ChangeSet) else ChangeSet.from_payload(proposed_changes)
        if existing_metadata is None:
            existing_metadata = self._load_object_metadata(org_id, changes)
        existing_fields = [f for f in existing_metadata.get("fields") or [] if isinstance(f, dict) and f.get("name")]
        org_objects = self._org_object_names(org_id, changes, existing_metadata)

        conflicts: list[Conflict] = []
        conflicts.extend(self._duplicate_conflicts(changes, existing_fields, org_objects))
        conflicts.extend(self._reserved_conflicts(changes))
        conflicts.extend(self._dependency_conflicts(changes, existing_fields, org_objects))
        conflicts.extend(self._circular_conflicts(changes, existing_metadata, existing_fields))
        conflicts.extend(self._naming_conflicts(changes, existing_fields, naming_convention))
        prioritized = prioritize_conflicts(conflicts)
        if prioritized:
            logger.info("Detected %d conflicts for org %s", len(prioritized), org_id)
        return prioritized

    def _load_object_metadata(self, org_id: str, changes: ChangeSet) -> dict[str, Any]:
        name = changes.object_name
        if not name or self.metadata is None or name in changes.created_object_names:
            return {}
        return self.metadata.describe_object(org_id, name) or {}

    def _org_object_names(self, org_id: str, changes: ChangeSet, existing_metadata: dict[str, Any]) -> set[str] | None:
        """Object names known to the org, fetched only when a check needs them."""
        if "sobjects" in existing_metadata:
            return {str(s.get("name")) for s in existing_metadata.get("sobjects") or [] if isinstance(s, dict)}
        needs_lookup = changes.has_object_creation() or any(
            rel.parent.endswith("__c") for rel in changes.relationships
        )
        if not needs_lookup or self.metadata is None:
            return None
        payload = self.metadata.describe_global(org_id) or {}
        return {str(s.get("name")) for s in payload.get("sobjects") or [] if isinstance(s, dict)}

    @staticmethod
    def _is_new_field(field: ProposedField) -> bool:
        return (field.action or "").lower() in CREATE_ACTIONS

    def _duplicate_conflicts(
        self,
        changes: ChangeSet,
        existing_fields: list[dict[str, Any]],
        org_objects: set[str] | None,
    ) -> list[Conflict]:
        conflicts: list[Conflict] = []
        by_name = {str(f["name"]): f for f in existing_fields}
        by_lower = {name.lower(): name for name in by_name}
        by_label = {str(f.get("label") or "").lower(): str(f["name"]) for f in existing_fields if f.get("label")}

        for field in changes.fields:
            if not field.name or not self._is_new_field(field):
                continue
            if field.name in by_name:
                conflicts.append(
                    _make_conflict(
                        ConflictType.duplicate,
                        ConflictSeverity.critical,
                        message=f'Field "{field.name}" already exists',
                        details=f'The object already has a field named "{field.name}".',
                        resolution=f'Choose a different name for "{field.name}" or modify the existing component',
                        affected=[field.name],
                        actions=[
                            f"Use a more specific name for {field.name}",
                            "Check if the existing field can be reused",
                            "Add a prefix or suffix to differentiate",
                        ],
                    )
                )
                continue
            match = by_lower.get(field.name.lower())
            if match is None and field.label:
                match = by_label.get(field.label.lower())
            if match is not None:
                conflicts.append(
                    _make_conflict(
                        ConflictType.duplicate,
                        ConflictSeverity.high,
                        message=f'Field "{field.name}" duplicates existing field "{match}"',
                        details="Names or labels differ only by case, which confuses users and integrations.",
                        resolution=f'Choose a different name for "{field.name}" or modify the existing component',
                        affected=[field.name, match],
                        actions=[
                            f"Use a more specific name for {field.name}",
                            f'Check if "{match}" can be reused',
                        ],
                    )
                )

        counts: dict[str, list[str]] = {}
        for field in changes.fields:
            if field.name:
                counts.setdefault(field.name.lower(), []).append(field.name)
        for names in counts.values():
            if len(names) > 1:
                conflicts.append(
                    _make_conflict(
                        ConflictType.duplicate,
                        ConflictSeverity.high,
                        message=f'Field "{names[0]}" is proposed {len(names)} times',
                        details="The same field name appears more than once in this change set.",
                        resolution=f'Merge the duplicate definitions of "{names[0]}" into one change',
                        affected=names,
                        actions=["Remove the duplicate field definition", "Rename one of the proposed fields"],
                    )
                )

        if org_objects is not None:
            for obj in changes.objects:
                if obj.action == "create" and obj.name in org_objects:
                    conflicts.append(
                        _make_conflict(
                            ConflictType.duplicate,
                            ConflictSeverity.critical,
                            message=f'Object "{obj.name}" already exists',
                            details="The org already contains an object with this API name.",
                            resolution=f'Choose a different name for "{obj.name}" or modify the existing component',
                            affected=[obj.name],
                            actions=[f"Extend the existing {obj.name} object instead", "Pick a distinct API name"],
                        )
                    )
        return conflicts

    @staticmethod
    def _reserved_conflicts(changes: ChangeSet) -> list[Conflict]:
        conflicts: list[Conflict] = []
        for field in changes.fields:
            base = _base_name(field.name)
            if not base or base not in RESERVED_WORDS:
                continue
            custom = field.name.lower().endswith("__c")
            severity = ConflictSeverity.medium if custom else ConflictSeverity.high
            conflicts.append(
                _make_conflict(
                    ConflictType.reserved,
                    severity,
                    message=f'Field name "{field.name}" uses reserved word "{base}"',
                    details=(
                        "The custom suffix avoids a hard collision but the name still shadows a standard name."
                        if custom
                        else "The name collides with a standard Salesforce object or field name."
                    ),
                    resolution="Choose a different name that doesn't conflict with reserved words",
                    affected=[field.name],
                    actions=[
                        f'Prefix the field name (e.g., "Custom_{field.name}")',
                        "Use a synonym that is not reserved",
                        "Add context to make the name unique",
                    ],
                )
            )
        return conflicts

    @staticmethod
    def _dependency_conflicts(
        changes: ChangeSet,
        existing_fields: list[dict[str, Any]],
        org_objects: set[str] | None,
    ) -> list[Conflict]:
        conflicts: list[Conflict] = []
        known = {f.name.lower() for f in changes.fields if f.name} | {str(f["name"]).lower() for f in existing_fields}
        for field in changes.fields:
            if not field.formula:
                continue
            missing = [
                ref
                for ref in CUSTOM_REFERENCE_RE.findall(field.formula)
                if ref.lower() not in known and ref.lower() != field.name.lower()
            ]
            missing = list(dict.fromkeys(missing))
            if missing:
                conflicts.append(
                    _make_conflict(
                        ConflictType.dependency,
                        ConflictSeverity.high,
                        message=f'Formula field "{field.name}" references missing fields',
                        details=f"Unresolved references: {', '.join(missing)}",
                        resolution=f'Ensure all referenced components exist before creating "{field.name}"',
                        affected=[field.name, *missing],
                        actions=[
                            "Create required dependencies first",
                            "Update formula to reference existing fields",
                            "Consider using a different field type",
                        ],
                    )
                )

        if org_objects is not None:
            created = changes.created_object_names
            for rel in changes.relationships:
                parent = rel.parent
                if not parent.endswith("__c") or parent in org_objects or parent in created:
                    continue
                conflicts.append(
                    _make_conflict(
                        ConflictType.dependency,
                        ConflictSeverity.high,
                        message=f'Relationship parent "{parent}" does not exist',
                        details=f'"{rel.child or changes.object_name}" points at an object that is neither in the org nor in this change set.',
                        resolution=f'Ensure all referenced components exist before creating the relationship to "{parent}"',
                        affected=[rel.child or changes.object_name or "", parent],
                        actions=["Create the parent object first", "Point the relationship at an existing object"],
                    )
                )
        return conflicts

    @staticmethod
    def _circular_conflicts(
        changes: ChangeSet,
        existing_metadata: dict[str, Any],
        existing_fields: list[dict[str, Any]],
    ) -> list[Conflict]:
        conflicts: list[Conflict] = []

        formulas: dict[str, list[str]] = {}
        for field in existing_fields:
            if field.get("formula"):
                formulas[str(field["name"])] = extract_field_references(str(field["formula"]))
        for field in changes.fields:
            if field.name and field.formula:
                formulas[field.name] = extract_field_references(field.formula)
        formula_starts = [f.name for f in changes.fields if f.name and f.formula]
        for cycle in _find_cycles(formulas, formula_starts):
            conflicts.append(
                _make_conflict(
                    ConflictType.circular,
                    ConflictSeverity.critical,
                    message=f'Circular dependency detected in formula field "{cycle[0]}"',
                    details=" -> ".join(cycle),
                    resolution="Remove circular references from formula",
                    affected=cycle,
                    actions=[
                        "Review formula dependencies",
                        "Restructure formula logic to avoid circular references",
                        "Consider using a flow instead",
                    ],
                )
            )

        edges: dict[str, list[str]] = {}

        def add_edge(child: str, parent: str) -> None:
            if child and parent and child != parent and parent not in edges.setdefault(child, []):
                edges[child].append(parent)

        described = str(existing_metadata.get("name") or changes.object_name or "")
        for field in existing_fields:
            targets = field.get("referenceTo") or []
            if field.get("type") == "reference" and targets:
                add_edge(described, str(targets[0]))
        for field in changes.fields:
            if field.reference_to and changes.object_name:
                add_edge(changes.object_name, field.reference_to[0])
        for rel in changes.relationships:
            add_edge(rel.child or changes.object_name or "", rel.parent)
        relationship_starts = [rel.child or changes.object_name or "" for rel in changes.relationships]
        if changes.object_name:
            relationship_starts.append(changes.object_name)
        for cycle in _find_cycles(edges, [s for s in relationship_starts if s]):
            conflicts.append(
                _make_conflict(
                    ConflictType.circular,
                    ConflictSeverity.high,
                    message=f'Circular relationship between {", ".join(dict.fromkeys(cycle))}',
                    details=" -> ".join(cycle),
                    resolution="Break the relationship cycle by removing or reversing one of the relationships",
                    affected=cycle,
                    actions=["Use a junction object", "Convert one relationship to a lookup on the other side"],
                )
            )
        return conflicts

    @staticmethod
    def _naming_conflicts(
        changes: ChangeSet,
        existing_fields: list[dict[str, Any]],
        convention: NamingConvention | None,
    ) -> list[Conflict]:
        conflicts: list[Conflict] = []
        for field in changes.fields:
            if not field.name or not ConflictDetector._is_new_field(field):
                continue
            if convention is not None and detect_naming_convention(field.name) != convention:
                conflicts.append(
                    _make_conflict(
                        ConflictType.naming,
                        ConflictSeverity.low,
                        message=f'Field name "{field.name}" doesn\'t follow organization naming conventions',
                        details=f"Most custom fields in this org use {convention.value}.",
                        resolution=f"Rename to follow {convention.value} pattern",
                        affected=[field.name],
                        actions=["Include descriptive context in the name", "Avoid abbreviations when possible"],
                    )
                )

            normalized = _base_name(field.name)
            similar = [
                str(existing["name"])
                for existing in existing_fields
                if SIMILARITY_THRESHOLD < string_similarity(normalized, _base_name(str(existing["name"]))) < 1
            ]
            if similar:
                conflicts.append(
                    _make_conflict(
                        ConflictType.naming,
                        ConflictSeverity.medium,
                        message=f'Field name "{field.name}" is very similar to existing field "{similar[0]}"',
                        details=f"Similar fields: {', '.join(similar)}",
                        resolution="Consider using a more distinct name to avoid confusion",
                        affected=similar,
                        actions=[
                            "Add more specific context to the field name",
                            "Use a completely different naming approach",
                            f'Consider if "{similar[0]}" can be reused instead',
                        ],
                    )
                )
        return conflicts


def conflict_to_recommendation(conflict: Conflict) -> Recommendation:
    if conflict.severity == ConflictSeverity.critical:
        category = RecommendationCategory.error
    elif conflict.severity == ConflictSeverity.high:
        category = RecommendationCategory.warning
    else:
        category = RecommendationCategory.suggestion
    if conflict.severity in {ConflictSeverity.critical, ConflictSeverity.high}:
        impact = RecommendationImpact.high
    elif conflict.severity == ConflictSeverity.medium:
        impact = RecommendationImpact.medium
    else:
        impact = RecommendationImpact.low

    fingerprint = "|".join(
        [conflict.type.value, conflict.severity.value, conflict.message, *conflict.affected_components]
    )
    digest = hashlib.sha1(fingerprint.encode("utf-8")).hexdigest()[:16]
    return Recommendation(
        id=f"conflict-{digest}",
        type=RecommendationType.conflict,
        category=category,
        title=conflict.message,
        description=conflict.details,
        rationale=conflict.resolution,
        confidence=CONFLICT_CONFIDENCE,
        impact=impact,
        examples=list(conflict.affected_components),
    )
