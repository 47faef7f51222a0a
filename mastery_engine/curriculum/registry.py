"""
Curriculum Skill Registry

Catalogue of atomic skills populated from curriculum configuration at
startup. Each entry carries the skill's kind, curricular phase, authored
prerequisites and transfer targets, so the engine never has to guess a
skill's category from its identifier.

Curriculum file format (JSON):

    {
      "skills": [
        {"skill_id": "sh", "kind": "DIGRAPH", "phase": 3,
         "prerequisites": ["s", "h"], "transfers_to": [], "difficulty": 0.5}
      ]
    }
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from collections import defaultdict
import json
import logging

from mastery_engine.schemas.mastery import SkillKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkillDefinition:
    """Authored description of one skill"""
    skill_id: str
    kind: SkillKind = SkillKind.GPC
    phase: int = 0
    prerequisites: List[str] = field(default_factory=list)
    transfers_to: List[str] = field(default_factory=list)
    difficulty: float = 0.5

    def to_dict(self) -> Dict:
        return {
            "skill_id": self.skill_id,
            "kind": self.kind.value,
            "phase": self.phase,
            "prerequisites": list(self.prerequisites),
            "transfers_to": list(self.transfers_to),
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "SkillDefinition":
        d = d.copy()
        if "kind" in d:
            d["kind"] = SkillKind(d["kind"])
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


class SkillRegistry:
    """
    Lookup of skill definitions by id.

    Unknown skills resolve to an uncatalogued default (GPC, phase 0, no
    relations) so practice on new content is still traced.
    """

    def __init__(self, definitions: Optional[Iterable[SkillDefinition]] = None):
        self._definitions: Dict[str, SkillDefinition] = {}
        self._dependents: Dict[str, List[str]] = defaultdict(list)
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: SkillDefinition):
        previous = self._definitions.get(definition.skill_id)
        if previous is not None:
            for prereq in previous.prerequisites:
                self._dependents[prereq].remove(previous.skill_id)
        self._definitions[definition.skill_id] = definition
        for prereq in definition.prerequisites:
            self._dependents[prereq].append(definition.skill_id)

    def resolve(self, skill_id: str) -> SkillDefinition:
        definition = self._definitions.get(skill_id)
        if definition is None:
            logger.debug(f"Skill {skill_id!r} not in curriculum registry, using defaults")
            return SkillDefinition(skill_id=skill_id)
        return definition

    def dependents_of(self, skill_id: str) -> List[str]:
        return list(self._dependents.get(skill_id, []))

    def __contains__(self, skill_id: str) -> bool:
        return skill_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def skill_ids(self) -> List[str]:
        return sorted(self._definitions)

    @classmethod
    def from_dict(cls, data: Dict) -> "SkillRegistry":
        return cls(SkillDefinition.from_dict(entry) for entry in data.get("skills", []))

    @classmethod
    def load(cls, path: str) -> "SkillRegistry":
        with open(path, "r") as f:
            registry = cls.from_dict(json.load(f))
        logger.info(f"Loaded curriculum registry from {path}: {len(registry)} skills")
        return registry

    def save(self, path: str):
        with open(path, "w") as f:
            json.dump({"skills": [self._definitions[s].to_dict() for s in self.skill_ids()]}, f, indent=2)


# Letters & Sounds progression
PHASE_2_GPCS = ["s", "a", "t", "p", "i", "n", "m", "d"]
PHASE_3_GPCS = [
    "g", "o", "c", "k", "e", "u", "r", "h", "b", "f", "l",
    "j", "v", "w", "x", "y", "z",
]
PHASE_3_DIGRAPHS = [
    "sh", "ch", "th", "ng", "ai", "ee", "oa", "oo", "ar", "or", "ur", "ow", "oi", "er",
]
PHASE_3_TRIGRAPHS = ["igh", "air", "ear", "ure"]

DEFAULT_PREREQUISITES = {
    "sh": ["s", "h"], "ch": ["c", "h"], "th": ["t", "h"],
    "ai": ["a", "i"], "ee": ["e"], "oa": ["o", "a"],
    "ar": ["a", "r"], "or": ["o", "r"], "ur": ["u", "r"],
}

DEFAULT_TRANSFERS = {
    "s": ["sh"], "h": ["sh", "ch", "th"], "c": ["ch", "ck"],
    "t": ["th"], "a": ["ai", "ar", "oa"], "e": ["ee", "er"],
    "o": ["oa", "or", "oo", "ow", "oi"], "u": ["ur"],
}


def default_phonics_registry() -> SkillRegistry:
    """Phase 2-3 phonics catalogue with authored prerequisites and transfers"""
    definitions = []
    for phase, skill_ids, kind in (
        (2, PHASE_2_GPCS, SkillKind.GPC),
        (3, PHASE_3_GPCS, SkillKind.GPC),
        (3, PHASE_3_DIGRAPHS, SkillKind.DIGRAPH),
        (3, PHASE_3_TRIGRAPHS, SkillKind.TRIGRAPH),
    ):
        for skill_id in skill_ids:
            definitions.append(SkillDefinition(
                skill_id=skill_id,
                kind=kind,
                phase=phase,
                prerequisites=DEFAULT_PREREQUISITES.get(skill_id, []),
                transfers_to=DEFAULT_TRANSFERS.get(skill_id, []),
            ))
    return SkillRegistry(definitions)
