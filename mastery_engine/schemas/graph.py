"""
Prerequisite graph snapshot

DEFINED edges come from the curriculum registry; INFERRED edges are produced
by the population-level inference job and only enter a live graph through an
external curation step.
"""
from collections import defaultdict, deque
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, PrivateAttr


class EdgeType(str, Enum):
    DEFINED = "DEFINED"
    INFERRED = "INFERRED"


class PrerequisiteNode(BaseModel):
    skill_id: str
    phase: int = 0
    depth: int = 0  # longest prerequisite chain leading to this skill
    in_degree: int = 0
    out_degree: int = 0


class PrerequisiteEdge(BaseModel):
    from_skill: str  # prerequisite
    to_skill: str  # dependent skill
    strength: float = Field(default=1.0, ge=0.0, le=1.0)
    type: EdgeType = EdgeType.DEFINED
    evidence: int = 0  # learners supporting an inferred edge


class PrerequisiteGraph(BaseModel):
    nodes: Dict[str, PrerequisiteNode] = Field(default_factory=dict)
    edges: List[PrerequisiteEdge] = Field(default_factory=list)

    _dependents: Dict[str, List[str]] = PrivateAttr(default_factory=dict)
    _prerequisites: Dict[str, List[str]] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._index()

    def add_skill(self, skill_id: str, phase: int = 0, prerequisites: Optional[List[str]] = None):
        """Add a skill node and its DEFINED incoming edges, then refresh degrees and depths"""
        node = self.nodes.get(skill_id)
        if node is None:
            self.nodes[skill_id] = PrerequisiteNode(skill_id=skill_id, phase=phase)
        else:
            node.phase = phase

        existing = set(self._prerequisites.get(skill_id, []))
        for prereq in prerequisites or []:
            if prereq not in self.nodes:
                self.nodes[prereq] = PrerequisiteNode(skill_id=prereq)
            if prereq not in existing:
                self.edges.append(PrerequisiteEdge(from_skill=prereq, to_skill=skill_id))
                existing.add(prereq)

        self._index()
        self._recompute()

    def dependents_of(self, skill_id: str) -> List[str]:
        """Skills that list skill_id as a direct prerequisite"""
        return list(self._dependents.get(skill_id, []))

    def prerequisites_of(self, skill_id: str) -> List[str]:
        return list(self._prerequisites.get(skill_id, []))

    def _index(self):
        dependents = defaultdict(list)
        prerequisites = defaultdict(list)
        for edge in self.edges:
            if edge.type != EdgeType.DEFINED:
                continue
            dependents[edge.from_skill].append(edge.to_skill)
            prerequisites[edge.to_skill].append(edge.from_skill)
        self._dependents = dict(dependents)
        self._prerequisites = dict(prerequisites)

    def _recompute(self):
        for skill_id, node in self.nodes.items():
            node.in_degree = len(self._prerequisites.get(skill_id, []))
            node.out_degree = len(self._dependents.get(skill_id, []))
            node.depth = 0

        # Longest path in topological order; nodes caught in a cycle keep depth 0
        remaining = {skill_id: node.in_degree for skill_id, node in self.nodes.items()}
        queue = deque(skill_id for skill_id, degree in remaining.items() if degree == 0)
        while queue:
            current = queue.popleft()
            depth = self.nodes[current].depth
            for child in self._dependents.get(current, []):
                child_node = self.nodes[child]
                child_node.depth = max(child_node.depth, depth + 1)
                remaining[child] -= 1
                if remaining[child] == 0:
                    queue.append(child)
