"""
Population-level prerequisite inference

Infers candidate prerequisite edges from mastery co-occurrence across many
learners. For each co-observed skill pair (A, B) a 2x2 table of mastered
flags is built and each direction is tested on its own:

    A -> B  when  P(B mastered | A mastered) - P(B mastered | A not mastered) > 0.2
            and   P(B mastered | A mastered) > 0.5

with at least 10 learners in each conditional group. Inferred edges are
staged for curation and never applied to live learner graphs.

Pipeline:
1. Data Preprocessing: learner x skill matrix of mastered flags
2. Pairwise contingency tests in both directions
3. Ranking: top edges by strength
"""

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from mastery_engine.schemas.graph import EdgeType, PrerequisiteEdge
from mastery_engine.schemas.mastery import MasteryState

logger = logging.getLogger(__name__)


class PrerequisiteInferenceEngine:
    """
    Pure inference over a population of learner states.

    Attributes:
        mastery_threshold: p_mastery at or above which a skill counts as mastered
        min_group_size: Learners required in each conditional group
        min_difference: Required lift P(B|A) - P(B|not A)
        min_conditional: Required P(B|A)
        max_edges: Number of edges returned
    """

    def __init__(
        self,
        mastery_threshold: float = 0.7,
        min_group_size: int = 10,
        min_difference: float = 0.2,
        min_conditional: float = 0.5,
        max_edges: int = 100,
    ):
        self.mastery_threshold = mastery_threshold
        self.min_group_size = min_group_size
        self.min_difference = min_difference
        self.min_conditional = min_conditional
        self.max_edges = max_edges

    def infer(self, states: Iterable[MasteryState], min_evidence: int = 50) -> List[PrerequisiteEdge]:
        """
        Infer prerequisite edges from learner states

        Args:
            states: One state per learner
            min_evidence: Minimum number of learner snapshots

        Returns:
            Up to max_edges INFERRED edges, strongest first; empty when the
            population is too small
        """
        states = list(states)
        if len(states) < min_evidence:
            logger.info(f"Insufficient evidence for prerequisite inference: {len(states)} < {min_evidence} learners")
            return []

        matrix = self._mastery_matrix(states)
        if matrix.shape[1] < 2:
            logger.info("Fewer than two skills observed, nothing to infer")
            return []

        edges = []
        for skill_a, skill_b in itertools.combinations(sorted(matrix.columns), 2):
            pair = matrix[[skill_a, skill_b]].dropna()
            if pair.empty:
                continue
            for from_skill, to_skill in ((skill_a, skill_b), (skill_b, skill_a)):
                edge = self._test_direction(pair, from_skill, to_skill)
                if edge is not None:
                    edges.append(edge)

        edges.sort(key=lambda e: (-e.strength, e.from_skill, e.to_skill))
        edges = edges[:self.max_edges]
        logger.info(f"Prerequisite inference over {len(states)} learners produced {len(edges)} edges")
        return edges

    def _mastery_matrix(self, states: List[MasteryState]) -> pd.DataFrame:
        """Learner x skill matrix: 1.0 mastered, 0.0 not mastered, NaN unobserved"""
        records = []
        for state in states:
            for skill_id, skill in state.skills.items():
                records.append({
                    "learner": f"{state.tenant_id}:{state.learner_id}",
                    "skill": skill_id,
                    "mastered": 1.0 if skill.p_mastery >= self.mastery_threshold else 0.0,
                })
        if not records:
            return pd.DataFrame()

        df = pd.DataFrame(records)
        return df.pivot_table(index="learner", columns="skill", values="mastered", aggfunc="max")

    def _test_direction(self, pair: pd.DataFrame, from_skill: str, to_skill: str) -> Optional[PrerequisiteEdge]:
        with_from = pair.loc[pair[from_skill] == 1.0, to_skill]
        without_from = pair.loc[pair[from_skill] == 0.0, to_skill]
        if len(with_from) < self.min_group_size or len(without_from) < self.min_group_size:
            return None

        p_given = float(with_from.mean())
        p_given_not = float(without_from.mean())
        difference = p_given - p_given_not
        if difference <= self.min_difference or p_given <= self.min_conditional:
            return None

        return PrerequisiteEdge(
            from_skill=from_skill,
            to_skill=to_skill,
            strength=min(1.0, difference),
            type=EdgeType.INFERRED,
            evidence=len(pair),
        )


class PrerequisiteInferenceJob:
    """
    Batch wrapper around the inference engine.

    Reads every state of a tenant from the store, runs inference in a worker
    thread and stages the result for an external curation step.

    Attributes:
        staged_edges: Edges from the last run, keyed by tenant
        last_run: Summary of the last run
    """

    def __init__(self, store: Any, engine: Optional[PrerequisiteInferenceEngine] = None):
        self.store = store
        self.engine = engine or PrerequisiteInferenceEngine()
        self.staged_edges: Dict[str, List[PrerequisiteEdge]] = {}
        self.last_run: Dict[str, Any] = {}

    async def run(self, tenant_id: str, min_evidence: int = 50) -> List[PrerequisiteEdge]:
        logger.info(f"Starting prerequisite inference for tenant {tenant_id}")
        states = [state async for state in self.store.iter_tenant(tenant_id)]

        edges = await asyncio.to_thread(self.engine.infer, states, min_evidence)

        self.staged_edges[tenant_id] = edges
        self.last_run = {
            "tenant_id": tenant_id,
            "learners": len(states),
            "edges": len(edges),
            "completed_at": datetime.now(timezone.utc),
        }
        logger.info(f"Prerequisite inference for tenant {tenant_id} staged {len(edges)} edges")
        return edges
