"""
Mastery Engine Service

Orchestrates the per-learner update pipeline:
1. Load state (cache, then store) and lazily create the practised skill
2. Classical BKT update
3. Forgetting, when the skill has not been practised for over an hour
4. Sequence-model prediction blended into the BKT estimate
5. Transfer and prerequisite propagation
6. Wilson confidence interval
7. SM-2 review scheduling
8. Conditional persist, cache swap, event publication

Mutations are applied to a deep copy of the loaded state; the cache only
ever receives a state that has been persisted. Updates for one learner are
serialised by a per-learner lock; across processes the versioned write
detects conflicts, which are retried on freshly loaded state.
"""
import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from mastery_engine.adaptive.bkt import BayesianKnowledgeTracer
from mastery_engine.adaptive.confidence import update_confidence_interval
from mastery_engine.adaptive.dkt import (
    DKTConfig,
    LSTMSequencePredictor,
    SequencePredictor,
    blend_prediction,
    build_interaction_sequence,
)
from mastery_engine.adaptive.forgetting import ForgettingCurve, ReviewScheduler
from mastery_engine.adaptive.prerequisites import PrerequisiteInferenceJob
from mastery_engine.adaptive.transfer import TransferPropagator
from mastery_engine.core.config import Settings, settings
from mastery_engine.core.exceptions import ConcurrencyConflict, MasteryEngineError, PersistenceFailure
from mastery_engine.core.metrics import increment_counter, timed
from mastery_engine.curriculum import SkillRegistry, default_phonics_registry
from mastery_engine.schemas.graph import PrerequisiteEdge
from mastery_engine.schemas.mastery import (
    MasteryState,
    PracticeContext,
    PracticeEvent,
    ReviewScheduleEntry,
    SkillState,
)
from mastery_engine.services.events import EventPublisher, LoggingEventPublisher, MasteryUpdatedEvent
from mastery_engine.services.state_cache import TTLStateCache
from mastery_engine.services.storage import MasteryStore

logger = logging.getLogger(__name__)

READY_THRESHOLD = 0.7


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MasteryEngine:
    """
    Per-learner knowledge tracing engine.

    Attributes:
        store: Versioned state store
        registry: Curriculum skill catalogue used for lazy skill creation
        predictor: Sequence model blended into BKT estimates
        publisher: Sink for mastery update events
        cache: Cache of persisted states
    """

    def __init__(
        self,
        store: MasteryStore,
        registry: Optional[SkillRegistry] = None,
        predictor: Optional[SequencePredictor] = None,
        publisher: Optional[EventPublisher] = None,
        cache: Optional[TTLStateCache] = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.registry = registry if registry is not None else self._default_registry(config)
        self.predictor = predictor if predictor is not None else LSTMSequencePredictor.from_weights(
            config.DKT_WEIGHTS_PATH,
            DKTConfig(
                hidden_size=config.DKT_HIDDEN_SIZE,
                num_layers=config.DKT_NUM_LAYERS,
                embedding_size=config.DKT_EMBEDDING_SIZE,
                num_skills=config.DKT_NUM_SKILLS,
                sequence_length=config.DKT_SEQUENCE_LENGTH,
                seed=config.DKT_SEED,
            ),
        )
        self.publisher = publisher if publisher is not None else LoggingEventPublisher(config.MASTERY_EVENT_CHANNEL)
        if cache is None:
            cache = TTLStateCache(config.STATE_CACHE_MAX_ENTRIES, config.STATE_CACHE_TTL_SECONDS)
        self.cache = cache

        self.bkt = BayesianKnowledgeTracer()
        self.forgetting = ForgettingCurve()
        self.scheduler = ReviewScheduler()
        self.transfer = TransferPropagator()
        self.inference_job = PrerequisiteInferenceJob(store)

        # Entries vanish once no update for the learner holds the lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    @staticmethod
    def _default_registry(config: Settings) -> SkillRegistry:
        if config.CURRICULUM_PATH:
            return SkillRegistry.load(config.CURRICULUM_PATH)
        return default_phonics_registry()

    def _lock_for(self, key: Tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ------------------------------------------------------------------ writes

    async def update_mastery(
        self,
        learner_id: str,
        tenant_id: str,
        skill_id: str,
        correct: bool,
        context: PracticeContext = PracticeContext.DRILL,
        response_time_ms: int = 0,
        confidence: float = 1.0,
    ) -> SkillState:
        """
        Apply one practice event and persist the learner's new state

        Args:
            learner_id: Learner identifier
            tenant_id: Tenant (school) identifier
            skill_id: Practised skill
            correct: Whether the attempt was correct
            context: Where the practice happened
            response_time_ms: Response latency
            confidence: ASR or self-reported confidence

        Returns:
            Copy of the updated skill state

        Raises:
            PersistenceFailure: Store unreachable or timed out; nothing changed
            ConcurrencyConflict: Versioned write kept failing after retries
        """
        key = (tenant_id, learner_id)
        labels = {"context": context.value}

        try:
            with timed("mastery_update_duration_seconds"):
                async with self._lock_for(key):
                    updated, event = await self._update_with_retries(
                        learner_id, tenant_id, skill_id, correct, context, response_time_ms, confidence
                    )
        except MasteryEngineError as e:
            increment_counter("mastery_update_failures_total", {"error": type(e).__name__})
            raise

        increment_counter("mastery_updates_total", labels)
        await self._publish(event)
        return updated.skills[skill_id].model_copy(deep=True)

    async def _update_with_retries(
        self,
        learner_id: str,
        tenant_id: str,
        skill_id: str,
        correct: bool,
        context: PracticeContext,
        response_time_ms: int,
        confidence: float,
    ) -> Tuple[MasteryState, MasteryUpdatedEvent]:
        key = (tenant_id, learner_id)
        attempt = 0
        while True:
            current = await self._load(learner_id, tenant_id)
            updated, event = self._apply(current, skill_id, correct, context, response_time_ms, confidence)
            try:
                await self._persist(updated, expected_version=current.version)
            except ConcurrencyConflict as e:
                increment_counter("concurrency_conflicts_total")
                self.cache.invalidate(key)
                attempt += 1
                if attempt > self.config.MAX_CONFLICT_RETRIES:
                    logger.error(f"Giving up on learner {learner_id} after {attempt} conflicting writes: {e}")
                    raise
                logger.warning(f"{e}; reloading and reapplying (attempt {attempt})")
                continue

            self.cache.put(key, updated)
            return updated, event

    def _apply(
        self,
        current: MasteryState,
        skill_id: str,
        correct: bool,
        context: PracticeContext,
        response_time_ms: int,
        confidence: float,
    ) -> Tuple[MasteryState, MasteryUpdatedEvent]:
        """Run the update pipeline on a copy of current"""
        now = self.clock()
        state = current.model_copy(deep=True)

        skill = state.skills.get(skill_id)
        if skill is None:
            skill = self._create_skill(state, skill_id)

        hours_elapsed = 0.0
        if skill.last_practiced is not None:
            hours_elapsed = max(0.0, (now - skill.last_practiced).total_seconds() / 3600)

        event = PracticeEvent(
            timestamp=now,
            correct=correct,
            response_time_ms=response_time_ms,
            context=context,
            difficulty=skill.difficulty,
            confidence=confidence,
        )
        _, details = self.bkt.update(skill, correct, event)
        if details["tuned"]:
            logger.debug(f"Tuned {details['tuned']} for {state.learner_id}/{skill_id}")

        if hours_elapsed > self.forgetting.UPDATE_TRIGGER_HOURS:
            try:
                self.forgetting.apply(skill, hours_elapsed, state.forgetting_model)
            except Exception as e:
                logger.error(f"Forgetting step failed for {state.learner_id}/{skill_id}: {e}")

        if getattr(self.predictor, "pretrained", True):
            try:
                prediction = self.predictor.predict(build_interaction_sequence(state), skill_id)
                if prediction is not None:
                    blended = blend_prediction(skill.p_mastery, prediction)
                    # A correct answer never lowers mastery
                    skill.p_mastery = max(skill.p_mastery, blended) if correct else blended
            except Exception as e:
                logger.error(f"Sequence prediction failed for {state.learner_id}/{skill_id}: {e}")

        self.transfer.propagate(state, skill_id, correct)
        update_confidence_interval(skill)
        self.scheduler.update(state.forgetting_model, skill_id, correct, now)

        state.last_updated = now
        state.version = current.version + 1

        return state, MasteryUpdatedEvent(
            learner_id=state.learner_id,
            tenant_id=state.tenant_id,
            skill_id=skill_id,
            p_mastery=skill.p_mastery,
            p_retention=skill.p_retention,
            correct=correct,
            context=context,
            streak_current=skill.streak_current,
            version=state.version,
            timestamp=now,
        )

    def _create_skill(self, state: MasteryState, skill_id: str) -> SkillState:
        definition = self.registry.resolve(skill_id)
        skill = SkillState(
            skill_id=skill_id,
            skill_kind=definition.kind,
            phase=definition.phase,
            difficulty=definition.difficulty,
            prerequisites=list(definition.prerequisites),
            transfers_to=list(definition.transfers_to),
        )
        state.skills[skill_id] = skill
        state.prerequisite_graph.add_skill(skill_id, definition.phase, definition.prerequisites)
        logger.debug(f"Created skill {skill_id} for learner {state.learner_id}")
        return skill

    # ------------------------------------------------------------- persistence

    async def _load(self, learner_id: str, tenant_id: str) -> MasteryState:
        key = (tenant_id, learner_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            state = await asyncio.wait_for(
                self.store.load(learner_id, tenant_id),
                timeout=self.config.PERSISTENCE_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Timed out loading state for learner {learner_id} (tenant {tenant_id})")
            raise PersistenceFailure("load timed out", learner_id, tenant_id) from e
        except OSError as e:
            logger.error(f"Failed to load state for learner {learner_id} (tenant {tenant_id}): {e}")
            raise PersistenceFailure(str(e), learner_id, tenant_id) from e

        if state is None:
            return MasteryState(learner_id=learner_id, tenant_id=tenant_id)

        self.cache.put(key, state)
        return state

    async def _persist(self, state: MasteryState, expected_version: int):
        try:
            await asyncio.wait_for(
                self.store.save(state, expected_version),
                timeout=self.config.PERSISTENCE_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Timed out saving state for learner {state.learner_id} (tenant {state.tenant_id})")
            raise PersistenceFailure("save timed out", state.learner_id, state.tenant_id) from e
        except OSError as e:
            logger.error(f"Failed to save state for learner {state.learner_id} (tenant {state.tenant_id}): {e}")
            raise PersistenceFailure(str(e), state.learner_id, state.tenant_id) from e

    async def _publish(self, event: MasteryUpdatedEvent):
        try:
            await self.publisher.publish(event)
        except Exception as e:
            logger.error(f"Failed to publish mastery event for learner {event.learner_id}: {e}")

    # ------------------------------------------------------------------- reads

    async def get_mastery_state(self, learner_id: str, tenant_id: str) -> MasteryState:
        """
        Current state with read-time forgetting applied

        Skills idle for more than a day are decayed on an isolated copy; the
        decay is not persisted.
        """
        state = (await self._load(learner_id, tenant_id)).model_copy(deep=True)
        now = self.clock()

        for skill in state.skills.values():
            if skill.last_practiced is None:
                continue
            hours = (now - skill.last_practiced).total_seconds() / 3600
            if hours > self.forgetting.READ_TRIGGER_HOURS:
                self.forgetting.apply(skill, hours, state.forgetting_model)

        return state

    async def get_ready_skills(self, learner_id: str, tenant_id: str) -> List[str]:
        """
        Skills worth practising next: not yet mastered, with every
        prerequisite present and mastered. Weakest first.
        """
        state = await self.get_mastery_state(learner_id, tenant_id)

        ready = []
        for skill in state.skills.values():
            if skill.p_mastery >= READY_THRESHOLD:
                continue
            prerequisites = [state.skills.get(p) for p in skill.prerequisites]
            if all(p is not None and p.p_mastery >= READY_THRESHOLD for p in prerequisites):
                ready.append(skill)

        ready.sort(key=lambda s: (s.p_mastery, s.skill_id))
        return [s.skill_id for s in ready]

    async def get_review_due(
        self, learner_id: str, tenant_id: str, now: Optional[datetime] = None
    ) -> List[ReviewScheduleEntry]:
        state = await self._load(learner_id, tenant_id)
        due = self.scheduler.due(state.forgetting_model, now or self.clock())
        return [entry.model_copy() for entry in due]

    async def skill_report(self, learner_id: str, tenant_id: str) -> List[Dict[str, Any]]:
        """Per-skill mastery classification for reporting"""
        state = await self.get_mastery_state(learner_id, tenant_id)
        return [
            {
                "skill_id": skill.skill_id,
                "skill_kind": skill.skill_kind.value,
                "phase": skill.phase,
                "p_mastery": skill.p_mastery,
                "level": skill.level.value,
                "confidence_interval": (skill.confidence_interval.lower, skill.confidence_interval.upper),
                "total_attempts": skill.total_attempts,
                "accuracy": skill.accuracy,
            }
            for skill in sorted(state.skills.values(), key=lambda s: (s.phase, s.skill_id))
        ]

    # --------------------------------------------------------------- inference

    async def infer_prerequisites(self, tenant_id: str, min_evidence: Optional[int] = None) -> List[PrerequisiteEdge]:
        """Population-level prerequisite inference over a tenant's learners"""
        if min_evidence is None:
            min_evidence = self.config.INFERENCE_MIN_EVIDENCE
        return await self.inference_job.run(tenant_id, min_evidence)
