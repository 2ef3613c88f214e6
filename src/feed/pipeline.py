"""
Feed Ranking Pipeline.

Flow per request:
1. Validate the request (before any store is touched)
2. Fan out the independent reads: candidates, preferences, constraints,
   interactions, feedback window, hidden items
3. Hard filters (city, expired, hidden, passed, free-only, budget, radius)
4. Read feed views for the survivors
5. Score -> feedback adjustment -> view decay / exclusion
6. Exploration pool + per-page diversity caps -> requested page
7. Distance annotation and the "nearby" set when a center is given

A failing personalization store degrades the request to a popularity
ranking instead of failing it. Ranking never writes: hosts report renders
through record_view().
"""

import math
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from config.constants import CompanionType, FeedbackType, InteractionStatus
from config.settings import Settings
from core.errors import CandidateScoringError, InvalidInput, RepositoryUnavailable
from core.logging import get_logger, request_context
from feed.cursor import FeedCursor
from feed.exploration import ExplorationConfig, ExplorationSelector
from feed.feed_reranker import (
    DiversityReranker,
    PageResult,
    RerankerConfig,
    ScoredCandidate,
)
from feed.feedback import FeedbackAdjuster, FeedbackConfig, FeedbackProfile
from feed.models import (
    Ack,
    CandidateItem,
    EmptyReason,
    FeedbackSignal,
    FeedPage,
    GeoPoint,
    InteractionRecord,
    RankedItem,
)
from feed.proximity import GeoQuery, ProximityAugmenter
from feed.repositories import CandidateRepository, HistoryStore, ProfileStore
from feed.view_store import FeedViewStore
from scoring.context import ScoreBreakdown, ScoringContext
from scoring.filters import HardFilter
from scoring.scorer import FeedScorer, ScoringWeights

logger = get_logger(__name__)

GeoCenter = Union[GeoPoint, Tuple[float, float]]


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for the feed ranking pipeline."""

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    reranker: RerankerConfig = field(default_factory=RerankerConfig)
    exploration: ExplorationConfig = field(default_factory=ExplorationConfig)

    # Feed defaults
    horizon_days: int = 14
    default_page_size: int = 20
    max_page_size: int = 100

    # Store fan-out
    repository_timeout_seconds: float = 5.0
    fanout_workers: int = 6

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            weights=ScoringWeights.from_settings(settings),
            feedback=FeedbackConfig(
                window_days=settings.feedback_window_days,
                step=settings.feedback_step,
                max_adjust=settings.feedback_max_adjust,
            ),
            reranker=RerankerConfig(
                decay_step=settings.decay_step,
                hard_cap=settings.decay_hard_cap,
                category_share=settings.category_share,
                venue_share=settings.venue_share,
                trending_min_popularity=settings.trending_min_popularity,
            ),
            exploration=ExplorationConfig(
                rate=settings.exploration_rate,
                discovery_rate=settings.discovery_exploration_rate,
                top_categories=settings.exploration_top_categories,
            ),
            horizon_days=settings.candidate_horizon_days,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
            repository_timeout_seconds=settings.repository_timeout_seconds,
            fanout_workers=settings.fanout_workers,
        )


DEFAULT_PIPELINE_CONFIG = PipelineConfig()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Request:
    """A validated rank_feed request."""
    user_id: str
    city_id: str
    page_size: int
    cursor: FeedCursor
    center: Optional[Tuple[float, float]] = None
    radius_meters: Optional[float] = None
    going_with: Optional[CompanionType] = None


@dataclass
class _Reads:
    """Results of the parallel store reads; failed reads are listed by name."""
    values: Dict[str, Any] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)


# =============================================================================
# Feed Ranking Pipeline
# =============================================================================

class FeedRankingPipeline:
    """
    Ranks a city's candidates for one user into a paginated, explained feed.

    Stateless apart from the injected stores; one instance can serve
    concurrent requests.
    """

    def __init__(
        self,
        candidates: CandidateRepository,
        profiles: ProfileStore,
        history: HistoryStore,
        views: FeedViewStore,
        config: Optional[PipelineConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or DEFAULT_PIPELINE_CONFIG
        self.candidates = candidates
        self.profiles = profiles
        self.history = history
        self.views = views
        self.clock = clock or _utcnow

        self.hard_filter = HardFilter()
        self.scorer = FeedScorer(self.config.weights)
        self.feedback = FeedbackAdjuster(self.config.feedback)
        self.reranker = DiversityReranker(self.config.reranker)
        self.exploration = ExplorationSelector(self.config.exploration)
        self.proximity = ProximityAugmenter()

    # =========================================================
    # rank_feed
    # =========================================================

    def rank_feed(
        self,
        user_id: str,
        city_id: str,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
        geo_center: Optional[GeoCenter] = None,
        radius_meters: Optional[float] = None,
        going_with: Optional[Union[CompanionType, str]] = None,
        now: Optional[datetime] = None,
    ) -> FeedPage:
        """
        Rank one page of the feed.

        Args:
            user_id: Requesting user.
            city_id: City whose candidates are ranked.
            page_size: Items per page (defaults to the configured size).
            cursor: Opaque cursor from a previous page; None for page 0.
            geo_center: (lat, lng) or GeoPoint for distances and "nearby".
            radius_meters: Radius of the "nearby" set; needs geo_center.
            going_with: Companion type for this outing; overrides the profile.
            now: Clock override; defaults to the injected clock.

        Raises:
            InvalidInput: malformed request. Nothing else escapes.
        """
        request = self._validate(
            user_id, city_id, page_size, cursor, geo_center, radius_meters, going_with,
        )
        now = now or self.clock()

        with request_context(user_id=request.user_id, city_id=request.city_id):
            return self._rank(request, now)

    def _rank(self, request: _Request, now: datetime) -> FeedPage:
        reads = self._fetch(request, now)

        if "candidates" in reads.failed:
            logger.warning("Candidate fetch failed, returning empty feed")
            return FeedPage(degraded=True, empty_reason=EmptyReason.NO_CANDIDATES)

        candidates: List[CandidateItem] = reads.values["candidates"]
        if not candidates:
            logger.info("No candidates for city", empty_reason=EmptyReason.NO_CANDIDATES.value)
            return FeedPage(empty_reason=EmptyReason.NO_CANDIDATES)

        if reads.failed:
            return self._rank_unpersonalized(request, candidates, reads, now)

        preferences = reads.values["preferences"]
        constraints = reads.values["constraints"]
        interactions: List[InteractionRecord] = reads.values["interactions"]
        ctx = ScoringContext.build(
            preferences, constraints, now,
            going_with=request.going_with, geo_center=request.center,
        )

        # Hard filters
        passed_ids = {r.item_id for r in interactions if r.status == InteractionStatus.PASS}
        outcome = self.hard_filter.apply(
            candidates, ctx, request.city_id,
            hidden_ids=reads.values["hidden"], passed_ids=passed_ids,
        )
        survivors = outcome.survivors
        if not survivors:
            logger.info(
                "All candidates filtered",
                candidates=len(candidates),
                dropped=outcome.dropped,
                empty_reason=EmptyReason.ALL_FILTERED.value,
            )
            return FeedPage(empty_reason=EmptyReason.ALL_FILTERED)

        # Feed views for the survivors
        try:
            views = self._with_timeout(
                self.views.get, request.user_id, [c.id for c in survivors],
            )
        except Exception as e:
            logger.warning("Feed view read failed, degrading", dependency="feed_views", error=str(e))
            reads.failed.append("feed_views")
            return self._rank_unpersonalized(request, candidates, reads, now)

        # Score + feedback
        profile = self.feedback.build_profile(reads.values["feedback"])
        scored = self._score(survivors, ctx, profile)

        # Decay / exclusion
        ranked, excluded = self.reranker.apply_decay(scored, views)
        if not ranked:
            logger.info(
                "All candidates filtered",
                candidates=len(candidates),
                dropped=outcome.dropped,
                decay_excluded=excluded,
                empty_reason=EmptyReason.ALL_FILTERED.value,
            )
            return FeedPage(empty_reason=EmptyReason.ALL_FILTERED)

        # Exploration
        picks = self.exploration.pick_count(request.page_size, constraints.discovery_mode)
        on_profile = self.exploration.profile_categories(
            ranked, preferences, interactions, {c.id: c for c in candidates},
        )
        exploration_pool = self.exploration.build_pool(ranked, on_profile) if picks else []

        page = self.reranker.paginate(
            ranked,
            page_index=request.cursor.page,
            page_size=request.page_size,
            exploration_pool=exploration_pool,
            picks_per_page=picks,
            pick_slots=self.exploration.pick_slots(request.page_size, picks),
        )

        result = self._build_page(request, page, ranked)

        logger.info(
            "Ranked feed",
            page=request.cursor.page,
            candidates=len(candidates),
            filtered=outcome.dropped_total,
            scored=len(scored),
            decay_excluded=excluded,
            exploration_pool=len(exploration_pool),
            returned=len(result.items),
            nearby=len(result.nearby),
            **self.reranker.get_diversity_stats(page.items),
        )
        return result

    # =========================================================
    # Stages
    # =========================================================

    def _score(
        self,
        survivors: List[CandidateItem],
        ctx: ScoringContext,
        profile: FeedbackProfile,
    ) -> List[ScoredCandidate]:
        scored: List[ScoredCandidate] = []
        for item in survivors:
            try:
                breakdown = self._score_one(item, ctx)
            except CandidateScoringError as e:
                logger.warning("Skipping candidate", item_id=item.id, error=str(e))
                continue
            multiplier = self.feedback.multiplier(item, profile)
            scored.append(ScoredCandidate(
                item=item,
                breakdown=breakdown,
                feedback_multiplier=multiplier,
                adjusted_score=self.feedback.adjust(breakdown.total, item, profile),
            ))
        return scored

    def _score_one(self, item: CandidateItem, ctx: ScoringContext) -> ScoreBreakdown:
        try:
            breakdown = self.scorer.score_item(item, ctx)
        except Exception as e:
            raise CandidateScoringError(item.id, str(e)) from e
        if not math.isfinite(breakdown.total):
            raise CandidateScoringError(item.id, "non-finite score")
        return breakdown

    def _rank_unpersonalized(
        self,
        request: _Request,
        candidates: List[CandidateItem],
        reads: _Reads,
        now: datetime,
    ) -> FeedPage:
        """Popularity ranking used when a personalization store is down."""
        logger.warning("Personalization unavailable, ranking by popularity", failed=reads.failed)

        outcome = self.hard_filter.apply_unpersonalized(candidates, request.city_id, now)
        excluded: Set[str] = set(reads.values.get("hidden") or ())
        # The windowed feedback still carries recent HIDEs if the hidden-id read failed
        excluded.update(
            s.item_id for s in reads.values.get("feedback") or ()
            if s.feedback_type == FeedbackType.HIDE
        )
        interactions = reads.values.get("interactions") or []
        excluded.update(r.item_id for r in interactions if r.status == InteractionStatus.PASS)
        survivors = [c for c in outcome.survivors if c.id not in excluded]
        if not survivors:
            return FeedPage(degraded=True, empty_reason=EmptyReason.ALL_FILTERED)

        ranked = [
            ScoredCandidate(item=item, breakdown=ScoreBreakdown(), adjusted_score=item.popularity)
            for item in survivors
        ]
        page = self.reranker.paginate(ranked, request.cursor.page, request.page_size)
        result = self._build_page(request, page, ranked)
        result.degraded = True
        logger.info("Ranked feed by popularity", page=request.cursor.page, returned=len(result.items))
        return result

    def _build_page(
        self,
        request: _Request,
        page: PageResult,
        pool: List[ScoredCandidate],
    ) -> FeedPage:
        nearby: List[RankedItem] = []
        if request.center is not None:
            self.proximity.annotate_distances(page.items, request.center)
            if request.radius_meters is not None:
                query = GeoQuery(request.center[0], request.center[1], request.radius_meters)
                nearby = [
                    self._to_ranked(c, on_page=False)
                    for c in self.proximity.nearby(pool, query, limit=request.page_size)
                ]

        return FeedPage(
            items=[self._to_ranked(c) for c in page.items],
            nearby=nearby,
            next_cursor=request.cursor.next().encode() if page.has_more else None,
        )

    @staticmethod
    def _to_ranked(candidate: ScoredCandidate, on_page: bool = True) -> RankedItem:
        reason = candidate.breakdown.reason_tag
        return RankedItem(
            item_id=candidate.item_id,
            score=round(candidate.adjusted_score),
            reason_tag=reason.value if reason else None,
            is_exploration_pick=on_page and candidate.is_exploration_pick,
            is_trending_pick=on_page and candidate.is_trending_pick,
            distance_meters=candidate.distance_meters,
            category=candidate.item.category,
            breakdown={k: round(v, 4) for k, v in candidate.breakdown.to_dict().items()},
            feedback_multiplier=round(candidate.feedback_multiplier, 4),
            decay_multiplier=round(candidate.decay_multiplier, 4),
        )

    # =========================================================
    # Store access
    # =========================================================

    def _fetch(self, request: _Request, now: datetime) -> _Reads:
        """Run the independent reads in parallel, collecting failures per read."""
        user_id = request.user_id
        window = (now, now + timedelta(days=self.config.horizon_days))
        calls: Dict[str, Tuple[Callable, tuple]] = {
            "candidates": (self.candidates.fetch_active, (request.city_id, window)),
            "preferences": (self.profiles.get_preferences, (user_id,)),
            "constraints": (self.profiles.get_constraints, (user_id,)),
            "interactions": (self.history.get_interactions, (user_id,)),
            "feedback": (self.history.get_feedback_since, (user_id, self.feedback.window_start(now))),
            "hidden": (self.history.get_hidden_item_ids, (user_id,)),
        }

        reads = _Reads()
        executor = ThreadPoolExecutor(max_workers=self.config.fanout_workers)
        try:
            futures = {name: executor.submit(fn, *args) for name, (fn, args) in calls.items()}
            for name, future in futures.items():
                try:
                    reads.values[name] = future.result(
                        timeout=self.config.repository_timeout_seconds,
                    )
                except FutureTimeoutError:
                    logger.warning("Store read timed out", dependency=name)
                    reads.failed.append(name)
                except Exception as e:
                    logger.warning("Store read failed", dependency=name, error=str(e))
                    reads.failed.append(name)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if "hidden" in reads.values:
            reads.values["hidden"] = set(reads.values["hidden"])
        return reads

    def _with_timeout(self, fn: Callable, *args):
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            return executor.submit(fn, *args).result(
                timeout=self.config.repository_timeout_seconds,
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    # =========================================================
    # Writes
    # =========================================================

    def record_feedback(
        self,
        user_id: str,
        item_id: str,
        feedback_type: Union[FeedbackType, str],
        now: Optional[datetime] = None,
    ) -> Ack:
        """
        Append a MORE / LESS / HIDE signal, capturing the item's category,
        first three tags and venue.

        Raises:
            InvalidInput: blank ids, unknown feedback type or unknown item.
            RepositoryUnavailable: a store failed.
        """
        self._require_id(user_id, "user_id")
        self._require_id(item_id, "item_id")
        kind = self._coerce_enum(FeedbackType, feedback_type, "feedback_type")
        now = now or self.clock()

        item = self._write("candidates", self.candidates.get_item, item_id)
        if item is None:
            raise InvalidInput(f"unknown item {item_id}", field="item_id")

        signal = FeedbackSignal(
            user_id=user_id,
            item_id=item_id,
            feedback_type=kind,
            category=item.category,
            tags=item.tags,
            venue_name=item.venue_name,
            created_at=now,
        )
        self._write("history", self.history.append_feedback, signal)
        logger.info("Recorded feedback", user_id=user_id, item_id=item_id, feedback_type=kind.value)
        return Ack(user_id=user_id, item_id=item_id)

    def record_view(
        self,
        user_id: str,
        item_id: str,
        interacted: bool = False,
        now: Optional[datetime] = None,
    ) -> Ack:
        """Count one render of an item; ``interacted`` when it was saved or rated alongside."""
        self._require_id(user_id, "user_id")
        self._require_id(item_id, "item_id")
        now = now or self.clock()
        self._write("feed_views", self.views.increment, user_id, item_id, now, interacted)
        return Ack(user_id=user_id, item_id=item_id)

    def record_interaction(
        self,
        user_id: str,
        item_id: str,
        status: Optional[Union[InteractionStatus, str]] = None,
        rating: Optional[int] = None,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> InteractionRecord:
        """
        Upsert the user's single interaction record for an item and mark
        the item's feed view as interacted.
        """
        self._require_id(user_id, "user_id")
        self._require_id(item_id, "item_id")
        kind = self._coerce_enum(InteractionStatus, status, "status") if status is not None else None
        if rating is not None and (isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5):
            raise InvalidInput("rating must be an integer from 1 to 5", field="rating")
        if kind is None and rating is None and note is None:
            raise InvalidInput("nothing to record", field="status")
        now = now or self.clock()

        record = self._write(
            "history", self.history.upsert_interaction,
            user_id, item_id, kind, now, rating, note,
        )
        self._write("feed_views", self.views.mark_interacted, user_id, item_id)
        logger.info(
            "Recorded interaction",
            user_id=user_id, item_id=item_id,
            status=kind.value if kind else None, rating=rating,
        )
        return record

    @staticmethod
    def _write(dependency: str, fn: Callable, *args):
        try:
            return fn(*args)
        except RepositoryUnavailable:
            raise
        except Exception as e:
            logger.error("Store write failed", dependency=dependency, error=str(e))
            raise RepositoryUnavailable(dependency, str(e)) from e

    # =========================================================
    # Validation
    # =========================================================

    @staticmethod
    def _require_id(value: Any, name: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise InvalidInput(f"{name} must be a non-empty string", field=name)

    @staticmethod
    def _coerce_enum(enum_cls, value, name: str):
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError as e:
            if isinstance(value, str) and value.strip().upper() in enum_cls.__members__:
                return enum_cls[value.strip().upper()]
            raise InvalidInput(f"invalid {name}: {value!r}", field=name) from e

    def _validate(
        self,
        user_id: Any,
        city_id: Any,
        page_size: Any,
        cursor: Optional[str],
        geo_center: Optional[GeoCenter],
        radius_meters: Any,
        going_with: Any,
    ) -> _Request:
        self._require_id(user_id, "user_id")
        self._require_id(city_id, "city_id")

        if page_size is None:
            page_size = self.config.default_page_size
        if isinstance(page_size, bool) or not isinstance(page_size, int):
            raise InvalidInput("page_size must be an integer", field="page_size")
        if not 1 <= page_size <= self.config.max_page_size:
            raise InvalidInput(
                f"page_size must be between 1 and {self.config.max_page_size}",
                field="page_size",
            )

        if cursor is not None and not isinstance(cursor, str):
            raise InvalidInput("cursor must be a string", field="cursor")
        decoded = FeedCursor.decode(cursor)

        center = None
        if geo_center is not None:
            if isinstance(geo_center, GeoPoint):
                lat, lng = geo_center.lat, geo_center.lng
            else:
                try:
                    lat, lng = (float(v) for v in geo_center)
                except (TypeError, ValueError) as e:
                    raise InvalidInput("geo_center must be (lat, lng)", field="geo_center") from e
            if not (math.isfinite(lat) and -90 <= lat <= 90):
                raise InvalidInput("latitude out of range", field="geo_center")
            if not (math.isfinite(lng) and -180 <= lng <= 180):
                raise InvalidInput("longitude out of range", field="geo_center")
            center = (lat, lng)

        if radius_meters is not None:
            if isinstance(radius_meters, bool) or not isinstance(radius_meters, (int, float)):
                raise InvalidInput("radius must be a number", field="radius_meters")
            if not math.isfinite(radius_meters) or radius_meters <= 0:
                raise InvalidInput("radius must be positive", field="radius_meters")
            if center is None:
                raise InvalidInput("radius requires geo_center", field="radius_meters")

        companion = None
        if going_with is not None:
            companion = self._coerce_enum(CompanionType, going_with, "going_with")

        return _Request(
            user_id=user_id,
            city_id=city_id,
            page_size=page_size,
            cursor=decoded,
            center=center,
            radius_meters=float(radius_meters) if radius_meters is not None else None,
            going_with=companion,
        )


# =============================================================================
# Factory
# =============================================================================

def create_pipeline(
    candidates: CandidateRepository,
    profiles: ProfileStore,
    history: HistoryStore,
    views: Optional[FeedViewStore] = None,
    settings: Optional[Settings] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FeedRankingPipeline:
    """Wire a pipeline from settings; the view store follows ``settings.redis_*``."""
    from config.settings import get_settings
    from feed.view_store import create_feed_view_store

    settings = settings or get_settings()
    if views is None:
        views = create_feed_view_store(settings)
    return FeedRankingPipeline(
        candidates, profiles, history, views,
        config=PipelineConfig.from_settings(settings),
        clock=clock,
    )
