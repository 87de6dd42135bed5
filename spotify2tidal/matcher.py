"""Track matching: multi-strategy search scored by similarity."""

from typing import Callable, List, Optional

from spotify2tidal.errors import ClassifiedError
from spotify2tidal.models import MatchResult, SearchQuery, Track
from spotify2tidal.queries import generate_queries
from spotify2tidal.retry import RetryExecutor
from spotify2tidal.similarity import HIGH_CONFIDENCE_THRESHOLD, MATCH_THRESHOLD, score
from spotify2tidal.utils.logger import get_logger


logger = get_logger()

CatalogSearch = Callable[[SearchQuery], List[Track]]


class TrackResolver:
    """Resolver for finding the Tidal track that corresponds to a Spotify track."""

    MATCH_THRESHOLD = MATCH_THRESHOLD
    HIGH_CONFIDENCE_THRESHOLD = HIGH_CONFIDENCE_THRESHOLD

    def __init__(
        self,
        retry_executor: Optional[RetryExecutor] = None,
        scorer: Callable[[Track, Track], float] = score,
        query_generator: Callable[[Track], List[SearchQuery]] = generate_queries
    ):
        """
        Initialize track resolver.

        Args:
            retry_executor: Wraps every catalog search; a default one is created if omitted
            scorer: Composite similarity function
            query_generator: Produces the ordered search strategies
        """
        self.retry_executor = retry_executor or RetryExecutor(service="tidal")
        self.scorer = scorer
        self.query_generator = query_generator

    def resolve(self, source: Track, catalog_search: CatalogSearch) -> MatchResult:
        """
        Find the best match for a source track.

        Strategy:
        1. Run each search strategy in order, scoring every candidate
        2. Stop as soon as a candidate reaches high confidence
        3. A strategy whose search fails is logged and the next one is tried

        Args:
            source: Track from the source catalog
            catalog_search: Callable returning candidate tracks for a query

        Returns:
            MatchResult with the best candidate at or above MATCH_THRESHOLD,
            otherwise an empty result carrying every attempted query

        Raises:
            ClassifiedError: Only for authentication failures
        """
        attempts: List[str] = []
        best_track: Optional[Track] = None
        best_score = 0.0
        last_error: Optional[str] = None

        for query in self.query_generator(source):
            attempts.append(query.description)

            try:
                candidates = self.retry_executor.execute(
                    lambda query=query: catalog_search(query),
                    f"searchTracks [{query.description}]"
                )
            except ClassifiedError as e:
                if e.is_auth:
                    raise
                last_error = e.message
                logger.warning(f"Search failed for {query.description}: {e.message}")
                continue

            for candidate in candidates or []:
                confidence = self.scorer(source, candidate)
                if confidence > best_score:
                    best_track = candidate
                    best_score = confidence
                if best_score >= self.HIGH_CONFIDENCE_THRESHOLD:
                    break

            if best_score >= self.HIGH_CONFIDENCE_THRESHOLD:
                break

        if best_track is not None and best_score >= self.MATCH_THRESHOLD:
            logger.info(
                f"Match (confidence={best_score:.2f}): {source.display_name()} "
                f"-> {best_track.display_name()} [{best_track.id}]"
            )
            return MatchResult(track=best_track, confidence=best_score, attempted_queries=attempts)

        logger.warning(
            f"Track not found: {source.display_name()} (album: {source.album.name}, "
            f"id: {source.id}, best={best_score:.2f}) after {len(attempts)} searches"
        )
        for description in attempts:
            logger.debug(f"   tried {description}")
        if last_error:
            logger.debug(f"   last search error: {last_error}")

        return MatchResult(track=None, confidence=0.0, attempted_queries=attempts)


def resolve(
    track: Track,
    catalog_search: CatalogSearch,
    retry_executor: Optional[RetryExecutor] = None
) -> MatchResult:
    """Resolve a single track without building a resolver by hand."""
    return TrackResolver(retry_executor=retry_executor).resolve(track, catalog_search)
