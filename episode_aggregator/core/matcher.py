"""Best-effort tagging of new posts against the media catalog."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Sequence

import structlog

from episode_aggregator.core.dedup import DedupFilter
from episode_aggregator.core.errors import PersistenceError
from episode_aggregator.core.models import FetchResult, MatchResult, MediaCatalogItem, Post
from episode_aggregator.metrics import MEDIA_MATCHES

logger = structlog.get_logger(__name__)


def searchable_strings(post: Post) -> List[str]:
    """Title, description and every category of a post."""
    return [post.title, post.description, *post.categories]


def match_post(catalog: Sequence[MediaCatalogItem], post: Post) -> Dict[int, str]:
    """Return ``{media_id: title}`` for every catalog title found in the post.

    Matching is a case-sensitive substring test of each title against each
    searchable string. Every catalog item is checked.
    """
    haystacks = searchable_strings(post)
    matched: Dict[int, str] = {}
    for item in catalog:
        for haystack in haystacks:
            if item.title in haystack:
                matched[item.media_id] = item.title
    return matched


class MediaMatcher:
    """Attaches catalog media ids to posts that are not stored yet."""

    def __init__(self, storage, dedup: DedupFilter):
        self.storage = storage
        self.dedup = dedup

    def load_catalog(self) -> List[MediaCatalogItem]:
        """Load the auto-indexed catalog, or an empty list when there is none.

        Raises:
            PersistenceError: If the catalog cannot be read
        """
        if self.storage.count_media_titles() == 0:
            return []
        return self.storage.get_catalog()

    def _match_task(
        self, catalog: Sequence[MediaCatalogItem], source_id: int, post: Post
    ) -> MatchResult:
        media = match_post(catalog, post)
        for media_id, title in media.items():
            logger.debug("Found match", title=title, media_id=media_id, link=post.link)
        return MatchResult(post_key=post.key, source_id=source_id, media=media)

    def associate(self, results: List[FetchResult]) -> int:
        """Match every new post of the content-bearing results against the catalog.

        Matched media ids are added to the posts in place.

        Returns:
            Number of posts that gained at least one media id
        """
        try:
            catalog = self.load_catalog()
        except PersistenceError as e:
            logger.error("Could not load media catalog", error=e.message)
            return 0
        if not catalog:
            logger.info("Media catalog is empty, skipping matching")
            return 0

        candidates: Dict[str, Post] = {}
        tasks = []
        for result in results:
            if not result.has_document:
                continue
            for post in result.source.posts:
                if self.dedup.is_new(post):
                    candidates[post.key] = post
                    tasks.append((result.source.source_id, post))

        if not tasks:
            return 0

        logger.info("Matching posts to media", posts=len(tasks), catalog=len(catalog))
        match_results: List[MatchResult] = []
        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="media-match") as executor:
            futures = [
                executor.submit(self._match_task, catalog, source_id, post)
                for source_id, post in tasks
            ]
            for future in as_completed(futures):
                match_results.append(future.result())

        posts_matched = 0
        for match in match_results:
            if not match.media:
                continue
            post = candidates[match.post_key]
            post.media_ids.update(match.media)
            MEDIA_MATCHES.inc(len(match.media))
            posts_matched += 1

        logger.info("Finished matching posts to media", posts_matched=posts_matched)
        return posts_matched
