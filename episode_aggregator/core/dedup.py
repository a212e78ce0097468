"""Link based duplicate detection."""

import structlog

from episode_aggregator.core.errors import PersistenceError
from episode_aggregator.core.models import Post

logger = structlog.get_logger(__name__)


class DedupFilter:
    """Decides whether a post is already stored, keyed on its link.

    A failed lookup counts as "already stored" so that a store error can
    never lead to a duplicate insert.
    """

    def __init__(self, storage):
        self.storage = storage

    def is_new(self, post: Post) -> bool:
        try:
            count = self.storage.count_posts_with_link(post.link)
        except PersistenceError as e:
            logger.error("Could not count posts with link", link=post.link, error=e.message)
            return False
        return count == 0
