"""
Request path for "people you may know"
"""
import logging
from typing import Callable, List, Optional

import numpy as np

from shared.config import get_config
from shared.errors import RequestCancelled
from .blacklist import BlacklistFilter
from .discovery import DEFAULT_SAMPLE_SIZE, find_friend_relation
from .scoring import RecommendedFriend, rank

logger = logging.getLogger(__name__)


class FriendRecommender:
    def __init__(self, friendship_cache, interaction_cache, member_client, config=None,
                 rng: Optional[np.random.Generator] = None):
        """
        Args:
            friendship_cache: Adjacency store client
            interaction_cache: Interaction score store client
            member_client: Name resolver and blacklist source
            config: Config instance, the global one when omitted
            rng: numpy Generator for first-degree sampling
        """
        self.friendship_cache = friendship_cache
        self.interaction_cache = interaction_cache
        self.member_client = member_client
        self.config = config or get_config()
        self.rng = rng

        discovery_config = self.config.get_discovery_config()
        ranking_config = self.config.get_ranking_config()
        self.sample_size = self.config.get('discovery.sample_size', DEFAULT_SAMPLE_SIZE)
        self.verify_reciprocity = bool(discovery_config.get('verify_reciprocity', True))
        self.default_limit = ranking_config.get('default_limit', 10)
        self.max_limit = ranking_config.get('max_limit', 50)

    def recommend(self, member_id: int, limit: Optional[int] = None,
                  is_cancelled: Optional[Callable[[], bool]] = None) -> List[RecommendedFriend]:
        """
        Build the ranked recommendation list for one member

        Args:
            member_id: Member asking for recommendations
            limit: Number of records wanted, clamped to the configured maximum
            is_cancelled: Polled before store calls; a True result aborts the request

        Returns:
            Ordered RecommendedFriend records

        Raises:
            StoreUnavailable: a store lookup failed or timed out
            RequestCancelled: the caller went away before the lookups were issued
        """
        if limit is None:
            limit = self.default_limit
        limit = max(0, min(int(limit), self.max_limit))

        self._abort_if_cancelled(member_id, is_cancelled)
        first_degree = self.friendship_cache.get_friends(member_id)

        self._abort_if_cancelled(member_id, is_cancelled)
        relation = find_friend_relation(
            member_id,
            first_degree,
            self.friendship_cache,
            sample_size=self.sample_size,
            rng=self.rng,
            verify_reciprocity=self.verify_reciprocity
        )

        if not relation.candidates:
            logger.info(f"No second-degree candidates for member {member_id}")
            return []

        blacklist = BlacklistFilter.load(member_id, self.member_client)
        return rank(
            member_id,
            relation.get_second_degree_candidates(),
            limit,
            self.interaction_cache,
            blacklist,
            self.member_client
        )

    @staticmethod
    def _abort_if_cancelled(member_id: int, is_cancelled: Optional[Callable[[], bool]]) -> None:
        if is_cancelled is not None and is_cancelled():
            logger.info(f"Recommendation request for member {member_id} cancelled by caller")
            raise RequestCancelled()
