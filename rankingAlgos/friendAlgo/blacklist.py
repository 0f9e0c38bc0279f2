"""
Mutual block filter for one origin member
"""
import logging
from typing import Iterable, Set

logger = logging.getLogger(__name__)


class BlacklistFilter:
    def __init__(self, origin_id: int, blocked_ids: Iterable[int] = ()):
        """
        Args:
            origin_id: Member the filter is built for
            blocked_ids: Members in a block relation with the origin, either direction
        """
        self.origin_id = origin_id
        self.blocked_ids: Set[int] = set(blocked_ids)

    @classmethod
    def load(cls, origin_id: int, member_client) -> 'BlacklistFilter':
        """Build the filter with a single blacklist query"""
        blacklist = cls(origin_id, member_client.find_blocked_ids(origin_id))
        logger.debug(f"Loaded {len(blacklist)} blocked members for member {origin_id}")
        return blacklist

    def is_blocked(self, member_id: int) -> bool:
        return member_id in self.blocked_ids

    def __len__(self):
        return len(self.blocked_ids)
