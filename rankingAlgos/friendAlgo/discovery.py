"""
Second-degree candidate discovery over the friendship graph.
Core idea: sample the origin's friends, fetch their friend sets in one batch,
and invert them into candidate -> bridge friends.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

import numpy as np

from shared.errors import StoreUnavailable
from .utils import sample_friend_ids, split_reciprocal_edges

logger = logging.getLogger(__name__)

SECOND_DEGREE = 2
DEFAULT_SAMPLE_SIZE = 200


@dataclass
class RecommendCandidate:
    member_id: int
    depth: int = SECOND_DEGREE
    bridge_friend_ids: Set[int] = field(default_factory=set)

    @property
    def many_acquaintance(self) -> bool:
        return len(self.bridge_friend_ids) > 1

    @property
    def bridge_count(self) -> int:
        return len(self.bridge_friend_ids)


@dataclass
class FriendRelation:
    origin_id: int
    first_degree_ids: Set[int] = field(default_factory=set)
    sampled_ids: Set[int] = field(default_factory=set)
    candidates: Dict[int, RecommendCandidate] = field(default_factory=dict)
    inconsistent_friend_ids: Set[int] = field(default_factory=set)

    def get_second_degree_candidates(self) -> List[RecommendCandidate]:
        return list(self.candidates.values())

    def get_second_degree_ids(self) -> Set[int]:
        return set(self.candidates)


def find_friend_relation(
    origin_id: int,
    first_degree_friends: Iterable[int],
    friendship_cache,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    rng: Optional[np.random.Generator] = None,
    verify_reciprocity: bool = False
) -> FriendRelation:
    """
    Find second-degree candidates with bridge-friend attribution

    Args:
        origin_id: Member asking for recommendations
        first_degree_friends: The origin's direct friends
        friendship_cache: Adjacency store client exposing get_friends_batch
        sample_size: Cap on the number of friends traversed
        rng: numpy Generator used for sampling
        verify_reciprocity: Drop friends whose adjacency set does not list the
            origin back, and queue both for repair

    Returns:
        FriendRelation holding every candidate reachable through a sampled friend

    Raises:
        StoreUnavailable: the batch adjacency lookup failed; nothing is returned
    """
    first_degree = set(first_degree_friends)
    relation = FriendRelation(origin_id=origin_id, first_degree_ids=first_degree)

    if not first_degree:
        logger.info(f"Member {origin_id} has no friends, no second-degree candidates")
        return relation

    relation.sampled_ids = sample_friend_ids(first_degree, sample_size, rng)

    adjacency = friendship_cache.get_friends_batch(relation.sampled_ids)

    if verify_reciprocity:
        adjacency, one_directional = split_reciprocal_edges(origin_id, adjacency)
        if one_directional:
            relation.inconsistent_friend_ids = one_directional
            _queue_repair(friendship_cache, origin_id, one_directional)

    excluded = first_degree | {origin_id}
    candidates = relation.candidates

    for bridge_id in sorted(adjacency):
        for candidate_id in adjacency[bridge_id]:
            if candidate_id in excluded:
                continue
            candidate = candidates.get(candidate_id)
            if candidate is None:
                candidate = candidates[candidate_id] = RecommendCandidate(member_id=candidate_id)
            candidate.bridge_friend_ids.add(bridge_id)

    logger.info(
        f"Discovered {len(candidates)} second-degree candidates for member {origin_id} "
        f"through {len(adjacency)} of {len(first_degree)} friends"
    )
    return relation


def _queue_repair(friendship_cache, origin_id: int, friend_ids: Set[int]) -> None:
    """Ask the friendship rebuild job to rewrite both sides of the broken edges"""
    try:
        friendship_cache.flag_for_repair([origin_id, *sorted(friend_ids)])
    except StoreUnavailable as e:
        logging.getLogger('integrity').error(
            f"Could not queue repair for member {origin_id} and {len(friend_ids)} friends: {e}"
        )
