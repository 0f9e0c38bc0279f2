"""
Graph helpers for friend discovery
"""
import logging
from typing import Dict, Optional, Set, Tuple

import numpy as np

from shared.errors import InconsistentEdge

logger = logging.getLogger(__name__)
integrity_logger = logging.getLogger('integrity')


def sample_friend_ids(friend_ids: Set[int], sample_size: int,
                      rng: Optional[np.random.Generator] = None) -> Set[int]:
    """
    Bound the traversal fan-out by sampling the first-degree set

    Sets at or below sample_size are returned unchanged. Larger sets are
    sampled uniformly at random without replacement down to exactly
    sample_size ids.

    Args:
        friend_ids: First-degree friend ids
        sample_size: Maximum number of ids to keep
        rng: numpy Generator, a fresh unseeded one when omitted

    Returns:
        Set of at most sample_size ids
    """
    if sample_size <= 0:
        raise ValueError(f"sample_size must be positive, got {sample_size}")

    if len(friend_ids) <= sample_size:
        return set(friend_ids)

    if rng is None:
        rng = np.random.default_rng()

    # Sorted so a seeded generator gives the same sample for the same set
    population = np.array(sorted(friend_ids), dtype=np.int64)
    sampled = rng.choice(population, size=sample_size, replace=False)

    logger.debug(f"Sampled {sample_size} of {len(friend_ids)} first-degree friends")
    return {int(member_id) for member_id in sampled}


def split_reciprocal_edges(origin_id: int,
                           adjacency: Dict[int, Set[int]]) -> Tuple[Dict[int, Set[int]], Set[int]]:
    """
    Separate friends whose adjacency set lists the origin back from those that do not

    A friend with an empty set is kept: the member may simply be missing
    from the store, which is not an integrity violation on its own.

    Returns:
        (reciprocal adjacency, ids of friends with a one-directional edge)
    """
    reciprocal = {}
    one_directional = set()

    for friend_id, friends_of_friend in adjacency.items():
        if friends_of_friend and origin_id not in friends_of_friend:
            one_directional.add(friend_id)
            integrity_logger.warning(f"Inconsistent edge: {InconsistentEdge(origin_id, friend_id)}")
            continue
        reciprocal[friend_id] = friends_of_friend

    return reciprocal, one_directional
