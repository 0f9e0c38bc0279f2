"""
Ranking of second-degree candidates

Candidates are ordered by interaction score with the origin, then by the
number of bridge friends, then by member id so the output is stable across
runs. Each record names one acquaintance (the bridge friend closest to the
origin) and carries the introduction text shown next to the suggestion.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .blacklist import BlacklistFilter
from .discovery import SECOND_DEGREE, RecommendCandidate

logger = logging.getLogger(__name__)

INTRODUCE_SINGLE = "{name}의 친구"
INTRODUCE_MANY = "{name} 외 다수의 공통 친구"


@dataclass
class RecommendedFriend:
    friend_member_id: int
    member_name: Optional[str]
    depth: int
    acquaintance_id: Optional[int]
    acquaintance_name: Optional[str]
    many_acquaintance: bool
    introduce: Optional[str]

    def to_dict(self) -> Dict:
        return asdict(self)


def build_introduce(depth: int, acquaintance_name: Optional[str], many_acquaintance: bool) -> Optional[str]:
    """Introduction text, None unless a named second-degree acquaintance exists"""
    if depth != SECOND_DEGREE or acquaintance_name is None:
        return None
    if many_acquaintance:
        return INTRODUCE_MANY.format(name=acquaintance_name)
    return INTRODUCE_SINGLE.format(name=acquaintance_name)


def rank_key(candidate: RecommendCandidate, scores: Dict[int, float]) -> Tuple[float, int, int]:
    """Ascending sort key: best score, then most bridges, then lowest id"""
    return (-scores.get(candidate.member_id, 0.0), -candidate.bridge_count, candidate.member_id)


def pick_acquaintance(candidate: RecommendCandidate, scores: Dict[int, float]) -> Optional[int]:
    """Bridge friend with the highest interaction score with the origin, lowest id on ties"""
    if not candidate.bridge_friend_ids:
        return None
    return min(candidate.bridge_friend_ids, key=lambda bridge_id: (-scores.get(bridge_id, 0.0), bridge_id))


def rank(
    origin_id: int,
    candidates: Iterable[RecommendCandidate],
    limit: int,
    interaction_cache,
    blacklist: BlacklistFilter,
    name_resolver
) -> List[RecommendedFriend]:
    """
    Turn raw candidates into the final ordered recommendation list

    Args:
        origin_id: Member the recommendations are for
        candidates: Second-degree candidates from discovery
        limit: Maximum number of records to return
        interaction_cache: Interaction score store exposing get_scores_batch
        blacklist: Mutual block filter for the origin
        name_resolver: Collaborator exposing resolve_names(ids) -> {id: name}

    Returns:
        RecommendedFriend records, best first
    """
    if limit <= 0:
        return []

    survivors = [c for c in candidates if not blacklist.is_blocked(c.member_id)]
    if not survivors:
        logger.info(f"No candidates left for member {origin_id} after blacklist filtering")
        return []

    lookup_ids = set()
    for candidate in survivors:
        lookup_ids.add(candidate.member_id)
        lookup_ids.update(candidate.bridge_friend_ids)
    scores = interaction_cache.get_scores_batch(origin_id, lookup_ids)

    top_candidates = sorted(survivors, key=lambda c: rank_key(c, scores))[:limit]

    acquaintances = {c.member_id: pick_acquaintance(c, scores) for c in top_candidates}
    name_ids = {c.member_id for c in top_candidates}
    name_ids.update(acq_id for acq_id in acquaintances.values() if acq_id is not None)
    names = name_resolver.resolve_names(name_ids)

    recommended = []
    for candidate in top_candidates:
        acquaintance_id = acquaintances[candidate.member_id]
        acquaintance_name = names.get(acquaintance_id) if acquaintance_id is not None else None
        recommended.append(RecommendedFriend(
            friend_member_id=candidate.member_id,
            member_name=names.get(candidate.member_id),
            depth=candidate.depth,
            acquaintance_id=acquaintance_id,
            acquaintance_name=acquaintance_name,
            many_acquaintance=candidate.many_acquaintance,
            introduce=build_introduce(candidate.depth, acquaintance_name, candidate.many_acquaintance)
        ))

    logger.info(f"Ranked {len(recommended)} recommendations for member {origin_id} from {len(survivors)} candidates")
    return recommended
