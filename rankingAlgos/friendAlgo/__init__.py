"""
Friend Algorithm Module

This module provides "people you may know" recommendations based on
friend-of-friend traversal of the friendship graph.

Components:
- discovery: Sampled two-hop traversal with bridge-friend attribution
- scoring: Ranking, acquaintance selection and introduction text
- blacklist: Mutual block filtering
- recommender: Request path wiring the stores together
- utils: Sampling and edge consistency helpers
"""

from .discovery import FriendRelation, RecommendCandidate, find_friend_relation
from .scoring import RecommendedFriend, build_introduce, rank
from .blacklist import BlacklistFilter
from .recommender import FriendRecommender

__all__ = [
    'FriendRelation',
    'RecommendCandidate',
    'find_friend_relation',
    'RecommendedFriend',
    'build_introduce',
    'rank',
    'BlacklistFilter',
    'FriendRecommender'
]
