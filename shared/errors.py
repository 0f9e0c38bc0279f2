"""
Error types shared by the recommendation request path and the rebuild jobs
"""
from dataclasses import dataclass


class FriendRecommendError(Exception):
    """Base class for friend recommendation failures"""


@dataclass
class ConfigError(FriendRecommendError):
    message: str


@dataclass
class StoreUnavailable(FriendRecommendError):
    """
    A derived store (adjacency or interaction score) could not be reached
    within its timeout. Retryable; the request fails closed.
    """
    store: str
    message: str

    def __str__(self):
        return f"{self.store} unavailable: {self.message}"


@dataclass
class SystemOfRecordError(FriendRecommendError):
    """The relational system-of-record query failed"""
    message: str

    def __str__(self):
        return self.message


@dataclass
class InconsistentEdge(FriendRecommendError):
    """
    Adjacency store returned a one-directional edge: friend_id is listed as a
    friend of member_id but member_id is missing from friend_id's set.
    """
    member_id: int
    friend_id: int

    def __str__(self):
        return f"one-directional edge {self.member_id} -> {self.friend_id}"


class RequestCancelled(FriendRecommendError):
    """The caller went away before the store lookups were issued"""
