from .friendshipRebuildJob import FriendshipRebuildJob
from .interactionRebuildJob import InteractionRebuildJob, compute_decayed_scores
from .friendshipEventSync import FriendshipEventSync, purge_withdrawn_member
from .queryManager import FriendshipQueryManager
from .timeUtils import is_update_time

__all__ = [
    'FriendshipRebuildJob',
    'InteractionRebuildJob',
    'compute_decayed_scores',
    'FriendshipEventSync',
    'purge_withdrawn_member',
    'FriendshipQueryManager',
    'is_update_time'
]
