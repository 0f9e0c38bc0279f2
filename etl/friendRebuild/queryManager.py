import logging
from typing import Dict, Iterable, List, Set

import pandas as pd

logger = logging.getLogger(__name__)


class FriendshipQueryManager:
    def __init__(self, bq_client, dataset_id: str = 'data'):
        self.bq_client = bq_client
        self.dataset_id = dataset_id

    def _table(self, table_id: str) -> str:
        return self.bq_client.table(self.dataset_id, table_id)

    def list_member_ids(self) -> List[int]:
        """All member ids known to the system-of-record"""
        query = f"""
        SELECT member_id
        FROM {self._table('members')}
        ORDER BY member_id
        """
        result = self.bq_client.query(query)
        member_ids = [int(value) for value in result['member_id']] if not result.empty else []

        logger.info(f"Found {len(member_ids)} members")
        return member_ids

    def list_friend_ids(self, member_id: int) -> Set[int]:
        """Current confirmed friends of one member"""
        return self.list_friend_ids_batch([member_id]).get(member_id, set())

    def list_friend_ids_batch(self, member_ids: Iterable[int]) -> Dict[int, Set[int]]:
        """
        Current confirmed friends of many members in one query

        Returns:
            Mapping member_id -> friend id set; every requested member is present
        """
        ids = set(member_ids)
        if not ids:
            return {}

        query = f"""
        SELECT member_id, friend_id
        FROM {self._table('friendships')}
        WHERE member_id IN UNNEST(@member_ids)
        """
        result = self.bq_client.query(query, {'member_ids': ids})

        friends = {member_id: set() for member_id in ids}
        for row in result.itertuples(index=False):
            friends[int(row.member_id)].add(int(row.friend_id))

        logger.debug(f"Loaded {len(result)} friendship rows for {len(ids)} members")
        return friends

    def get_friendship_events(self, since: pd.Timestamp) -> pd.DataFrame:
        """
        Friendship created/deleted events at or after since, in the order they happened

        Returns:
            DataFrame with event_id, member_id, friend_id, event_type, created_at
        """
        query = f"""
        SELECT event_id, member_id, friend_id, event_type, created_at
        FROM {self._table('friendship_events')}
        WHERE created_at >= @since
        ORDER BY created_at, event_id
        """
        events = self.bq_client.query(query, {'since': since})

        logger.info(f"Found {len(events)} friendship events since {since}")
        return events

    def get_members_with_interactions_since(self, since: pd.Timestamp) -> List[int]:
        """Members on either side of an interaction recorded at or after since"""
        query = f"""
        SELECT member_id FROM {self._table('interactions')} WHERE created_at >= @since
        UNION DISTINCT
        SELECT target_id AS member_id FROM {self._table('interactions')} WHERE created_at >= @since
        """
        result = self.bq_client.query(query, {'since': since})
        member_ids = sorted(int(value) for value in result['member_id']) if not result.empty else []

        logger.info(f"Found {len(member_ids)} members with interactions since {since}")
        return member_ids

    def get_interactions(self, member_ids: Iterable[int], window_start: pd.Timestamp) -> pd.DataFrame:
        """
        Interactions of the given members seen from their side

        Interactions count for both participants, so each row is returned once
        per participant in member_ids.

        Returns:
            DataFrame with owner_id, counterpart_id, interaction_type, created_at
        """
        ids = set(member_ids)
        if not ids:
            return pd.DataFrame(columns=['owner_id', 'counterpart_id', 'interaction_type', 'created_at'])

        query = f"""
        SELECT member_id AS owner_id, target_id AS counterpart_id, interaction_type, created_at
        FROM {self._table('interactions')}
        WHERE member_id IN UNNEST(@member_ids) AND created_at >= @window_start
        UNION ALL
        SELECT target_id AS owner_id, member_id AS counterpart_id, interaction_type, created_at
        FROM {self._table('interactions')}
        WHERE target_id IN UNNEST(@member_ids) AND created_at >= @window_start
        """
        return self.bq_client.query(query, {'member_ids': ids, 'window_start': window_start})
