import logging
from typing import Dict, Iterable, Set

import pandas as pd


class Client:
    """Member display names and blacklist entries read from the system-of-record"""

    def __init__(self, bq_client, dataset_id: str = 'data'):
        """
        Args:
            bq_client: BigQuery client (client.bigQuery.Client)
            dataset_id: Dataset holding the members and member_blacklist tables
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.bq_client = bq_client
        self.dataset_id = dataset_id

    def resolve_names(self, member_ids: Iterable[int]) -> Dict[int, str]:
        """
        Batched display-name lookup

        Args:
            member_ids: Members to resolve

        Returns:
            Mapping member_id -> display name; unknown or unnamed members are absent
        """
        ids = set(member_ids)
        if not ids:
            return {}

        query = f"""
        SELECT member_id, member_name
        FROM {self.bq_client.table(self.dataset_id, 'members')}
        WHERE member_id IN UNNEST(@member_ids)
        """
        result = self.bq_client.query(query, {'member_ids': ids})

        names = {}
        for row in result.itertuples(index=False):
            if pd.notna(row.member_name) and str(row.member_name):
                names[int(row.member_id)] = str(row.member_name)

        missing = len(ids) - len(names)
        if missing:
            self.logger.warning(f"Could not resolve names for {missing} of {len(ids)} members")
        return names

    def find_blocked_ids(self, member_id: int) -> Set[int]:
        """
        Members blocked by, or blocking, the given member

        Returns:
            Set of member ids in a block relation with member_id in either direction
        """
        query = f"""
        SELECT black_member_id AS blocked_id
        FROM {self.bq_client.table(self.dataset_id, 'member_blacklist')}
        WHERE request_member_id = @member_id
        UNION DISTINCT
        SELECT request_member_id AS blocked_id
        FROM {self.bq_client.table(self.dataset_id, 'member_blacklist')}
        WHERE black_member_id = @member_id
        """
        result = self.bq_client.query(query, {'member_id': int(member_id)})
        blocked = {int(value) for value in result['blocked_id']} if not result.empty else set()

        self.logger.debug(f"Member {member_id} has {len(blocked)} blacklist relations")
        return blocked

    def is_blocked(self, member_a: int, member_b: int) -> bool:
        """Symmetric block check for a single pair"""
        return member_b in self.find_blocked_ids(member_a)
