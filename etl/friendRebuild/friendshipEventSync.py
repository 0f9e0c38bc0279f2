"""
Incremental sync of friendship created/deleted events into the adjacency store
"""
import logging
from typing import Optional

import pandas as pd

from shared.errors import StoreUnavailable
from .jobUtils import JobSummary

logger = logging.getLogger(__name__)

TIMESTAMP_KEY = 'friendship_events'
TIMESTAMP_TABLE = 'etl_timestamps'
EVENT_CREATED = 'CREATED'
EVENT_DELETED = 'DELETED'


class FriendshipEventSync:
    def __init__(self, friendship_cache, query_manager, bq_client, state_dataset: str = 'etl_state'):
        self.friendship_cache = friendship_cache
        self.query_manager = query_manager
        self.bq_client = bq_client
        self.state_dataset = state_dataset

    def run(self, since: Optional[pd.Timestamp] = None) -> JobSummary:
        """
        Apply friendship events in the order they happened

        Events are read from the last applied event's timestamp inclusive, so
        a partially applied batch is replayed; add_edge/remove_edge are
        idempotent. Processing stops at the first store failure to keep the
        event order intact.

        Args:
            since: Start point, the stored last processed timestamp when omitted

        Returns:
            JobSummary, processed counts events rather than members
        """
        summary = JobSummary(job='friendship_event_sync')

        if since is None:
            since = self.bq_client.get_last_processed_timestamp(self.state_dataset, TIMESTAMP_TABLE, TIMESTAMP_KEY)

        events = self.query_manager.get_friendship_events(since)
        last_applied = None

        for event in events.itertuples(index=False):
            member_id, friend_id = int(event.member_id), int(event.friend_id)
            event_type = str(event.event_type).upper()

            try:
                if event_type == EVENT_CREATED:
                    self.friendship_cache.add_edge(member_id, friend_id)
                elif event_type == EVENT_DELETED:
                    self.friendship_cache.remove_edge(member_id, friend_id)
                else:
                    logger.warning(f"Skipping event {event.event_id} with unknown type {event.event_type}")
                    summary.record_success(written=False)
                    last_applied = event.created_at
                    continue
            except ValueError as e:
                logger.warning(f"Skipping invalid event {event.event_id}: {e}")
                summary.record_success(written=False)
                last_applied = event.created_at
                continue
            except StoreUnavailable as e:
                logger.error(f"Stopping event sync at event {event.event_id}: {e}")
                summary.record_failure(member_id)
                break

            summary.record_success()
            last_applied = event.created_at

        if last_applied is not None:
            self.bq_client.update_last_processed_timestamp(
                self.state_dataset, TIMESTAMP_TABLE, TIMESTAMP_KEY, pd.Timestamp(last_applied)
            )

        logger.info(
            f"Friendship event sync complete! Applied: {summary.success}, "
            f"Skipped: {summary.skipped}, Errors: {summary.errors}"
        )
        return summary


def purge_withdrawn_member(member_id: int, friendship_cache, interaction_cache) -> JobSummary:
    """Remove a withdrawn member from both derived stores"""
    summary = JobSummary(job='withdrawal_purge')
    try:
        friendship_cache.remove_member(member_id)
        interaction_cache.remove_member(member_id)
        summary.record_success()
    except StoreUnavailable as e:
        logger.error(f"Failed to purge withdrawn member {member_id}: {e}")
        summary.record_failure(member_id)
    return summary
