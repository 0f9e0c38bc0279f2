"""
Full-replace resynchronisation of the adjacency store from the system-of-record
"""
import logging
from typing import Iterable, Optional

from shared.errors import StoreUnavailable, SystemOfRecordError
from .jobUtils import JobSummary, chunked, snapshot_version

logger = logging.getLogger(__name__)


class FriendshipRebuildJob:
    def __init__(self, friendship_cache, query_manager, chunk_size: int = 500,
                 repair_batch_size: int = 1000):
        """
        Args:
            friendship_cache: Adjacency store client
            query_manager: FriendshipQueryManager over the system-of-record
            chunk_size: Members loaded per BigQuery query
            repair_batch_size: Members taken from the repair queue per run
        """
        self.friendship_cache = friendship_cache
        self.query_manager = query_manager
        self.chunk_size = chunk_size
        self.repair_batch_size = repair_batch_size

    def run(self, member_ids: Optional[Iterable[int]] = None, repair_only: bool = False,
            version: Optional[int] = None) -> JobSummary:
        """
        Rebuild adjacency sets

        Args:
            member_ids: Members to rebuild, every member when omitted
            repair_only: Only rebuild members waiting in the repair queue
            version: Snapshot version, the run start time when omitted

        Returns:
            JobSummary with per-member success and error counts
        """
        summary = JobSummary(job='friendship_rebuild')
        if version is None:
            version = snapshot_version()

        if repair_only:
            targets = self.friendship_cache.pop_repair_queue(self.repair_batch_size)
            logger.info(f"Rebuilding {len(targets)} members from the repair queue")
        elif member_ids is None:
            targets = self.query_manager.list_member_ids()
            logger.info(f"Rebuilding adjacency sets for all {len(targets)} members")
        else:
            targets = sorted(set(member_ids))
            logger.info(f"Rebuilding adjacency sets for {len(targets)} members")

        for chunk in chunked(targets, self.chunk_size):
            try:
                friends_by_member = self.query_manager.list_friend_ids_batch(chunk)
            except SystemOfRecordError as e:
                logger.error(f"Failed to load friendships for {len(chunk)} members: {e}")
                for member_id in chunk:
                    summary.record_failure(member_id)
                continue

            for member_id in chunk:
                try:
                    written = self.friendship_cache.replace_friends(
                        member_id, friends_by_member.get(member_id, set()), version
                    )
                    summary.record_success(written)
                except StoreUnavailable as e:
                    logger.error(f"Failed to rebuild adjacency set for member {member_id}: {e}")
                    summary.record_failure(member_id)

        if repair_only and summary.failed_member_ids:
            self._requeue(summary.failed_member_ids)

        logger.info(
            f"Friendship rebuild complete! Success: {summary.success}, "
            f"Skipped: {summary.skipped}, Errors: {summary.errors}"
        )
        return summary

    def _requeue(self, member_ids) -> None:
        try:
            self.friendship_cache.flag_for_repair(member_ids)
            logger.info(f"Re-queued {len(member_ids)} members for the next repair run")
        except StoreUnavailable as e:
            logger.error(f"Could not re-queue {len(member_ids)} failed repairs: {e}")
