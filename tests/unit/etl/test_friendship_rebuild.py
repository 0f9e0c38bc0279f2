"""Tests for the friendship rebuild job and its helpers."""

from unittest.mock import Mock

import pytest

from etl.friendRebuild.friendshipRebuildJob import FriendshipRebuildJob
from etl.friendRebuild.jobUtils import JobSummary, chunked
from shared.errors import StoreUnavailable, SystemOfRecordError


@pytest.fixture
def query_manager():
    manager = Mock()
    friendships = {1: {2, 3}, 2: {1}, 3: {1}, 4: set()}
    manager.list_member_ids.return_value = sorted(friendships)
    manager.list_friend_ids_batch.side_effect = lambda ids: {
        member_id: friendships.get(member_id, set()) for member_id in ids
    }
    return manager


class TestChunked:
    def test_chunks(self):
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestJobSummary:
    def test_counts(self):
        summary = JobSummary(job='test')
        summary.record_success()
        summary.record_success(written=False)
        summary.record_failure(9)

        assert summary.to_dict() == {
            'job': 'test', 'processed': 3, 'success': 1, 'skipped': 1, 'errors': 1, 'failed_member_ids': [9]
        }


class TestFriendshipRebuildJob:
    """Tests for FriendshipRebuildJob.run."""

    def test_full_rebuild_matches_system_of_record(self, friendship_cache, query_manager):
        friendship_cache.add_edge(1, 99)

        summary = FriendshipRebuildJob(friendship_cache, query_manager, chunk_size=2).run(version=10)

        assert summary.success == 4
        assert summary.errors == 0
        assert friendship_cache.get_friends_batch([1, 2, 3, 4]) == {1: {2, 3}, 2: {1}, 3: {1}, 4: set()}
        assert query_manager.list_friend_ids_batch.call_count == 2

    def test_rerun_is_idempotent(self, friendship_cache, query_manager, fake_redis):
        job = FriendshipRebuildJob(friendship_cache, query_manager)
        job.run(version=10)
        snapshot = {key: set(value) if isinstance(value, set) else value for key, value in fake_redis.data.items()}

        job.run(version=10)

        assert fake_redis.data == snapshot

    def test_stale_run_skipped(self, friendship_cache, query_manager):
        job = FriendshipRebuildJob(friendship_cache, query_manager)
        job.run(member_ids=[1], version=20)

        summary = job.run(member_ids=[1], version=10)

        assert summary.skipped == 1
        assert summary.success == 0

    def test_one_failing_member_does_not_stop_others(self, friendship_cache, query_manager):
        original = friendship_cache.replace_friends

        def flaky_replace(member_id, friend_ids, version):
            if member_id == 2:
                raise StoreUnavailable("adjacency store", "timeout")
            return original(member_id, friend_ids, version)

        friendship_cache.replace_friends = flaky_replace

        summary = FriendshipRebuildJob(friendship_cache, query_manager).run(version=10)

        assert summary.errors == 1
        assert summary.failed_member_ids == [2]
        assert summary.success == 3
        assert friendship_cache.get_friends(3) == {1}

    def test_query_failure_fails_the_chunk(self, friendship_cache, query_manager):
        query_manager.list_friend_ids_batch.side_effect = SystemOfRecordError("quota exceeded")

        summary = FriendshipRebuildJob(friendship_cache, query_manager, chunk_size=3).run(member_ids=[1, 2, 3, 4])

        assert summary.errors == 4
        assert summary.failed_member_ids == [1, 2, 3, 4]

    def test_repair_only_drains_queue(self, friendship_cache, query_manager):
        friendship_cache.flag_for_repair([1, 3])

        summary = FriendshipRebuildJob(friendship_cache, query_manager).run(repair_only=True, version=10)

        assert summary.success == 2
        query_manager.list_member_ids.assert_not_called()
        assert friendship_cache.pop_repair_queue(10) == []
        assert friendship_cache.get_friends(1) == {2, 3}

    def test_failed_repairs_requeued(self, friendship_cache, query_manager):
        friendship_cache.flag_for_repair([1, 3])
        query_manager.list_friend_ids_batch.side_effect = SystemOfRecordError("unavailable")

        summary = FriendshipRebuildJob(friendship_cache, query_manager).run(repair_only=True)

        assert summary.errors == 2
        assert friendship_cache.pop_repair_queue(10) == [1, 3]
