"""Tests for job selection in the rebuild orchestrator."""

from unittest.mock import Mock, patch

import pytest

from etl.friendRebuild.jobUtils import JobSummary
from etl.friendRebuild.rebuildOrchestrator import RebuildOrchestrator, main
from shared.config import get_config


@pytest.fixture
def orchestrator(friendship_cache, interaction_cache):
    orchestrator = RebuildOrchestrator(get_config())
    orchestrator.initialize_clients = Mock()
    orchestrator.friendship_cache = friendship_cache
    orchestrator.interaction_cache = interaction_cache
    orchestrator.query_manager = Mock()
    orchestrator.query_manager.list_member_ids.return_value = []
    orchestrator.query_manager.list_friend_ids_batch.return_value = {}
    orchestrator.bq_client = Mock()
    return orchestrator


class TestRebuildOrchestrator:
    def test_repair_only_outside_rebuild_hour(self, orchestrator):
        with patch('etl.friendRebuild.rebuildOrchestrator.is_update_time', return_value=False):
            orchestrator.run('friendship')

        orchestrator.query_manager.list_member_ids.assert_not_called()

    def test_full_rebuild_at_rebuild_hour(self, orchestrator):
        with patch('etl.friendRebuild.rebuildOrchestrator.is_update_time', return_value=True):
            orchestrator.run('friendship')

        orchestrator.query_manager.list_member_ids.assert_called_once()

    def test_full_flag_forces_rebuild(self, orchestrator):
        with patch('etl.friendRebuild.rebuildOrchestrator.is_update_time', return_value=False):
            orchestrator.run('friendship', full=True)

        orchestrator.query_manager.list_member_ids.assert_called_once()

    def test_purge_requires_member(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.run('purge')

    def test_purge(self, orchestrator, friendship_cache):
        friendship_cache.add_edge(1, 2)

        summary = orchestrator.run('purge', member_id=1)

        assert summary.success == 1
        assert friendship_cache.get_friends(2) == set()

    def test_unknown_job(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.run('nope')


class TestMain:
    def test_exit_code_on_errors(self):
        summary = JobSummary(job='friendship_rebuild')
        summary.record_failure(1)

        with patch('sys.argv', ['rebuild', '--job', 'friendship']), \
                patch.object(RebuildOrchestrator, 'run', return_value=summary):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 2

    def test_clean_run_exits_normally(self):
        with patch('sys.argv', ['rebuild', '--job', 'events']), \
                patch.object(RebuildOrchestrator, 'run', return_value=JobSummary(job='friendship_event_sync')):
            main()
