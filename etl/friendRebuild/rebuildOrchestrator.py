import sys
import argparse
import logging

from dotenv import load_dotenv

from client.bigQuery import Client as BigQueryClient
from client.friendshipCache import Client as FriendshipCacheClient
from client.interactionCache import Client as InteractionCacheClient
from shared.config import get_config, load_bigquery_settings
from shared.errors import FriendRecommendError
from .queryManager import FriendshipQueryManager
from .timeUtils import is_update_time
from .friendshipRebuildJob import FriendshipRebuildJob
from .interactionRebuildJob import InteractionRebuildJob
from .friendshipEventSync import FriendshipEventSync, purge_withdrawn_member

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

JOBS = ('friendship', 'interaction', 'events', 'purge')


class RebuildOrchestrator:
    def __init__(self, config=None):
        self.config = config or get_config()
        self.bq_client = None
        self.friendship_cache = None
        self.interaction_cache = None
        self.query_manager = None

    def initialize_clients(self):
        """Initialize all required clients"""
        try:
            self.bq_client = BigQueryClient(*load_bigquery_settings())

            self.friendship_cache = FriendshipCacheClient()
            self.interaction_cache = InteractionCacheClient(connection=self.friendship_cache.client)

            rebuild_config = self.config.get_rebuild_config()
            self.query_manager = FriendshipQueryManager(self.bq_client, rebuild_config.get('dataset', 'data'))

            logger.info("All clients initialized successfully")

        except FriendRecommendError as e:
            logger.error(f"Failed to initialize clients: {e}")
            raise

    def run_friendship_rebuild(self, full: bool = False):
        rebuild_config = self.config.get_rebuild_config()
        job = FriendshipRebuildJob(
            self.friendship_cache,
            self.query_manager,
            chunk_size=self.config.get('rebuild.chunk_size', 500),
            repair_batch_size=rebuild_config.get('repair_batch_size', 1000)
        )

        is_full_run = full or is_update_time(
            rebuild_config.get('full_rebuild_hour', 3),
            rebuild_config.get('timezone', 'UTC')
        )
        if is_full_run:
            logger.info("Starting full friendship rebuild")
            return job.run()

        logger.info("Starting friendship repair run")
        return job.run(repair_only=True)

    def run_interaction_rebuild(self, full: bool = False):
        rebuild_config = self.config.get_rebuild_config()
        job = InteractionRebuildJob(
            self.interaction_cache,
            self.query_manager,
            self.bq_client,
            self.config.get_interaction_config(),
            chunk_size=self.config.get('rebuild.chunk_size', 500),
            state_dataset=rebuild_config.get('state_dataset', 'etl_state')
        )
        return job.run(full=full)

    def run_event_sync(self):
        rebuild_config = self.config.get_rebuild_config()
        sync = FriendshipEventSync(
            self.friendship_cache,
            self.query_manager,
            self.bq_client,
            state_dataset=rebuild_config.get('state_dataset', 'etl_state')
        )
        return sync.run()

    def run(self, job_name: str, full: bool = False, member_id: int = None):
        """Main job execution"""
        if job_name not in JOBS:
            raise ValueError(f"Unknown job {job_name}, expected one of {JOBS}")

        self.initialize_clients()

        if job_name == 'friendship':
            summary = self.run_friendship_rebuild(full)
        elif job_name == 'interaction':
            summary = self.run_interaction_rebuild(full)
        elif job_name == 'events':
            summary = self.run_event_sync()
        else:
            if member_id is None:
                raise ValueError("purge requires --member-id")
            summary = purge_withdrawn_member(member_id, self.friendship_cache, self.interaction_cache)

        logger.info(f"{summary.job} finished: {summary.to_dict()}")
        return summary


def main():
    """Rebuild jobs entry point, invoked by cron"""
    parser = argparse.ArgumentParser(description='Friend recommendation store rebuilds')
    parser.add_argument('--job', choices=JOBS, required=True, help='Job to run')
    parser.add_argument('--full', action='store_true', help='Force a full rebuild regardless of time')
    parser.add_argument('--member-id', type=int, help='Withdrawn member to purge (purge job only)')
    parser.add_argument('--test-mode', action='store_true', help='Use test_mode config overrides')

    args = parser.parse_args()

    orchestrator = RebuildOrchestrator(get_config(test_mode=args.test_mode))
    try:
        summary = orchestrator.run(args.job, full=args.full, member_id=args.member_id)
    except (FriendRecommendError, KeyError, ValueError) as e:
        logger.error(f"{args.job} job failed: {e}")
        sys.exit(1)

    if summary.errors:
        sys.exit(2)


if __name__ == "__main__":
    main()
