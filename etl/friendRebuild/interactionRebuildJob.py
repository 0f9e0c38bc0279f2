"""
Periodic rebuild of decayed interaction scores

Each interaction contributes weight * decay_rate ** age_days to the score of
both participants' rows. Rows are written whole; pairs at or below min_score
are dropped and totals are capped at max_score.
"""
import logging
from typing import Dict, Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from shared.errors import StoreUnavailable, SystemOfRecordError
from .jobUtils import JobSummary, chunked, snapshot_version

logger = logging.getLogger(__name__)

TIMESTAMP_KEY = 'interaction_rebuild'
TIMESTAMP_TABLE = 'etl_timestamps'
SECONDS_PER_DAY = 86400.0

# A single 0.5 interaction stays above the threshold for ~114 days, past the 90 day window
DEFAULT_DECAY_RATE = 0.98
DEFAULT_MIN_SCORE = 0.05


def compute_decayed_scores(
    interactions: pd.DataFrame,
    now: pd.Timestamp,
    weights: Mapping[str, float],
    decay_rate: float = DEFAULT_DECAY_RATE,
    max_score: float = 10.0,
    min_score: float = DEFAULT_MIN_SCORE
) -> Dict[int, Dict[int, float]]:
    """
    Aggregate raw interactions into decayed pairwise scores

    Args:
        interactions: owner_id, counterpart_id, interaction_type, created_at rows
        now: Reference time for ages
        weights: Score per interaction type; unknown types count 0
        decay_rate: Multiplier applied per day of age
        max_score: Cap on a pair's score
        min_score: Pairs at or below this score are dropped

    Returns:
        Mapping owner_id -> {counterpart_id: score}
    """
    if interactions.empty:
        return {}

    frame = interactions[interactions['owner_id'] != interactions['counterpart_id']].copy()
    created_at = pd.to_datetime(frame['created_at'], utc=True)
    age_days = np.clip((now - created_at).dt.total_seconds().to_numpy() / SECONDS_PER_DAY, 0.0, None)

    base_weights = frame['interaction_type'].map(weights).fillna(0.0).to_numpy(dtype=float)
    frame['score'] = base_weights * np.power(decay_rate, age_days)

    totals = frame.groupby(['owner_id', 'counterpart_id'])['score'].sum().clip(upper=max_score)
    totals = totals[totals > min_score]

    scores: Dict[int, Dict[int, float]] = {}
    for (owner_id, counterpart_id), score in totals.items():
        scores.setdefault(int(owner_id), {})[int(counterpart_id)] = round(float(score), 6)
    return scores


class InteractionRebuildJob:
    def __init__(self, interaction_cache, query_manager, bq_client, interaction_config: Dict,
                 chunk_size: int = 500, state_dataset: str = 'etl_state'):
        """
        Args:
            interaction_cache: Interaction score store client
            query_manager: FriendshipQueryManager over the system-of-record
            bq_client: BigQuery client holding the last processed timestamp
            interaction_config: lookback_days, decay_rate, max_score, min_score, weights
            chunk_size: Members loaded per BigQuery query
            state_dataset: Dataset of the timestamp table
        """
        self.interaction_cache = interaction_cache
        self.query_manager = query_manager
        self.bq_client = bq_client
        self.chunk_size = chunk_size
        self.state_dataset = state_dataset

        self.lookback_days = interaction_config.get('lookback_days', 90)
        self.decay_rate = interaction_config.get('decay_rate', DEFAULT_DECAY_RATE)
        self.max_score = interaction_config.get('max_score', 10.0)
        self.min_score = interaction_config.get('min_score', DEFAULT_MIN_SCORE)
        self.weights = interaction_config.get('weights', {})

    def run(self, full: bool = False, member_ids: Optional[Iterable[int]] = None,
            now: Optional[pd.Timestamp] = None) -> JobSummary:
        """
        Recompute score rows

        Args:
            full: Refresh every member with a row or a recent interaction, so old
                scores keep decaying even without new activity
            member_ids: Explicit members to rebuild; the timestamp is left untouched
            now: Reference time, current UTC time when omitted

        Returns:
            JobSummary with per-member success and error counts
        """
        summary = JobSummary(job='interaction_rebuild')
        run_started = now if now is not None else pd.Timestamp.now(tz='UTC')
        window_start = run_started - pd.Timedelta(days=self.lookback_days)
        version = snapshot_version()

        if member_ids is not None:
            targets = sorted(set(member_ids))
        elif full:
            targets = sorted(
                set(self.query_manager.get_members_with_interactions_since(window_start))
                | set(self.interaction_cache.list_member_ids())
            )
        else:
            since = self.bq_client.get_last_processed_timestamp(self.state_dataset, TIMESTAMP_TABLE, TIMESTAMP_KEY)
            targets = self.query_manager.get_members_with_interactions_since(since)

        logger.info(f"Rebuilding interaction scores for {len(targets)} members (window starts {window_start})")

        for chunk in chunked(targets, self.chunk_size):
            try:
                interactions = self.query_manager.get_interactions(chunk, window_start)
            except SystemOfRecordError as e:
                logger.error(f"Failed to load interactions for {len(chunk)} members: {e}")
                for member_id in chunk:
                    summary.record_failure(member_id)
                continue

            scores_by_member = compute_decayed_scores(
                interactions, run_started, self.weights,
                decay_rate=self.decay_rate, max_score=self.max_score, min_score=self.min_score
            )

            for member_id in chunk:
                try:
                    written = self.interaction_cache.rebuild_for_member(
                        member_id, scores_by_member.get(member_id, {}), version=version
                    )
                    summary.record_success(written)
                except StoreUnavailable as e:
                    logger.error(f"Failed to rebuild interaction scores for member {member_id}: {e}")
                    summary.record_failure(member_id)

        if member_ids is None and summary.errors == 0:
            self.bq_client.update_last_processed_timestamp(
                self.state_dataset, TIMESTAMP_TABLE, TIMESTAMP_KEY, run_started
            )
        elif summary.errors:
            logger.warning(f"{summary.errors} members failed, last processed timestamp not advanced")

        logger.info(
            f"Interaction rebuild complete! Success: {summary.success}, "
            f"Skipped: {summary.skipped}, Errors: {summary.errors}"
        )
        return summary
