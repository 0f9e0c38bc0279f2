"""
Interaction score store.

Key: interaction:{member_id}, member: counterparty id, score: decayed
engagement score. A row is only ever written as a whole by the interaction
rebuild job.
"""
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import time

from client.redis import Client as RedisClient

INTERACTION_PREFIX = "interaction:"
INTERACTION_VERSION_PREFIX = "interaction_version:"
SCAN_COUNT = 100

# KEYS[1] score row, KEYS[2] snapshot version
# ARGV[1] version, ARGV[2..] score/member pairs
REPLACE_SCORES_SCRIPT = """
local current = redis.call('GET', KEYS[2])
if current and tonumber(current) > tonumber(ARGV[1]) then
    return 0
end
redis.call('DEL', KEYS[1])
for i = 2, #ARGV, 1000 do
    redis.call('ZADD', KEYS[1], unpack(ARGV, i, math.min(i + 999, #ARGV)))
end
redis.call('SET', KEYS[2], ARGV[1])
return 1
"""


def interaction_key(member_id: int) -> str:
    return f"{INTERACTION_PREFIX}{member_id}"


def interaction_version_key(member_id: int) -> str:
    return f"{INTERACTION_VERSION_PREFIX}{member_id}"


class Client(RedisClient):
    store_name = "interaction score store"

    def __init__(self, redis_url: str = None, connection=None):
        super().__init__(redis_url=redis_url, connection=connection)
        self._replace_script = self.client.register_script(REPLACE_SCORES_SCRIPT)

    def get_score(self, member_id: int, target_id: int) -> float:
        """Score between two members, 0.0 if they never interacted"""
        with self._store_call("get_score"):
            score = self.client.zscore(interaction_key(member_id), target_id)
        return float(score) if score is not None else 0.0

    def get_scores_batch(self, member_id: int, target_ids: Iterable[int]) -> Dict[int, float]:
        """
        Scores between one member and many targets in a single ZMSCORE call

        Returns:
            Mapping target_id -> score, 0.0 for targets without a score
        """
        ids = list(dict.fromkeys(target_ids))
        if not ids:
            return {}

        with self._store_call("get_scores_batch"):
            scores = self.client.zmscore(interaction_key(member_id), ids)

        return {
            target_id: float(score) if score is not None else 0.0
            for target_id, score in zip(ids, scores)
        }

    def get_top_scores(self, member_id: int, limit: int) -> List[Tuple[int, float]]:
        """Highest scoring counterparties, best first"""
        if limit <= 0:
            return []
        with self._store_call("get_top_scores"):
            rows = self.client.zrevrange(interaction_key(member_id), 0, limit - 1, withscores=True)
        return [(int(target), float(score)) for target, score in rows]

    def rebuild_for_member(self, member_id: int, scores: Mapping[int, float],
                           version: Optional[int] = None) -> bool:
        """
        Atomically replace the whole score row of a member

        Args:
            member_id: Member whose row is rebuilt
            scores: Complete mapping counterparty -> score; an empty mapping clears the row
            version: Snapshot version (epoch millis), defaults to now

        Returns:
            True if written, False if a newer snapshot is already stored
        """
        if version is None:
            version = int(time.time() * 1000)

        args = [int(version)]
        for target_id in sorted(scores):
            if target_id == member_id:
                continue
            args.extend([float(scores[target_id]), target_id])

        with self._store_call("rebuild_for_member"):
            written = self._replace_script(
                keys=[interaction_key(member_id), interaction_version_key(member_id)],
                args=args
            )

        if written:
            self.logger.debug(f"Rebuilt interaction row for member {member_id}: {(len(args) - 1) // 2} pairs")
        else:
            self.logger.info(f"Skipped stale interaction snapshot for member {member_id} (version {version})")
        return bool(written)

    def list_member_ids(self) -> List[int]:
        """Members that currently have a score row"""
        with self._store_call("list_member_ids"):
            keys = list(self.client.scan_iter(match=f"{INTERACTION_PREFIX}*", count=SCAN_COUNT))
        return sorted(int(key[len(INTERACTION_PREFIX):]) for key in keys)

    def remove_member(self, member_id: int) -> int:
        """
        Delete a withdrawn member's row and remove them from every other row

        Returns:
            Number of rows scanned
        """
        scanned = 0
        with self._store_call("remove_member"):
            self.client.delete(interaction_key(member_id), interaction_version_key(member_id))
            for key in self.client.scan_iter(match=f"{INTERACTION_PREFIX}*", count=SCAN_COUNT):
                self.client.zrem(key, member_id)
                scanned += 1

        self.logger.info(f"Removed member {member_id} from {scanned} interaction rows")
        return scanned
