"""
Adjacency store for the friendship graph.

Each member's direct friends live in a Redis set ``friend:{member_id}``. The
set is mutated by friendship events (add_edge / remove_edge, both directions in
one MULTI/EXEC) and fully replaced by the friendship rebuild job.
"""
from typing import Dict, Iterable, List, Set

from client.redis import Client as RedisClient

FRIEND_PREFIX = "friend:"
FRIEND_VERSION_PREFIX = "friend_version:"
REPAIR_QUEUE_KEY = "friend_repair"

# KEYS[1] friend set, KEYS[2] snapshot version
# ARGV[1] version, ARGV[2..] friend ids
REPLACE_FRIENDS_SCRIPT = """
local current = redis.call('GET', KEYS[2])
if current and tonumber(current) > tonumber(ARGV[1]) then
    return 0
end
redis.call('DEL', KEYS[1])
for i = 2, #ARGV, 1000 do
    redis.call('SADD', KEYS[1], unpack(ARGV, i, math.min(i + 999, #ARGV)))
end
redis.call('SET', KEYS[2], ARGV[1])
return 1
"""

# KEYS[1] friend set, KEYS[2] snapshot version
# ARGV[1] member id, ARGV[2] friend key prefix
REMOVE_MEMBER_SCRIPT = """
local friends = redis.call('SMEMBERS', KEYS[1])
for _, friend_id in ipairs(friends) do
    redis.call('SREM', ARGV[2] .. friend_id, ARGV[1])
end
redis.call('DEL', KEYS[1], KEYS[2])
return #friends
"""


def friend_key(member_id: int) -> str:
    return f"{FRIEND_PREFIX}{member_id}"


def friend_version_key(member_id: int) -> str:
    return f"{FRIEND_VERSION_PREFIX}{member_id}"


class Client(RedisClient):
    store_name = "adjacency store"

    def __init__(self, redis_url: str = None, connection=None):
        super().__init__(redis_url=redis_url, connection=connection)
        self._replace_script = self.client.register_script(REPLACE_FRIENDS_SCRIPT)
        self._remove_script = self.client.register_script(REMOVE_MEMBER_SCRIPT)

    def get_friends(self, member_id: int) -> Set[int]:
        """Direct friends of a single member (empty set if none)"""
        return self.get_friends_batch([member_id]).get(member_id, set())

    def get_friends_batch(self, member_ids: Iterable[int]) -> Dict[int, Set[int]]:
        """
        Fetch the direct-friend sets of many members in one round trip

        Args:
            member_ids: Members whose adjacency sets are needed

        Returns:
            Mapping member_id -> set of friend ids; absent members map to an empty set
        """
        ids = list(dict.fromkeys(member_ids))
        if not ids:
            return {}

        with self._store_call("get_friends_batch"):
            pipeline = self.client.pipeline(transaction=False)
            for member_id in ids:
                pipeline.smembers(friend_key(member_id))
            results = pipeline.execute()

        friends = {
            member_id: set(self._to_member_ids(members or ()))
            for member_id, members in zip(ids, results)
        }
        self.logger.debug(f"Fetched adjacency sets for {len(ids)} members in one batch")
        return friends

    def add_edge(self, member_a: int, member_b: int) -> None:
        """Add the friendship in both directions; adding an existing edge is a no-op"""
        self._check_edge(member_a, member_b)
        with self._store_call("add_edge"):
            pipeline = self.client.pipeline(transaction=True)
            pipeline.sadd(friend_key(member_a), member_b)
            pipeline.sadd(friend_key(member_b), member_a)
            pipeline.execute()
        self.logger.debug(f"Added edge {member_a} <-> {member_b}")

    def remove_edge(self, member_a: int, member_b: int) -> None:
        """Remove the friendship in both directions; removing a missing edge is a no-op"""
        self._check_edge(member_a, member_b)
        with self._store_call("remove_edge"):
            pipeline = self.client.pipeline(transaction=True)
            pipeline.srem(friend_key(member_a), member_b)
            pipeline.srem(friend_key(member_b), member_a)
            pipeline.execute()
        self.logger.debug(f"Removed edge {member_a} <-> {member_b}")

    def replace_friends(self, member_id: int, friend_ids: Iterable[int], version: int) -> bool:
        """
        Atomically replace a member's whole adjacency set

        Args:
            member_id: Member whose set is rebuilt
            friend_ids: Complete current friend set from the system-of-record
            version: Snapshot version of the rebuild run (epoch millis)

        Returns:
            True if written, False if a newer snapshot is already stored
        """
        members = sorted(set(friend_ids) - {member_id})
        with self._store_call("replace_friends"):
            written = self._replace_script(
                keys=[friend_key(member_id), friend_version_key(member_id)],
                args=[int(version), *members]
            )

        if not written:
            self.logger.info(f"Skipped stale friend snapshot for member {member_id} (version {version})")
        return bool(written)

    def remove_member(self, member_id: int) -> int:
        """
        Remove a withdrawn member from the graph

        Returns:
            Number of friends whose sets were updated
        """
        # Reading and purging in one script keeps a concurrent add_edge from leaving a dangling edge
        with self._store_call("remove_member"):
            removed = int(self._remove_script(
                keys=[friend_key(member_id), friend_version_key(member_id)],
                args=[member_id, FRIEND_PREFIX]
            ))

        self.logger.info(f"Removed member {member_id} from {removed} adjacency sets")
        return removed

    def flag_for_repair(self, member_ids: Iterable[int]) -> None:
        """Queue members whose adjacency sets need a rebuild"""
        ids = list(member_ids)
        if not ids:
            return
        with self._store_call("flag_for_repair"):
            self.client.sadd(REPAIR_QUEUE_KEY, *ids)

    def pop_repair_queue(self, count: int) -> List[int]:
        with self._store_call("pop_repair_queue"):
            popped = self.client.spop(REPAIR_QUEUE_KEY, count)
        return sorted(self._to_member_ids(popped or ()))

    @staticmethod
    def _check_edge(member_a: int, member_b: int) -> None:
        if member_a == member_b:
            raise ValueError(f"Member {member_a} cannot befriend themselves")
