"""
Root test configuration and fixtures for the friend recommendation project.

Provides an in-memory Redis double covering the commands the store clients
issue (sets, sorted sets, pipelines, SCAN and the Lua scripts),
plus ready-made store clients built on top of it.
"""

import fnmatch
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest
import redis

# Add project root to path to allow imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from client.friendshipCache import (  # noqa: E402
    REMOVE_MEMBER_SCRIPT,
    REPLACE_FRIENDS_SCRIPT,
    Client as FriendshipCacheClient,
)
from client.interactionCache import REPLACE_SCORES_SCRIPT, Client as InteractionCacheClient  # noqa: E402
from shared.config import reset_config  # noqa: E402


class FakePipeline:
    def __init__(self, fake, transaction):
        self.fake = fake
        self.transaction = transaction
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        self.fake._round_trip('pipeline')
        return [getattr(self.fake, f"_{name}")(*args, **kwargs) for name, args, kwargs in self.commands]


class FakeScript:
    def __init__(self, fake, text):
        self.fake = fake
        self.text = text

    def __call__(self, keys=(), args=()):
        self.fake._round_trip('evalsha')
        if self.text == REPLACE_FRIENDS_SCRIPT:
            return self.fake._replace(keys, args, self.fake._store_set)
        if self.text == REPLACE_SCORES_SCRIPT:
            return self.fake._replace(keys, args, self.fake._store_zset)
        if self.text == REMOVE_MEMBER_SCRIPT:
            return self.fake._remove_member(keys, args)
        raise AssertionError("unexpected script")


class FakeRedis:
    """Just enough of redis.Redis (decode_responses=True) for the store clients"""

    def __init__(self):
        self.data = {}
        self.round_trips = []
        self.fail = False

    def _round_trip(self, name):
        if self.fail:
            raise redis.exceptions.TimeoutError("Timeout reading from socket")
        self.round_trips.append(name)

    # connection
    def ping(self):
        self._round_trip('ping')
        return True

    def info(self):
        self._round_trip('info')
        return {'connected_clients': 1}

    def pipeline(self, transaction=True):
        return FakePipeline(self, transaction)

    def register_script(self, text):
        return FakeScript(self, text)

    # script bodies
    def _replace(self, keys, args, store):
        data_key, version_key = keys
        current = self.data.get(version_key)
        if current is not None and int(current) > int(args[0]):
            return 0
        self.data.pop(data_key, None)
        store(data_key, args[1:])
        self.data[version_key] = str(args[0])
        return 1

    def _remove_member(self, keys, args):
        member_id, prefix = args
        friends = self._smembers(keys[0])
        for friend_id in friends:
            self._srem(f"{prefix}{friend_id}", member_id)
        self._delete(*keys)
        return len(friends)

    def _store_set(self, key, members):
        if members:
            self.data[key] = {str(member) for member in members}

    def _store_zset(self, key, pairs):
        if pairs:
            self.data[key] = {str(pairs[i + 1]): float(pairs[i]) for i in range(0, len(pairs), 2)}

    # sets
    def _smembers(self, key):
        return set(self.data.get(key, set()))

    def _sadd(self, key, *members):
        target = self.data.setdefault(key, set())
        before = len(target)
        target.update(str(member) for member in members)
        return len(target) - before

    def _srem(self, key, *members):
        target = self.data.get(key, set())
        removed = 0
        for member in members:
            if str(member) in target:
                target.discard(str(member))
                removed += 1
        if key in self.data and not target:
            del self.data[key]
        return removed

    def _delete(self, *keys):
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    def smembers(self, key):
        self._round_trip('smembers')
        return self._smembers(key)

    def sadd(self, key, *members):
        self._round_trip('sadd')
        return self._sadd(key, *members)

    def spop(self, key, count=None):
        self._round_trip('spop')
        members = sorted(self.data.get(key, set()))[:count]
        self._srem(key, *members)
        return members

    def delete(self, *keys):
        self._round_trip('delete')
        return self._delete(*keys)

    # sorted sets
    def zscore(self, key, member):
        self._round_trip('zscore')
        return self.data.get(key, {}).get(str(member))

    def zmscore(self, key, members):
        self._round_trip('zmscore')
        row = self.data.get(key, {})
        return [row.get(str(member)) for member in members]

    def zrevrange(self, key, start, end, withscores=False):
        self._round_trip('zrevrange')
        rows = sorted(self.data.get(key, {}).items(), key=lambda item: (-item[1], item[0]))
        rows = rows[start:end + 1]
        return rows if withscores else [member for member, _ in rows]

    def zrem(self, key, *members):
        self._round_trip('zrem')
        row = self.data.get(key, {})
        return sum(1 for member in members if row.pop(str(member), None) is not None)

    def scan_iter(self, match=None, count=None):
        self._round_trip('scan')
        for key in list(self.data):
            if match is None or fnmatch.fnmatch(key, match):
                yield key


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def friendship_cache(fake_redis):
    return FriendshipCacheClient(connection=fake_redis)


@pytest.fixture
def interaction_cache(fake_redis):
    return InteractionCacheClient(connection=fake_redis)


@pytest.fixture
def member_client():
    """Name resolver and blacklist source returning every requested id as 'member-<id>'"""
    client = Mock()
    client.resolve_names.side_effect = lambda ids: {member_id: f"member-{member_id}" for member_id in ids}
    client.find_blocked_ids.return_value = set()
    return client
