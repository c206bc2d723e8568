# Stdlib imports
import asyncio
import logging
import typing

logger = logging.getLogger(__name__)

# ("sources",) is a collection list, ("sources", 4) one record, ("snapshots", 4, "files")
# a child resource of a record
CacheKey = tuple[typing.Hashable, ...]
Loader = typing.Callable[[], typing.Awaitable[typing.Any]]


class _Id:
    """Placeholder substituted with the mutated record's id."""

    def __repr__(self):
        return "ID"


ID = _Id()

# Declarative table of what each confirmed mutation dirties. Nothing outside this
# table invalidates collection data.
INVALIDATION_RULES: dict[tuple[str, str], tuple[CacheKey, ...]] = {
    ("sources", "create"): (("sources",),),
    ("sources", "update"): (("sources",), ("sources", ID)),
    ("sources", "delete"): (("sources",), ("sources", ID)),
    # A triggered backup eventually yields a job and a snapshot
    ("sources", "run"): (("jobs",), ("snapshots",)),
    ("targets", "create"): (("targets",),),
    ("targets", "update"): (("targets",), ("targets", ID)),
    ("targets", "delete"): (("targets",), ("targets", ID)),
    ("snapshots", "restore"): (("jobs",),),
    ("users", "create"): (("users",),),
    ("users", "set_admin"): (("users",), ("users", ID)),
    ("users", "delete"): (("users",), ("users", ID)),
    ("settings", "update"): (("settings",),),
}


def invalidation_keys(
    collection: str, mutation: str, resource_id: typing.Any = None
) -> list[CacheKey]:
    try:
        templates = INVALIDATION_RULES[(collection, mutation)]
    except KeyError:
        raise KeyError(f"No invalidation rule declared for {collection}.{mutation}")

    keys = []
    for template in templates:
        if ID in template and resource_id is None:
            raise ValueError(f"{collection}.{mutation} needs a resource id to invalidate")
        keys.append(tuple(resource_id if part is ID else part for part in template))
    return keys


class ResourceCache:
    """
    Keyed read cache over server owned collections.

    Invalidation drops the cached value, the next read pays the refetch. At most
    one fetch per key is joinable: concurrent reads share it. A fetch that was
    started before its key got invalidated still answers the callers it already
    has, but its result is not kept and reads issued after the invalidation start
    a fresh fetch.
    """

    def __init__(self):
        self._entries: dict[CacheKey, typing.Any] = {}
        self._inflight: dict[CacheKey, asyncio.Future] = {}
        self._generations: dict[CacheKey, int] = {}

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def peek(self, key: CacheKey, default: typing.Any = None) -> typing.Any:
        return self._entries.get(key, default)

    def is_fetching(self, key: CacheKey) -> bool:
        return key in self._inflight

    def _settle(self, key: CacheKey, generation: int, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if task.cancelled() or task.exception() is not None:
            # Failed reads leave any previous value in place
            return
        if self._generations.get(key, 0) == generation:
            self._entries[key] = task.result()
        else:
            logger.debug("Discarding result for %s, invalidated while in flight", key)

    async def fetch(self, key: CacheKey, loader: Loader, refresh: bool = False) -> typing.Any:
        """
        Return the value under `key`, calling `loader` when nothing is cached.

        With `refresh` the cached value is refetched but kept until the new one
        arrives, so a failing refresh still leaves it readable.
        """
        if not refresh and key in self._entries:
            return self._entries[key]

        task = self._inflight.get(key)
        if task is None:
            logger.debug("Fetching %s", key)
            task = asyncio.ensure_future(loader())
            self._inflight[key] = task
            generation = self._generations.get(key, 0)
            task.add_done_callback(
                lambda done, key=key, generation=generation: self._settle(key, generation, done)
            )
        else:
            logger.debug("Joining in-flight fetch of %s", key)

        # Shielded so a caller giving up doesn't cancel the fetch for everybody else
        return await asyncio.shield(task)

    def invalidate(self, key: CacheKey) -> None:
        logger.debug("Invalidating %s", key)
        self._entries.pop(key, None)
        # A fetch already in flight may predate the mutation, later reads start over
        self._inflight.pop(key, None)
        self._generations[key] = self._generations.get(key, 0) + 1

    def invalidate_for(
        self, collection: str, mutation: str, resource_id: typing.Any = None
    ) -> list[CacheKey]:
        keys = invalidation_keys(collection, mutation, resource_id)
        for key in keys:
            self.invalidate(key)
        return keys

    def clear(self) -> None:
        for key in set(self._entries) | set(self._inflight):
            self.invalidate(key)
