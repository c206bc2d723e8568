# Stdlib imports
import logging
import typing

# Vendor imports
import pydantic

# Local imports
from . import errors, model
from .cache import ResourceCache
from .client import BoundaryClient

logger = logging.getLogger(__name__)

T = typing.TypeVar("T", bound=pydantic.BaseModel)


def _parse(model_type: type[T], payload: typing.Any) -> T:
    try:
        return model_type.model_validate(payload)
    except pydantic.ValidationError as err:
        raise errors.TransportError(
            f"Unexpected {model_type.__name__} payload from the backend: {err}"
        ) from err


def _parse_list(model_type: type[T], payload: typing.Any) -> list[T]:
    return [_parse(model_type, item) for item in (payload or [])]


def parse_exclusions(value: typing.Union[str, typing.Iterable[str], None]) -> list[str]:
    """Split comma separated glob patterns, dropping blanks but keeping their order."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else value
    return [part.strip() for part in parts if part and part.strip()]


def build_source_input(
    name: typing.Optional[str],
    path: typing.Optional[str],
    exclusions: typing.Union[str, typing.Iterable[str], None] = None,
    target_id: typing.Optional[int] = None,
    schedule_id: typing.Optional[int] = None,
) -> model.SourceInput:
    field_errors = {}
    if not name or not name.strip():
        field_errors["name"] = "Name is required"
    if not path or not path.strip():
        field_errors["path"] = "Path is required"
    if field_errors:
        raise errors.ValidationError(field_errors)

    assert name is not None and path is not None
    return model.SourceInput(
        name=name.strip(),
        path=path.strip(),
        exclusions=parse_exclusions(exclusions),
        target_id=target_id,
        schedule_id=schedule_id,
    )


class ResourceCollection(typing.Generic[T]):
    """Cached reads and invalidating writes for one server collection."""

    name: typing.ClassVar[str]
    item_model: typing.ClassVar[type[pydantic.BaseModel]]

    def __init__(self, client: BoundaryClient, cache: ResourceCache):
        self.client = client
        self.cache = cache

    @property
    def path(self) -> str:
        return f"/{self.name}"

    def item_path(self, resource_id: int) -> str:
        return f"{self.path}/{resource_id}"

    async def _load_list(self) -> list[T]:
        return _parse_list(self.item_model, await self.client.get(self.path))

    async def _load_item(self, resource_id: int) -> T:
        return _parse(self.item_model, await self.client.get(self.item_path(resource_id)))

    async def list(self, refresh: bool = False) -> list[T]:
        return await self.cache.fetch((self.name,), self._load_list, refresh)

    async def get(self, resource_id: int, refresh: bool = False) -> T:
        return await self.cache.fetch(
            (self.name, resource_id), lambda: self._load_item(resource_id), refresh
        )

    async def _mutate(
        self,
        mutation: str,
        call: typing.Awaitable[typing.Any],
        resource_id: typing.Optional[int] = None,
    ) -> typing.Any:
        # Only a confirmed mutation dirties the cache
        result = await call
        self.cache.invalidate_for(self.name, mutation, resource_id)
        logger.debug("%s.%s confirmed", self.name, mutation)
        return result


class SourceCollection(ResourceCollection[model.Source]):
    name = "sources"
    item_model = model.Source

    async def create(self, data: model.SourceInput) -> model.Source:
        payload = await self._mutate(
            "create", self.client.post(self.path, data.model_dump(mode="json"))
        )
        return _parse(model.Source, payload)

    async def update(self, resource_id: int, data: model.SourceInput) -> model.Source:
        payload = await self._mutate(
            "update",
            self.client.put(self.item_path(resource_id), data.model_dump(mode="json")),
            resource_id,
        )
        return _parse(model.Source, payload)

    async def delete(self, resource_id: int) -> None:
        await self._mutate("delete", self.client.delete(self.item_path(resource_id)), resource_id)

    async def run(self, resource_id: int) -> model.BackupResponse:
        payload = await self._mutate(
            "run", self.client.post(f"{self.item_path(resource_id)}/run"), resource_id
        )
        return _parse(model.BackupResponse, payload)


class TargetCollection(ResourceCollection[model.Target]):
    name = "targets"
    item_model = model.Target

    async def _load_list(self) -> list[model.Target]:
        targets = []
        for item in await self.client.get(self.path) or []:
            target_type = item.get("type") if isinstance(item, dict) else None
            if target_type not in {known.value for known in model.TargetType}:
                # Rows written by older backend revisions, e.g. the single "s3" type
                logger.warning("Skipping target with unsupported type %r", target_type)
                continue
            targets.append(_parse(model.Target, item))
        return targets

    async def create(self, data: model.TargetInput) -> model.Target:
        payload = await self._mutate(
            "create", self.client.post(self.path, data.model_dump(mode="json"))
        )
        return _parse(model.Target, payload)

    async def update(self, resource_id: int, data: model.TargetInput) -> model.Target:
        payload = await self._mutate(
            "update",
            self.client.put(self.item_path(resource_id), data.model_dump(mode="json")),
            resource_id,
        )
        return _parse(model.Target, payload)

    async def delete(self, resource_id: int) -> None:
        await self._mutate("delete", self.client.delete(self.item_path(resource_id)), resource_id)


class SnapshotCollection(ResourceCollection[model.Snapshot]):
    name = "snapshots"
    item_model = model.Snapshot

    async def files(self, resource_id: int, refresh: bool = False) -> model.FileNode:
        """The file tree is cached as a whole under its own key, apart from the snapshot record."""

        async def load():
            return _parse(
                model.FileNode, await self.client.get(f"{self.item_path(resource_id)}/files")
            )

        return await self.cache.fetch((self.name, resource_id, "files"), load, refresh)

    async def manifest(self, resource_id: int) -> bytes:
        return await self.client.download(f"{self.item_path(resource_id)}/manifest")

    async def restore(self, resource_id: int) -> typing.Any:
        return await self._mutate(
            "restore", self.client.post(f"{self.item_path(resource_id)}/restore"), resource_id
        )


class JobCollection(ResourceCollection[model.Job]):
    name = "jobs"
    item_model = model.Job


class UserCollection(ResourceCollection[model.User]):
    """Admin only."""

    name = "users"
    item_model = model.User

    async def _load_item(self, resource_id: int) -> model.User:
        # There is no single user endpoint, records come out of the list
        for user in _parse_list(model.User, await self.client.get(self.path)):
            if user.id == resource_id:
                return user
        raise errors.ConflictError("User not found", 404)

    async def create(self, email: str, password: str) -> model.User:
        payload = await self._mutate(
            "create", self.client.post(self.path, {"email": email, "password": password})
        )
        return _parse(model.User, payload)

    async def set_admin(self, resource_id: int, is_admin: bool) -> None:
        await self._mutate(
            "set_admin",
            self.client.patch(f"{self.item_path(resource_id)}/admin", {"is_admin": is_admin}),
            resource_id,
        )

    async def delete(self, resource_id: int) -> None:
        await self._mutate("delete", self.client.delete(self.item_path(resource_id)), resource_id)


class SettingsStore:
    """Server side key/value settings, admin only."""

    name = "settings"

    def __init__(self, client: BoundaryClient, cache: ResourceCache):
        self.client = client
        self.cache = cache

    async def _load(self) -> dict[str, str]:
        payload = await self.client.get("/settings") or {}
        if not isinstance(payload, dict):
            raise errors.TransportError("Unexpected settings payload from the backend")
        return {str(key): str(value) for key, value in payload.items()}

    async def all(self, refresh: bool = False) -> dict[str, str]:
        return await self.cache.fetch((self.name,), self._load, refresh)

    async def update(self, key: str, value: str) -> None:
        if not key.strip():
            raise errors.ValidationError({"key": "Key is required"})
        await self.client.put("/settings", {"key": key, "value": value})
        self.cache.invalidate_for(self.name, "update")

    async def registration_enabled(self) -> bool:
        return (await self.all()).get("registration_enabled") == "true"


async def browse(client: BoundaryClient, path: typing.Optional[str] = None) -> model.DirectoryListing:
    """List a directory on the backend host, for picking source and target paths."""
    params = {"path": path} if path else None
    return _parse(model.DirectoryListing, await client.get("/system/files", params=params))
