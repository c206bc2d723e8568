# Stdlib imports
import contextlib
import logging
import typing

# Vendor imports
import httpx

# Local imports
from . import errors, model, resources
from .cache import ResourceCache
from .client import BoundaryClient
from .session import SessionManager, SessionState
from .store import TokenStore

logger = logging.getLogger(__name__)


class Dashboard:
    """
    Process wide state of the dashboard: one token store, one boundary client,
    one session and one resource cache, wired together and handed to the views.
    """

    def __init__(
        self,
        config: model.DashboardConfiguration,
        tokens: typing.Optional[TokenStore] = None,
        transport: typing.Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.tokens = tokens or TokenStore(config.token_file)
        self.client = BoundaryClient(config, self.tokens, transport)
        self.session = SessionManager(self.client, self.tokens)
        self.cache = ResourceCache()

        self.sources = resources.SourceCollection(self.client, self.cache)
        self.targets = resources.TargetCollection(self.client, self.cache)
        self.snapshots = resources.SnapshotCollection(self.client, self.cache)
        self.jobs = resources.JobCollection(self.client, self.cache)
        self.users = resources.UserCollection(self.client, self.cache)
        self.settings = resources.SettingsStore(self.client, self.cache)

        self.session.subscribe(self._on_session_change)

    def _on_session_change(self, session: SessionManager) -> None:
        # Cached records belong to whoever was logged in
        if session.state == SessionState.ANONYMOUS:
            self.cache.clear()

    async def hydrate(self) -> typing.Optional[model.User]:
        """Restore the persisted session, if any. A rejected token leaves the session anonymous."""
        try:
            return await self.session.restore_session()
        except errors.DashboardError as err:
            logger.warning("Stored session could not be restored: %s", err)
            return None

    async def browse(self, path: typing.Optional[str] = None) -> model.DirectoryListing:
        return await resources.browse(self.client, path)

    async def close(self) -> None:
        await self.client.aclose()


@contextlib.asynccontextmanager
async def open_dashboard(
    config: model.DashboardConfiguration,
    tokens: typing.Optional[TokenStore] = None,
    transport: typing.Optional[httpx.AsyncBaseTransport] = None,
    restore: bool = True,
) -> typing.AsyncIterator[Dashboard]:
    dashboard = Dashboard(config, tokens, transport)
    try:
        if restore:
            await dashboard.hydrate()
        yield dashboard
    finally:
        await dashboard.close()
