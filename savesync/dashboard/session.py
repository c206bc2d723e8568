# Stdlib imports
import enum
import logging
import typing

# Local imports
from . import errors, model
from .client import BoundaryClient
from .store import TokenStore

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


SessionListener = typing.Callable[["SessionManager"], None]


class SessionManager:
    """
    Owns the authentication token and the identity of the current user.

    Anonymous --login/register--> Authenticating --ok--> Authenticated
                                                 --error--> Anonymous
    Authenticated --logout / any 401--> Anonymous
    """

    def __init__(self, client: BoundaryClient, tokens: TokenStore):
        self.client = client
        self.tokens = tokens
        self.state = SessionState.ANONYMOUS
        self.user: typing.Optional[model.User] = None
        self._listeners: list[SessionListener] = []

        client.on_unauthorized(self.invalidate)

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    def is_current_user(self, user: model.User) -> bool:
        return self.user is not None and self.user.id == user.id

    def subscribe(self, listener: SessionListener) -> typing.Callable[[], None]:
        """Observe state changes. Returns a callable that removes the listener."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(
        self, state: SessionState, user: typing.Optional[model.User] = None
    ) -> None:
        previous = self.state
        self.state = state
        self.user = user
        if previous != state:
            logger.info("Session %s -> %s", previous.value, state.value)
        for listener in list(self._listeners):
            listener(self)

    async def _authenticate(self, path: str, email: str, password: str) -> model.User:
        self._transition(SessionState.AUTHENTICATING)
        try:
            payload = await self.client.post(
                path, {"email": email, "password": password}, authenticated=False
            )
            response = model.AuthResponse.model_validate(payload)
        except Exception:
            self._transition(SessionState.ANONYMOUS)
            raise

        self.tokens.save(response.token)
        self._transition(SessionState.AUTHENTICATED, response.user)
        return response.user

    async def login(self, email: str, password: str) -> model.User:
        return await self._authenticate("/auth/login", email, password)

    async def register(self, email: str, password: str) -> model.User:
        try:
            return await self._authenticate("/auth/register", email, password)
        except errors.ConflictError as err:
            if err.status_code == 403:
                raise errors.RegistrationDisabledError(err.message, err.status_code) from err
            raise

    def logout(self) -> None:
        self.tokens.clear()
        self._transition(SessionState.ANONYMOUS)

    def invalidate(self) -> None:
        """Global session loss, triggered by a 401 on any boundary call."""
        if self.tokens.load() is not None or self.state != SessionState.ANONYMOUS:
            logger.warning("Authentication rejected by the backend, clearing session")
        self.tokens.clear()
        self._transition(SessionState.ANONYMOUS)

    async def restore_session(self) -> typing.Optional[model.User]:
        """
        Re-establish the session from a persisted token.

        Without a token this is a no-op that leaves the session anonymous. Any
        failure erases the persisted token before being re-raised.
        """
        if self.tokens.load() is None:
            self._transition(SessionState.ANONYMOUS)
            return None

        self._transition(SessionState.AUTHENTICATING)
        try:
            user = model.User.model_validate(await self.client.get("/auth/me"))
        except Exception:
            self.tokens.clear()
            self._transition(SessionState.ANONYMOUS)
            raise

        self._transition(SessionState.AUTHENTICATED, user)
        return user
