# Stdlib imports
import logging
import pathlib
import typing

# Vendor imports
import yaml

logger = logging.getLogger(__name__)

# The single well-known key the token is persisted under
TOKEN_KEY = "auth_token"


class TokenStore:
    """
    Durable storage for the session token.

    The file is read on every access so that a logout or a re-login made by
    another command is observed immediately. An unreadable or missing file is
    the same thing as having no token.
    """

    def __init__(self, path: typing.Union[str, pathlib.Path]):
        self.path = pathlib.Path(path).expanduser()

    def _read(self) -> dict:
        try:
            with self.path.open("r") as handle:
                parsed = yaml.load(handle, yaml.SafeLoader)
        except FileNotFoundError:
            return {}
        except (OSError, yaml.YAMLError) as err:
            logger.warning("Ignoring unreadable token file %s: %s", self.path, err)
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def _write(self, values: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w") as handle:
            yaml.dump(values, handle, yaml.SafeDumper)
        self.path.chmod(0o600)

    def load(self) -> typing.Optional[str]:
        token = self._read().get(TOKEN_KEY)
        return token if isinstance(token, str) and token else None

    def save(self, token: str) -> None:
        self._write({**self._read(), TOKEN_KEY: token})

    def clear(self) -> None:
        values = self._read()
        if TOKEN_KEY not in values:
            return
        del values[TOKEN_KEY]
        if values:
            self._write(values)
        else:
            self.path.unlink(missing_ok=True)
