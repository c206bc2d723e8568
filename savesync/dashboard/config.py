# Stdlib imports
import logging
import os
import pathlib

# Vendor imports
import yaml

# Local imports
from . import model

logger = logging.getLogger(__name__)

CURRENT_CONFIG_VERSION = 1

# Default configuration file path exists in the user's home dir
default_config_path = pathlib.Path("~/.savesync.dashboard.yaml")

_default_config_contents = (
    f"""
v: {CURRENT_CONFIG_VERSION}

# Base URL of the backup service API, every endpoint path is relative to it
api_url: http://localhost:8080/api

# File the session token is persisted in
token_file: ~/.savesync.session.yaml

# Request timeout in seconds, leave unset to wait indefinitely
# timeout: 30

verify_tls: true
""".strip()
    + "\n"
)


# Return the config values in the config file
def load_config_values(
    config_path: pathlib.Path,
) -> model.DashboardConfiguration:
    # Resolve the path string to a path object
    config_path = config_path.expanduser()

    # If the config file doesn't already exist, create it
    if not config_path.exists():
        with config_path.open("w") as handle:
            handle.write(_default_config_contents)

    # Open and decode the config file
    with config_path.open("r") as handle:
        parsed = yaml.load(handle, yaml.SafeLoader) or {}

    if not isinstance(parsed, dict):
        raise ValueError(f'Config file "{config_path}" must contain a mapping')

    if api_url := os.environ.get("SAVESYNC_API_URL"):
        parsed["api_url"] = api_url

    instance = model.DashboardConfiguration(**parsed)

    if instance.v is not None and instance.v < CURRENT_CONFIG_VERSION:
        logger.warning(
            'Config file located at "%s" is possibly incompatible with this version of the dashboard. '
            'Validate its contents and update the "v" property to "v: %s".',
            config_path,
            CURRENT_CONFIG_VERSION,
        )

    # Finally, return the values
    return instance
