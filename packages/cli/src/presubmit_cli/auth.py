"""Credential resolution for the Gerrit and Jenkins REST APIs.

Resolution order (stops at first success):
  1. PRESUBMIT_<SERVICE>_USERNAME / PRESUBMIT_<SERVICE>_PASSWORD environment
     variables (CI / explicit override)
  2. The entry for the service's host in ~/.netrc (or $NETRC)

A host with no credentials is not an error: the client talks to the server
anonymously, which is enough for read-only Jenkins instances.
"""

from __future__ import annotations

import logging
import netrc
import os
from urllib.parse import urlparse

from presubmit_core.errors import ConfigError

logger = logging.getLogger(__name__)


def _host(url: str) -> str:
    return urlparse(url).hostname or url


def resolve_credentials(service: str, url: str, netrc_path: str | None = None) -> tuple[str, str] | None:
    """Return (username, password) for `url`, or None to run anonymously.

    Raises ConfigError if the netrc file exists but cannot be parsed.
    """
    prefix = f"PRESUBMIT_{service.upper()}_"
    username = os.environ.get(prefix + "USERNAME")
    password = os.environ.get(prefix + "PASSWORD")
    if username and password:
        logger.debug("Resolved %s credentials from the environment.", service)
        return username, password

    path = netrc_path or os.environ.get("NETRC") or os.path.expanduser("~/.netrc")
    if not os.path.exists(path):
        logger.debug("No netrc file at %s.", path)
        return None
    try:
        entry = netrc.netrc(path).authenticators(_host(url))
    except netrc.NetrcParseError as e:
        raise ConfigError(f"cannot parse {path}: {e}")

    if entry is None:
        logger.info("No credentials for %s in %s; running anonymously.", _host(url), path)
        return None
    login, _, password = entry
    return login, password or ""
