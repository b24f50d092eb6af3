"""Exception hierarchy for presubmit.

Every error raised on purpose by presubmit_core derives from PresubmitError so
the CLI can turn it into a clean non-zero exit without catching unrelated bugs.
"""

from __future__ import annotations


class PresubmitError(Exception):
    """Base class for all presubmit failures."""


class ConfigError(PresubmitError):
    """Invalid configuration, credentials or manifest. Aborts the invocation."""


class MalformedReferenceError(PresubmitError):
    """A change reference does not look like refs/changes/<xx>/<cl>/<patchset>."""


class InconsistentGroupError(PresubmitError):
    """A multi-part change does not fit the set it is being added to."""


class GerritError(PresubmitError):
    """A request to the code-review server failed."""


class JenkinsError(PresubmitError):
    """A request to the CI job runner failed."""
