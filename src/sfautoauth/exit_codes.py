"""Process exit codes for the ``sf-auto-oauth`` CLI.

Each constant maps to an error category and is referenced by the
corresponding :class:`~sfautoauth.exceptions.SfAutoAuthError` subclass, so
shell wrappers can tell a bad argument from a rejected password without
parsing stderr.

Example::

    $ sf-auto-oauth login --instance-url evil.example.com
    $ echo $?
    2   # EXIT_INVALID_USAGE -- the instance URL was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""A credential field was missing or the instance URL was rejected."""

EXIT_AUTH_FAILURE = 3
"""Salesforce rejected the username or password."""

EXIT_AUTOMATION_ERROR = 5
"""Chrome could not be started or a page step failed."""

EXIT_CAPTURE_ERROR = 6
"""The OAuth redirect never arrived or the token exchange failed."""
