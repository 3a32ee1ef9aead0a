"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~gatecheck.exceptions.GatecheckError` subclass.
CI pipelines can inspect the exit code to tell a drifted deployment apart from
an unreadable input without parsing stderr.

Example::

    $ gatecheck verify --api-path api --terraform terraform
    $ echo $?
    1   # EXIT_FINDINGS -- at least one fatal finding was reported
"""

EXIT_SUCCESS = 0
"""The run completed and no fatal finding was reported."""

EXIT_FINDINGS = 1
"""The run completed and reported at least one fatal finding."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_DOCUMENT_ERROR = 7
"""An input document could not be read or parsed."""
