"""
CLI layer for awsm-env.

A single-command Typer application.  All parsing and resolution lives in
``awsm_env.core``; this package only handles terminal transport: option
parsing, file I/O, error output and exit codes.

Entry point::

    awsm-env --help
"""

from awsm_env.cli.app import app

__all__ = ["app"]
