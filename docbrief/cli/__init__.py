"""Command-line tools for docbrief.

``python -m docbrief.cli <command>``; see :mod:`docbrief.cli.commands`.
Heavy imports are deferred inside the command handlers so ``--help``
stays fast.
"""
