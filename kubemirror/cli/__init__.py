"""kubemirror command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kubemirror`` script).
"""

from kubemirror.cli.main import cli

__all__ = ["cli"]
