"""Entry point for `python -m kubemirror`.

Usage:
    python -m kubemirror watch --namespace default
    python -m kubemirror watch --all-namespaces --kind Deployment
"""

from __future__ import annotations

from kubemirror.cli import cli

cli()
