"""kubemirror: ordered, de-duplicated mirroring of Kubernetes resources."""

__version__ = "0.1.0"
