"""Run docker and a single-node Kubernetes inside a Lima VM as if they were local."""

__version__ = '0.1.0'
