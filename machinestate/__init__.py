"""machinestate — reconcile a workstation against a declarative manifest."""

__version__ = "0.1.0"
