"""
Domain models — Pydantic types for the reconciliation engine.

All models are re-exported here for convenient access:

    from machinestate.core.models import Manifest, Action, Receipt, Plan
"""

from machinestate.core.models.action import Action, Receipt
from machinestate.core.models.manifest import (
    SUPPORTED_MANIFEST_VERSION,
    AppEntry,
    Manifest,
    RestoreEntry,
    VerifyEntry,
)
from machinestate.core.models.plan import ManifestSnapshot, Plan, PlanSummary

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # manifest.py
    "AppEntry",
    "Manifest",
    "RestoreEntry",
    "SUPPORTED_MANIFEST_VERSION",
    "VerifyEntry",
    # plan.py
    "ManifestSnapshot",
    "Plan",
    "PlanSummary",
]
