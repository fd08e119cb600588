"""Workflow coordinators for applying and reconciling recommendations."""

from reco_autopilot.orchestrator.cancellation import CancelToken
from reco_autopilot.orchestrator.steps import StepRunner
from reco_autopilot.orchestrator.apply import ApplyCoordinator, CommitRecordNotFound
from reco_autopilot.orchestrator.reconcile import BuildReconciler, FailedBuildPolicy
from reco_autopilot.orchestrator.events import decode_build_event

__all__ = [
    'CancelToken',
    'StepRunner',
    'ApplyCoordinator',
    'CommitRecordNotFound',
    'BuildReconciler',
    'FailedBuildPolicy',
    'decode_build_event',
]
