"""Lifecycle subpackage - status transitions, viewer actions, lock/cancel."""
from .protocol import ConfirmedMarkers, ConfirmFlow, StatusProtocol
from .state_machine import Action, can_transition, permitted_actions, status_from_record, transition
from .view_model import ViewModel, build_view_model

__all__ = [
    'ConfirmedMarkers', 'ConfirmFlow', 'StatusProtocol',
    'Action', 'can_transition', 'permitted_actions', 'status_from_record', 'transition',
    'ViewModel', 'build_view_model',
]
