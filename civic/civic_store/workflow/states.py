"""
Transition policies for status fields.

Each status is a closed enum; a policy decides which moves between its
members are allowed.

- PermissivePolicy: any state to any state, including re-saving the current
  one. Used for membership and volunteer review so admins can undo a
  mistaken decision.
- ForwardOnlyPolicy: a linear chain where each state may only move to the
  next one. Used for the referral funnel.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Generic, Optional, Protocol, TypeVar

from ..errors import InvalidTransitionError, ValidationError
from ..models import ApplicationStatus, ReferralStatus

E = TypeVar("E", bound=Enum)


class TransitionPolicy(Protocol[E]):
    states: type[E]

    def allows(self, current: E, target: E) -> bool: ...


class PermissivePolicy(Generic[E]):
    """Every move between members of ``states`` is allowed."""

    def __init__(self, states: type[E]) -> None:
        self.states = states

    def allows(self, current: E, target: E) -> bool:
        return True


class ForwardOnlyPolicy(Generic[E]):
    """States form a chain; only the step to the direct successor is allowed."""

    def __init__(self, states: type[E], order: Sequence[E]) -> None:
        self.states = states
        self.order = tuple(order)

    def allows(self, current: E, target: E) -> bool:
        return self.predecessor(target) == current

    def predecessor(self, state: E) -> Optional[E]:
        index = self.order.index(state)
        return self.order[index - 1] if index > 0 else None

    def successor(self, state: E) -> Optional[E]:
        index = self.order.index(state)
        return self.order[index + 1] if index + 1 < len(self.order) else None


def coerce_state(states: type[E], value: E | str, field_name: str = "status") -> E:
    """Turn a raw status string into a member of ``states``.

    Raises:
        ValidationError: If the value is not a known state
    """
    if isinstance(value, states):
        return value
    try:
        return states(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in states)
        raise ValidationError(
            f"Invalid {field_name} '{value}'. Must be one of: {allowed}",
            field_name=field_name,
        ) from None


def check_transition(
    entity: str,
    policy: TransitionPolicy[E],
    current: E,
    target: E | str,
) -> E:
    """Validate a move and return the target state.

    Raises:
        ValidationError: If ``target`` is not a state of the policy
        InvalidTransitionError: If the policy forbids the move
    """
    target_state = coerce_state(policy.states, target)
    if not policy.allows(current, target_state):
        raise InvalidTransitionError(entity, current.value, target_state.value)
    return target_state


MEMBERSHIP_POLICY: PermissivePolicy[ApplicationStatus] = PermissivePolicy(ApplicationStatus)
VOLUNTEER_POLICY: PermissivePolicy[ApplicationStatus] = PermissivePolicy(ApplicationStatus)
REFERRAL_POLICY: ForwardOnlyPolicy[ReferralStatus] = ForwardOnlyPolicy(
    ReferralStatus,
    (
        ReferralStatus.INVITED,
        ReferralStatus.SIGNED_UP,
        ReferralStatus.APPLIED,
        ReferralStatus.PAID,
    ),
)
