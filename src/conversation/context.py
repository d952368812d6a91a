"""
Conversation context model for storing booking selections during a conversation.

This module defines the ConversationContext Pydantic model that is stored,
whole, in the session store under one key per (tenant, user).
"""

from datetime import date, time, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, ConfigDict

from .states import ConversationState


# Fields owned by each wizard step. Re-entering a step clears its own fields
# and those of every later step.
STEP_FIELDS: Dict[ConversationState, Tuple[str, ...]] = {
    ConversationState.SELECTING_SERVICE: (
        "service_id", "service_name", "service_duration", "service_price",
    ),
    ConversationState.SELECTING_DATE: ("booking_date",),
    ConversationState.SELECTING_STAFF: ("staff_id", "staff_name", "staff_selected"),
    ConversationState.SELECTING_TIME: ("start_time",),
    ConversationState.INPUTTING_NOTE: ("customer_note",),
}


class ConversationContext(BaseModel):
    """
    Pydantic model for one user's in-progress booking conversation.

    This model tracks:
    - Identity of the conversation (tenant and chat user)
    - Current state and the stack of previously visited states
    - All selections made so far

    Attributes:
        tenant_id: Tenant the chat channel belongs to
        user_id: Chat platform user id
        customer_id: Customer id resolved when the booking is confirmed
        state: Current state of the conversation
        history: States visited before the current one, most recent last
        service_id: Selected service
        service_name: Display name of the selected service
        service_duration: Service duration in minutes
        service_price: Service price, informational only
        booking_date: Selected date
        staff_id: Selected staff member, None when unspecified
        staff_name: Display name of the selected staff member
        staff_selected: True once the staff step was answered, even with "any staff"
        start_time: Selected start time
        customer_note: Optional note from the customer
        updated_at: Last time the context changed, in UTC
    """

    model_config = ConfigDict(validate_assignment=True)

    tenant_id: str = Field(..., min_length=1, description="Tenant identifier")
    user_id: str = Field(..., min_length=1, description="Chat platform user identifier")
    customer_id: Optional[str] = Field(default=None, description="Resolved customer id")

    state: ConversationState = Field(
        default=ConversationState.IDLE,
        description="Current state of the conversation"
    )
    history: List[ConversationState] = Field(
        default_factory=list,
        description="Previously visited states, most recent last"
    )

    service_id: Optional[str] = None
    service_name: Optional[str] = None
    service_duration: Optional[int] = Field(default=None, gt=0, description="Minutes")
    service_price: Optional[Decimal] = Field(default=None, ge=0)

    booking_date: Optional[date] = None

    staff_id: Optional[str] = None
    staff_name: Optional[str] = None
    staff_selected: bool = False

    start_time: Optional[time] = None

    customer_note: Optional[str] = None

    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("staff_id")
    @classmethod
    def blank_staff_is_unspecified(cls, v: Optional[str]) -> Optional[str]:
        """
        Normalize an empty staff id to None.

        Args:
            v: Staff id to validate

        Returns:
            Stripped staff id, or None for "any available staff"
        """
        if v is None or not v.strip():
            return None
        return v.strip()

    @classmethod
    def create(cls, tenant_id: str, user_id: str) -> "ConversationContext":
        """
        Build a fresh IDLE context with no selections and empty history.

        Args:
            tenant_id: Tenant identifier
            user_id: Chat platform user identifier

        Returns:
            New ConversationContext
        """
        return cls(tenant_id=tenant_id, user_id=user_id)

    @property
    def staff_unspecified(self) -> bool:
        """True when the user explicitly left the staff choice to the shop."""
        return self.staff_selected and self.staff_id is None

    def clear_from_step(self, step: ConversationState) -> List[str]:
        """
        Reset the fields owned by a step and by every step after it.

        Args:
            step: First step whose fields are cleared. IDLE clears everything.

        Returns:
            Names of the fields that held a value and were cleared
        """
        cleared = []
        first = step.step_index()
        for owner, field_names in STEP_FIELDS.items():
            if owner.step_index() < first:
                continue
            for name in field_names:
                default = type(self).model_fields[name].default
                if getattr(self, name) != default:
                    cleared.append(name)
                setattr(self, name, default)
        return cleared

    def clear_selections(self) -> List[str]:
        """Reset every selection, keeping identity and the resolved customer id."""
        return self.clear_from_step(ConversationState.IDLE)

    def reset(self) -> None:
        """Return to IDLE with no selections and an empty history."""
        self.clear_selections()
        self.history = []
        self.state = ConversationState.IDLE
        self.touch()

    def get_missing_required_fields(self) -> List[str]:
        """
        Get list of selections still needed before a booking can be created.

        Returns:
            List of missing field names (empty if ready to book)
        """
        missing = []
        if not self.service_id:
            missing.append("service_id")
        if not self.service_duration:
            missing.append("service_duration")
        if self.booking_date is None:
            missing.append("booking_date")
        if not self.staff_selected:
            missing.append("staff")
        if self.start_time is None:
            missing.append("start_time")
        return missing

    def is_complete(self) -> bool:
        """
        Check if every selection required to book has been made.

        Returns:
            True if a booking can be created from this context
        """
        return not self.get_missing_required_fields()

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def __str__(self) -> str:
        """Return a human-readable summary of the context."""
        parts = [f"State: {self.state}"]
        if self.service_name or self.service_id:
            parts.append(f"Service: {self.service_name or self.service_id}")
        if self.booking_date:
            parts.append(f"Date: {self.booking_date.isoformat()}")
        if self.staff_selected:
            parts.append(f"Staff: {self.staff_name or self.staff_id or 'any'}")
        if self.start_time:
            parts.append(f"Time: {self.start_time.strftime('%H:%M')}")
        if self.customer_note:
            parts.append(f"Note: {self.customer_note}")
        return " | ".join(parts)
