"""
Lot status lifecycle.

    available <-> quarantine
    available | quarantine -> expired
    available -> depleted

``depleted`` and ``expired`` are terminal.  A lot becomes ``depleted``
exactly when its remaining quantity reaches zero and never reopens.
"""

from stock_kernel.domain.dtos import LotStatus
from stock_kernel.domain.workflow import Guard, Transition, Workflow

REMAINING_IS_ZERO = Guard(
    name="remaining_is_zero",
    description="Lot remaining quantity has reached zero",
)

EXPIRY_DATE_PASSED = Guard(
    name="expiry_date_passed",
    description="Lot expiry date is before the sweep date",
)

LOT_WORKFLOW = Workflow(
    name="lot_status",
    description="Inventory lot status lifecycle",
    initial_state=LotStatus.AVAILABLE.value,
    states=tuple(s.value for s in LotStatus),
    transitions=(
        Transition("available", "quarantine", action="quarantine"),
        Transition("quarantine", "available", action="release"),
        Transition("available", "expired", action="expire", guard=EXPIRY_DATE_PASSED),
        Transition("quarantine", "expired", action="expire", guard=EXPIRY_DATE_PASSED),
        Transition("available", "depleted", action="deplete", guard=REMAINING_IS_ZERO),
    ),
    terminal_states=("expired", "depleted"),
)
