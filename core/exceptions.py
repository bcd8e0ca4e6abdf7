"""
exceptions.py
--------------
Exception hierarchy for the dividend alert engine.

Detectors are total over their inputs and never raise for control flow.
The only engine-level errors are misuse of the alert lifecycle.
"""


class AlertEngineError(Exception):
    """Base class for all engine errors."""


class InvalidAlertTransition(AlertEngineError):
    """Raised when an alert status change is not in the transition table."""

    def __init__(self, alert_id: str, status: str, action: str):
        self.alert_id = alert_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} alert '{alert_id}' while it is {status}."
        )
