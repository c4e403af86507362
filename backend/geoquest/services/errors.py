from __future__ import annotations
from typing import Any


class GameError(Exception):
    """Base for rule violations surfaced to the caller as typed outcomes."""

    code = "game_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def payload(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, "retryable": self.retryable, **self.extra}


class NotActive(GameError):
    code = "not_active"
    status_code = 409

    def __init__(self, status: str):
        msg = "Session is paused" if status == "paused" else f"Session is not active ({status})"
        super().__init__(msg, status=status)
        self.status = status


class OutOfOrder(GameError):
    code = "out_of_order"
    status_code = 409

    def __init__(self, current_index: int, message: str = "This is not the current checkpoint"):
        super().__init__(message, current_index=current_index)
        self.current_index = current_index


class TooFar(GameError):
    code = "too_far"
    status_code = 409

    def __init__(self, distance_m: float | None, radius_m: float, accuracy_m: float | None = None):
        if distance_m is None:
            msg = "No position reported yet"
        elif accuracy_m is not None:
            msg = f"Position too inaccurate ({round(accuracy_m)}m) to unlock"
        else:
            msg = f"Too far from checkpoint ({round(distance_m)}m, max {round(radius_m)}m)"
        super().__init__(
            msg,
            distance_m=None if distance_m is None else round(distance_m, 1),
            radius_m=radius_m,
            accuracy_m=accuracy_m,
        )
        self.distance_m = distance_m
        self.radius_m = radius_m


class AlreadyScored(GameError):
    code = "already_scored"
    status_code = 409

    def __init__(self, submission_id: str | None = None):
        super().__init__("Checkpoint already scored for this team", submission_id=submission_id)


class EvaluationUnavailable(GameError):
    code = "evaluation_unavailable"
    status_code = 503
    retryable = True

    def __init__(self, reason: str):
        super().__init__("Evaluation is temporarily unavailable, please retry", reason=reason)
        self.reason = reason


class InvalidInput(GameError):
    code = "invalid_input"
    status_code = 422


class InvalidTransition(GameError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move session from {current} to {target}", **{"from": current, "to": target})
