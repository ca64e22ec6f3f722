"""Reward engine error taxonomy.

Every error carries the HTTP status the API layer answers with, so services
raise domain errors and ``phantom.middleware.error_handler`` does the mapping.
"""

from __future__ import annotations


class RewardError(Exception):
    """Base class for all reward engine errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(RewardError):
    status_code = 404


class ConflictError(RewardError):
    status_code = 409


class BadRequestError(RewardError):
    status_code = 400


class ForbiddenError(RewardError):
    status_code = 403


class LedgerInvariantError(RewardError):
    """A ledger mutation would break an accounting invariant."""

    status_code = 500


# --- Ledger ---


class RewardNotFoundError(NotFoundError):
    def __init__(self, user_id: int, reason_key: str) -> None:
        super().__init__(f"Reward not found for user {user_id} ({reason_key})")
        self.user_id = user_id
        self.reason_key = reason_key


class DuplicateRewardError(ConflictError):
    def __init__(self, user_id: int, reason_key: str) -> None:
        super().__init__(f"Reward already granted for user {user_id} ({reason_key})")
        self.user_id = user_id
        self.reason_key = reason_key


# --- Coins ---


class DailyClaimIneligibleError(BadRequestError):
    def __init__(self) -> None:
        super().__init__("You are ineligible to claim at this time, try again later.")


class ReferralAlreadyRewardedError(ConflictError):
    def __init__(self, referred_user_id: int) -> None:
        super().__init__("Referrer already set")
        self.referred_user_id = referred_user_id


class MissionIncompleteError(ForbiddenError):
    def __init__(self) -> None:
        super().__init__("Mission requirements are not done yet")


class MissionAlreadyClaimedError(ConflictError):
    def __init__(self) -> None:
        super().__init__("You have already got rewarded for this mission")


class PrizeExhaustedError(BadRequestError):
    def __init__(self) -> None:
        super().__init__("prize was finished")


class InsufficientBalanceError(BadRequestError):
    def __init__(self) -> None:
        super().__init__("insufficient balance")


class RedemptionAlreadyResolvedError(ConflictError):
    def __init__(self, status: str) -> None:
        super().__init__(f"Prize Redemption Is Already Verified as {status}")
        self.status = status
