"""
bumpboard.errors — Bump Error Taxonomy
=======================================

Every refusal a bump can produce is one of the classes below.  Services
raise them; API routes map them to HTTP responses and bot commands turn
them into ephemeral replies.  Each carries a stable ``code`` and a
user-facing ``message``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bumpboard.engine.bump_policy import BumpEligibility


class BumpError(Exception):
    """Base class for all bump refusals."""

    code = "bump_error"
    default_message = "Bump failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationRequired(BumpError):
    code = "authentication_required"
    default_message = "You must be signed in to bump."


class ExternalIdentityRequired(BumpError):
    code = "external_identity_required"
    default_message = "Link your Discord account before bumping."


class ListingNotEligible(BumpError):
    """The listing exists but is not in a bumpable state."""

    code = "listing_not_eligible"
    default_message = "This listing cannot be bumped right now."


class ListingNotFound(ListingNotEligible):
    code = "listing_not_found"
    default_message = "Listing not found."


class CooldownActive(BumpError):
    """The member bumped this listing too recently.

    ``eligibility`` is the :class:`BumpEligibility` that refused the bump,
    so callers can report the exact remaining wait.
    """

    code = "cooldown_active"

    def __init__(self, eligibility: BumpEligibility) -> None:
        self.eligibility = eligibility
        super().__init__(
            f"You can bump this listing again in {eligibility.wait_text}."
        )


class StoreFailure(BumpError):
    code = "store_failure"
    default_message = "The bump could not be saved. Please try again."


class NotListingOwner(BumpError):
    """Raised when a non-owner tries to edit or delete a listing."""

    code = "not_listing_owner"
    default_message = "Only the listing owner can do that."
