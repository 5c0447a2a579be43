"""Business-rule refusals and infrastructure failures raised by the engine.

Every error carries a stable ``code`` and a user-facing ``message``; the API
layer renders ``to_detail()`` with ``status_code``.
"""

from __future__ import annotations

from typing import Any


class LinkLockerError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update({k: v for k, v in self.context.items() if v is not None})
        return detail


class NotFound(LinkLockerError):
    code = "not_found"
    status_code = 404


class LinkNotFound(NotFound):
    code = "link.not_found"

    def __init__(self, link_id: str) -> None:
        super().__init__("This link doesn't exist or has been removed.", link_id=link_id)


class EntitlementNotFound(NotFound):
    code = "entitlement.not_found"

    def __init__(self, account_id: int) -> None:
        super().__init__("No plan has been selected for this account.", account_id=account_id)


class AccountNotFound(NotFound):
    code = "account.not_found"

    def __init__(self, account_id: int) -> None:
        super().__init__("Account not found.", account_id=account_id)


class PlanNotFound(NotFound):
    code = "plan.not_found"

    def __init__(self, plan: int | str) -> None:
        super().__init__("Plan not found.", plan=plan)


class NoPlanSelected(LinkLockerError):
    code = "plan.not_selected"
    status_code = 403

    def __init__(self) -> None:
        super().__init__("Select a plan before creating links.")


class QuotaExhausted(LinkLockerError):
    code = "quota.exhausted"
    status_code = 402

    def __init__(self, plan_name: str, links_limit: int) -> None:
        super().__init__(
            f"You have reached your {plan_name} plan limit of {links_limit} links. "
            "Upgrade your plan or buy credits.",
            plan_name=plan_name,
            links_limit=links_limit,
        )
        self.plan_name = plan_name
        self.links_limit = links_limit


class UploadNotAllowed(LinkLockerError):
    code = "plan.upload_not_allowed"
    status_code = 403

    def __init__(self, plan_name: str) -> None:
        super().__init__(
            f"File uploads are not available on the {plan_name} plan.",
            plan_name=plan_name,
        )


class InvalidExpiration(LinkLockerError):
    code = "link.invalid_expiration"
    status_code = 422


class InvalidLinkRequest(LinkLockerError):
    code = "link.invalid_request"
    status_code = 422


class FileTooLarge(LinkLockerError):
    code = "upload.too_large"
    status_code = 413

    def __init__(self, size: int, max_size: int) -> None:
        super().__init__(
            f"File size must be less than {max_size // (1024 * 1024)}MB.",
            size=size,
            max_size=max_size,
        )


class Forbidden(LinkLockerError):
    code = "link.forbidden"
    status_code = 403

    def __init__(self, link_id: str) -> None:
        super().__init__("You can only delete your own links.", link_id=link_id)


class PaymentRequired(LinkLockerError):
    code = "plan.payment_required"
    status_code = 402

    def __init__(self, plan_name: str) -> None:
        super().__init__(f"The {plan_name} plan requires a payment.", plan_name=plan_name)


class TransientFailure(LinkLockerError):
    """Infrastructure trouble; safe to retry and never a business refusal."""

    code = "service.unavailable"
    status_code = 503

    def __init__(self, message: str = "Something went wrong. Please try again.") -> None:
        super().__init__(message)
