"""Domain exceptions raised by the billing and assessment services."""


class BillingError(Exception):
    """A payment provider call failed. The message is safe to show to users."""


class WebhookSignatureError(Exception):
    """The webhook payload could not be verified against the signing secret."""


class InsufficientCreditsError(Exception):
    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits. Required: {required}, available: {available}.")


class AssessmentToolError(Exception):
    """An assessment tool or one of its records could not be found or used."""


class AssessmentAttemptError(Exception):
    """An attempt cannot be started or submitted in its current state."""
