"""Python client for the storefront try-on flow."""

from shootx.client.poller import PollerState, PollOutcome, TryOnPoller, TryOnRequest

__all__ = ["PollerState", "PollOutcome", "TryOnPoller", "TryOnRequest"]
