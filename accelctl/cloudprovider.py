"""Detection of the cloud provider behind a load balancer hostname."""

from __future__ import annotations


class UnknownCloudProviderError(ValueError):
    """The hostname does not belong to a known cloud provider."""


_PROVIDERS = {"amazonaws.com": "aws"}


def detect_cloud_provider(hostname: str) -> str:
    """Return the provider name for ``hostname`` based on its last two labels."""
    parts = hostname.split(".")
    if len(parts) < 2:
        raise UnknownCloudProviderError(f"Unknown cloud provider: {hostname}")
    domain = f"{parts[-2]}.{parts[-1]}"
    try:
        return _PROVIDERS[domain]
    except KeyError:
        raise UnknownCloudProviderError(f"Unknown cloud provider: {domain}") from None