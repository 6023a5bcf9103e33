"""
Errors raised by the SDK layer.
"""


class UpstreamResponseError(Exception):
    """The completion API returned a response we cannot interpret."""
