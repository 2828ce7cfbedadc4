"""Error taxonomy of the redirect-protection core."""


class ShieldError(Exception):
    """Base class for every error raised by the shield core."""


class ConfigParseError(ShieldError, ValueError):
    """Stored protection config could not be parsed. Always recovered to defaults."""


class LinkNotFound(ShieldError, LookupError):
    """No protected link exists for the requested slug."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"No link for slug {slug!r}")
        self.slug = slug


class PayloadDecodeError(ShieldError, ValueError):
    """The obfuscated payload was malformed, tampered with, expired or mismatched."""


class RecorderDeliveryError(ShieldError):
    """An action record could not be delivered to the analytics collaborator."""


__all__ = [
    "ShieldError",
    "ConfigParseError",
    "LinkNotFound",
    "PayloadDecodeError",
    "RecorderDeliveryError",
]
