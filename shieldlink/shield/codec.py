"""Obfuscated destination payload.

The payload is an encrypted JOSE token (JWE, ``dir`` + ``A256GCM``) carrying
the destination, the link id and an expiry. It is what the gate page hands
to its runtime; none of its segments reveal the destination, which only
becomes visible again when :meth:`PayloadCodec.decode` runs at redirect time.
"""
from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Union

from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JWEError

from .errors import PayloadDecodeError

LinkId = Union[int, str]


@dataclass(frozen=True)
class DecodedPayload:
    destination_url: str
    link_id: LinkId


class PayloadCodec:
    def __init__(self, secret_key: str, *, ttl_seconds: int = 3600) -> None:
        # A256GCM with direct encryption needs exactly 32 key bytes.
        self._key = hashlib.sha256(secret_key.encode("utf-8")).digest()
        self._ttl = ttl_seconds

    def encode(self, destination_url: str, link_id: LinkId) -> str:
        now = int(time.time())
        claims = {
            "dst": destination_url,
            "lid": link_id,
            "iat": now,
            "exp": now + self._ttl,
        }
        token = jwe.encrypt(
            json.dumps(claims).encode("utf-8"),
            self._key,
            algorithm=ALGORITHMS.DIR,
            encryption=ALGORITHMS.A256GCM,
        )
        return token.decode("ascii")

    def decode(self, token: str) -> DecodedPayload:
        if not isinstance(token, str) or not token:
            raise PayloadDecodeError("Payload is empty")
        try:
            claims = json.loads(jwe.decrypt(token, self._key))
        except (JWEError, ValueError) as exc:
            raise PayloadDecodeError(f"Payload rejected: {exc.__class__.__name__}") from exc
        if not isinstance(claims, dict):
            raise PayloadDecodeError("Payload rejected: not a claim set")

        expires = claims.get("exp")
        if isinstance(expires, bool) or not isinstance(expires, int) or expires <= time.time():
            raise PayloadDecodeError("Payload has expired")

        destination = claims.get("dst")
        link_id = claims.get("lid")
        if not isinstance(destination, str) or not destination.strip():
            raise PayloadDecodeError("Payload has no destination")
        if isinstance(link_id, bool) or not isinstance(link_id, (int, str)):
            raise PayloadDecodeError("Payload has no link id")
        return DecodedPayload(destination_url=destination, link_id=link_id)


def normalize_destination(url: str) -> str:
    """Prefix ``https://`` when the stored destination has no http(s) scheme."""
    url = url.strip()
    if url.lower().startswith(("http://", "https://")):
        return url
    return "https://" + url


__all__ = ["DecodedPayload", "PayloadCodec", "normalize_destination"]
