#!/usr/bin/env python3
"""
Generate a VAPID key pair for shop push notifications.

The keys go into the service's environment; the public key is also what
browsers fetch from /api/push/vapid-public-key before subscribing.
"""

import argparse
import base64

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


def base64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_vapid_keys() -> tuple[str, str]:
    """Return ``(public_key, private_key)`` as base64url strings.

    The public key is the 65-byte uncompressed P-256 point, the private key
    the raw 32-byte scalar, which is the form pywebpush accepts.
    """
    private_key = ec.generate_private_key(ec.SECP256R1())
    private_bytes = private_key.private_numbers().private_value.to_bytes(32, "big")
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    return base64url_encode(public_bytes), base64url_encode(private_bytes)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--email", default="admin@cloudshop.com", help="VAPID contact email")
    args = parser.parse_args()

    public_key, private_key = generate_vapid_keys()
    print(f"VAPID_PUBLIC_KEY={public_key}")
    print(f"VAPID_PRIVATE_KEY={private_key}")
    print(f"VAPID_CONTACT_EMAIL={args.email}")


if __name__ == "__main__":
    main()
