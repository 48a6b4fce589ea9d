#!/usr/bin/env python3
"""
Register (or re-key) a relay device in device_keys.

Only the sha256 of the secret is stored. The plaintext secret is printed
once so it can be put in the device's secure store.

Usage:
    python scripts/register-device.py <device_id> [--label "Shop phone"] [--secret S] [--disable]
"""

import argparse
import os
import secrets
import sys

# Add sms-gateway to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "apps", "sms-gateway"))

from services.database import DatabaseService
from services.device_registry import hash_secret


def register_device(device_id: str, label: str = None, secret: str = None, enabled: bool = True) -> str:
    """Upsert the device row, return the plaintext secret"""
    secret = secret or secrets.token_urlsafe(32)

    db = DatabaseService()
    db.upsert_device_key(
        {
            "device_id": device_id,
            "device_label": label,
            "secret_hash": hash_secret(secret),
            "enabled": enabled,
        }
    )
    return secret


def main():
    parser = argparse.ArgumentParser(description="Register a relay device")
    parser.add_argument("device_id")
    parser.add_argument("--label", default=None, help="Human readable device label")
    parser.add_argument("--secret", default=None, help="Use this secret instead of generating one")
    parser.add_argument("--disable", action="store_true", help="Register the device as disabled")
    args = parser.parse_args()

    try:
        secret = register_device(args.device_id, args.label, args.secret, enabled=not args.disable)
    except Exception as e:
        print(f"\n❌ Error registering device: {e}")
        sys.exit(1)

    status = "disabled" if args.disable else "enabled"
    print(f"✓ Registered device {args.device_id} ({status})")
    print("\nPut these in the device's secure store:")
    print(f"  RELAY_DEVICE_ID={args.device_id}")
    print(f"  RELAY_DEVICE_SECRET={secret}")


if __name__ == "__main__":
    main()
