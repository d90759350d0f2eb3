#!/usr/bin/env python3
"""
Feature License - Basic Flow Demo

Demonstrates the complete flow of:
1. Creating a license with typed features
2. Signing the license
3. Converting it to text, base64 and binary and back
4. Verifying the signature after each round trip
5. Detecting a license that was edited after signing

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import datetime, timedelta, timezone

from featurelicense.crypto import LicenseKeyPair
from featurelicense.feature import int_feature, string_feature
from featurelicense.license import License


def main():
    print("=" * 60)
    print("Feature License - Basic Flow Demo")
    print("=" * 60)
    print()

    # Step 1: Generate key pair for the licensor
    print("[1] Generating RSA key pair for the licensor...")
    keys = LicenseKeyPair.generate("RSA", 2048)
    print(f"    Cipher: {keys.cipher}")
    print(f"    Public key: {len(keys.public_bytes())} bytes")
    print()

    # Step 2: Create the license
    print("[2] Creating license...")
    license = License()
    license.add(string_feature("owner", "Peter Verhas"))
    license.add(string_feature("terms", "Single site use.\nNo redistribution."))
    license.add(int_feature("seats", 25))
    license.set_expiry(datetime.now(timezone.utc) + timedelta(days=365))
    license_id = license.set_license_id()
    print(f"    License ID: {license_id}")
    print(f"    Features: {len(license)}")
    print()

    # Step 3: Sign the license
    print("[3] Signing the license with SHA-512...")
    license.sign(keys.private_key, "SHA-512")
    print(f"    Signature: {len(license.get_signature())} bytes")
    print(f"    Fingerprint: {license.fingerprint()}")
    print()

    # Step 4: Text form
    print("[4] Text form of the signed license:")
    text = str(license)
    for line in text.splitlines():
        print(f"    {line}")
    print()

    # Step 5: Round trips
    print("[5] Verifying after round trips...")
    public_key = keys.public_key
    forms = {
        "text": License.from_string(text),
        "base64": License.from_base64(license.to_base64()),
        "binary": License.from_bytes(license.serialized()),
    }
    for form, restored in forms.items():
        result = "VALID" if restored.is_ok(public_key) else "INVALID"
        print(f"    {form}: {result}")
    print()

    # Step 6: Tamper with the license
    print("[6] Raising the seat count after signing...")
    tampered = License.from_string(text)
    tampered.add(int_feature("seats", 250))
    if tampered.is_ok(public_key):
        print("    Result: VALID")
    else:
        print("    Result: INVALID")
        print("    This is correct behavior - the license was changed")
    print()

    print("=" * 60)
    print("Demo completed successfully!")
    print()
    print("Key principles demonstrated:")
    print("  - Typed features with a deterministic serialization")
    print("  - Loss-free text, base64 and binary forms")
    print("  - Signature stored inside the license itself")
    print("  - Any change after signing is detected")
    print("=" * 60)


if __name__ == "__main__":
    main()
