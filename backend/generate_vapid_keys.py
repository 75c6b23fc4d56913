"""
Bootstrap-Tool: VAPID-Schlüsselpaar für Web Push erzeugen.

Verwendung:
  python generate_vapid_keys.py [subject]

Beispiel:
  python generate_vapid_keys.py mailto:push@example.com >> .env

Nur bei der Einrichtung ausführen – ein neues Schlüsselpaar macht alle
bestehenden Browser-Subscriptions ungültig.
"""
import sys

from pushrelay.core.vapid import generate_key_pair


def main(subject: str) -> None:
    if not subject.startswith(("mailto:", "http://", "https://")):
        print("Fehler: subject muss mit mailto: oder http(s):// beginnen.", file=sys.stderr)
        sys.exit(1)

    public_key, private_key = generate_key_pair()
    print(f"VAPID_SUBJECT={subject}")
    print(f"VAPID_PUBLIC_KEY={public_key}")
    print(f"VAPID_PRIVATE_KEY={private_key}")


if __name__ == "__main__":
    if len(sys.argv) > 2:
        print("Verwendung: python generate_vapid_keys.py [subject]")
        sys.exit(1)

    main(sys.argv[1] if len(sys.argv) == 2 else "mailto:admin@example.com")
