"""
Interactive login for the field sync client.

Prompts for the API token issued by the field-operations portal and saves
it to ~/.fieldsync/ with owner-only permissions (0700 dir / 0600 file).

Usage:
    python -m fieldsync login
    python -m fieldsync.scripts.login   (direct invocation)

Re-run whenever the server starts rejecting the token (sync reports
"Please log in to sync").
"""
import getpass
import sys

from fieldsync.config import get_settings
from fieldsync.remote.auth import CredentialStore


def run_login() -> None:
    creds = CredentialStore(get_settings().credentials_dir)

    print("\nField Sync Login\n")
    print(f"Your token will be stored in: {creds.token_file}\n")

    if creds.has_token():
        print("An existing token was found.")
        overwrite = input("Replace it? [y/N] ").strip().lower()
        if overwrite != "y":
            print("Login cancelled. Existing token unchanged.")
            sys.exit(0)

    token = getpass.getpass("API token: ").strip()
    if not token:
        print("Error: token cannot be empty.")
        sys.exit(1)

    creds.save_token(token)
    print(f"\nToken saved to {creds.token_file}")
    print("Pending audits and job card edits will sync on the next pass.\n")


if __name__ == "__main__":
    run_login()
