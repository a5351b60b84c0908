"""
Generate the bcrypt hash for ADMIN_PASSWORD_HASH.

The admin password itself is never stored; put the printed hash in backend/.env.

Usage:
    python -m scripts.generate_admin_hash            # prompts for the password
    python -m scripts.generate_admin_hash <password>
"""

import getpass
import sys

import bcrypt

# Matches the cost factor of hashes issued for client accounts
SALT_ROUNDS = 12


def generate_hash(password: str, rounds: int = SALT_ROUNDS) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if argv:
        password = argv[0]
    else:
        password = getpass.getpass("Admin password: ")
        if password != getpass.getpass("Repeat password: "):
            print("Passwords do not match.", file=sys.stderr)
            return 1

    try:
        hashed = generate_hash(password)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1

    print("--- USE THIS STRING AS YOUR ADMIN_PASSWORD_HASH ---")
    print(hashed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
