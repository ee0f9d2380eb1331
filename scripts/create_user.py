import argparse
import asyncio
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv
from pymongo.errors import DuplicateKeyError

from movie_api.accounts import AuthHandler
from movie_api.config import Settings
from movie_api.database import Database
from movie_api.errors import APIError
from movie_api.models import Role
from movie_api.schemas import RegisterRequest
from movie_api.security import PasswordHasher, TokenService
from movie_api.validation import validate_payload


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a movie API user")
    parser.add_argument("username", help="Unique username")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument("--admin", action="store_true", help="Grant the admin role")
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 6:
            print("Password must be at least 6 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


async def create_user(settings: Settings, payload: dict) -> int:
    database = Database.from_settings(settings)
    try:
        await database.initialize()
        # The issued token is discarded.
        handler = AuthHandler(
            database,
            PasswordHasher(settings.password_hash_rounds),
            TokenService(settings.jwt_secret or "unused", settings.jwt_expires_in),
        )
        try:
            user, _ = await handler.register(payload)
        except (APIError, DuplicateKeyError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    finally:
        database.close()

    print(f"Created {user.role.value} {user.id}: {user.username} <{user.email}>")
    return 0


def main() -> int:
    args = parse_args()
    load_dotenv()
    settings = Settings.from_env()

    password = prompt_for_password()
    try:
        payload = validate_payload(
            RegisterRequest,
            {
                "username": args.username,
                "email": args.email,
                "password": password,
                "role": (Role.ADMIN if args.admin else Role.USER).value,
            },
        )
    except APIError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return asyncio.run(create_user(settings, payload))


if __name__ == "__main__":
    raise SystemExit(main())
