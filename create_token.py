"""
Mint a bearer token for local development.

Identity normally comes from the external auth service; this script signs a
token with the local SECRET_KEY so the API can be exercised by hand.

Usage: python create_token.py <role> [user_id] [name] [badge_number]
"""
import sys
from datetime import timedelta

from app.core.security import create_access_token
from app.models.enums import UserRole


def create_token(role: str, user_id: str, name: str, badge_number: str) -> str:
    claims = {
        "sub": user_id,
        "role": UserRole(role).value,
        "name": name,
        "badge_number": badge_number,
    }
    return create_access_token(claims, expires_delta=timedelta(hours=12))


if __name__ == "__main__":
    if len(sys.argv) < 2 or sys.argv[1] not in [r.value for r in UserRole]:
        print(__doc__.strip().splitlines()[-1])
        print("Roles: " + ", ".join(r.value for r in UserRole))
        sys.exit(1)

    role = sys.argv[1]
    user_id = sys.argv[2] if len(sys.argv) > 2 else f"{role}-1"
    name = sys.argv[3] if len(sys.argv) > 3 else role.title()
    badge_number = sys.argv[4] if len(sys.argv) > 4 else ("B-0001" if role != UserRole.CITIZEN.value else "")

    print("=" * 50)
    print(f"Token for {name} ({role}, id={user_id})")
    print("=" * 50)
    print(create_token(role, user_id, name, badge_number))
