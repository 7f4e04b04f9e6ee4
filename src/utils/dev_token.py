"""Development JWT token generator"""
from jose import jwt
from datetime import datetime, timedelta, timezone
from ..core.config import settings
from ..workflow.states import Role


def generate_dev_token(
    user_id: str = "dev_user_001",
    role: str = Role.STAFF.value,
    email: str = "dev@housing-workflow.gov",
    expires_in: timedelta = timedelta(days=1),
) -> str:
    """
    Generate development JWT token

    Usage:
        token = generate_dev_token(role="director")
        headers = {"Authorization": f"Bearer {token}"}
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "email": email,
        "iat": now,
        "exp": now + expires_in,
    }

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


if __name__ == "__main__":
    print("Development tokens:\n")
    for role in Role:
        token = generate_dev_token(user_id=f"dev_{role.value}", role=role.value)
        print(f"{role.value}:")
        print(f"  {token}\n")
