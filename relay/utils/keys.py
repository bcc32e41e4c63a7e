import secrets

from relay.constants import ACCESS_KEY_ALPHABET, ACCESS_KEY_LENGTH


def generate_access_key(length: int = ACCESS_KEY_LENGTH) -> str:
    """
    Generates an opaque access key

    Uses the OS CSPRNG (secrets.choice), so keys are unpredictable.
    Uniqueness is not checked here: with 62^12 possible keys a collision
    is negligible and the peer site stores them.

    Args:
        length: Number of characters

    Returns:
        Key drawn from A-Z, a-z, 0-9
    """
    return "".join(secrets.choice(ACCESS_KEY_ALPHABET) for _ in range(length))

