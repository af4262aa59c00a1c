"""Short public codes for shareable quotes."""
import secrets
import string

SHORT_ID_LENGTH = 7
SHORT_ID_ALPHABET = string.ascii_letters + string.digits  # 62^7 ≈ 3.5e12 codes


def generate_short_id(length: int = SHORT_ID_LENGTH) -> str:
    return "".join(secrets.choice(SHORT_ID_ALPHABET) for _ in range(length))
