import os
import bcrypt

PIN_HASH_ROUNDS = int(os.getenv("PIN_HASH_ROUNDS", "12"))


def hash_pin(pin: str) -> str:
    return bcrypt.hashpw(pin.encode(), bcrypt.gensalt(rounds=PIN_HASH_ROUNDS)).decode()

def verify_pin_hash(pin: str, hash_: str) -> bool:
    """bcrypt's checkpw compares in constant time; a malformed hash counts as a mismatch."""
    if not pin or not hash_:
        return False
    try:
        return bcrypt.checkpw(pin.encode(), hash_.encode())
    except ValueError:
        return False
