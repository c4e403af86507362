import secrets
# no O/0 or I/1: codes are read aloud and typed on phones
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

def generate_code(length: int = 6) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def generate_team_token() -> str:
    return secrets.token_hex(16)
