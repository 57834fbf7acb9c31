# backend/ychat/core/config.py
import os
from typing import Dict, List, Literal
from dotenv import load_dotenv


def _parse_passkeys(raw: str) -> Dict[str, str]:
    """Parse "room=secret,other=secret2" into a room -> passkey mapping."""
    passkeys: Dict[str, str] = {}
    for pair in raw.split(","):
        if "=" not in pair:
            continue
        room, passkey = pair.split("=", 1)
        if room.strip() and passkey:
            passkeys[room.strip()] = passkey
    return passkeys


class Settings:
    """
    Setup environment variables.
        - MESSAGE_STORE the message store backend: "redis" or "memory"
        - REDIS_* connection details for the redis backend
        - SWEEP_INTERVAL_SECONDS how often expired messages are purged
        - MAX_BLOB_BYTES largest accepted avatar / image payload
        - ROOM_PASSKEYS rooms gated behind a passkey ("room=secret,...")
        - CORS_ORIGINS comma separated list of allowed origins
    """

    # Load environment variables from the .env file
    load_dotenv()

    MESSAGE_STORE: Literal["redis", "memory"] = os.getenv("MESSAGE_STORE", "redis")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))

    SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
    MAX_BLOB_BYTES: int = int(os.getenv("MAX_BLOB_BYTES", str(5 * 1024 * 1024)))

    ROOM_PASSKEYS: Dict[str, str] = _parse_passkeys(os.getenv("ROOM_PASSKEYS", ""))

    CORS_ORIGINS: List[str] = [
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    ]

    @property
    def redis_url(self) -> str:
        scheme = "rediss" if self.REDIS_SSL else "redis"
        auth = f":{self.REDIS_ACCESS_KEY}@" if self.REDIS_ACCESS_KEY else ""
        return f"{scheme}://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
