"""
Common/Shared Fixtures

Base factories and generators used across test layers.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional


def make_user_id() -> str:
    """Generate a unique user ID"""
    return f"usr_test_{uuid.uuid4().hex[:12]}"


def make_environment_id() -> str:
    """Generate a unique environment ID"""
    return f"env_test_{uuid.uuid4().hex[:12]}"


def make_secret_id() -> str:
    """Generate a unique secret ID"""
    return str(uuid.uuid4())


def make_timestamp(value: Optional[datetime] = None) -> datetime:
    """Current (or given) UTC timestamp"""
    return value or datetime.now(timezone.utc)
