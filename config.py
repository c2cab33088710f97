"""Runtime settings read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_cutoff(value: Optional[str], default: Tuple[int, int] = (16, 30)) -> Tuple[int, int]:
    """
    Parse an ``HH:MM`` cutoff string.

    Args:
        value: Raw cutoff such as ``"16:30"``
        default: Cutoff returned when the value is missing or malformed

    Returns:
        Tuple of (hour, minute)
    """
    if not value:
        return default
    try:
        hour_text, minute_text = str(value).strip().split(':', 1)
        hour, minute = int(hour_text), int(minute_text)
    except ValueError:
        return default
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return default
    return hour, minute


@dataclass(frozen=True)
class Settings:
    """Configuration for one Lambda container."""
    cache_table_name: str = 'live-shows-cache'
    log_level: str = 'INFO'
    ticketmaster_api_key: str = ''
    datasources_path: str = ''
    request_timeout_seconds: int = 10
    image_fetch_timeout_seconds: int = 8
    image_hydration_limit: int = 40
    rendered_image_fallback: bool = False
    weekday_cutoff: Tuple[int, int] = (16, 30)
    local_timezone: str = 'America/New_York'
    memory_cache_max_entries: int = 256

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (default: os.environ)

        Returns:
            Settings instance
        """
        env = os.environ if env is None else env
        api_key = (
            env.get('TICKETMASTER_API_KEY')
            or env.get('TICKETMASTER_KEY')
            or env.get('TICKETMASTER_CONSUMER_KEY')
            or ''
        )
        return cls(
            cache_table_name=env.get('CACHE_TABLE_NAME', cls.cache_table_name),
            log_level=env.get('LOG_LEVEL', cls.log_level),
            ticketmaster_api_key=api_key.strip(),
            datasources_path=env.get('DATASOURCES_PATH', '').strip(),
            request_timeout_seconds=_env_int(
                env, 'REQUEST_TIMEOUT_SECONDS', cls.request_timeout_seconds
            ),
            image_fetch_timeout_seconds=_env_int(
                env, 'IMAGE_FETCH_TIMEOUT_SECONDS', cls.image_fetch_timeout_seconds
            ),
            image_hydration_limit=_env_int(
                env, 'IMAGE_HYDRATION_LIMIT', cls.image_hydration_limit
            ),
            rendered_image_fallback=_env_bool(env, 'RENDERED_IMAGE_FALLBACK'),
            weekday_cutoff=parse_cutoff(env.get('WEEKDAY_CUTOFF')),
            local_timezone=env.get('LOCAL_TIMEZONE', cls.local_timezone) or cls.local_timezone,
            memory_cache_max_entries=_env_int(
                env, 'MEMORY_CACHE_MAX_ENTRIES', cls.memory_cache_max_entries
            ),
        )
