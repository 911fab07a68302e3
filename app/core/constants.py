"""
Core constants used across the application. Keep these simple and documented.
"""

MIN_CACHE_TTL_SECONDS: int = 60
DESCRIPTION_MAX_LENGTH: int = 500
DEFAULT_TAGS: tuple[str, ...] = ("R18", "PC", "同人ゲーム")
DEFAULT_GENRE: str = "アドベンチャー"

# Redis layout, relative to settings.REDIS_KEY_PREFIX
DETAIL_KEY: str = "detail:{game_id}"
DETAIL_INDEX_KEY: str = "detail:index"
GC_LOG_KEY: str = "gc:log"
SETTINGS_KEY: str = "settings"

# Push channel event names
EVENT_STATUS: str = "ranking:status"
EVENT_PROGRESS: str = "ranking:progress"
EVENT_COMPLETE: str = "ranking:complete"

BROWSER_USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
