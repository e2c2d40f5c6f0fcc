from backend.schemas.cache import CachedResult, CacheRecord  # noqa: F401
from backend.schemas.paths import PathDiff, PathState  # noqa: F401
