from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
import math


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./readnext.db"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Result cache
    RECOMMENDATION_CACHE_TTL_SECONDS: int = 3600
    PROFILE_CACHE_TTL_SECONDS: int = 3600

    # Recommendation store
    RECOMMENDATION_TTL_DAYS: int = 7

    # Scorer execution
    SCORER_MAX_WORKERS: int = 4
    SCORER_TIMEOUT_SECONDS: float = 5.0

    # Profile builder
    READ_PROGRESS_THRESHOLD: float = 10.0
    DEFAULT_AVG_RATING: float = 3.5
    DEFAULT_READING_TIME_SECONDS: float = 1800.0
    DEFAULT_PAGE_COUNT: float = 50.0
    SHORT_LENGTH_PAGES: float = 20.0
    MEDIUM_LENGTH_PAGES: float = 50.0
    ACTIVITY_WINDOW_DAYS: int = 30
    HIGH_ACTIVITY_ITEMS: int = 10
    MEDIUM_ACTIVITY_ITEMS: int = 3
    RECENCY_WINDOW_DAYS: int = 30
    DEFAULT_COMPLETION_RATE: float = 0.5
    TOP_GENRES: int = 5
    TOP_CREATORS: int = 5
    TOP_PUBLISHERS: int = 3
    TOP_TAGS: int = 10

    # Similarity finder
    MIN_INTERACTIONS: int = 3
    MIN_SHARED_ITEMS: int = 2
    MIN_SHARED_FRACTION: float = 0.1
    SIMILARITY_JACCARD_WEIGHT: float = 0.7
    SIMILARITY_RATING_WEIGHT: float = 0.3
    NEUTRAL_RATING_COMPATIBILITY: float = 0.5
    MAX_SIMILAR_USERS: int = 20

    # Collaborative scorer
    COLLAB_MIN_RATING: float = 4.0
    COLLAB_MIN_PROGRESS: float = 50.0
    COLLAB_GENRE_BOOST: float = 1.2
    COLLAB_HIGH_RATING: float = 4.5
    COLLAB_HIGH_RATING_BOOST: float = 1.1

    # Content-based scorer
    CONTENT_RATING_WEIGHT: float = 0.4
    CONTENT_GENRE_WEIGHT: float = 0.3
    CONTENT_CREATOR_WEIGHT: float = 0.2
    CONTENT_POPULARITY_WEIGHT: float = 0.1
    CONTENT_POPULARITY_READERS: int = 1000
    CONTENT_GENRE_DECAY: float = 0.15
    CONTENT_CREATOR_DECAY: float = 0.2
    CONTENT_RATING_SLACK: float = 0.5
    CONTENT_ITEMS_PER_GENRE: int = 5
    CONTENT_ITEMS_PER_CREATOR: int = 3

    # Trending scorer
    TRENDING_WINDOW_DAYS: int = 30
    TRENDING_MIN_ACQUISITIONS: int = 5
    TRENDING_SATURATION: int = 50
    TRENDING_POPULARITY_WEIGHT: float = 0.5
    TRENDING_RATING_WEIGHT: float = 0.3
    TRENDING_GENRE_WEIGHT: float = 0.2
    TRENDING_LIMIT: int = 15

    # New-release scorer
    NEW_RELEASE_WINDOW_DAYS: int = 14
    NEW_RELEASE_RECENCY_WEIGHT: float = 0.4
    NEW_RELEASE_RATING_WEIGHT: float = 0.3
    NEW_RELEASE_GENRE_WEIGHT: float = 0.3
    NEW_RELEASE_GENRE_DECAY: float = 0.1
    NEW_RELEASE_LIMIT: int = 10

    # Blender allocation (share of the requested limit per source)
    SHARE_COLLABORATIVE: float = 0.35
    SHARE_CONTENT_BASED: float = 0.30
    SHARE_TRENDING: float = 0.20
    SHARE_NEW_RELEASE: float = 0.15

    model_config = SettingsConfigDict(
        # Load from backend/.env (relative to this file's parent's parent)
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.DATABASE_URL or self.DATABASE_URL.strip() == "":
            raise RuntimeError(
                "DATABASE_URL is empty. Set DATABASE_URL in backend/.env, e.g. sqlite:///./readnext.db"
            )

        share_total = (
            self.SHARE_COLLABORATIVE
            + self.SHARE_CONTENT_BASED
            + self.SHARE_TRENDING
            + self.SHARE_NEW_RELEASE
        )
        if not math.isclose(share_total, 1.0, abs_tol=1e-6):
            raise RuntimeError(
                f"Blender allocation shares must sum to 1.0 (got {share_total:.4f}). "
                "Check SHARE_COLLABORATIVE, SHARE_CONTENT_BASED, SHARE_TRENDING and SHARE_NEW_RELEASE."
            )

        if self.SCORER_TIMEOUT_SECONDS <= 0:
            raise RuntimeError("SCORER_TIMEOUT_SECONDS must be positive.")

    def get_masked_database_url(self) -> str:
        """Return DATABASE_URL with password masked for logging."""
        from urllib.parse import urlparse, urlunparse
        parsed = urlparse(self.DATABASE_URL)
        if not parsed.password:
            return self.DATABASE_URL
        masked_netloc = f"{parsed.username}:***@{parsed.hostname}"
        if parsed.port:
            masked_netloc += f":{parsed.port}"
        return urlunparse((
            parsed.scheme,
            masked_netloc,
            parsed.path,
            parsed.params,
            parsed.query,
            parsed.fragment,
        ))


settings = Settings()
