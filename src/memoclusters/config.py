from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DB_PATH = ".data/memoclusters.sqlite3"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - db_path: カード/クラスタを保存する SQLite のパス
    - review_batch_size: 1 セッションで取得する期限到来カードの上限
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- 永続化 ---
    db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to the SQLite database / SQLite DBパス",
    )

    # --- 復習セッション ---
    review_batch_size: int = Field(
        default=20,
        description="Max due cards fetched per review session / 1セッションの最大出題数",
    )
    session_ttl_seconds: int = Field(
        default=1800,
        description="Idle seconds before a review session is evicted / 未操作セッションの破棄までの秒数",
    )
    default_user_id: str = Field(
        default="default",
        description="User id used when X-User-Id is absent / X-User-Id 未指定時のユーザID",
    )

    # --- Operations/Observability ---
    log_level: str = Field(
        default="INFO",
        description="Root log level / ログレベル",
    )
    sentry_dsn: str | None = Field(default=None, description="Sentry DSN (enable if set)")

    # --- Strict mode ---
    strict_mode: bool = Field(
        default=True,
        description="Fail fast on missing/invalid configuration (disable only for tests)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("review_batch_size")
    @classmethod
    def _validate_batch_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("REVIEW_BATCH_SIZE must be >= 1")
        return value

    @field_validator("session_ttl_seconds")
    @classmethod
    def _validate_session_ttl(cls, value: int) -> int:
        if value < 1:
            raise ValueError("SESSION_TTL_SECONDS must be >= 1")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> str:
        text = str(value or "INFO").strip().upper()
        return text or "INFO"

    @model_validator(mode="after")
    def _check_strict(self) -> "Settings":
        # 本番環境では永続 DB を必須とする
        if self.strict_mode and self.environment.lower() == "production" and self.db_path == ":memory:":
            raise ValueError("DB_PATH=:memory: is not allowed in production (set STRICT_MODE=false to override)")
        return self


settings = Settings()
