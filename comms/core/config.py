import os
from pathlib import Path

from pydantic import ConfigDict, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SECRET: str
    DATABASE_URL: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    APP_NAME: str = "Zip-A-Dee Services"

    RUN_MIGRATIONS: bool = True
    BACKGROUND_JOBS_ENABLED: bool = True

    # Realtime
    HEARTBEAT_INTERVAL_SECONDS: float = 30.0

    # Scheduled sends
    SWEEPER_INTERVAL_SECONDS: float = 60.0
    SWEEPER_BATCH_SIZE: int = 100
    DISPATCH_CONCURRENCY: int = 10

    # Outbound email (Resend)
    EMAIL_API_KEY: str | None = None
    EMAIL_FROM_ADDRESS: str = "notifications@zipadee.example"

    # Outbound SMS (Twilio)
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_FROM_NUMBER: str | None = None

    CHANNEL_TIMEOUT_SECONDS: float = 10.0

    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 100

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8")

    @classmethod
    def get_required_fields(cls) -> list[str]:
        """Get all required fields (those without default values)."""
        return [
            name for name, field in cls.model_fields.items() if field.is_required()
        ]

    def __init__(self, **kwargs):
        try:
            # pydantic_settings reads the .env file first, then environment variables
            super().__init__(**kwargs)
        except ValidationError as e:
            env_file = Path(".env")
            missing_fields = [
                field for field in self.get_required_fields() if not os.getenv(field)
            ]

            if missing_fields:
                fields_str = "\n".join(f"- {field}" for field in missing_fields)
                example_env = "\n".join(
                    f"{field}=your_{field.lower()}_here" for field in missing_fields
                )

                if not env_file.exists():
                    error_msg = (
                        f"\n\nError: Missing required environment variables!"
                        f"\nMissing variables: {fields_str}"
                        f"\n\nFor local development, create a .env file with:"
                        f"\n{example_env}"
                    )
                else:
                    error_msg = (
                        f"\n\nError: Missing required environment variables!"
                        f"\nMissing variables: {fields_str}"
                        f"\n\nPlease add these to your .env file or set as environment variables."
                    )

                raise ValueError(error_msg) from e
            else:
                raise


settings = Settings()
