from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Runtime configuration for `TempMap` instances.

    Notes
    -----
    - Values here are not read from environment variables. Build a `Settings`
      instance yourself and pass it to `TempMap(settings=...)` to override them.
    - Durations are expressed in milliseconds, like every `timeout` argument.
    """

    # applied to brand-new entries whose timeout was omitted; 0 = permanent
    default_timeout: int = Field(0, ge=0)
    string_separator: str = " "
    log_level: str = "INFO"


settings = Settings()
