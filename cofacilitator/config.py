from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # External speech-to-text / AI engine
    engine_url: str = "http://localhost:5000"
    engine_timeout_seconds: float = 30.0

    # Relay
    scratch_dir: str = "uploads"
    default_confidence_threshold: float = -0.8

    # Capture
    sample_rate: int = 44100
    block_size: int = 4096
    blocks_per_chunk: int = 15

    # Client
    relay_url: str = "ws://127.0.0.1:3000"

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
