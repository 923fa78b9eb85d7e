"""Configuration management for Vertex Studio.

This module provides centralized configuration management using Pydantic Settings.
Values are loaded from environment variables (and an optional ``.env`` file)
using the same names the service has always been deployed with, so an
existing environment such as::

    PROJECT_ID=my-gcp-project
    LOCATION=us-central1
    PORT=3000
    IMAGEN_MODEL=imagen-3.0-generate-001
    VEO_MODEL=veo-3.0-generate-001

keeps working without renaming anything.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Keyword arguments passed to :class:`StudioConfig`
2. Environment variables
3. ``.env`` file in the working directory
4. Default values defined in :class:`StudioConfig`

Credentials
-----------
The process refuses to start without a credential file.  See
:meth:`StudioConfig.resolve_credentials_file` for the lookup order.

Usage Example
-------------
    from vertexstudio.core.config import config

    print(config.imagen_model)
    print(config.metadata_path)
"""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

PACKAGE_DIR = Path(__file__).resolve().parent.parent


class StudioConfig(BaseSettings):
    """Main configuration for Vertex Studio.

    Attributes
    ----------
    Remote Service:
        project_id : str | None
            Google Cloud project that owns the Vertex AI quota.
        location : str
            Vertex AI region (``us-central1`` by default).
        imagen_model : str
            Model used for text-to-image generation.
        imagen_edit_model : str
            Model used for image editing.
        veo_model : str
            Model used for image-to-video generation.
        request_timeout : float
            Timeout in seconds for every individual HTTP round trip.

    Video Polling:
        video_poll_interval : float
            Base delay between operation status polls, in seconds.
        video_poll_max_attempts : int
            Number of polls before giving up.
        video_poll_backoff : float
            Multiplier applied to the delay after every poll (1.0 = fixed).
        video_poll_max_interval : float
            Upper bound for a single delay when backoff is enabled.
        video_poll_jitter : float
            Fraction of random jitter added to each delay (0.0 = none).

    Credentials:
        google_application_credentials : Path | None
            Explicit credential file.  Takes precedence when set.
        service_account_key : Path
            Fallback credential file checked at startup.

    Paths:
        outputs_dir : Path
            Directory holding generated artifacts and ``metadata.json``.
        static_dir : Path
            Directory holding the bundled frontend page.

    Server:
        host : str
            Server bind address.
        port : int
            Server port.
        log_level : str
            Root logging level used by the CLI entry point.

    Examples
    --------
        >>> custom = StudioConfig(project_id="demo", outputs_dir="/tmp/out")
        >>> custom.metadata_path
        PosixPath('/tmp/out/metadata.json')
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote service
    project_id: str | None = Field(
        default=None,
        description="Google Cloud project ID",
    )
    location: str = Field(
        default="us-central1",
        description="Vertex AI region",
    )
    imagen_model: str = Field(
        default="imagen-3.0-generate-001",
        description="Imagen model for text-to-image generation",
    )
    imagen_edit_model: str = Field(
        default="imagen-3.0-capability-001",
        description="Imagen model for image editing",
    )
    veo_model: str = Field(
        default="veo-3.0-generate-001",
        description="Veo model for image-to-video generation",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Per-request HTTP timeout in seconds",
        gt=0,
    )

    # Video polling
    video_poll_interval: float = Field(default=5.0, ge=0)
    video_poll_max_attempts: int = Field(default=120, ge=1)
    video_poll_backoff: float = Field(default=1.0, ge=1.0)
    video_poll_max_interval: float = Field(default=60.0, ge=0)
    video_poll_jitter: float = Field(default=0.0, ge=0, le=1.0)

    # Credentials
    google_application_credentials: Path | None = Field(
        default=None,
        description="Explicit credential file (GOOGLE_APPLICATION_CREDENTIALS)",
    )
    service_account_key: Path = Field(
        default=Path("service-account-key.json"),
        description="Fallback service account key checked at startup",
    )

    # Paths
    outputs_dir: Path = Field(
        default=Path("outputs"),
        description="Directory to save generated artifacts and metadata",
    )
    static_dir: Path = Field(
        default=PACKAGE_DIR / "static",
        description="Directory containing the frontend page",
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=3000, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create the outputs directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)
        self.outputs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def metadata_path(self) -> Path:
        """Path of the JSON ledger inside the outputs directory."""
        return self.outputs_dir / "metadata.json"

    @property
    def is_veo3(self) -> bool:
        """Whether the configured video model belongs to the Veo 3 family."""
        return "veo-3" in self.veo_model

    def model_endpoint(self, model: str, verb: str) -> str:
        """Build the Vertex AI publisher-model endpoint for *model*.

        Args:
            model: Publisher model name, e.g. ``imagen-3.0-generate-001``.
            verb: Custom method, e.g. ``predict`` or ``predictLongRunning``.

        Raises:
            ConfigurationError: If ``project_id`` or ``location`` is unset.
        """
        if not self.project_id or not self.location:
            raise ConfigurationError("PROJECT_ID and LOCATION must be set in environment variables")
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project_id}"
            f"/locations/{self.location}/publishers/google/models/{model}:{verb}"
        )

    def resolve_credentials_file(self) -> Path:
        """Locate the credential file the process authenticates with.

        Lookup order:

        1. ``GOOGLE_APPLICATION_CREDENTIALS`` (used as-is).
        2. ``service_account_key`` if the file exists; it is then exported
           as ``GOOGLE_APPLICATION_CREDENTIALS`` for libraries that read
           the environment directly.

        Raises:
            ConfigurationError: If neither source yields a credential file.
        """
        if self.google_application_credentials:
            return self.google_application_credentials

        key_path = self.service_account_key.resolve()
        if not key_path.exists():
            raise ConfigurationError(f"Service account key file not found at: {key_path}")

        os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = str(key_path)
        self.google_application_credentials = key_path
        return key_path


# Global configuration instance, loaded from the environment at import time.
config = StudioConfig()
