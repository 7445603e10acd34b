"""Root settings model for rpcwatch configuration."""

from typing import Any

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from rpcwatch.config.loader import load_config
from rpcwatch.config.models.observability import ObservabilityConfig


class LayeredTomlSource(PydanticBaseSettingsSource):
    """Settings source over the merged config/*.toml layers.

    The files are read when the source is built, i.e. once per Settings().
    """

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls)
        self._layers = load_config()

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        value = self._layers.get(field_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        # tables for other tools sharing the config dir are skipped
        return {name: value for name, value in self._layers.items() if name in self.settings_cls.model_fields}


class Settings(BaseSettings):
    """Root configuration object.

    Configuration is loaded in this order:
    1. Pydantic model defaults (in code)
    2. config/default.toml
    3. config/{RPCWATCH_ENV}.toml
    4. RPCWATCH_* environment variables
    """

    model_config = SettingsConfigDict(
        env_prefix="RPCWATCH_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="rpcwatch", description="Service name for logs, traces and metrics")
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: constructor arguments, then env vars, then TOML."""
        return (
            init_settings,
            env_settings,
            LayeredTomlSource(settings_cls),
        )
