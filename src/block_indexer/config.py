"""
Indexer settings.

Settings are layered, later layers winning:

1. Built-in defaults
2. A YAML file (`config.yaml` in the working directory unless another path
   is given), if it exists
3. Environment variables named INDEXER_<FIELD>, e.g. INDEXER_RPC
4. Command-line flags

Example config.yaml::

    rpc: wss://mainnet.example/ws
    retry_interval: 10
    block_buffer_size: 16
    headers_buffer_size: 4
    out: blocks.log
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import ConfigDict, Field, field_validator

from block_indexer.pipeline import GapFillPolicy, PipelineConfig
from block_indexer.types import CamelModel

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("config.yaml")
"""Settings file looked up in the working directory."""

ENV_PREFIX = "INDEXER_"
"""Prefix of environment variables that override settings."""


class IndexerSettings(CamelModel):
    """Complete settings for one indexer process."""

    model_config = CamelModel.model_config | ConfigDict(extra="forbid", frozen=True)

    rpc: str | None = None
    """Node endpoint. The scheme selects polling (http/https) or subscription (ws/wss)."""

    start: int | None = Field(default=None, ge=0)
    """First block to index."""

    end: int | None = None
    """Last block of the historical range. Negative or absent means unbounded."""

    live: bool = False
    """Start from the current head."""

    allow_future_start: bool = False
    """Wait for a start block the node has not produced yet."""

    retry_interval: float = Field(default=10.0, ge=0)
    """Seconds between fetch retries."""

    block_buffer_size: int = Field(default=0, ge=0)
    """Handoff channel capacity."""

    headers_buffer_size: int = Field(default=0, ge=0)
    """Live notice queue capacity."""

    gap_fill_policy: GapFillPolicy = GapFillPolicy.RETRY
    """Failure policy while reconciling live notices."""

    out: Path = Path("blocks.log")
    """Output path for the sink."""

    sink: Literal["file", "sqlite"] = "file"
    """Sink implementation."""

    api_port: int | None = Field(default=None, ge=1, le=65535)
    """Port for the status API. Absent disables it."""

    @field_validator("end", mode="after")
    @classmethod
    def negative_end_is_unbounded(cls, v: int | None) -> int | None:
        """Map the conventional -1 (or any negative) end to unbounded."""
        return None if v is not None and v < 0 else v

    @classmethod
    def load(
        cls,
        path: Path | str | None = None,
        *,
        env: Mapping[str, str] | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> IndexerSettings:
        """
        Build settings from file, environment, and explicit overrides.

        Args:
            path: YAML file. Defaults to ./config.yaml; a missing default
                file is not an error, a missing explicit one is.
            env: Environment mapping. Defaults to os.environ.
            overrides: Values from the command line. None entries are ignored.

        Raises:
            FileNotFoundError: If an explicit path does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If a value fails validation.
        """
        data: dict[str, Any] = {}

        config_path = Path(path) if path is not None else DEFAULT_CONFIG_FILE
        if config_path.exists():
            with config_path.open(encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError(
                    f"{config_path} must contain a mapping, got {type(loaded).__name__}"
                )
            logger.info("Using config file: %s", config_path)
            data.update(loaded)
        elif path is not None:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            logger.info("No config file found, using default values")

        environ = os.environ if env is None else env
        for name in cls.model_fields:
            value = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if value is not None:
                data[name] = value

        if overrides:
            data.update({k: v for k, v in overrides.items() if v is not None})

        return cls.model_validate(data)

    def to_pipeline_config(self) -> PipelineConfig:
        """
        Derive the pipeline configuration.

        Raises:
            pydantic.ValidationError: On conflicting or out-of-range values.
        """
        return PipelineConfig(
            start=self.start,
            end=self.end,
            live=self.live,
            allow_future_start=self.allow_future_start,
            retry_delay=self.retry_interval,
            block_buffer_size=self.block_buffer_size,
            headers_buffer_size=self.headers_buffer_size,
            gap_fill_policy=self.gap_fill_policy,
        )
