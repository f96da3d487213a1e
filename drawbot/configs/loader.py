"""Configuration loader for the drawbot.

Loads and validates ``drawbot.yaml`` into typed, frozen dataclasses.
Device address, work envelope, streaming thresholds and timeouts all come
from the config -- nothing protocol-related is hardcoded in the link or the
session controller.

Pipeline sections (``pipeline``, ``edge_detection``) are validated by the
pydantic schemas in ``linework.utils.validators``; their errors are
reported as ``ConfigError`` like every other field.

Usage::

    from drawbot.configs.loader import load_config
    cfg = load_config()                        # default path
    cfg = load_config("/custom/drawbot.yaml")  # explicit path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from linework.utils.fs import load_yaml
from linework.utils.validators import (
    EdgeDetectionParams,
    ValidationError,
    VectorizeParams,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectionConfig:
    """TCP link to the plotter."""

    host: str
    port: int
    connect_timeout_s: float
    command_timeout_s: float
    connect_attempts: int = 1
    connect_interval_s: float = 1.0


@dataclass(frozen=True)
class EnvelopeConfig:
    """Reachable work envelope ``[0, width] x [0, height]``, device units."""

    width: float
    height: float

    @property
    def size(self) -> tuple[float, float]:
        return (self.width, self.height)


@dataclass(frozen=True)
class StreamingConfig:
    """Delivery-mode selection and batch protocol timing."""

    batch_threshold: int
    chunk_size: int
    completion_timeout_s: float
    poll_interval_s: float


@dataclass(frozen=True)
class LoggingConfig:
    """Arguments for ``linework.utils.logging_config.setup_logging``."""

    log_level: str = "INFO"
    log_file: str | None = None
    json: bool = False
    color: bool = True
    wire_log: str | None = None

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "log_level": self.log_level,
            "log_file": self.log_file,
            "json": self.json,
            "color": self.color,
            "wire_log": self.wire_log,
        }


@dataclass(frozen=True)
class DrawbotConfig:
    """Root configuration object."""

    connection: ConnectionConfig
    envelope: EnvelopeConfig
    streaming: StreamingConfig
    pipeline: VectorizeParams
    edge_detection: EdgeDetectionParams
    logging: LoggingConfig


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------


def _parse_connection(data: dict[str, Any]) -> ConnectionConfig:
    return ConnectionConfig(
        host=str(data["host"]),
        port=int(data["port"]),
        connect_timeout_s=float(data["connect_timeout_s"]),
        command_timeout_s=float(data["command_timeout_s"]),
        connect_attempts=int(data.get("connect_attempts", 1)),
        connect_interval_s=float(data.get("connect_interval_s", 1.0)),
    )


def _parse_streaming(data: dict[str, Any]) -> StreamingConfig:
    return StreamingConfig(
        batch_threshold=int(data["batch_threshold"]),
        chunk_size=int(data["chunk_size"]),
        completion_timeout_s=float(data["completion_timeout_s"]),
        poll_interval_s=float(data["poll_interval_s"]),
    )


def _parse_logging(data: dict[str, Any] | None) -> LoggingConfig:
    data = data or {}
    log_file = data.get("log_file")
    wire_log = data.get("wire_log")
    return LoggingConfig(
        log_level=str(data.get("log_level", "INFO")).upper(),
        log_file=str(log_file) if log_file else None,
        json=bool(data.get("json", False)),
        color=bool(data.get("color", True)),
        wire_log=str(wire_log) if wire_log else None,
    )


def _parse_model(section: str, model: type, data: dict[str, Any] | None) -> Any:
    """Validate a pydantic-backed section, re-raising as ``ConfigError``."""
    try:
        return model(**(data or {}))
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"Invalid '{section}' section: {problems}") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> DrawbotConfig:
    """Load and validate drawbot configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``drawbot.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    DrawbotConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "drawbot.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)

    data: dict[str, Any] = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")

    try:
        env = data["envelope"]
        config = DrawbotConfig(
            connection=_parse_connection(data["connection"]),
            envelope=EnvelopeConfig(
                width=float(env["width"]), height=float(env["height"]),
            ),
            streaming=_parse_streaming(data["streaming"]),
            pipeline=_parse_model("pipeline", VectorizeParams, data.get("pipeline")),
            edge_detection=_parse_model(
                "edge_detection", EdgeDetectionParams, data.get("edge_detection"),
            ),
            logging=_parse_logging(data.get("logging")),
        )
    except KeyError as exc:
        raise ConfigError(
            f"Missing required configuration key: {exc}"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Invalid configuration value: {exc}"
        ) from exc

    _validate_config(config)
    logger.info("Configuration loaded successfully")
    return config


def _validate_config(cfg: DrawbotConfig) -> None:
    """Validate ranges and cross-field consistency.

    Raises
    ------
    ConfigError
        On any invalid value.
    """
    conn = cfg.connection
    if not conn.host:
        raise ConfigError("connection.host must not be empty")
    if not 0 < conn.port < 65536:
        raise ConfigError(f"connection.port out of range: {conn.port}")
    if conn.connect_timeout_s <= 0 or conn.command_timeout_s <= 0:
        raise ConfigError(
            f"Connection timeouts must be positive, got "
            f"connect={conn.connect_timeout_s}, command={conn.command_timeout_s}"
        )
    if conn.connect_attempts < 1:
        raise ConfigError(
            f"connection.connect_attempts must be >= 1, got {conn.connect_attempts}"
        )
    if conn.connect_interval_s < 0:
        raise ConfigError(
            f"connection.connect_interval_s must be >= 0, got {conn.connect_interval_s}"
        )

    env = cfg.envelope
    if env.width <= 0 or env.height <= 0:
        raise ConfigError(
            f"Envelope must be positive, got {env.width} x {env.height}"
        )

    st = cfg.streaming
    if st.batch_threshold < 0:
        raise ConfigError(
            f"streaming.batch_threshold must be >= 0, got {st.batch_threshold}"
        )
    if st.chunk_size < 1:
        raise ConfigError(f"streaming.chunk_size must be >= 1, got {st.chunk_size}")
    if st.completion_timeout_s <= 0 or st.poll_interval_s <= 0:
        raise ConfigError(
            f"Batch timing must be positive, got completion="
            f"{st.completion_timeout_s}, poll={st.poll_interval_s}"
        )
    if st.poll_interval_s > st.completion_timeout_s:
        logger.warning(
            "Poll interval %.1fs exceeds completion timeout %.1fs; "
            "each chunk gets a single status poll",
            st.poll_interval_s,
            st.completion_timeout_s,
        )
