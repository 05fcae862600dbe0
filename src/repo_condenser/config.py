"""
Configuration for repo_condenser.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (repo-condenser.toml)
3. Default values (lowest priority)

Environment variables:
- REPO_CONDENSER_CONFIG_FILE: Path to TOML config file
- REPO_CONDENSER_MODEL: Target model (default: gpt-4o-mini)
- REPO_CONDENSER_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- REPO_CONDENSER_LOG_FORMAT: "structured" (JSON lines) or "human"
- REPO_CONDENSER_MAX_CHUNK_TOKENS: Chunk ceiling for the chunker
- REPO_CONDENSER_OVERLAP_TOKENS: Overlap carried between chunks
- REPO_CONDENSER_MAX_SUMMARIES_TO_COMBINE: Batch size of one combine call
- REPO_CONDENSER_HIERARCHICAL_TRIGGER_RATIO: Fraction of the available
  budget above which a bundle is condensed (default: 0.8)
- REPO_CONDENSER_MIN_HIERARCHICAL_TOKENS: Overflow above a unit's share
  that routes it through hierarchical summarization (default: 8000)
- REPO_CONDENSER_MAX_RETRIES: Retries per inference call
- REPO_CONDENSER_RAISE_ON_FAILURE: Raise when a unit fails (true/false)

Example repo-condenser.toml:

    model = "gpt-4o"

    [logging]
    level = "DEBUG"
    format = "human"

    [budget]
    hierarchical_trigger_ratio = 0.75

    [chunking]
    max_chunk_tokens = 2500

    [retry]
    max_retries = 5
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from repo_condenser.core.condense.token_management import DEFAULT_MODEL, ReservedTokens
from repo_condenser.core.resilience import RetryPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "REPO_CONDENSER_"
DEFAULT_CONFIG_FILES = ("repo-condenser.toml", ".repo-condenser.toml")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


@dataclass
class TokenBudgetConfig:
    """Token reservations and hierarchical-summarization thresholds.

    Attributes:
        system_prompt_tokens: Reserved for the system prompt
        response_tokens: Reserved for the model's response
        safety_tokens: Buffer for tokenizer drift and prompt glue
        hierarchical_trigger_ratio: A bundle estimated above
            ``available * ratio`` is condensed; at or below it passes through
        min_hierarchical_tokens: A unit must exceed its share by more than
            this many tokens before it is summarized instead of truncated
        metadata_overhead_tokens: Added to bundle estimates for prompt framing
        prompt_headroom_tokens: Kept free when fitting the final prompt
        context_limit_overrides: Per-model context window overrides
    """

    system_prompt_tokens: int = 1000
    response_tokens: int = 2000
    safety_tokens: int = 500
    hierarchical_trigger_ratio: float = 0.8
    min_hierarchical_tokens: int = 8000
    metadata_overhead_tokens: int = 500
    prompt_headroom_tokens: int = 500
    context_limit_overrides: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "TokenBudgetConfig":
        """Create config from TOML dict (typically [budget] section)."""
        return cls(
            system_prompt_tokens=int(data.get("system_prompt_tokens", 1000)),
            response_tokens=int(data.get("response_tokens", 2000)),
            safety_tokens=int(data.get("safety_tokens", 500)),
            hierarchical_trigger_ratio=float(data.get("hierarchical_trigger_ratio", 0.8)),
            min_hierarchical_tokens=int(data.get("min_hierarchical_tokens", 8000)),
            metadata_overhead_tokens=int(data.get("metadata_overhead_tokens", 500)),
            prompt_headroom_tokens=int(data.get("prompt_headroom_tokens", 500)),
            context_limit_overrides={
                str(k): int(v) for k, v in data.get("context_limit_overrides", {}).items()
            },
        )

    def reserved(self) -> ReservedTokens:
        return ReservedTokens(
            system_prompt=self.system_prompt_tokens,
            response=self.response_tokens,
            safety=self.safety_tokens,
        )


@dataclass
class ChunkingConfig:
    """Chunker settings (see ``ChunkingOptions``)."""

    max_chunk_tokens: int = 3000
    overlap_tokens: int = 200
    preserve_code_blocks: bool = True
    preserve_paragraphs: bool = True

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ChunkingConfig":
        """Create config from TOML dict (typically [chunking] section)."""
        return cls(
            max_chunk_tokens=int(data.get("max_chunk_tokens", 3000)),
            overlap_tokens=int(data.get("overlap_tokens", 200)),
            preserve_code_blocks=_parse_bool(data.get("preserve_code_blocks", True)),
            preserve_paragraphs=_parse_bool(data.get("preserve_paragraphs", True)),
        )


@dataclass
class SummarizationConfig:
    """Inference settings for the hierarchical summarizer.

    Attributes:
        temperature: Sampling temperature for chunk and combine calls
        chunk_summary_max_tokens: Output cap for one chunk summary
        combine_max_tokens: Output cap for one combine call
        max_summaries_to_combine: Summaries merged by a single combine call
        call_timeout: Per-call timeout in seconds (0 disables)
    """

    temperature: float = 0.3
    chunk_summary_max_tokens: int = 500
    combine_max_tokens: int = 800
    max_summaries_to_combine: int = 10
    call_timeout: float = 60.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "SummarizationConfig":
        """Create config from TOML dict (typically [summarization] section)."""
        return cls(
            temperature=float(data.get("temperature", 0.3)),
            chunk_summary_max_tokens=int(data.get("chunk_summary_max_tokens", 500)),
            combine_max_tokens=int(data.get("combine_max_tokens", 800)),
            max_summaries_to_combine=int(data.get("max_summaries_to_combine", 10)),
            call_timeout=float(data.get("call_timeout", 60.0)),
        )


@dataclass
class RetryConfig:
    """Backoff settings for inference calls."""

    max_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: bool = False

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        """Create config from TOML dict (typically [retry] section)."""
        return cls(
            max_retries=int(data.get("max_retries", 3)),
            initial_delay=float(data.get("initial_delay", 1.0)),
            multiplier=float(data.get("multiplier", 2.0)),
            max_delay=float(data.get("max_delay", 30.0)),
            jitter=_parse_bool(data.get("jitter", False)),
        )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )


@dataclass
class CondenserConfig:
    """Top-level configuration with support for env vars and TOML overrides."""

    model: str = DEFAULT_MODEL
    log_level: str = "INFO"
    log_format: str = "structured"
    raise_on_failure: bool = True

    budget: TokenBudgetConfig = field(default_factory=TokenBudgetConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "CondenserConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            for default_path in DEFAULT_CONFIG_FILES:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        config._load_env()
        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from a TOML file, keeping defaults on error."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "model" in data:
                self.model = str(data["model"])
            if "raise_on_failure" in data:
                self.raise_on_failure = _parse_bool(data["raise_on_failure"])

            if "logging" in data:
                log = data["logging"]
                if "level" in log:
                    self.log_level = str(log["level"]).upper()
                if "format" in log:
                    self.log_format = str(log["format"]).lower()

            if "budget" in data:
                self.budget = TokenBudgetConfig.from_toml_dict(data["budget"])
            if "chunking" in data:
                self.chunking = ChunkingConfig.from_toml_dict(data["chunking"])
            if "summarization" in data:
                self.summarization = SummarizationConfig.from_toml_dict(data["summarization"])
            if "retry" in data:
                self.retry = RetryConfig.from_toml_dict(data["retry"])

        except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Error loading config file {path}: {e}")

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if model := os.environ.get(f"{ENV_PREFIX}MODEL"):
            self.model = model.strip()

        if level := os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
            self.log_level = level.upper()

        if log_format := os.environ.get(f"{ENV_PREFIX}LOG_FORMAT"):
            self.log_format = log_format.strip().lower()

        if raise_on_failure := os.environ.get(f"{ENV_PREFIX}RAISE_ON_FAILURE"):
            self.raise_on_failure = _parse_bool(raise_on_failure)

        if max_chunk := os.environ.get(f"{ENV_PREFIX}MAX_CHUNK_TOKENS"):
            try:
                self.chunking.max_chunk_tokens = int(max_chunk)
            except ValueError:
                logger.warning(f"Invalid {ENV_PREFIX}MAX_CHUNK_TOKENS: {max_chunk}, using default")

        if overlap := os.environ.get(f"{ENV_PREFIX}OVERLAP_TOKENS"):
            try:
                self.chunking.overlap_tokens = int(overlap)
            except ValueError:
                logger.warning(f"Invalid {ENV_PREFIX}OVERLAP_TOKENS: {overlap}, using default")

        if batch := os.environ.get(f"{ENV_PREFIX}MAX_SUMMARIES_TO_COMBINE"):
            try:
                self.summarization.max_summaries_to_combine = int(batch)
            except ValueError:
                logger.warning(
                    f"Invalid {ENV_PREFIX}MAX_SUMMARIES_TO_COMBINE: {batch}, using default"
                )

        if ratio := os.environ.get(f"{ENV_PREFIX}HIERARCHICAL_TRIGGER_RATIO"):
            try:
                self.budget.hierarchical_trigger_ratio = float(ratio)
            except ValueError:
                logger.warning(
                    f"Invalid {ENV_PREFIX}HIERARCHICAL_TRIGGER_RATIO: {ratio}, using default"
                )

        if min_tokens := os.environ.get(f"{ENV_PREFIX}MIN_HIERARCHICAL_TOKENS"):
            try:
                self.budget.min_hierarchical_tokens = int(min_tokens)
            except ValueError:
                logger.warning(
                    f"Invalid {ENV_PREFIX}MIN_HIERARCHICAL_TOKENS: {min_tokens}, using default"
                )

        if retries := os.environ.get(f"{ENV_PREFIX}MAX_RETRIES"):
            try:
                self.retry.max_retries = int(retries)
            except ValueError:
                logger.warning(f"Invalid {ENV_PREFIX}MAX_RETRIES: {retries}, using default")

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ValueError: If any setting is out of range
        """
        if not 0 < self.budget.hierarchical_trigger_ratio <= 1:
            raise ValueError(
                "hierarchical_trigger_ratio must be in (0, 1], "
                f"got {self.budget.hierarchical_trigger_ratio}"
            )
        if self.budget.min_hierarchical_tokens < 0:
            raise ValueError(
                f"min_hierarchical_tokens must be non-negative, got {self.budget.min_hierarchical_tokens}"
            )
        if self.chunking.max_chunk_tokens <= 0:
            raise ValueError(
                f"max_chunk_tokens must be positive, got {self.chunking.max_chunk_tokens}"
            )
        if not 0 <= self.chunking.overlap_tokens < self.chunking.max_chunk_tokens:
            raise ValueError(
                "overlap_tokens must be non-negative and smaller than max_chunk_tokens, "
                f"got {self.chunking.overlap_tokens}"
            )
        if self.summarization.max_summaries_to_combine < 2:
            raise ValueError(
                "max_summaries_to_combine must be at least 2, "
                f"got {self.summarization.max_summaries_to_combine}"
            )
        if self.log_format not in ("structured", "human"):
            raise ValueError(f"log_format must be 'structured' or 'human', got {self.log_format!r}")
        self.retry.to_policy()

    def setup_logging(self) -> None:
        """Configure the package logger from ``log_level``/``log_format``."""
        from repo_condenser.core.logging_config import configure_logging

        configure_logging(level=self.log_level, format=self.log_format)
