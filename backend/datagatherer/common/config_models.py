"""
Pydantic models for engine configuration validation

Provides type-safe, validated configuration models for:
- Engine options (helper, extensions, batching, verbosity)
- Helper sections (env vars tab, system tab, per-dataset tabs)
- Per-dataset layout (data axis, property lookup line, skipped rows/columns)
"""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from datagatherer.common.errors import ConfigurationError


# ============================================================================
# Enums
# ============================================================================

class DataAxis(str, Enum):
    """Whether each record is a row or a column of its dataset"""
    ROW = "row"
    COLUMN = "column"


class RunStatus(str, Enum):
    """Status written into the `status` property of a Run Result"""
    RETRIEVED = "Retrieved"
    ERROR = "Error"
    PENDING = "Pending"


class Frequency(str, Enum):
    """Recurring frequencies understood by the recurring filter and extension"""
    DAILY = "Daily"
    WEEKLY = "Weekly"
    BIWEEKLY = "Biweekly"
    MONTHLY = "Monthly"
    TEST = "Test"


FREQUENCY_IN_MINUTES: Dict[Frequency, int] = {
    Frequency.DAILY: 60 * 24,
    Frequency.WEEKLY: 60 * 24 * 7,
    Frequency.BIWEEKLY: 60 * 24 * 14,
    Frequency.MONTHLY: 60 * 24 * 30,
    Frequency.TEST: 1,
}


# ============================================================================
# Dataset Configuration Models
# ============================================================================

class TabConfig(BaseModel):
    """Layout of a single dataset"""
    data_axis: DataAxis = Field(default=DataAxis.ROW, alias="dataAxis", description="Record orientation")
    property_lookup_row: int = Field(
        default=1,
        alias="propertyLookupRow",
        ge=1,
        description="1-based header line carrying property names",
    )
    skip_rows: int = Field(default=0, alias="skipRows", ge=0, description="Leading rows excluded from data")
    skip_columns: int = Field(default=0, alias="skipColumns", ge=0, description="Leading columns excluded from data")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def validate_lookup_in_header(self) -> "TabConfig":
        """The property line must sit inside the skipped header region"""
        if self.property_lookup_row > self.skip_lines:
            region = "skipRows" if self.data_axis == DataAxis.ROW else "skipColumns"
            raise ValueError(
                f"propertyLookupRow={self.property_lookup_row} lies outside the "
                f"header region ({region}={self.skip_lines})"
            )
        return self

    @property
    def skip_lines(self) -> int:
        """Header lines skipped along the record axis"""
        return self.skip_rows if self.data_axis == DataAxis.ROW else self.skip_columns

    @property
    def skip_cells(self) -> int:
        """Leading cells skipped inside each record line"""
        return self.skip_columns if self.data_axis == DataAxis.ROW else self.skip_rows


class HelperConfig(BaseModel):
    """Helper-specific section, keyed by the helper id in the engine config"""
    env_vars_tab_id: Optional[str] = Field(default=None, alias="envVarsTabId")
    system_tab_id: Optional[str] = Field(default=None, alias="systemTabId")
    tabs: Dict[str, TabConfig] = Field(default_factory=dict, description="Per-dataset layouts")

    model_config = {"extra": "allow", "populate_by_name": True}

    @model_validator(mode="after")
    def validate_reserved_tabs(self) -> "HelperConfig":
        """Reserved datasets must have a layout"""
        for label, tab_id in (("envVarsTabId", self.env_vars_tab_id), ("systemTabId", self.system_tab_id)):
            if tab_id and tab_id not in self.tabs:
                raise ValueError(
                    f"{label} '{tab_id}' has no entry in tabs. "
                    f"Available tabs: {', '.join(sorted(self.tabs))}"
                )
        return self


# ============================================================================
# Main Engine Configuration Model
# ============================================================================

class EngineConfig(BaseModel):
    """Complete engine configuration"""
    helper: str = Field(..., description="Primary connector id")
    extensions: List[str] = Field(default_factory=list, description="Extension ids in dispatch order")
    batch_update_buffer: int = Field(default=10, alias="batchUpdateBuffer", gt=0)
    fetch_concurrency: int = Field(default=1, alias="fetchConcurrency", gt=0)
    fetch_retries: int = Field(default=0, alias="fetchRetries", ge=0)
    fetch_retry_delay: float = Field(default=0.0, alias="fetchRetryDelay", ge=0)
    verbose: bool = False
    debug: bool = False
    quiet: bool = False

    # Helper sections land in model_extra under their helper id
    model_config = {"extra": "allow", "populate_by_name": True}

    @model_validator(mode="after")
    def validate_helper_section(self) -> "EngineConfig":
        """The helper named by `helper` must have its own section"""
        raw = (self.model_extra or {}).get(self.helper)
        if not isinstance(raw, Mapping):
            raise ValueError(f"Missing configuration section for helper '{self.helper}'")
        try:
            HelperConfig.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"Invalid '{self.helper}' section: {e}") from e
        return self

    def helper_settings(self) -> HelperConfig:
        return HelperConfig.model_validate((self.model_extra or {})[self.helper])

    @property
    def log_level(self) -> str:
        if self.debug:
            return "debug"
        if self.verbose:
            return "dev"
        if self.quiet:
            return "quiet"
        return "user"


# ============================================================================
# Utility Functions
# ============================================================================

def load_engine_config(raw: Union[EngineConfig, Mapping[str, Any]]) -> EngineConfig:
    """Validate a raw mapping, re-raising validation failures as ConfigurationError"""
    if isinstance(raw, EngineConfig):
        return raw
    try:
        return EngineConfig.model_validate(dict(raw))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid engine configuration: {e}") from e


def load_and_validate_config(yaml_path: Path) -> EngineConfig:
    """
    Load and validate engine configuration from a YAML file

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ConfigurationError: If configuration is invalid
    """
    import yaml

    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with open(yaml_path, 'r', encoding='utf-8') as f:
        raw_config = yaml.safe_load(f)

    if not isinstance(raw_config, Mapping):
        raise ConfigurationError(f"Empty or invalid configuration: {yaml_path}")
    return load_engine_config(raw_config)


def config_to_dict(config: EngineConfig) -> Dict[str, Any]:
    """Convert EngineConfig back to its camelCase dictionary form"""
    return config.model_dump(mode='json', by_alias=True, exclude_none=True)
