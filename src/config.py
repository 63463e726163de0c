# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Configuration for the restore process."""

import os
from typing import Dict, Mapping, Optional, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from constants import (
    DEFAULT_METRICS_JOB,
    DEFAULT_SCRATCH_DIR,
    DEFAULT_SECRET_DIR,
    LEASE_DURATION,
    RENEW_DEADLINE,
    RESTIC_BINARY_PATH,
    RETRY_PERIOD,
    RestoreModel,
)


class RestoreConfig(BaseModel):
    """Manager for the structured configuration, read from the environment."""

    model_config = ConfigDict(validate_by_name=True, validate_by_alias=True, frozen=True)

    namespace: str = Field(alias="NAMESPACE")
    restore_session: str = Field(alias="RESTORE_SESSION")
    pod_name: Optional[str] = Field(None, alias="POD_NAME")
    node_name: Optional[str] = Field(None, alias="NODE_NAME")
    restore_model: RestoreModel = Field(RestoreModel.INIT_CONTAINER, alias="RESTORE_MODEL")

    secret_dir: str = Field(DEFAULT_SECRET_DIR, alias="SECRET_DIR")
    scratch_dir: str = Field(DEFAULT_SCRATCH_DIR, alias="SCRATCH_DIR")
    enable_cache: bool = Field(True, alias="ENABLE_CACHE")
    restic_binary_path: str = Field(RESTIC_BINARY_PATH, alias="RESTIC_BINARY_PATH")

    lease_duration: float = Field(LEASE_DURATION, alias="LEASE_DURATION", gt=0)
    renew_deadline: float = Field(RENEW_DEADLINE, alias="RENEW_DEADLINE", gt=0)
    retry_period: float = Field(RETRY_PERIOD, alias="RETRY_PERIOD", gt=0)

    nice_adjustment: Optional[int] = Field(None, alias="NICE_ADJUSTMENT")
    ionice_class: Optional[int] = Field(None, alias="IONICE_CLASS", ge=0, le=3)
    ionice_class_data: Optional[int] = Field(None, alias="IONICE_CLASS_DATA", ge=0, le=7)

    metrics_enabled: bool = Field(False, alias="METRICS_ENABLED")
    pushgateway_url: Optional[str] = Field(None, alias="PUSHGATEWAY_URL")
    metrics_job: str = Field(DEFAULT_METRICS_JOB, alias="METRICS_JOB")
    metrics_labels: Dict[str, str] = Field(default_factory=dict, alias="METRICS_LABELS")

    @field_validator("*", mode="before")
    @classmethod
    def blank_string(cls, value):
        """Convert empty strings to None."""
        if value == "":
            return None
        return value

    @field_validator("metrics_labels", mode="before")
    @classmethod
    def parse_labels(cls, value):
        """Parse the extra metric labels, given as a comma separated list of key=value."""
        if value is None or value == "":
            return {}
        if not isinstance(value, str):
            return value
        labels = {}
        for pair in value.split(","):
            key, sep, label = pair.strip().partition("=")
            if not sep or not key.strip():
                raise ValueError(f"invalid metric label '{pair.strip()}', expected key=value")
            labels[key.strip()] = label.strip()
        return labels

    @model_validator(mode="after")
    def check_restore_model(self) -> Self:
        """Ensure the settings that depend on each other are consistent."""
        if not self.lease_duration > self.renew_deadline > self.retry_period:
            raise ValueError(
                "LEASE_DURATION must be greater than RENEW_DEADLINE, "
                "which must be greater than RETRY_PERIOD"
            )
        if self.restore_model == RestoreModel.INIT_CONTAINER and not self.pod_name:
            raise ValueError("POD_NAME is required with the 'init-container' restore model")
        if self.metrics_enabled and not self.pushgateway_url:
            raise ValueError("PUSHGATEWAY_URL is required when METRICS_ENABLED is set")
        return self

    @property
    def exclusive(self) -> bool:
        """Whether repository access has to be serialized with the restore lock."""
        return self.restore_model == RestoreModel.INIT_CONTAINER

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RestoreConfig":
        """Build the configuration from environment variables.

        Raises:
            ValidationError: If any of the variables is missing or invalid.
        """
        return cls.model_validate(dict(os.environ if environ is None else environ))

    @staticmethod
    def verror_to_str(ve: ValidationError) -> str:
        """Convert a Pydantic ValidationError to the list of invalid variables."""
        fields = []
        for error in ve.errors():
            field = ".".join(str(p) for p in error["loc"]) or error["msg"]
            fields.append(field)
        return "Invalid configuration: " + ", ".join(fields)
