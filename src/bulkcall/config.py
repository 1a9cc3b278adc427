"""
Batcher configuration.
"""

import enum
import os
import typing as t

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

ENV_PREFIX = "BULKCALL_"


class DuplicatePolicy(str, enum.Enum):
    """What ``enqueue`` does with a fingerprint that is already pending."""

    COALESCE = "coalesce"
    REJECT = "reject"


class BatcherConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(default="batcher", description="name used in logs and task names")
    quiet_window_seconds: float = Field(
        default=0.05,
        gt=0,
        description="flush once no new item arrived for this long",
    )
    max_wait_seconds: float | None = Field(
        default=1.5,
        gt=0,
        description="optional, upper bound on how long the first item of a burst waits for a flush",
    )
    leading_edge: bool = Field(
        default=False,
        description="flush immediately on the first item after a quiet period",
    )
    max_batch_size: int | None = Field(
        default=None,
        gt=0,
        description="optional, cap on batch size. When set, a full queue flushes without waiting for the quiet window",
    )
    duplicate_policy: DuplicatePolicy = Field(
        default=DuplicatePolicy.COALESCE,
        description="coalesce duplicate fingerprints into one wire entry or reject them",
    )
    item_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="optional, reject an item that has not completed after this long",
    )

    @model_validator(mode="after")
    def validate_windows(self) -> "BatcherConfig":
        """Validate that the quiet window does not exceed max wait."""
        if self.max_wait_seconds is not None and self.quiet_window_seconds > self.max_wait_seconds:
            raise ValueError(
                f"quiet_window_seconds ({self.quiet_window_seconds}) must be <= "
                f"max_wait_seconds ({self.max_wait_seconds})"
            )
        return self

    @classmethod
    def from_env(cls, *, dotenv: bool = True, **overrides: t.Any) -> "BatcherConfig":
        """
        Build a configuration from ``BULKCALL_*`` environment variables.

        Parameters
        ----------
        dotenv : bool, optional
            Load the nearest ``.env`` file from the working directory first,
            without overriding the process environment.
        **overrides : typing.Any
            Explicit values taking precedence over the environment.

        Returns
        -------
        BatcherConfig
            Validated configuration.
        """
        if dotenv:
            load_dotenv(dotenv_path=find_dotenv(usecwd=True), override=False)
        values: dict[str, t.Any] = {}
        for field_name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
            if raw is None:
                continue
            if raw.strip().lower() in {"", "none", "null"}:
                values[field_name] = None
            else:
                values[field_name] = raw
        values.update(overrides)
        return cls.model_validate(values)
