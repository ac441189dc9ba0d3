# learned_rmi/config/network_config.py
from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from learned_rmi.utils.errors import ConfigurationError


class NetworkParameters(BaseModel):
    """
    Hyperparameters of one model stage.

    num_neurons is the hidden width of the first stage; experts of the
    second stage are single linear layers and ignore it.
    """

    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(gt=0)
    max_num_epochs: int = Field(gt=0)
    learning_rate: float = Field(gt=0)
    num_neurons: int = Field(default=1, gt=0)


class RMIConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    first_stage: NetworkParameters
    second_stage: NetworkParameters
    second_stage_size: int = Field(default=8, gt=0)
    max_overflow_size: int = Field(default=10000, gt=0)
    search_safety: int = Field(default=8, ge=0)
    seed: Optional[int] = None


class LogConfig(BaseModel):
    level: str = "INFO"
    sink: str = "stderr"


ParamsLike = Union[NetworkParameters, Mapping[str, Any]]


def build_config(**kwargs: Any) -> RMIConfig:
    """Validate raw keyword arguments into an RMIConfig, failing fast."""
    try:
        return RMIConfig.model_validate(kwargs)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid index configuration: {exc}") from exc
