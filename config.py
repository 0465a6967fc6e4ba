"""
This module defines the data structures for our configuration and loads
them from the YAML file consumed by the Pulumi program.
"""

import yaml
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

REQUIRED_KEYS = ["team", "service", "environment", "region"]
HEALTH_CHECK_TYPES = ("EC2", "ELB")


@dataclass
class NetworkConfig:
    vpc_id: Optional[str] = None
    subnet_ids: Optional[List[str]] = None
    http_cidr_blocks: List[str] = field(default_factory=lambda: ["0.0.0.0/0"])
    ssh_cidr_blocks: List[str] = field(default_factory=list)


@dataclass
class LaunchConfig:
    ami_id: Optional[str] = None
    instance_type: str = "t2.micro"
    key_name: Optional[str] = None
    associate_public_ip_address: bool = True
    root_volume_size: int = 8


@dataclass
class AutoscalingConfig:
    min_size: int = 1
    max_size: int = 3
    desired_capacity: int = 1
    health_check_type: str = "EC2"
    health_check_grace_period: int = 300
    target_group_arns: List[str] = field(default_factory=list)


@dataclass
class AlarmConfig:
    adjustment: int
    threshold: float
    evaluation_periods: int = 2
    period: int = 120
    cooldown: int = 300


def default_scale_out() -> AlarmConfig:
    return AlarmConfig(adjustment=1, threshold=70.0)


def default_scale_in() -> AlarmConfig:
    return AlarmConfig(adjustment=-1, threshold=30.0)


@dataclass
class WordPressConfig:
    db_host: str = "localhost"
    db_name: str = "wordpress"
    db_user: str = "wordpress"
    db_password: str = ""
    efs_id: Optional[str] = None
    php_packages: List[str] = field(default_factory=lambda: ["php", "php-mysqlnd", "php-gd", "php-xml"])


@dataclass
class Config:
    team: str
    service: str
    environment: str
    region: str
    tags: Dict[str, str] = field(default_factory=dict)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    launch: LaunchConfig = field(default_factory=LaunchConfig)
    autoscaling: AutoscalingConfig = field(default_factory=AutoscalingConfig)
    scale_out: AlarmConfig = field(default_factory=default_scale_out)
    scale_in: AlarmConfig = field(default_factory=default_scale_in)
    wordpress: WordPressConfig = field(default_factory=WordPressConfig)

    def validate(self) -> "Config":
        asg = self.autoscaling
        if asg.max_size < 1:
            raise ValueError(f"autoscaling.max_size must be at least 1, got {asg.max_size}")
        if not 0 <= asg.min_size <= asg.desired_capacity <= asg.max_size:
            raise ValueError(
                "autoscaling sizes must satisfy 0 <= min_size <= desired_capacity <= max_size, "
                f"got min={asg.min_size} desired={asg.desired_capacity} max={asg.max_size}"
            )
        if asg.health_check_type not in HEALTH_CHECK_TYPES:
            raise ValueError(f"autoscaling.health_check_type must be one of {HEALTH_CHECK_TYPES}")
        if asg.health_check_type == "ELB" and not asg.target_group_arns:
            raise ValueError("autoscaling.health_check_type ELB requires target_group_arns")

        for key, alarm in (("scale_out", self.scale_out), ("scale_in", self.scale_in)):
            if not 0 <= alarm.threshold <= 100:
                raise ValueError(f"{key}.threshold must be a CPU percentage, got {alarm.threshold}")
            if alarm.evaluation_periods < 1:
                raise ValueError(f"{key}.evaluation_periods must be at least 1")
            if alarm.period not in (10, 30) and (alarm.period <= 0 or alarm.period % 60):
                raise ValueError(f"{key}.period must be 10, 30 or a multiple of 60, got {alarm.period}")
            if alarm.cooldown < 0:
                raise ValueError(f"{key}.cooldown must not be negative")
        if self.scale_out.adjustment <= 0:
            raise ValueError("scale_out.adjustment must be positive")
        if self.scale_in.adjustment >= 0:
            raise ValueError("scale_in.adjustment must be negative")
        if self.scale_in.threshold >= self.scale_out.threshold:
            raise ValueError("scale_in.threshold must be below scale_out.threshold")

        if self.network.subnet_ids is not None and not self.network.subnet_ids:
            raise ValueError("network.subnet_ids must not be empty; leave it out to use every subnet of the VPC")

        if self.launch.root_volume_size < 1:
            raise ValueError("launch.root_volume_size must be at least 1")
        return self


def _section(config_data: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = config_data.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Configuration section '{key}' must be a mapping")
    return section


def _matches(expected, value) -> bool:
    # bool is an int subclass, YAML true/false must not pass as a number.
    if expected is bool:
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if expected is int:
        return isinstance(value, int)
    if expected is float:
        return isinstance(value, (int, float))
    if expected is str:
        return isinstance(value, str)
    if expected == Optional[str]:
        return value is None or isinstance(value, str)
    if expected == List[str]:
        return isinstance(value, list) and all(isinstance(item, str) for item in value)
    if expected == Optional[List[str]]:
        return value is None or _matches(List[str], value)
    return True


def _check_types(instance, key: str):
    for f in fields(instance):
        value = getattr(instance, f.name)
        if not _matches(f.type, value):
            raise ValueError(
                f"Invalid configuration section '{key}': {f.name} has the wrong type, got {value!r}"
            )
    return instance


def _build(cls, config_data: Dict[str, Any], key: str, base=None):
    section = _section(config_data, key)
    try:
        if base is not None:
            # Partial alarm sections fall back to the direction's defaults.
            instance = cls(**{**base.__dict__, **section})
        else:
            instance = cls(**section)
    except TypeError as e:
        raise ValueError(f"Invalid configuration section '{key}': {e}") from e
    return _check_types(instance, key)


def parse_config(config_data: Dict[str, Any]) -> Config:
    """Turn raw YAML data into a validated Config."""
    if not isinstance(config_data, dict):
        raise ValueError("Configuration must be a mapping")

    for key in REQUIRED_KEYS:
        if key not in config_data:
            raise ValueError(f"Missing required configuration key: {key}")

    config = Config(
        team=str(config_data["team"]),
        service=str(config_data["service"]),
        environment=str(config_data["environment"]),
        region=str(config_data["region"]),
        tags={str(k): str(v) for k, v in _section(config_data, "tags").items()},
        network=_build(NetworkConfig, config_data, "network"),
        launch=_build(LaunchConfig, config_data, "launch"),
        autoscaling=_build(AutoscalingConfig, config_data, "autoscaling"),
        scale_out=_build(AlarmConfig, config_data, "scale_out", default_scale_out()),
        scale_in=_build(AlarmConfig, config_data, "scale_in", default_scale_in()),
        wordpress=_build(WordPressConfig, config_data, "wordpress"),
    )
    return config.validate()


def load_config(file_path: str) -> Config:
    """Load and validate YAML configuration from the given file path."""
    with open(file_path, "r") as file:
        config_data = yaml.safe_load(file)
    return parse_config(config_data)
