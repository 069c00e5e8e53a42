from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from cluster_policy.schemas.environment import Environment, EnvironmentName, PolicyOptions


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    environment: str = "development"
    log_level: str = "INFO"

    # Naming and deployment target shared by every stack
    resource_prefix: str = "ohme-assessment"
    aws_account: str = "123456789012"
    aws_region: str = "eu-west-2"

    public_subnet_group: str = "Public Subnet"
    default_listener_port: int = 80
    instance_type: str = "t4g.medium"
    min_capacity: int = 1
    max_capacity: int = 4

    # Literal fleet CIDR; when unset the CIDR comes from the VPC lookup
    network_cidr: Optional[str] = None


settings = Settings()


def build_environment(
    name: EnvironmentName,
    policy: Optional[PolicyOptions] = None,
    config: Optional[Settings] = None,
) -> Environment:
    cfg = config or settings
    return Environment(
        name=name,
        network_id=f"{cfg.resource_prefix}-{name.value}-vpc",
        public_subnet_selector=cfg.public_subnet_group,
        network_cidr=cfg.network_cidr,
        listener_port=cfg.default_listener_port,
        resource_prefix=cfg.resource_prefix,
        instance_type=cfg.instance_type,
        min_capacity=cfg.min_capacity,
        max_capacity=cfg.max_capacity,
        policy=policy or PolicyOptions(),
    )


def environment_registry(config: Optional[Settings] = None) -> dict[EnvironmentName, Environment]:
    """One descriptor per deployment target, all on the tiered model."""
    return {name: build_environment(name, config=config) for name in EnvironmentName}
