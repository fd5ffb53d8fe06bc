"""
Access layer configuration management
"""

from typing import Optional, List, Tuple
from pydantic_settings import BaseSettings
from pydantic import Field, validator
from functools import lru_cache


def parse_ifindex_ranges(value: str) -> List[Tuple[int, int]]:
    """Parse "start-end,start-end" into an ordered list of inclusive ranges"""
    ranges = []
    for chunk in value.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        start, sep, end = chunk.partition("-")
        if not sep:
            raise ValueError(f"Invalid ifIndex range '{chunk}', expected start-end")
        start_value, end_value = int(start.strip()), int(end.strip())
        if start_value > end_value:
            raise ValueError(f"Invalid ifIndex range '{chunk}', start is greater than end")
        ranges.append((start_value, end_value))
    if not ranges:
        raise ValueError("At least one ifIndex range is required")
    return ranges


class Settings(BaseSettings):
    """Access layer settings with environment variable support"""

    # Application settings
    app_name: str = Field(default="OLT Access Layer", env="APP_NAME")
    environment: str = Field(default="development", env="ENVIRONMENT")

    # Telnet settings
    telnet_port: int = Field(default=23, env="TELNET_PORT")
    telnet_timeout: float = Field(default=10.0, env="TELNET_TIMEOUT")
    telnet_connect_timeout: float = Field(default=5.0, env="TELNET_CONNECT_TIMEOUT")
    telnet_login_timeout: float = Field(default=5.0, env="TELNET_LOGIN_TIMEOUT")
    telnet_enable_timeout: float = Field(default=2.0, env="TELNET_ENABLE_TIMEOUT")
    telnet_acquire_timeout: float = Field(default=10.0, env="TELNET_ACQUIRE_TIMEOUT")
    telnet_max_connections: int = Field(default=10, env="TELNET_MAX_CONNECTIONS")
    telnet_idle_timeout: float = Field(default=60.0, env="TELNET_IDLE_TIMEOUT")
    telnet_sweep_interval: float = Field(default=30.0, env="TELNET_SWEEP_INTERVAL")
    telnet_login_prompt: str = Field(default=r"(?i)(username|login)\s*:\s*$", env="TELNET_LOGIN_PROMPT")
    telnet_password_prompt: str = Field(default=r"(?i)password\s*:\s*$", env="TELNET_PASSWORD_PROMPT")
    telnet_shell_prompt: str = Field(default=r"[A-Za-z0-9_.\-]+[>#]\s*$", env="TELNET_SHELL_PROMPT")
    telnet_enable_prompt: str = Field(default=r"#\s*$", env="TELNET_ENABLE_PROMPT")
    telnet_pager_pattern: str = Field(default=r"-+\s*[Mm]ore\s*-+", env="TELNET_PAGER_PATTERN")
    telnet_max_output_bytes: int = Field(default=10240, env="TELNET_MAX_OUTPUT_BYTES")
    telnet_settle_delay: float = Field(default=0.0, env="TELNET_SETTLE_DELAY")
    telnet_discard_on_timeout: bool = Field(default=True, env="TELNET_DISCARD_ON_TIMEOUT")

    # SNMP settings
    snmp_default_community: str = Field(default="public", env="SNMP_DEFAULT_COMMUNITY")
    snmp_default_version: str = Field(default="2c", env="SNMP_DEFAULT_VERSION")
    snmp_port: int = Field(default=161, env="SNMP_PORT")
    snmp_timeout: float = Field(default=5.0, env="SNMP_TIMEOUT")
    snmp_retries: int = Field(default=3, env="SNMP_RETRIES")
    snmp_walk_max_repetitions: int = Field(default=20, env="SNMP_WALK_MAX_REPETITIONS")

    # Discovery settings
    discovery_ifindex_ranges: str = Field(default="10-200,200-500,500-1000", env="DISCOVERY_IFINDEX_RANGES")
    discovery_probe_batch_size: int = Field(default=10, env="DISCOVERY_PROBE_BATCH_SIZE")

    # Vendor settings
    default_vendor: str = Field(default="bdcom", env="DEFAULT_VENDOR")

    # Logging settings
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @validator("discovery_ifindex_ranges", pre=True)
    def validate_ifindex_ranges(cls, v):
        """Accept the comma-separated form or a list of pairs"""
        if isinstance(v, (list, tuple)):
            v = ",".join(f"{start}-{end}" for start, end in v)
        parse_ifindex_ranges(v)
        return v

    @validator("snmp_default_version")
    def validate_snmp_version(cls, v):
        if v not in ("1", "2c"):
            raise ValueError("SNMP version must be '1' or '2c'")
        return v

    @validator("log_level")
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env

    def get_ifindex_ranges(self) -> List[Tuple[int, int]]:
        """Get the ordered ifIndex search ranges used by ONU discovery"""
        return parse_ifindex_ranges(self.discovery_ifindex_ranges)

    def get_logging_config(self) -> dict:
        """Get logging configuration"""
        config = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": self.log_format
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": self.log_level
                }
            },
            "root": {
                "level": self.log_level,
                "handlers": ["console"]
            }
        }

        if self.log_file:
            config["handlers"]["file"] = {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "default",
                "filename": self.log_file,
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5,
                "level": self.log_level
            }
            config["root"]["handlers"].append("file")

        return config

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

# Global settings instance
settings = get_settings()
