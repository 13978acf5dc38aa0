"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LoanCalcConfig(BaseSettings):
    """Loan calculation subsystem configuration"""
    
    # Remote calculation service
    calculation_service_url: str = "http://localhost:5000/api"
    calculation_service_timeout: float = 10.0
    calculation_service_api_key: str = ""
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Business rules configuration (decimal strings, parsed by callers)
    gst_rate: str = "0.18"
    pre_close_fee_rate: str = "0.10"
    extension_fee_rate: str = "0.21"
    default_repayment_days: int = 15
    
    # Extension rules
    max_extensions: int = 4
    extension_window_before_days: int = 5
    extension_window_after_days: int = 15
    extension_fixed_days: int = 15
    
    # Feature flags
    enable_local_preview: bool = True
    
    class Config:
        env_prefix = "LOANCALC_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LoanCalcConfig()


def get_config() -> LoanCalcConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LoanCalcConfig:
    """Reload configuration from environment"""
    global config
    config = LoanCalcConfig()
    return config
