"""
Application configuration
"""

import os
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Environment variable -> (config key, type)
ENV_OVERRIDES = {
    "DATABASE_URL": ("database.url", str),
    "STORAGE_BACKEND": ("storage.backend", str),
    "HOST": ("server.host", str),
    "PORT": ("server.port", int),
    "ADMIN_PASSWORD": ("admin.password", str),
    "PRICE_FEED_URL": ("price_feed.base_url", str),
    "ENVIRONMENT": ("app.environment", str),
    "LOG_LEVEL": ("logging.level", str),
    "JWT_SECRET": ("security.jwt_secret", str),
}

class AppConfig:
    """
    Application configuration
    """
    _instance = None
    
    @classmethod
    def get_instance(cls):
        """
        Get singleton instance
        
        Returns:
            AppConfig: Singleton instance
        """
        if cls._instance is None:
            cls._instance = cls(os.environ.get('PULSETRADE_CONFIG'))
        return cls._instance
    
    def __init__(self, config_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        self.config = {}
        self.config_file = config_file
        
        # Load configuration
        self._load_config()
        
        if overrides:
            self._merge_config(self.config, overrides)
        
        # Database URL
        self.db_url = self.get('database.url')
    
    def _load_config(self):
        """
        Load configuration from file and environment
        """
        # Default configuration
        self.config = {
            "app": {
                "name": "PulseTrade",
                "version": "1.0.0",
                "environment": "development"
            },
            "database": {
                "url": "sqlite:///pulsetrade.db",
                "max_connections": 20,
                "connection_timeout": 30
            },
            "storage": {
                "backend": "database"
            },
            "server": {
                "host": "127.0.0.1",
                "port": 5000,
                "cors_origins": ["*"]
            },
            "admin": {
                "username": "admin",
                "email": "admin@example.com",
                "password": "",
                "initial_balance": "1000000"
            },
            "trading": {
                "settlement_interval": 5,
                "default_profit_percentage": 30,
                "profit_by_duration": {"60": 30, "120": 40, "300": 50}
            },
            "bank_accounts": {
                "max_per_user": 2
            },
            "price_feed": {
                "base_url": "https://api.coingecko.com/api/v3",
                "vs_currency": "usd",
                "per_page": 20,
                "cache_ttl": 60,
                "max_retries": 5,
                "retry_delay": 2.0,
                "max_retry_delay": 60,
                "failure_cooldown": 30,
                "request_timeout": 10
            },
            "logging": {
                "level": "INFO",
                "file": "logs/pulsetrade.log",
                "max_bytes": 10 * 1024 * 1024,
                "backup_count": 5
            },
            "security": {
                "jwt_secret": "change-me",
                "token_expiry": 7 * 24 * 3600
            }
        }
        
        
        if self.config_file:
            self._load_file(self.config_file)
            
        self._load_from_env()
    
    def _load_file(self, path: str):
        """
        Merge a JSON configuration file over the defaults; a missing or
        unreadable file leaves the defaults in place
        """
        if not os.path.exists(path):
            logger.warning(f"Configuration file {path} not found, using defaults")
            return
        try:
            with open(path, 'r') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading configuration file {path}: {str(e)}")
            return
        if not isinstance(file_config, dict):
            logger.error(f"Configuration file {path} must contain a JSON object")
            return
        self._merge_config(self.config, file_config)
        logger.info(f"Configuration loaded from {path}")
    
    def _merge_config(self, target, source):
        """
        Recursively merge dictionaries
        
        Args:
            target: Target dictionary
            source: Source dictionary
        """
        for key, value in source.items():
            if isinstance(value, dict) and key in target and isinstance(target[key], dict):
                self._merge_config(target[key], value)
            else:
                target[key] = value
    
    def _load_from_env(self):
        """
        Apply ENV_OVERRIDES for every variable that is set
        """
        for env_name, (key, cast) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                self.set(key, cast(raw))
            except ValueError:
                logger.error(f"Ignoring {env_name}={raw!r}: not a valid {cast.__name__}")
    
    def get(self, key, default=None):
        """
        Get configuration value
        
        Args:
            key: Configuration key (dot notation)
            default: Default value if key not found
            
        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config
        
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
                
        return value
    
    def set(self, key: str, value: Any):
        """Set a configuration value by dot-notation key, creating sections as needed"""
        *sections, name = key.split('.')
        target = self.config
        for section in sections:
            target = target.setdefault(section, {})
        target[name] = value
        if key == 'database.url':
            self.db_url = value
