"""
PulseTrade - Main Application

Wires configuration, storage and services together and provides the
`pulsetrade` console entry point.
"""

import argparse
import logging
import sys
from typing import Any, Dict, Optional

from pulsetrade.account_service import AccountService
from pulsetrade.app import PulseTradeApp
from pulsetrade.app_config import AppConfig
from pulsetrade.auth import Auth
from pulsetrade.bank_account_service import BankAccountService
from pulsetrade.dashboard_api import TradingAPI
from pulsetrade.db import Database, DatabaseConnectionError
from pulsetrade.decorators import log_execution
from pulsetrade.encryption import Encryption
from pulsetrade.fee_calculator import FeeCalculator
from pulsetrade.ledger import BalanceLedger
from pulsetrade.logging_config import configure_logging
from pulsetrade.memory_storage import MemoryStorage
from pulsetrade.notification_manager import NotificationManager
from pulsetrade.price_oracle import PriceOracle
from pulsetrade.scheduler import Scheduler
from pulsetrade.settings_service import SettingsService
from pulsetrade.settlement_poller import SettlementPoller
from pulsetrade.storage import DatabaseStorage
from pulsetrade.trade_manager import TradeLifecycleManager
from pulsetrade.wallet_service import WalletService

logger = logging.getLogger(__name__)

def create_storage(config: AppConfig):
    """
    Build the configured storage backend.

    Returns:
        Tuple of (storage, database or None)
    """
    backend = config.get('storage.backend', 'database')
    if backend == 'memory':
        logger.warning("Using in-memory storage, data is lost on restart")
        return MemoryStorage(), None
    if backend != 'database':
        raise ValueError(f"Unknown storage backend: {backend}")
        
    db = Database(
        config.db_url,
        max_connections=config.get('database.max_connections', 20),
        connection_timeout=config.get('database.connection_timeout', 30),
    )
    db.initialize()
    return DatabaseStorage(db), db

@log_execution
def build_components(config: AppConfig, storage=None, oracle=None) -> Dict[str, Any]:
    """
    Construct every service without starting any thread.

    Args:
        config: Application configuration
        storage: Storage to use instead of the configured backend
        oracle: Price source to use instead of the CoinGecko client

    Returns:
        Dict[str, Any]: Components by name
    """
    db = None
    if storage is None:
        storage, db = create_storage(config)
        
    settings_service = SettingsService(storage)
    fee_calculator = FeeCalculator(config, settings_service)
    ledger = BalanceLedger(storage)
    oracle = oracle or PriceOracle(config)
    notifications = NotificationManager()
    
    encryption = Encryption(
        config.get('security.jwt_secret'),
        token_expiry=int(config.get('security.token_expiry', 7 * 24 * 3600)),
    )
    if config.get('security.jwt_secret') == 'change-me':
        logger.warning("JWT secret is the default value, set JWT_SECRET in production")
    auth = Auth(storage, encryption, settings_service)
    
    trade_manager = TradeLifecycleManager(storage, ledger, oracle, notifications, settings_service, fee_calculator)
    wallet_service = WalletService(storage, ledger, notifications, settings_service, fee_calculator)
    bank_account_service = BankAccountService(storage, int(config.get('bank_accounts.max_per_user', 2)))
    account_service = AccountService(storage, ledger, auth)
    
    scheduler = Scheduler()
    settlement_poller = SettlementPoller(storage, trade_manager, interval=float(config.get('trading.settlement_interval', 5)))
    
    api = TradingAPI(
        auth, account_service, trade_manager, wallet_service, bank_account_service,
        settings_service, oracle, notifications,
        host=config.get('server.host', '127.0.0.1'),
        port=int(config.get('server.port', 5000)),
        cors_origins=config.get('server.cors_origins'),
    )
    
    return {
        "db": db,
        "storage": storage,
        "settings_service": settings_service,
        "ledger": ledger,
        "oracle": oracle,
        "notifications": notifications,
        "auth": auth,
        "trade_manager": trade_manager,
        "wallet_service": wallet_service,
        "bank_account_service": bank_account_service,
        "account_service": account_service,
        "scheduler": scheduler,
        "settlement_poller": settlement_poller,
        "api": api,
    }

def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(prog="pulsetrade", description="PulseTrade trading simulation server")
    parser.add_argument("--config", help="JSON configuration file")
    args = parser.parse_args(argv)
    
    config = AppConfig(args.config) if args.config else AppConfig.get_instance()
    configure_logging(config)
    logger.info(f"Initializing {config.get('app.name')} {config.get('app.version')} "
                f"({config.get('app.environment')})")
    
    try:
        components = build_components(config)
    except DatabaseConnectionError as e:
        logger.critical(f"Database unavailable: {str(e)}")
        return 1
    except ValueError as e:
        logger.critical(f"Invalid configuration: {str(e)}")
        return 1
        
    components["auth"].ensure_admin_user(
        config.get('admin.username', 'admin'),
        config.get('admin.email', 'admin@example.com'),
        config.get('admin.password'),
        config.get('admin.initial_balance', '0'),
    )
    
    app = PulseTradeApp(
        components["notifications"],
        components["scheduler"],
        components["api"],
        components["settlement_poller"],
        db=components["db"],
    )
    app.install_signal_handlers()
    app.start()
    logger.info("PulseTrade is running. Press Ctrl+C to stop.")
    app.wait()
    return 0

if __name__ == "__main__":
    sys.exit(main())
