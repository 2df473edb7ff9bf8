# pulsetrade/dashboard_api.py
import asyncio
import logging
import threading
import socket
import uvicorn
from fastapi import FastAPI, Depends, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool
from typing import Any, Dict, Optional, Union

from pulsetrade import __version__
from pulsetrade.errors import (
    AuthenticationError, InsufficientBalance, InvalidStateTransition, MalformedRecord, NotFound,
    PermissionDenied, PulseTradeError, UpstreamUnavailable, ValidationError
)
from pulsetrade.helpers import safe_json_loads
from pulsetrade.permissions import Capability, require_capability
from pulsetrade.user import User

logger = logging.getLogger(__name__)

# Looked up along the exception's MRO, so subclasses inherit their parent's status
ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    InsufficientBalance: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    UpstreamUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    MalformedRecord: status.HTTP_500_INTERNAL_SERVER_ERROR,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
}

Amount = Union[str, int, float]

class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    full_name: Optional[str] = Field(None, alias="fullName")
    display_name: Optional[str] = Field(None, alias="displayName")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")

class LoginRequest(BaseModel):
    username: str
    password: str

class ProfileUpdateRequest(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = Field(None, alias="fullName")
    display_name: Optional[str] = Field(None, alias="displayName")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    avatar_url: Optional[str] = Field(None, alias="avatarUrl")

class ChangePasswordRequest(BaseModel):
    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")

class TradeRequest(BaseModel):
    crypto_id: str = Field(alias="cryptoId")
    amount: Amount
    direction: str
    duration: Union[int, str]
    entry_price: Optional[Amount] = Field(None, alias="entryPrice")
    profit_percentage: Optional[Amount] = Field(None, alias="profitPercentage")

class TradeStatusRequest(BaseModel):
    status: str

class PredeterminedResultRequest(BaseModel):
    result: Optional[str] = None

class DepositRequest(BaseModel):
    amount: Amount
    method: str
    payment_proof: Optional[str] = Field(None, alias="paymentProofBase64")

class WithdrawRequest(BaseModel):
    amount: Amount
    method: str
    bank_name: Optional[str] = Field(None, alias="bankName")
    bank_account: Optional[str] = Field(None, alias="bankAccount")

class SavedAccountWithdrawRequest(BaseModel):
    amount: Amount
    bank_account_id: int = Field(alias="bankAccountId")

class TransactionReviewRequest(BaseModel):
    status: str
    note: Optional[str] = None

class BankAccountRequest(BaseModel):
    bank_name: str = Field(alias="bankName")
    account_number: str = Field(alias="accountNumber")
    account_name: str = Field(alias="accountName")
    is_default: bool = Field(False, alias="isDefault")

class BankAccountUpdateRequest(BaseModel):
    bank_name: Optional[str] = Field(None, alias="bankName")
    account_number: Optional[str] = Field(None, alias="accountNumber")
    account_name: Optional[str] = Field(None, alias="accountName")
    is_default: Optional[bool] = Field(None, alias="isDefault")

class AdminUserUpdateRequest(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = Field(None, alias="fullName")
    display_name: Optional[str] = Field(None, alias="displayName")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    role: Optional[str] = None
    balance: Optional[Amount] = None
    password: Optional[str] = None

class TradingAPI:
    """
    HTTP and WebSocket surface for PulseTrade
    Exposes the trading, wallet and administration services over REST and
    relays notifications to connected clients
    """
    def __init__(self, auth, account_service, trade_manager, wallet_service, bank_account_service,
                 settings_service, oracle, notifications, host="127.0.0.1", port=5000,
                 cors_origins=None):
        self.auth = auth
        self.account_service = account_service
        self.trade_manager = trade_manager
        self.wallet_service = wallet_service
        self.bank_account_service = bank_account_service
        self.settings_service = settings_service
        self.oracle = oracle
        self.notifications = notifications
        self.host = host
        self.port = port
        self.cors_origins = cors_origins or ["*"]
        self.server = None
        self.app = self._create_app()
        self.server_thread = None
        self.running = False
        self.alternative_ports = [port + offset for offset in range(1, 6)]

        logger.info("Trading API initialized")

    def _create_app(self):
        """Create the FastAPI application with all routes"""
        app = FastAPI(title="PulseTrade API", version=__version__)

        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @app.exception_handler(PulseTradeError)
        async def domain_error_handler(request: Request, exc: PulseTradeError):
            status_code = next(
                (ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS),
                status.HTTP_500_INTERNAL_SERVER_ERROR
            )
            if status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {str(exc)}")
            return JSONResponse(status_code=status_code, content={"message": str(exc)})

        @app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            messages = [f"{'.'.join(str(p) for p in err['loc'][1:])}: {err['msg']}" for err in exc.errors()]
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "; ".join(messages)})

        oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login")

        def current_user(token: str = Depends(oauth2_scheme)) -> User:
            return self.auth.verify_token(token)

        # Accounts

        @app.post("/api/register", status_code=status.HTTP_201_CREATED)
        def register(body: RegisterRequest):
            user = self.auth.register(
                body.username, body.email, body.password,
                full_name=body.full_name, display_name=body.display_name, phone_number=body.phone_number
            )
            return {"user": user.to_dict(), "token": self.auth.generate_token(user.id)}

        @app.post("/api/login")
        def login(body: LoginRequest):
            user, token = self.auth.login(body.username, body.password)
            return {"user": user.to_dict(), "token": token, "access_token": token, "token_type": "bearer"}

        @app.get("/api/user")
        def get_current_user(user: User = Depends(current_user)):
            return user.to_dict()

        @app.patch("/api/user/profile")
        def update_profile(body: ProfileUpdateRequest, user: User = Depends(current_user)):
            return self.account_service.update_profile(user.id, body.model_dump(exclude_none=True)).to_dict()

        @app.post("/api/user/change-password")
        def change_password(body: ChangePasswordRequest, user: User = Depends(current_user)):
            self.auth.change_password(user.id, body.current_password, body.new_password)
            return {"message": "Password changed successfully"}

        # Market data

        @app.get("/api/crypto/market")
        def get_market(user: User = Depends(current_user)):
            return self.oracle.get_market_data()

        @app.get("/api/crypto/{crypto_id}")
        def get_crypto(crypto_id: str, user: User = Depends(current_user)):
            crypto = self.oracle.get_crypto_by_id(crypto_id)
            if crypto is None:
                raise NotFound(crypto_id, message=f"Cryptocurrency {crypto_id} not found")
            return crypto

        # Trades

        @app.post("/api/trades", status_code=status.HTTP_201_CREATED)
        def open_trade(body: TradeRequest, user: User = Depends(current_user)):
            trade = self.trade_manager.open(
                user.id, body.crypto_id, body.amount, body.direction, body.duration,
                entry_price=body.entry_price, profit_percentage=body.profit_percentage
            )
            return trade.to_dict()

        @app.get("/api/trades")
        def list_trades(user: User = Depends(current_user)):
            return [trade.to_dict() for trade in self.trade_manager.list_trades(user.id)]

        @app.patch("/api/trades/{trade_id}")
        def update_trade_status(trade_id: int, body: TradeStatusRequest, user: User = Depends(current_user)):
            return self.trade_manager.update_status(user, trade_id, body.status).to_dict()

        @app.patch("/api/admin/trades/{trade_id}/predetermined")
        def set_predetermined_result(trade_id: int, body: PredeterminedResultRequest,
                                     user: User = Depends(current_user)):
            trade = self.trade_manager.set_predetermined(user, trade_id, body.result)
            return trade.to_dict(include_predetermined=True)

        @app.get("/api/admin/trades")
        def list_all_trades(user: User = Depends(current_user)):
            return [trade.to_dict(include_predetermined=True) for trade in self.trade_manager.list_all_trades(user)]

        # Wallet

        @app.post("/api/wallet/deposit")
        def deposit(body: DepositRequest, user: User = Depends(current_user)):
            transaction = self.wallet_service.request_deposit(user.id, body.amount, body.method, body.payment_proof)
            return {
                "success": True,
                "message": "Deposit request submitted successfully",
                "transaction": transaction.to_dict(),
            }

        @app.post("/api/wallet/withdraw")
        def withdraw(body: WithdrawRequest, user: User = Depends(current_user)):
            transaction = self.wallet_service.request_withdrawal(
                user.id, body.amount, body.method, bank_name=body.bank_name, bank_account=body.bank_account
            )
            return {
                "success": True,
                "message": "Withdrawal request submitted successfully",
                "transaction": transaction.to_dict(),
            }

        @app.post("/api/wallet/withdraw-with-saved-account")
        def withdraw_to_saved_account(body: SavedAccountWithdrawRequest, user: User = Depends(current_user)):
            transaction = self.wallet_service.request_withdrawal_to_saved_account(
                user.id, body.amount, body.bank_account_id
            )
            return {
                "success": True,
                "message": "Withdrawal request submitted successfully",
                "transaction": transaction.to_dict(),
            }

        @app.get("/api/wallet/transactions")
        def list_transactions(user: User = Depends(current_user)):
            return [tx.to_dict() for tx in self.wallet_service.list_transactions(user.id)]

        @app.get("/api/admin/transactions")
        def list_all_transactions(user: User = Depends(current_user)):
            return [tx.to_dict(include_proof=True) for tx in self.wallet_service.list_all_transactions(user)]

        @app.patch("/api/admin/transactions/{transaction_id}")
        def review_transaction(transaction_id: int, body: TransactionReviewRequest,
                               user: User = Depends(current_user)):
            transaction = self.wallet_service.review_transaction(user, transaction_id, body.status, body.note)
            return transaction.to_dict()

        @app.get("/api/deposit-accounts")
        def deposit_accounts(user: User = Depends(current_user)):
            return self.settings_service.deposit_accounts()

        # Bank accounts

        @app.get("/api/bank-accounts")
        def list_bank_accounts(user: User = Depends(current_user)):
            return [account.to_dict() for account in self.bank_account_service.list_for_user(user.id)]

        @app.post("/api/bank-accounts", status_code=status.HTTP_201_CREATED)
        def create_bank_account(body: BankAccountRequest, user: User = Depends(current_user)):
            account = self.bank_account_service.create(
                user.id, body.bank_name, body.account_number, body.account_name, body.is_default
            )
            return account.to_dict()

        @app.patch("/api/bank-accounts/{account_id}")
        def update_bank_account(account_id: int, body: BankAccountUpdateRequest,
                                user: User = Depends(current_user)):
            return self.bank_account_service.update(user, account_id, body.model_dump(exclude_none=True)).to_dict()

        @app.patch("/api/bank-accounts/{account_id}/default")
        def set_default_bank_account(account_id: int, user: User = Depends(current_user)):
            return self.bank_account_service.set_default(user, account_id).to_dict()

        @app.delete("/api/bank-accounts/{account_id}")
        def delete_bank_account(account_id: int, user: User = Depends(current_user)):
            self.bank_account_service.delete(user, account_id)
            return {"success": True}

        @app.patch("/api/admin/bank-accounts/{account_id}")
        def admin_update_bank_account(account_id: int, body: BankAccountUpdateRequest,
                                      user: User = Depends(current_user)):
            require_capability(user, Capability.MANAGE_BANK_ACCOUNTS)
            return self.bank_account_service.update(user, account_id, body.model_dump(exclude_none=True)).to_dict()

        # Users

        @app.get("/api/admin/users")
        def list_users(user: User = Depends(current_user)):
            return [u.to_dict() for u in self.account_service.list_users(user)]

        @app.patch("/api/admin/users/{user_id}")
        def admin_update_user(user_id: int, body: AdminUserUpdateRequest, user: User = Depends(current_user)):
            return self.account_service.admin_update_user(user, user_id, body.model_dump(exclude_none=True)).to_dict()

        @app.get("/api/admin/users/{user_id}/bank-accounts")
        def list_user_bank_accounts(user_id: int, user: User = Depends(current_user)):
            require_capability(user, Capability.MANAGE_BANK_ACCOUNTS)
            self.account_service.get_user(user_id)
            return [account.to_dict() for account in self.bank_account_service.list_for_user(user_id)]

        # Settings

        @app.get("/api/admin/settings")
        def get_settings(user: User = Depends(current_user)):
            require_capability(user, Capability.MANAGE_SETTINGS)
            return self.settings_service.get_all()

        @app.post("/api/admin/settings")
        def update_settings(values: Dict[str, Any], user: User = Depends(current_user)):
            return self.settings_service.update(user, values)

        @app.get("/health")
        def health_check():
            """Public health check endpoint that doesn't require authentication"""
            return {"status": "ok", "version": __version__}

        @app.websocket("/ws")
        async def websocket_endpoint(websocket: WebSocket):
            await self._serve_websocket(websocket)

        return app

    async def _serve_websocket(self, websocket: WebSocket):
        """
        Bridge one WebSocket connection to the notification manager.

        The connection receives broadcasts immediately; sending
        {"event": "join-user-room", "token": ...} adds that user's room.
        """
        await websocket.accept()
        loop = asyncio.get_running_loop()
        outbox: asyncio.Queue = asyncio.Queue()

        def deliver(event: str, payload: Dict[str, Any]):
            # Called from the notification thread
            loop.call_soon_threadsafe(outbox.put_nowait, {"event": event, "data": payload})

        subscription_id = self.notifications.subscribe(deliver)

        async def receive_loop():
            while True:
                message = safe_json_loads(await websocket.receive_text(), {})
                if not isinstance(message, dict) or message.get("event") != "join-user-room":
                    continue
                try:
                    user = await run_in_threadpool(self.auth.verify_token, message.get("token"))
                except AuthenticationError as e:
                    await outbox.put({"event": "error", "data": {"message": str(e)}})
                    continue
                self.notifications.join_room(subscription_id, user.id)
                await outbox.put({"event": "joined-user-room", "data": {"userId": user.id}})

        async def send_loop():
            while True:
                await websocket.send_json(await outbox.get())

        tasks = [asyncio.ensure_future(receive_loop()), asyncio.ensure_future(send_loop())]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                error = task.exception()
                if error is not None and not isinstance(error, WebSocketDisconnect):
                    logger.error(f"WebSocket connection {subscription_id} failed: {str(error)}")
        finally:
            for task in tasks:
                task.cancel()
            self.notifications.unsubscribe(subscription_id)
            logger.debug(f"WebSocket connection {subscription_id} closed")

    def _is_port_available(self, host, port):
        """Check if a port is available by attempting to bind to it"""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((host, port))
                return True
            except OSError:
                return False

    def _find_available_port(self):
        """Find an available port starting with the configured port and fallback to alternatives"""
        if self._is_port_available(self.host, self.port):
            return self.port

        logger.warning(f"Port {self.port} is not available. Trying alternative ports.")

        for port in self.alternative_ports:
            if self._is_port_available(self.host, port):
                logger.info(f"Found available port: {port}")
                return port

        error_msg = f"No available ports found. Tried {self.port} and {self.alternative_ports}"
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    def start_server(self):
        """Start the API server in a separate thread"""
        if self.running:
            logger.warning("API server is already running")
            return

        port = self._find_available_port()
        config = uvicorn.Config(
            app=self.app,
            host=self.host,
            port=port,
            log_level="info",
            access_log=False,
        )
        self.server = uvicorn.Server(config)

        def run_server():
            try:
                logger.info(f"Starting API server on {self.host}:{port}")
                self.server.run()
            except Exception as e:
                logger.error(f"Error in API server: {str(e)}")
            finally:
                self.running = False

        self.server_thread = threading.Thread(target=run_server, daemon=True, name="api-server")
        self.running = True
        self.server_thread.start()
        logger.info("API server started")

    def stop(self):
        """Ask uvicorn to finish in-flight requests and exit"""
        if not self.running:
            logger.warning("API server is not running")
            return

        if self.server is not None:
            self.server.should_exit = True
        if self.server_thread:
            self.server_thread.join(timeout=10)

        self.running = False
        logger.info("API server stopped")
