#!/usr/bin/env python3
"""
Main entry point for the custodial token exchange.

Runs a scripted session against an in-memory token: two accounts fund the
exchange, one makes an order and the other fills it, then balances and
statistics are printed.
"""

import json
import sys

from token_exchange.config.settings import get_settings
from token_exchange.core import NATIVE, Asset, Exchange, InMemoryNativeGateway, InMemoryToken
from token_exchange.core.errors import ExchangeError
from token_exchange.utils.logger import ExchangeLogger, attach_audit_trail, create_audit_logger, get_logger, setup_logging
from token_exchange.utils.performance import get_performance_monitor

logger = get_logger(__name__)

TOKEN_ADDRESS = "0x" + "ab" * 20
UNIT = 10 ** 18


class ExchangeSession:
    """
    Demo session that wires an exchange to simulated collaborators.
    """

    def __init__(self):
        """Initialize the session."""
        self.settings = get_settings()

        setup_logging(
            level=self.settings.log_level,
            log_file=self.settings.log_file
        )

        self.token_asset = Asset.token(TOKEN_ADDRESS)
        self.token = InMemoryToken(TOKEN_ADDRESS, deployer="deployer")
        self.wallets = InMemoryNativeGateway()

        self.exchange = Exchange.from_settings(
            self.settings,
            tokens={self.token_asset: self.token},
            native_gateway=self.wallets,
            performance_monitor=get_performance_monitor(),
        )
        self.exchange.add_event_callback(ExchangeLogger().on_event)
        if self.settings.enable_audit_log:
            attach_audit_trail(self.exchange.notifier, create_audit_logger(self.settings.audit_log_file))

        logger.info("Exchange session initialized")

    def run(self) -> None:
        """Run the scripted session."""
        ex = self.exchange
        custody = self.settings.custody_account

        # maker offers 1 native unit for 10 tokens
        ex.deposit_native("maker", 1 * UNIT)
        order_id = ex.make_order("maker", self.token_asset, 10 * UNIT, NATIVE, 1 * UNIT)

        # filler funds the order amount plus the fee
        needed = 10 * UNIT + ex.fee_for(10 * UNIT)
        self.token.transfer("deployer", "filler", needed)
        self.token.approve("filler", custody, needed)
        ex.deposit_token(self.token_asset, "filler", needed)

        ex.fill_order("filler", order_id)
        ex.withdraw_native("filler", 1 * UNIT)
        ex.verify_conservation()

        for account in ("maker", "filler", ex.fee_account):
            logger.info(
                f"{account}: native={ex.balance_of(NATIVE, account)} "
                f"token={ex.balance_of(self.token_asset, account)}"
            )
        print(json.dumps(ex.get_statistics(), indent=2, default=str))


def main():
    """Main entry point."""
    try:
        session = ExchangeSession()
        session.run()
    except (ExchangeError, ValueError) as e:
        logger.error(f"Session failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
