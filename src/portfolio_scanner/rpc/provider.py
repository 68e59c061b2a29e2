"""Native currency balance reader using Ape's network management."""

import logging
import time
from collections.abc import Callable
from typing import Any

from ape import networks
from eth_utils import to_checksum_address

from portfolio_scanner.rpc.retry import RetryConfig, with_retry

logger = logging.getLogger(__name__)


class ApeNativeBalanceProvider:
    """
    Reads native currency balances through Ape's provider system.

    Ape picks the configured node provider (e.g. Infura when
    WEB3_INFURA_PROJECT_ID is set) for the requested network. Balance reads
    are retried with the same backoff as HTTP calls.

    Parameters
    ----------
    network_choice : str
        Ape network choice (e.g. 'ethereum:mainnet')
    retry_config : RetryConfig | None
        Retry configuration for balance reads
    sleep : Callable[[float], None]
        Sleep function used between retries

    """

    def __init__(
        self,
        network_choice: str = "ethereum:mainnet",
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.network_choice = network_choice
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self._network: Any = None
        self._provider: Any = None

    @property
    def is_connected(self) -> bool:
        return self._provider is not None

    def connect(self) -> None:
        """
        Enter the Ape network context for ``network_choice``.

        Raises
        ------
        RuntimeError
            If Ape cannot connect to the network

        """
        if self.is_connected:
            return
        try:
            self._network = networks.parse_network_choice(self.network_choice)
            self._network.__enter__()
            self._provider = networks.provider
        except Exception as e:
            self._network = None
            msg = f"Could not connect to {self.network_choice} to read the ETH balance: {e}"
            raise RuntimeError(msg) from e
        logger.debug("Connected to %s", self.network_choice)

    def disconnect(self) -> None:
        """Leave the Ape network context, if one was entered."""
        network, self._network, self._provider = self._network, None, None
        if network is None:
            return
        try:
            network.__exit__(None, None, None)
        except Exception as e:
            logger.debug("Ignoring error while leaving %s: %s", self.network_choice, e)

    def get_balance(self, account: str) -> int:
        """
        Get the native balance of an account in wei.

        Parameters
        ----------
        account : str
            Account address (any case)

        Returns
        -------
        int
            Balance in wei

        Raises
        ------
        RuntimeError
            If ``connect`` has not been called

        """
        if not self.is_connected:
            msg = f"Not connected to {self.network_choice}; call connect() first"
            raise RuntimeError(msg)

        address = to_checksum_address(account)

        @with_retry(self.retry_config, sleep=self._sleep)
        def read_balance() -> int:
            return int(self._provider.get_balance(address))

        return read_balance()

    def __enter__(self) -> "ApeNativeBalanceProvider":
        self.connect()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        self.disconnect()
