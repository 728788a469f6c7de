"""
chains/registry.py - Network registry with per-network endpoint failover.

Each configured network owns an EndpointCursor: an index into its ordered
endpoint list that only moves forward and stops at the last endpoint.
The cursor is shared by every caller in the process; `report_failure` is the
only way to move it.

Connections are built against the endpoint under the cursor. Providers are
cached per (network, endpoint) so retry statistics survive across calls.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from eth_account.signers.local import LocalAccount

from chains.contracts import RouterContract, TokenContract
from chains.providers import RPCProvider
from chains.signer import TransactionSigner
from core.constants import ErrorCode
from core.exceptions import ConfigError
from core.logging import get_logger, log_failover
from core.models import EngineSettings, NetworkConfig

logger = get_logger("monirouter.chains.registry")

ProviderFactory = Callable[[NetworkConfig, str, EngineSettings], RPCProvider]
SignerFactory = Callable[[RPCProvider, LocalAccount, NetworkConfig], TransactionSigner]


class EndpointCursor:
    """Monotonic index into a network's endpoint list (no wraparound)."""

    def __init__(self, network: str, endpoints: Iterable[str]):
        self.network = network
        self._endpoints = tuple(endpoints)
        if not self._endpoints:
            raise ConfigError(f"Network {network} has no RPC endpoints", details={"network": network})
        self._position = 0

    @property
    def position(self) -> int:
        return self._position

    @property
    def endpoint(self) -> str:
        return self._endpoints[self._position]

    @property
    def endpoints(self) -> tuple[str, ...]:
        return self._endpoints

    @property
    def exhausted(self) -> bool:
        """True once the cursor sits on the last endpoint."""
        return self._position >= len(self._endpoints) - 1

    def advance(self) -> bool:
        """
        Move to the next endpoint.

        Returns:
            True if the cursor moved, False if already on the last endpoint
        """
        if self.exhausted:
            return False
        self._position += 1
        return True


@dataclass
class Connection:
    """Read/write handles for one network at its current endpoint."""
    network: str
    endpoint: str
    read: RPCProvider
    write: Optional[TransactionSigner]
    config: NetworkConfig

    @property
    def token(self) -> TokenContract:
        return TokenContract(self.read, self.config.token_address)

    @property
    def router(self) -> RouterContract:
        return RouterContract(self.read, self.config.router_address)


def default_provider_factory(config: NetworkConfig, url: str, settings: EngineSettings) -> RPCProvider:
    return RPCProvider(
        network=config.name,
        url=url,
        timeout_seconds=settings.rpc_timeout_seconds,
        retry_count=settings.rpc_retry_count,
        retry_delay_ms=settings.rpc_retry_delay_ms,
    )


def default_signer_factory(
    provider: RPCProvider,
    account: LocalAccount,
    config: NetworkConfig,
) -> TransactionSigner:
    return TransactionSigner(provider, account, config.chain_id)


class NetworkRegistry:
    """
    Static network configuration plus the process-wide endpoint cursors.

    Example:
        registry = NetworkRegistry(load_networks(), load_engine_settings(), account)
        conn = registry.get_connection("base")
        balance = await conn.token.balance_of(sender)
    """

    def __init__(
        self,
        networks: Dict[str, NetworkConfig],
        settings: Optional[EngineSettings] = None,
        account: Optional[LocalAccount] = None,
        provider_factory: Optional[ProviderFactory] = None,
        signer_factory: Optional[SignerFactory] = None,
    ):
        if not networks:
            raise ConfigError("No networks configured")
        self._configs = dict(networks)
        self.settings = settings or EngineSettings()
        self.account = account
        self._provider_factory = provider_factory or default_provider_factory
        self._signer_factory = signer_factory or default_signer_factory
        self._cursors = {
            name: EndpointCursor(name, config.rpcs)
            for name, config in self._configs.items()
        }
        self._providers: Dict[tuple[str, str], RPCProvider] = {}

    @property
    def networks(self) -> List[str]:
        """Network names in configuration order."""
        return list(self._configs)

    @property
    def operator_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def config(self, network: str) -> NetworkConfig:
        """
        Raises:
            ConfigError: If the network is not configured
        """
        if network not in self._configs:
            raise ConfigError(
                f"Unknown network: {network}",
                ErrorCode.UNKNOWN_NETWORK,
                {"network": network, "known": self.networks},
            )
        return self._configs[network]

    def _provider(self, config: NetworkConfig, url: str) -> RPCProvider:
        key = (config.name, url)
        if key not in self._providers:
            self._providers[key] = self._provider_factory(config, url, self.settings)
        return self._providers[key]

    def get_connection(self, network: str) -> Connection:
        """Handles bound to the endpoint under the network's cursor."""
        config = self.config(network)
        url = self._cursors[network].endpoint
        provider = self._provider(config, url)
        signer = self._signer_factory(provider, self.account, config) if self.account else None
        return Connection(network=network, endpoint=url, read=provider, write=signer, config=config)

    def report_failure(self, network: str) -> bool:
        """
        Advance the network's cursor after a failed call.

        Returns:
            True if a fresh endpoint is now selected, False if the cursor was
            already on the last endpoint
        """
        cursor = self._cursors[self.config(network).name]
        if not cursor.advance():
            logger.warning(
                f"RPC failover [{network}] exhausted, staying on {cursor.endpoint}",
                extra={"context": {"network": network, "endpoint_index": cursor.position}},
            )
            return False
        log_failover(logger, network, cursor.position, cursor.endpoint)
        return True

    def cursor_position(self, network: str) -> int:
        return self._cursors[self.config(network).name].position

    def current_endpoint(self, network: str) -> str:
        return self._cursors[self.config(network).name].endpoint

    def endpoints_remaining(self, network: str) -> int:
        """Endpoints after the current one that have not been tried."""
        cursor = self._cursors[self.config(network).name]
        return len(cursor.endpoints) - 1 - cursor.position

    def get_status(self) -> Dict[str, dict]:
        """Cursor position and per-endpoint statistics for every network."""
        status = {}
        for name, cursor in self._cursors.items():
            endpoints = {}
            for url in cursor.endpoints:
                provider = self._providers.get((name, url))
                if provider:
                    endpoints[url] = provider.get_stats_summary()
            status[name] = {
                "endpoint_index": cursor.position,
                "endpoint": cursor.endpoint,
                "endpoint_count": len(cursor.endpoints),
                "stats": endpoints,
            }
        return status

    async def close(self) -> None:
        """Close all cached providers."""
        for provider in self._providers.values():
            await provider.close()
        self._providers.clear()
