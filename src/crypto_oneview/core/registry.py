"""Balance adapter registry with auto-registration pattern."""

from typing import Any, Protocol


class BalanceAdapterInterface(Protocol):
    """
    Interface that all balance adapters must implement.

    Attributes
    ----------
    provider : str
        Exchange id ('binance', 'okx') or chain id ('BTC', 'ETH', 'ADA')
    account_type : str | None
        Exchange sub-account handled by the adapter, None for chains
    label : str
        Human-readable category used in error messages

    Methods
    -------
    fetch(credential_or_address, api_key)
        Fetch normalized balance records

    """

    provider: str
    account_type: str | None
    label: str

    async def fetch(self, credential_or_address: Any, api_key: str | None = None) -> list[Any]:
        """
        Fetch normalized balance records.

        Parameters
        ----------
        credential_or_address : Any
            Decrypted exchange credential or wallet address
        api_key : str | None
            Optional explorer API key

        Returns
        -------
        list[BalanceRecord]
            Records with positive amounts

        """
        ...


class AdapterRegistry:
    """
    Registry for balance adapters with auto-registration.

    Adapters register themselves using the @AdapterRegistry.register decorator.
    Exchange adapters are keyed by (exchange, account type); chain adapters by
    (chain, None).

    """

    _adapters: dict[tuple[str, str | None], type] = {}

    @classmethod
    def register(cls, adapter_class: type) -> type:
        """
        Decorator to register a balance adapter.

        Parameters
        ----------
        adapter_class : type
            Adapter class to register

        Returns
        -------
        type
            The adapter class (for decorator chaining)

        Examples
        --------
        >>> @AdapterRegistry.register
        ... class BinanceSpotAdapter(BinanceAdapter):
        ...     provider = "binance"
        ...     account_type = "spot"

        """
        if not getattr(adapter_class, "provider", None):
            msg = f"Adapter {adapter_class.__name__} must define 'provider' attribute"
            raise ValueError(msg)

        key = (adapter_class.provider, getattr(adapter_class, "account_type", None))
        cls._adapters[key] = adapter_class
        return adapter_class

    @classmethod
    def get_exchange_adapters(cls, exchange: str) -> list[type]:
        """
        Get every account-type adapter registered for an exchange.

        Parameters
        ----------
        exchange : str
            Exchange identifier

        Returns
        -------
        list[type]
            Adapter classes in registration order

        """
        return [
            adapter_class
            for (provider, account_type), adapter_class in cls._adapters.items()
            if provider == exchange and account_type is not None
        ]

    @classmethod
    def get_chain_adapter(cls, chain: str) -> type | None:
        """
        Get the adapter for a chain.

        Parameters
        ----------
        chain : str
            Chain identifier

        Returns
        -------
        type | None
            Adapter class or None if the chain is unsupported

        """
        return cls._adapters.get((chain, None))

    @classmethod
    def list_exchanges(cls) -> list[str]:
        """List exchanges with at least one registered account type."""
        return list(dict.fromkeys(provider for provider, account_type in cls._adapters if account_type is not None))

    @classmethod
    def list_chains(cls) -> list[str]:
        """List chains with a registered adapter."""
        return [provider for provider, account_type in cls._adapters if account_type is None]

    @classmethod
    def clear(cls) -> None:
        """Clear all registered adapters (useful for testing)."""
        cls._adapters.clear()
