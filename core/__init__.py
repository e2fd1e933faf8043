"""
Core Package

Contains the exchange-agnostic core logic including:
- CurrencyPair: canonical pair model and per-exchange pair formats
- Nonce / RequestSigner: strictly increasing nonces and HMAC request signing
- MarketDataCache: latest order book and ticker per (exchange, pair, asset type)
- OrderStatusNormalizer: raw exchange order statuses -> canonical OrderStatus
- ExchangeInterface: Abstract base class defining the contract for all exchanges
- ExchangeManager: Registry that creates and manages exchange drivers
- Schemas: Pydantic models for normalized data (OrderBook, Ticker, Order, AccountInfo)

Exchange drivers only ever hand canonical values to callers.
"""
