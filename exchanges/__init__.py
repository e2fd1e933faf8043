"""
Exchange Drivers Package

This package contains individual exchange driver modules.
Each exchange (Kraken, Binance, Gemini, Liqui) has its own subfolder with:
- api_client.py: REST API logic (signing, endpoints, error payloads)
- __init__.py: Exchange class implementing ExchangeInterface

Adding an exchange means adding a subfolder and registering the class in
core.exchange_manager.EXCHANGE_CLASSES.
"""
