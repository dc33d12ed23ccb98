"""
TradeFlow – Infrastructure Layer
================================
Implementaciones concretas: EventBus, clientes de Kraken (WebSocket y
REST) y persistencia MySQL vía SQLAlchemy async.
"""
