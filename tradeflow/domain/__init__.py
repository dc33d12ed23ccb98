"""
TradeFlow – Domain Layer
========================
Entidades, value objects, servicios puros, estrategias e interfaces de
repositorio. Sin I/O y sin dependencias de infraestructura.
"""
