"""
TradeFlow – Application Layer
=============================
Puertos, estado por pipeline, servicios con estado y casos de uso.

REGLA DE DEPENDENCIA:
Orquesta el dominio; la infraestructura se inyecta vía puertos.
"""
