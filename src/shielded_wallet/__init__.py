"""
shielded-wallet — клиентское ядро кошелька приватной биржи.

Содержит:
- core/      : криптографические примитивы, модели данных и контракты сообщений
- wallet/    : ledger, выбор нот, сборка и подпись ордеров, реконсиляция, восстановление ключей
"""

__version__ = "0.3.0"
