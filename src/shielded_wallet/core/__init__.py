"""
Core: криптографические примитивы, модели данных и контракты сообщений.

Модули этого пакета не зависят от внешних систем (сервис расчётов, хранилища).
"""
