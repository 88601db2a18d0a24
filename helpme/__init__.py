"""
HelpMe: движок жизненного цикла заявок и расчётов для сервиса доставки
"""

__version__ = "1.0.0"
