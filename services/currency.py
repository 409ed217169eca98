"""Форматирование сумм в валюте аукциона"""
from decimal import Decimal
from services.clock import to_money

# symbol, position, decimals, thousand separator, decimal separator
CURRENCIES = {
    "USD": {"symbol": "$", "position": "before", "decimals": 2, "thousand_sep": ",", "decimal_sep": "."},
    "EUR": {"symbol": "€", "position": "before", "decimals": 2, "thousand_sep": ",", "decimal_sep": "."},
    "GBP": {"symbol": "£", "position": "before", "decimals": 2, "thousand_sep": ",", "decimal_sep": "."},
    "INR": {"symbol": "₹", "position": "before", "decimals": 2, "thousand_sep": ",", "decimal_sep": "."},
    "RUB": {"symbol": "₽", "position": "after_space", "decimals": 2, "thousand_sep": " ", "decimal_sep": ","},
    "UZS": {"symbol": "сум", "position": "after_space", "decimals": 0, "thousand_sep": " ", "decimal_sep": ","},
}


def format_amount(amount, currency: str = "USD") -> str:
    """Сумма для показа: format_amount(Decimal("1234.5"), "USD") -> "$1,234.50" """
    config = CURRENCIES.get((currency or "").upper(), CURRENCIES["USD"])
    value = to_money(amount if amount is not None else Decimal("0"))
    decimals = config["decimals"]

    number = f"{value:,.{decimals}f}"
    # Сначала убираем стандартные разделители, потом ставим разделители валюты
    number = number.replace(",", "\0").replace(".", config["decimal_sep"]).replace("\0", config["thousand_sep"])

    symbol = config["symbol"]
    position = config["position"]
    if position == "after":
        return f"{number}{symbol}"
    if position == "after_space":
        return f"{number} {symbol}"
    if position == "before_space":
        return f"{symbol} {number}"
    return f"{symbol}{number}"
