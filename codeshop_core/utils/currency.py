"""Currency formatting utilities."""

from __future__ import annotations


def format_price(amount: int, symbol: str = "Rp", thousands_separator: str = ".") -> str:
    """
    Format a whole-unit price with a currency prefix.

    Args:
        amount: Price in whole currency units (e.g., 15000)
        symbol: Currency prefix (default: "Rp")
        thousands_separator: Digit group separator (default: ".")

    Returns:
        Formatted string (e.g., "Rp 15.000")
    """
    grouped = f"{abs(int(amount)):,}".replace(",", thousands_separator)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol} {grouped}"
