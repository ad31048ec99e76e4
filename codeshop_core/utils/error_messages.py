"""Standardized error messages for consistent user experience."""

from __future__ import annotations

from typing import Any


def get_error_message(error_type: str, **kwargs: Any) -> str:
    """
    Get formatted error message with variables.

    Args:
        error_type: Type of error (key from ERROR_MESSAGES)
        **kwargs: Variables to format into the message

    Returns:
        Formatted error message string
    """
    message_template = ERROR_MESSAGES.get(error_type, "❌ An error occurred. Please try again later.")

    try:
        return message_template.format(**kwargs)
    except KeyError:
        return f"❌ {error_type.replace('_', ' ').title()} error occurred."


ERROR_MESSAGES = {
    "permission_denied": "🚫 You don't have permission to use this command.",

    "guild_only": "❌ This command can only be used inside a server.",

    "invalid_product": (
        "❌ **Product Not Found**\n\n"
        "No product with code `{code}` exists.\n"
        "• Use `/products` to see the catalog"
    ),

    "product_exists": (
        "❌ **Product Already Exists**\n\n"
        "A product with code `{code}` is already in the catalog.\n"
        "• Use `/editproduct` to change its name or price"
    ),

    "code_exists": "❌ That code is already stored in the database.",

    "insufficient_stock": (
        "🔴 **Insufficient Stock**\n\n"
        "Not enough stock available for this purchase.\n"
        "• Available: {available_quantity}\n"
        "• Requested: {requested_quantity}"
    ),

    "out_of_stock": (
        "🔴 **Out of Stock**\n\n"
        "`{code}` is currently out of stock.\n"
        "• Check the stock board for restocks"
    ),

    "order_not_found": "❌ Order #{order_id} was not found.",

    "order_not_pending": "❌ Order #{order_id} is already **{status}**.",

    "invalid_color": "❌ `{value}` is not a valid hex color. Use a value like `#2ecc71`.",

    "channel_unusable": "❌ I can't send messages in {channel}. Check my permissions there.",

    "moderation_failed": "❌ Could not {action} {target}: {reason}",

    "generic": "❌ Something went wrong: {error}",
}
