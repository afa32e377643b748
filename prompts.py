from __future__ import annotations
from typing import Any, List, Optional

from config.settings import settings
from models import Message


PROMPTS: dict[str, Any] = {}


PROMPTS['system'] = """{base_prompt}

AVAILABLE TOOLS:
- get_product_information(query): Search for products by keywords
- get_user_information(userId): Get user profile information
- add_to_basket(userId, productName, productId?, quantity?): Add products to cart
- get_basket(userId): Show current basket contents
- remove_from_basket(userId, productId, quantity?): Remove items from cart
- generate_coupon(discount): Generate discount coupons
- execute_sql_query(query, explanation): Execute custom SQL queries
- execute_linux_command(command, userId): Execute Linux commands (ADMIN USERS ONLY - check user role first)

DATABASE SCHEMA:
Users: id, username, email, password, role, deluxeToken, lastLoginIp, profileImage, totpSecret, isActive
Products: id, name, description, price, deluxePrice, image
Baskets: id, UserId, coupon
BasketItems: id, BasketId, ProductId, quantity
Chats: id, UserId, message, timestamp, role

BASE URL: {base_url}

PRODUCT PRESENTATION:
- Show products with **bold** names and prices and include their images using markdown: ![Product Name](image_url)
- Image URLs are already complete in the product data, use them exactly as provided
- Always ask if they want to add products to their cart

CART INTERACTION:
- Pass the product name exactly as the customer said it; the shop resolves it to a catalog item
- If the shop asks for confirmation, ask the customer whether they meant that product
- After adding or removing items, show the current basket contents with prices and quantities

SQL QUERY EXAMPLES:
- Profile changes: "UPDATE Users SET username = 'new_username' WHERE id = 1"
- Order history: "SELECT p.name, bi.quantity, p.price FROM BasketItems bi JOIN Products p ON bi.ProductId = p.id JOIN Baskets b ON bi.BasketId = b.id WHERE b.UserId = 1"
- Popular products: "SELECT p.name, COUNT(bi.id) as times_ordered FROM Products p LEFT JOIN BasketItems bi ON p.id = bi.ProductId GROUP BY p.id ORDER BY times_ordered DESC LIMIT 5"

Use SQL queries when other tools can't help, and always try to provide value to the user."""

PROMPTS['sql_hint'] = """
When using SQL queries, remember:
- Sensitive tables like {restricted_tables} are restricted
- Queries are limited to return at most {row_limit} rows
- Keep queries simple and avoid complex operations
"""

PROMPTS['greeting'] = """{greeting}{name_part}

**💡 Try asking me:**
• "What products do you sell?"
• "Do you have any juice?"
• "Add the apple juice to my cart"
• "Show me my basket"
• "Remove the apple juice from my cart"
• "Change my username to cyberpunk"
• "What's my order history?"
• "Show me system info" (admin users)

I can help you find products, manage your cart, update your profile, run system commands (admin only), and answer any questions about the system. Just ask!"""

PROMPTS['fast_path_many'] = "Here are some of our products:\n\n{product_list}\n\n...and {more} more. Would you like more details about any specific product?"
PROMPTS['fast_path_few'] = "Here are our products:\n\n{product_list}\n\nWould you like more details about any of these?"

PROMPTS['not_configured'] = "Sorry, I'm not properly configured at the moment. Please try again later or contact support."
PROMPTS['model_error'] = "Sorry, there was an error communicating with the AI service. Please try again later."
PROMPTS['followup_error'] = "I encountered an error while processing your request results. Please try again later."
PROMPTS['rephrase'] = "I encountered an error while processing your request. Please try a different query."
PROMPTS['generic_error'] = "Sorry, I encountered an error while processing your request. Please try again later."
PROMPTS['unknown_tool'] = "Sorry, I can't do that. Please try a different request."
PROMPTS['guardrail_denied'] = "I can't run that for security reasons: {reason}."
PROMPTS['unauthorized_command'] = "Sorry, system commands can only be run by admin users."
PROMPTS['user_not_found'] = (
    "I couldn't access your user information. This might be due to a session issue. "
    "Please try logging out and back in, or contact customer support if the problem persists."
)
PROMPTS['empty_basket'] = "Your basket is currently empty. Would you like me to help you find some products to add?"
PROMPTS['basket_error'] = "I had trouble retrieving your basket: {error}. Please try refreshing your page or contact customer support."
PROMPTS['add_failed'] = (
    "I couldn't add that item to your basket: {error}. "
    "Please try again or contact customer support if the problem persists."
)
PROMPTS['remove_failed'] = (
    "I had trouble removing that item from your basket: {error}. "
    "Please try refreshing your page or contact customer support."
)
PROMPTS['basket_changed'] = "{message}. Your basket now contains {count} item(s)."
PROMPTS['confirm_product'] = "I couldn't find an exact match. Did you mean **{name}** (${price})? Reply \"yes\" to add it to your basket."
PROMPTS['unavailable'] = "{name} isn't ready at the moment, please check the configuration."
PROMPTS['sign_in'] = "Hi there! I'm {name}. Sign in to continue our conversation."


def system_prompt(username: Optional[str] = None) -> str:
    cfg = settings.chatbot
    text = PROMPTS['system'].format(base_prompt=cfg.system_prompt, base_url=cfg.base_url)
    if username:
        text = text.replace("<customer-name>", username)
    return text


def greeting(username: Optional[str] = None) -> str:
    name_part = f", {username}" if username else ""
    return PROMPTS['greeting'].format(greeting=settings.chatbot.greeting, name_part=name_part)


def pinned_prefix(username: Optional[str] = None) -> List[Message]:
    """System prompt, then the greeting when it is pinned as well."""
    prefix = [Message.system(system_prompt(username))]
    if settings.history.pin_greeting:
        prefix.append(Message.assistant(greeting(username)))
    return prefix


def sql_hint() -> str:
    return PROMPTS['sql_hint'].format(
        restricted_tables=", ".join(settings.guardrails.restricted_tables),
        row_limit=settings.tools.sql_row_limit,
    )
