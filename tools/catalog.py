from enum import Enum
from typing import Any, Dict, List


class ToolName(str, Enum):
    GET_PRODUCT_INFORMATION = "get_product_information"
    GET_USER_INFORMATION = "get_user_information"
    GET_BASKET = "get_basket"
    ADD_TO_BASKET = "add_to_basket"
    REMOVE_FROM_BASKET = "remove_from_basket"
    GENERATE_COUPON = "generate_coupon"
    EXECUTE_SQL_QUERY = "execute_sql_query"
    EXECUTE_LINUX_COMMAND = "execute_linux_command"


# tools acting on behalf of a user; their userId always comes from the authenticated caller
USER_SCOPED = {
    ToolName.GET_USER_INFORMATION,
    ToolName.GET_BASKET,
    ToolName.ADD_TO_BASKET,
    ToolName.REMOVE_FROM_BASKET,
    ToolName.EXECUTE_LINUX_COMMAND,
}

MUTATING = {
    ToolName.ADD_TO_BASKET,
    ToolName.REMOVE_FROM_BASKET,
    ToolName.EXECUTE_SQL_QUERY,
    ToolName.EXECUTE_LINUX_COMMAND,
}


def _function(name: ToolName, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name.value,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TOOL_DECLARATIONS: List[Dict[str, Any]] = [
    _function(
        ToolName.GET_PRODUCT_INFORMATION,
        "Get information about products available in the shop",
        {"query": {"type": "string", "description": "Search query to find products"}},
        ["query"],
    ),
    _function(
        ToolName.GET_USER_INFORMATION,
        "Get information about the current user",
        {"userId": {"type": "string", "description": "ID of the user"}},
        ["userId"],
    ),
    _function(
        ToolName.ADD_TO_BASKET,
        "Add a product to the user's basket",
        {
            "userId": {"type": "string", "description": "ID of the user"},
            "productName": {"type": "string", "description": "Name of the product to add"},
            "productId": {"type": "number", "description": "ID of the product to add, when known"},
            "quantity": {"type": "number", "description": "Quantity of the product to add"},
        },
        ["userId", "productName"],
    ),
    _function(
        ToolName.GET_BASKET,
        "Get the contents of the user's basket",
        {"userId": {"type": "string", "description": "ID of the user"}},
        ["userId"],
    ),
    _function(
        ToolName.REMOVE_FROM_BASKET,
        "Remove a product from the user's basket",
        {
            "userId": {"type": "string", "description": "ID of the user"},
            "productId": {"type": "number", "description": "ID of the product to remove"},
            "quantity": {"type": "number", "description": "Quantity to remove (defaults to 1)"},
        },
        ["userId", "productId"],
    ),
    _function(
        ToolName.GENERATE_COUPON,
        "Generate a coupon code for the user",
        {"discount": {"type": "number", "description": "Discount percentage (between 10 and 20)"}},
        ["discount"],
    ),
    _function(
        ToolName.EXECUTE_SQL_QUERY,
        "Execute a custom SQL query (for data retrieval and safe updates)",
        {
            "query": {"type": "string", "description": "SQL query to execute"},
            "explanation": {"type": "string", "description": "Explanation of what the query does"},
        },
        ["query", "explanation"],
    ),
    _function(
        ToolName.EXECUTE_LINUX_COMMAND,
        "Execute a Linux command (admin users only)",
        {
            "command": {"type": "string", "description": "Linux command to execute"},
            "userId": {"type": "string", "description": "ID of the user requesting the command"},
        },
        ["command", "userId"],
    ),
]

REQUIRED_ARGUMENTS: Dict[ToolName, List[str]] = {
    ToolName(decl["function"]["name"]): decl["function"]["parameters"]["required"] for decl in TOOL_DECLARATIONS
}


def parse_tool_name(name: str):
    """The catalog entry for `name`, or None for anything outside the catalog."""
    try:
        return ToolName(name)
    except ValueError:
        return None
