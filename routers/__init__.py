from typing import Literal

INTENT_LIST = ["product_query", "affirmation", "chat"]
Intent = Literal["product_query", "affirmation", "chat"]

ROUTERS = {
    "NaiveRouter": "routers.naive_router",
}
